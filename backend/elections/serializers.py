from __future__ import annotations

from dataclasses import asdict, is_dataclass

from rest_framework import serializers

from .recording import Selection


class BallotLoadInputSerializer(serializers.Serializer):
    access_token = serializers.CharField(max_length=255, trim_whitespace=True)


class BallotSelectionSerializer(serializers.Serializer):
    portfolio_id = serializers.IntegerField()
    candidate_id = serializers.IntegerField(required=False, allow_null=True, default=None)


class BallotSubmitInputSerializer(serializers.Serializer):
    access_token = serializers.CharField(max_length=255, trim_whitespace=True)
    votes = BallotSelectionSerializer(many=True, allow_empty=True)

    def get_selections(self) -> list[Selection]:
        return [
            Selection(portfolio_id=item["portfolio_id"], candidate_id=item.get("candidate_id"))
            for item in self.validated_data["votes"]
        ]


def to_payload(result) -> dict | list:
    """Plain data for a result dataclass (or a list of them); DRF renders datetimes."""
    if isinstance(result, (list, tuple)):
        return [to_payload(item) for item in result]
    if is_dataclass(result):
        return asdict(result)
    return result

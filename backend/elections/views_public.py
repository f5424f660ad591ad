from __future__ import annotations

from rest_framework import status
from rest_framework.permissions import AllowAny
from rest_framework.response import Response
from rest_framework.views import APIView

from .access import resolve_access_token
from .ballots import load_ballot
from .recording import submit_ballot
from .serializers import BallotLoadInputSerializer, BallotSubmitInputSerializer, to_payload
from .throttles import BallotRateThrottle


class BallotLoadAPIView(APIView):
    authentication_classes = []
    permission_classes = [AllowAny]
    throttle_classes = [BallotRateThrottle]
    ballot_envelope = True

    def post(self, request, *args, **kwargs):
        serializer = BallotLoadInputSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        identity = resolve_access_token(serializer.validated_data["access_token"])
        ballot = load_ballot(identity)
        return Response({"success": True, "data": to_payload(ballot)})


class BallotSubmitAPIView(APIView):
    authentication_classes = []
    permission_classes = [AllowAny]
    throttle_classes = [BallotRateThrottle]
    ballot_envelope = True

    def post(self, request, *args, **kwargs):
        serializer = BallotSubmitInputSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        identity = resolve_access_token(serializer.validated_data["access_token"])
        recorded = submit_ballot(identity, serializer.get_selections(), request=request)
        return Response(
            {
                "success": True,
                "message": "Your ballot has been recorded.",
                "data": to_payload(recorded),
            },
            status=status.HTTP_201_CREATED,
        )

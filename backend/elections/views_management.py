from __future__ import annotations

from rest_framework import status
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from .integrity import DEFAULT_EVENT_LIMIT, ballot_integrity_summary, clamp_limit, recent_security_events
from .models import Election
from .permissions import CanViewElectionReports
from .serializers import to_payload
from .tally import build_election_report


def _get_election_or_404(election_id: int):
    election = Election.objects.filter(id=election_id).first()
    if election is None:
        return None, Response({"detail": "Election not found."}, status=status.HTTP_404_NOT_FOUND)
    return election, None


class ElectionReportAPIView(APIView):
    permission_classes = [IsAuthenticated, CanViewElectionReports]

    def get(self, request, election_id: int, *args, **kwargs):
        election, not_found = _get_election_or_404(election_id)
        if not_found is not None:
            return not_found

        return Response(to_payload(build_election_report(election)))


class ElectionSecurityEventsAPIView(APIView):
    permission_classes = [IsAuthenticated, CanViewElectionReports]

    def get(self, request, election_id: int, *args, **kwargs):
        election, not_found = _get_election_or_404(election_id)
        if not_found is not None:
            return not_found

        limit = clamp_limit(request.query_params.get("limit", DEFAULT_EVENT_LIMIT))
        events = recent_security_events(election, limit=limit)
        return Response({"election_id": election.id, "limit": limit, "results": to_payload(events)})


class ElectionIntegrityAPIView(APIView):
    permission_classes = [IsAuthenticated, CanViewElectionReports]

    def get(self, request, election_id: int, *args, **kwargs):
        election, not_found = _get_election_or_404(election_id)
        if not_found is not None:
            return not_found

        return Response(to_payload(ballot_integrity_summary(election)))

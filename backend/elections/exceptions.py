from __future__ import annotations

from rest_framework import status
from rest_framework.exceptions import APIException, ValidationError
from rest_framework.response import Response
from rest_framework.views import exception_handler


class VotingError(APIException):
    """Base for errors rendered as {success: false, error_code, message}."""

    status_code = status.HTTP_400_BAD_REQUEST
    error_code = "VOTING_ERROR"
    default_detail = "The ballot could not be processed."
    default_code = "voting_error"
    retryable = False

    def payload(self) -> dict:
        body = {"success": False, "error_code": self.error_code, "message": str(self.detail)}
        if self.retryable:
            body["retryable"] = True
        return body


class InvalidToken(VotingError):
    status_code = status.HTTP_401_UNAUTHORIZED
    error_code = "INVALID_TOKEN"
    default_detail = "The access token is missing, unknown or expired."


class ElectionNotFound(VotingError):
    status_code = status.HTTP_404_NOT_FOUND
    error_code = "ELECTION_NOT_FOUND"
    default_detail = "Election not found."


class AlreadyVoted(VotingError):
    status_code = status.HTTP_403_FORBIDDEN
    error_code = "ALREADY_VOTED"
    default_detail = "You have already voted in this election."

    def __init__(self, voted_at=None, detail=None):
        super().__init__(detail=detail)
        self.voted_at = voted_at

    def payload(self) -> dict:
        body = super().payload()
        body["voted_at"] = self.voted_at.isoformat() if self.voted_at else None
        return body


class ElectionNotActive(VotingError):
    status_code = status.HTTP_403_FORBIDDEN
    error_code = "ELECTION_NOT_ACTIVE"
    default_detail = "This election is not accepting votes right now."


class IncompleteBallot(VotingError):
    error_code = "INCOMPLETE_BALLOT"
    default_detail = "Please make a selection for every portfolio."


class InvalidSelection(VotingError):
    error_code = "INVALID_SELECTION"
    default_detail = "The ballot contains an invalid selection."


class BallotStoreUnavailable(VotingError):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    error_code = "STORE_UNAVAILABLE"
    default_detail = "The ballot could not be saved right now. Please try again."
    retryable = True


class TallyUnavailable(VotingError):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    error_code = "TALLY_UNAVAILABLE"
    default_detail = "Election statistics are temporarily unavailable."


def voting_exception_handler(exc, context):
    if isinstance(exc, VotingError):
        return Response(exc.payload(), status=exc.status_code)

    response = exception_handler(exc, context)
    if response is not None and isinstance(exc, ValidationError) and _is_ballot_view(context):
        response.data = {
            "success": False,
            "error_code": "VALIDATION_ERROR",
            "message": "The request payload is invalid.",
            "errors": response.data,
        }
    return response


def _is_ballot_view(context) -> bool:
    view = context.get("view") if context else None
    return bool(getattr(view, "ballot_envelope", False))

from django.urls import path

from .views_management import ElectionIntegrityAPIView, ElectionReportAPIView, ElectionSecurityEventsAPIView
from .views_public import BallotLoadAPIView, BallotSubmitAPIView

urlpatterns = [
    path("ballot/load/", BallotLoadAPIView.as_view(), name="ballot-load"),
    path("ballot/submit/", BallotSubmitAPIView.as_view(), name="ballot-submit"),
    path("elections/<int:election_id>/report/", ElectionReportAPIView.as_view(), name="election-report"),
    path(
        "elections/<int:election_id>/security-events/",
        ElectionSecurityEventsAPIView.as_view(),
        name="election-security-events",
    ),
    path("elections/<int:election_id>/integrity/", ElectionIntegrityAPIView.as_view(), name="election-integrity"),
]

from datetime import datetime, timedelta
from datetime import timezone as dt_timezone
from unittest.mock import patch

from django.db import DatabaseError
from django.test import TestCase, override_settings

from elections.exceptions import TallyUnavailable
from elections.models import Election, VoterToken
from elections.recording import submit_ballot
from elections.tally import (
    ALL_VOTERS_LABEL,
    DEFAULT_PEAK_HOUR,
    build_election_report,
    compute_department_participation,
    compute_hourly_timeline,
    compute_portfolio_standings,
    compute_turnout,
    compute_voter_demographics,
    compute_voting_rate,
    round_percentage,
)
from elections.testing import ElectionFixturesMixin


class RoundPercentageTests(TestCase):
    def test_rounds_half_up_to_two_decimals(self):
        self.assertEqual(round_percentage(1, 8), 12.5)
        self.assertEqual(round_percentage(1, 3), 33.33)
        self.assertEqual(round_percentage(2, 3), 66.67)
        self.assertEqual(round_percentage(1, 800), 0.13)

    def test_zero_whole_is_zero(self):
        self.assertEqual(round_percentage(5, 0), 0.0)


class TurnoutTests(ElectionFixturesMixin, TestCase):
    def setUp(self):
        self.election = self.create_election()

    def test_no_voters_means_zero_turnout(self):
        turnout = compute_turnout(self.election)
        self.assertEqual(turnout.total_voters, 0)
        self.assertEqual(turnout.turnout_percentage, 0.0)

    def test_three_of_ten_used_tokens_is_thirty_percent(self):
        tokens = [VoterToken.objects.create(election=self.election, voter_id=f"v-{i}") for i in range(10)]
        VoterToken.objects.filter(id__in=[token.id for token in tokens[:3]]).update(used=True)

        turnout = compute_turnout(self.election)
        self.assertEqual(turnout.total_voters, 10)
        self.assertEqual(turnout.distinct_voters_who_voted, 3)
        self.assertEqual(turnout.turnout_percentage, 30.0)

        demographics = {row.category: row for row in compute_voter_demographics(self.election)}
        self.assertEqual(demographics["ACTIVE_VOTERS"].count, 3)
        self.assertEqual(demographics["PENDING_VOTERS"].count, 7)
        self.assertEqual(demographics["PENDING_VOTERS"].percentage, 70.0)

        (participation,) = compute_department_participation(self.election)
        self.assertEqual(participation.department, ALL_VOTERS_LABEL)
        self.assertEqual((participation.eligible, participation.voted, participation.percentage), (10, 3, 30.0))

    def test_store_failure_raises_instead_of_zeroes(self):
        with patch("elections.tally.VoterToken.objects") as manager:
            manager.filter.side_effect = DatabaseError("database is locked")
            with self.assertRaises(TallyUnavailable):
                compute_turnout(self.election)


class VotingRateTests(ElectionFixturesMixin, TestCase):
    def test_live_rate_uses_elapsed_hours(self):
        election = self.create_election(start_time=self.now - timedelta(hours=6))
        self.assertEqual(compute_voting_rate(election, 80, now=self.now), 13)

    def test_first_hour_is_floored_to_one(self):
        election = self.create_election(start_time=self.now - timedelta(minutes=30))
        self.assertEqual(compute_voting_rate(election, 5, now=self.now), 5)

    def test_live_but_not_started_is_zero(self):
        election = self.create_election(start_time=self.now + timedelta(hours=1))
        self.assertEqual(compute_voting_rate(election, 10, now=self.now), 0)

    def test_closed_rate_uses_scheduled_hours_half_up(self):
        election = self.create_election(
            status=Election.Status.CLOSED,
            start_time=self.now - timedelta(hours=12),
            end_time=self.now,
        )
        self.assertEqual(compute_voting_rate(election, 30, now=self.now), 3)

    def test_other_statuses_have_no_rate(self):
        election = self.create_election(status=Election.Status.DRAFT)
        self.assertEqual(compute_voting_rate(election, 50, now=self.now), 0)


class PortfolioStandingTests(ElectionFixturesMixin, TestCase):
    def test_tied_candidates_lead_in_insertion_order(self):
        election = self.create_election()
        portfolio, (first, second) = self.create_portfolio(election, "President", candidates=["Zed Young", "Amy Hall"])
        for index, candidate in enumerate([second, first]):
            token, _ = self.create_voter(election, f"voter-{index}")
            submit_ballot(self.identity_for(token), [(portfolio.id, candidate.id)], now=self.now)

        for _ in range(3):
            (standing,) = compute_portfolio_standings(election, 2)
            self.assertEqual(standing.leading_candidate.candidate_id, first.id)
            self.assertEqual(standing.leading_candidate.percentage, 50.0)

    def test_portfolio_without_candidates_has_no_leader(self):
        election = self.create_election()
        self.create_portfolio(election, "Vacant seat")
        (standing,) = compute_portfolio_standings(election, 0)
        self.assertIsNone(standing.leading_candidate)
        self.assertEqual(standing.percentage, 0.0)

    def test_first_candidate_leads_when_no_votes_are_cast(self):
        election = self.create_election()
        portfolio, (first, _second) = self.create_portfolio(election, "Treasurer", candidates=["Cara Diaz", "Ben Ortiz"])
        (standing,) = compute_portfolio_standings(election, 0)
        self.assertEqual(standing.leading_candidate.candidate_id, first.id)
        self.assertEqual(standing.leading_candidate.votes, 0)
        self.assertEqual(standing.leading_candidate.percentage, 0.0)


class ElectionScenarioTests(ElectionFixturesMixin, TestCase):
    """Two portfolios, 100 eligible voters, 40 ballots."""

    def setUp(self):
        self.election = self.create_election()
        self.president, (self.candidate_a, self.candidate_b, self.candidate_c) = self.create_portfolio(
            self.election, "President", ballot_order=1, candidates=["Candidate A", "Candidate B", "Candidate C"]
        )
        self.referendum, (self.yes,) = self.create_portfolio(
            self.election, "Referendum", ballot_order=2, candidates=["Approve"]
        )

        president_picks = [self.candidate_a] * 25 + [self.candidate_b] * 10 + [self.candidate_c] * 5
        referendum_picks = [self.yes.id] * 30 + [None] * 10
        for index in range(100):
            token = VoterToken.objects.create(election=self.election, voter_id=f"voter-{index:03d}")
            if index >= 40:
                continue
            submit_ballot(
                self.identity_for(token),
                [(self.president.id, president_picks[index].id), (self.referendum.id, referendum_picks[index])],
                now=self.now - timedelta(minutes=index),
            )

    def test_turnout(self):
        turnout = compute_turnout(self.election)
        self.assertEqual(turnout.total_voters, 100)
        self.assertEqual(turnout.distinct_voters_who_voted, 40)
        self.assertEqual(turnout.total_votes, 80)
        self.assertEqual(turnout.turnout_percentage, 40.0)

    def test_standings(self):
        president, referendum = compute_portfolio_standings(self.election, 80)

        self.assertEqual(president.votes, 40)
        self.assertEqual(president.percentage, 50.0)
        self.assertEqual(president.leading_candidate.candidate_id, self.candidate_a.id)
        self.assertEqual(president.leading_candidate.votes, 25)
        self.assertEqual(president.leading_candidate.percentage, 62.5)
        self.assertEqual([c.percentage for c in president.candidates], [62.5, 25.0, 12.5])

        self.assertEqual(referendum.votes, 40)
        self.assertEqual(referendum.abstentions, 10)
        self.assertEqual(referendum.leading_candidate.votes, 30)
        self.assertEqual(referendum.leading_candidate.percentage, 75.0)

    def test_report_bundles_everything_at_a_fixed_time(self):
        report = build_election_report(self.election, now=self.now)
        self.assertEqual(report.generated_at, self.now)
        self.assertEqual(report.turnout.turnout_percentage, 40.0)
        self.assertEqual(report.voting_rate, 13)
        self.assertEqual(len(report.portfolios), 2)
        self.assertEqual(report.timeline.total_votes, 80)
        self.assertEqual(report.integrity.total_ballots, 40)
        self.assertEqual(report.integrity.valid_votes, 80)
        self.assertEqual(report.integrity.last_audit_time, self.now)


@override_settings(TIME_ZONE="UTC")
class HourlyTimelineTests(ElectionFixturesMixin, TestCase):
    def setUp(self):
        day = datetime(2026, 3, 10, tzinfo=dt_timezone.utc)
        self.election = self.create_election(start_time=day.replace(hour=8), end_time=day.replace(hour=20))
        self.portfolio, (self.candidate,) = self.create_portfolio(self.election, "Referendum", candidates=["Approve"])
        self.cast_times = [
            day.replace(hour=9, minute=15),
            day.replace(hour=9, minute=45),
            day.replace(hour=11, minute=5),
            day.replace(hour=13, minute=0),
        ]

    def _cast_all(self):
        for index, cast_at in enumerate(self.cast_times):
            token, _ = self.create_voter(self.election, f"voter-{index}")
            submit_ballot(self.identity_for(token), [(self.portfolio.id, self.candidate.id)], now=cast_at)

    def test_empty_timeline_defaults_peak_hour(self):
        timeline = compute_hourly_timeline(self.election)
        self.assertEqual(timeline.buckets, ())
        self.assertEqual(timeline.total_votes, 0)
        self.assertEqual(timeline.peak_hour, DEFAULT_PEAK_HOUR)

    def test_leading_zero_hours_are_suppressed_and_later_ones_kept(self):
        self._cast_all()
        timeline = compute_hourly_timeline(self.election)

        hours = [bucket.hour for bucket in timeline.buckets]
        self.assertEqual(hours, list(range(9, 24)))
        self.assertEqual(timeline.buckets[0].label, "09:00")
        self.assertEqual(timeline.buckets[0].votes, 2)
        self.assertEqual(timeline.buckets[1].votes, 0)
        self.assertEqual(timeline.peak_hour, 9)

    def test_cumulative_is_monotonic_and_ends_at_total(self):
        self._cast_all()
        timeline = compute_hourly_timeline(self.election)

        cumulative = [bucket.cumulative for bucket in timeline.buckets]
        self.assertEqual(cumulative, sorted(cumulative))
        self.assertEqual(cumulative[-1], timeline.total_votes)
        self.assertEqual(timeline.total_votes, 4)

    @override_settings(TIME_ZONE="America/New_York")
    def test_buckets_use_the_configured_time_zone(self):
        self._cast_all()
        timeline = compute_hourly_timeline(self.election)
        self.assertEqual(timeline.buckets[0].hour, 5)
        self.assertEqual(timeline.peak_hour, 5)

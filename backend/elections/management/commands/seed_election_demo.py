from __future__ import annotations

import csv
from pathlib import Path

from django.core.management.base import BaseCommand
from django.db import transaction
from django.utils import timezone

from elections.models import Candidate, Election, Portfolio, VoteAccessSession, VoterToken


DEFAULT_PORTFOLIOS = [
    {
        "title": "President",
        "description": "Leads the association and chairs the executive council.",
        "candidates": [
            {"full_name": "Ama Owusu", "manifesto": "Open budget meetings every term."},
            {"full_name": "Kwame Mensah", "manifesto": "Longer library hours during exams."},
            {"full_name": "Esi Boateng", "manifesto": "A student welfare desk in every hall."},
        ],
    },
    {
        "title": "Constitutional amendment",
        "description": "Approve the revised constitution (yes/no).",
        "candidates": [
            {"full_name": "Approve the amendment", "manifesto": ""},
        ],
    },
]


class Command(BaseCommand):
    help = "Create a live demo election with portfolios, candidates, voter tokens and access tokens."

    def add_arguments(self, parser):
        parser.add_argument(
            "--title",
            type=str,
            default=f"Demo election {timezone.localdate().isoformat()}",
            help="Election title.",
        )
        parser.add_argument(
            "--voters",
            type=int,
            default=25,
            help="Number of voter tokens to provision.",
        )
        parser.add_argument(
            "--hours",
            type=int,
            default=8,
            help="Voting window length, also used as the access token lifetime.",
        )
        parser.add_argument(
            "--output-csv",
            type=str,
            default="",
            help="CSV path where the plain access tokens are written.",
        )

    @transaction.atomic
    def handle(self, *args, **options):
        title = str(options["title"]).strip()
        voter_count = max(1, int(options["voters"]))
        hours = max(1, int(options["hours"]))
        output_csv = str(options["output_csv"] or "").strip()

        now = timezone.now()
        election = Election.objects.create(
            title=title,
            status=Election.Status.LIVE,
            start_time=now,
            end_time=now + timezone.timedelta(hours=hours),
        )

        for order, portfolio_data in enumerate(DEFAULT_PORTFOLIOS, start=1):
            portfolio = Portfolio.objects.create(
                election=election,
                title=portfolio_data["title"],
                description=portfolio_data["description"],
                ballot_order=order,
            )
            for candidate_data in portfolio_data["candidates"]:
                Candidate.objects.create(portfolio=portfolio, **candidate_data)

        token_rows: list[dict[str, str]] = []
        for index in range(1, voter_count + 1):
            voter_token = VoterToken.objects.create(
                election=election,
                voter_id=f"demo-voter-{election.id}-{index:04d}",
                metadata={"seeded": True},
            )
            session, raw_token = VoteAccessSession.issue(
                voter_token, ttl=timezone.timedelta(hours=hours), now=now
            )
            token_rows.append(
                {
                    "access_token": raw_token,
                    "voter_id": voter_token.voter_id,
                    "election_id": str(election.id),
                    "expires_at": session.expires_at.isoformat(),
                }
            )

        if output_csv:
            csv_path = Path(output_csv)
            csv_path.parent.mkdir(parents=True, exist_ok=True)
            with csv_path.open("w", encoding="utf-8", newline="") as csv_file:
                writer = csv.DictWriter(csv_file, fieldnames=list(token_rows[0].keys()))
                writer.writeheader()
                writer.writerows(token_rows)
            self.stdout.write(self.style.SUCCESS(f"Access tokens written to: {csv_path}"))

        self.stdout.write(self.style.SUCCESS(f"Election created: id={election.id}, title='{election.title}'"))
        self.stdout.write(
            self.style.SUCCESS(f"Portfolios: {len(DEFAULT_PORTFOLIOS)} | Voter tokens: {voter_count}")
        )
        self.stdout.write("Sample access tokens:")
        for row in token_rows[: min(8, len(token_rows))]:
            self.stdout.write(f"- {row['access_token']}")

from __future__ import annotations

from django.conf import settings
from django.core.management.base import BaseCommand, CommandError

from audit.services import record_event
from elections.models import Election


class Command(BaseCommand):
    help = "Append an audit checkpoint event for an election (feeds the integrity summary)."

    def add_arguments(self, parser):
        parser.add_argument("election_id", type=int, help="Election id.")
        parser.add_argument("--note", type=str, default="", help="Free text stored with the checkpoint.")

    def handle(self, *args, **options):
        election = Election.objects.filter(id=options["election_id"]).first()
        if election is None:
            raise CommandError(f"Election {options['election_id']} does not exist.")

        entry = record_event(
            event_type=settings.ELECTIONS_AUDIT_CHECKPOINT_EVENT,
            election=election,
            metadata={"note": str(options["note"] or "").strip(), "source": "audit_checkpoint"},
        )
        self.stdout.write(
            self.style.SUCCESS(f"Checkpoint recorded: election={election.id} event={entry.event_type} at={entry.created_at.isoformat()}")
        )

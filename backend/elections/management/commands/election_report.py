from __future__ import annotations

import json

from django.core.management.base import BaseCommand, CommandError
from django.core.serializers.json import DjangoJSONEncoder

from elections.models import Election
from elections.serializers import to_payload
from elections.tally import build_election_report


class Command(BaseCommand):
    help = "Print the point-in-time report of an election as JSON."

    def add_arguments(self, parser):
        parser.add_argument("election_id", type=int, help="Election id.")
        parser.add_argument("--indent", type=int, default=2, help="JSON indentation (0 for compact output).")

    def handle(self, *args, **options):
        election = Election.objects.filter(id=options["election_id"]).first()
        if election is None:
            raise CommandError(f"Election {options['election_id']} does not exist.")

        report = build_election_report(election)
        indent = options["indent"] or None
        self.stdout.write(json.dumps(to_payload(report), cls=DjangoJSONEncoder, indent=indent))

from datetime import timedelta

from django.conf import settings
from django.core.management.base import BaseCommand
from django.utils import timezone

from intake.apps.deposits.ledger import DepositLedger


class Command(BaseCommand):
    help = "Move PENDING deposits older than the expiry age to EXPIRED."

    def add_arguments(self, parser):
        parser.add_argument(
            "--days",
            type=int,
            default=None,
            help="Expiry age in days (default: DEPOSIT_EXPIRY_DAYS).",
        )

    def handle(self, *args, **options):
        days = options["days"] if options["days"] is not None else settings.DEPOSIT_EXPIRY_DAYS
        count = DepositLedger().archive_expired(timezone.now() - timedelta(days=days))
        self.stdout.write(self.style.SUCCESS(f"Archived {count} deposit(s) older than {days} days."))

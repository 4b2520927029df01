import json

from django.core.management.base import BaseCommand, CommandError

from intake.apps.deposits.models import Deposit, DepositStatus
from intake.apps.treasury.services import build_reconciler


class Command(BaseCommand):
    help = "Mark CONFIRMED deposits RELEASED when the chain shows they were already swept."

    def add_arguments(self, parser):
        parser.add_argument(
            "--deposit",
            dest="deposit_id",
            help="Reconcile a single deposit by id. Default: every CONFIRMED deposit.",
        )

    def handle(self, *args, **options):
        reconciler = build_reconciler()

        deposit_id = options.get("deposit_id")
        if deposit_id:
            try:
                deposit = Deposit.objects.get(id=deposit_id)
            except (Deposit.DoesNotExist, ValueError):
                raise CommandError(f"Deposit {deposit_id} not found.")
            if deposit.status != DepositStatus.CONFIRMED:
                raise CommandError(f"Deposit is {deposit.status}, not CONFIRMED.")
            result = reconciler.reconcile(deposit)
            self.stdout.write(self.style.SUCCESS(f"{deposit.address}: {result}"))
            return

        results = reconciler.reconcile_all()
        self.stdout.write(json.dumps(results, indent=2))

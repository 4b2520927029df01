from __future__ import annotations

import logging
from datetime import timedelta

from celery import shared_task
from django.utils import timezone

logger = logging.getLogger(__name__)


def build_observer():
    from intake.apps.treasury.config import get_treasury_config
    from intake.apps.treasury.services import build_transfer_service

    from .indexer import IndexerClient
    from .ledger import DepositLedger
    from .observer import DepositObserver

    config = get_treasury_config()
    return DepositObserver(
        config, DepositLedger(), IndexerClient(config), build_transfer_service(config)
    )


@shared_task
def poll_deposits_task() -> dict:
    """Beat-driven pass over every open deposit."""
    report = build_observer().run_cycle()
    return {
        "checked": report.checked,
        "confirmed": report.confirmed,
        "released": report.released,
        "transfer_failures": report.transfer_failures,
        "errors": report.errors,
    }


@shared_task
def check_deposit_task(deposit_id: str) -> str:
    """Single-deposit check, enqueued by the stream webhook."""
    from .models import Deposit

    try:
        deposit = Deposit.objects.get(id=deposit_id)
    except Deposit.DoesNotExist:
        logger.error(f"[Observer] Deposit {deposit_id} not found")
        return "missing"

    try:
        return build_observer().check_deposit(deposit)
    except Exception as e:
        # the next poll retries
        logger.error(f"[Observer] Check for {deposit.address} failed: {e}", exc_info=True)
        return "error"


@shared_task
def archive_expired_deposits_task() -> int:
    from intake.apps.treasury.config import get_treasury_config

    from .ledger import DepositLedger

    days = get_treasury_config().deposit_expiry_days
    return DepositLedger().archive_expired(timezone.now() - timedelta(days=days))


@shared_task
def reconcile_deposits_task() -> dict:
    from intake.apps.treasury.services import build_reconciler

    results = build_reconciler().reconcile_all()
    logger.info(f"[Reconcile] {results}")
    return results

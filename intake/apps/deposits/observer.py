"""
Deposit observer.

One pass over every open deposit: refresh cached balances from the indexer,
confirm deposits whose inflow covers the expected amount, then hand confirmed
deposits to the treasury transfer service. A failure on one deposit is logged
and counted; the rest of the pass carries on.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict

from intake.apps.treasury.config import TreasuryConfig
from intake.apps.treasury.units import to_base_units

from .models import Deposit, DepositStatus

logger = logging.getLogger(__name__)

# check_deposit results
WAITING = "waiting"
CONFIRMED = "confirmed"
RELEASED = "released"
TRANSFER_FAILED = "transfer_failed"
SKIPPED = "skipped"


@dataclass
class ObserverReport:
    checked: int = 0
    confirmed: int = 0
    released: int = 0
    transfer_failures: int = 0
    errors: Dict[str, str] = field(default_factory=dict)

    def __str__(self):
        return (
            f"checked={self.checked} confirmed={self.confirmed} "
            f"released={self.released} transfer_failures={self.transfer_failures} "
            f"errors={len(self.errors)}"
        )


def inflow_satisfies(inflow: int, expected: int) -> bool:
    """An open deposit confirms once something arrived and it covers `expected` (0 = any)."""
    return inflow > 0 and (expected == 0 or inflow >= expected)


class DepositObserver:
    def __init__(self, config: TreasuryConfig, ledger, indexer, transfer_service):
        self.config = config
        self.ledger = ledger
        self.indexer = indexer
        self.transfer_service = transfer_service

    def run_cycle(self) -> ObserverReport:
        report = ObserverReport()
        for deposit in list(self.ledger.non_terminal()):
            report.checked += 1
            try:
                result = self.check_deposit(deposit)
            except Exception as e:
                logger.error(
                    f"[Observer] Check failed for {deposit.address}: {e}", exc_info=True
                )
                report.errors[str(deposit.id)] = str(e)
                continue

            if result == CONFIRMED:
                # confirmed this pass, sweep to be retried
                report.confirmed += 1
                report.transfer_failures += 1
            elif result == RELEASED:
                report.released += 1
            elif result == TRANSFER_FAILED:
                report.transfer_failures += 1

        logger.info(f"[Observer] Cycle done: {report}")
        return report

    def check_deposit(self, deposit: Deposit) -> str:
        if not deposit.is_open:
            return SKIPPED

        address = deposit.address
        native = self.indexer.get_native_balance(address)
        token = self.indexer.get_token_balance(address)
        incoming = self.indexer.get_incoming_token_transfers(address)
        # indexer transfers can lag the balance endpoint
        received = max(sum(t.value for t in incoming), token)

        deposit = self.ledger.update_observed_balances(
            deposit, native_balance=native, token_balance=token, token_received=received
        )

        newly_confirmed = False
        if deposit.status == DepositStatus.PENDING:
            expected = to_base_units(deposit.expected_amount, self.config.token_decimals)
            if not inflow_satisfies(received, expected):
                logger.debug(
                    f"[Observer] {address}: received {received} of {expected}"
                )
                return WAITING
            deposit = self.ledger.mark_confirmed(deposit, token_received=received)
            newly_confirmed = True
            logger.info(f"[Observer] Deposit {deposit.id} CONFIRMED with {received}")

        outcome = self.transfer_service.transfer_to_treasury(deposit.id)
        if outcome.success:
            return RELEASED
        if newly_confirmed:
            return CONFIRMED
        return TRANSFER_FAILED

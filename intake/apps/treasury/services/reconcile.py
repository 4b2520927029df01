"""
Re-derive RELEASED from chain evidence.

Used when a sweep moved the funds but the ledger write after it failed. Such a
deposit stays CONFIRMED while its token balance reads zero, so re-running the
sweep only ever returns NoBalance.
"""

from __future__ import annotations

import logging

from intake.apps.deposits.models import Deposit, DepositStatus

from ..config import TreasuryConfig
from .locks import LockNotAcquired

logger = logging.getLogger(__name__)

RELEASED = "released"
HAS_BALANCE = "has_balance"
NO_EVIDENCE = "no_evidence"
SKIPPED = "skipped"


class DepositReconciler:
    def __init__(self, config: TreasuryConfig, ledger, chain, indexer, locks):
        self.config = config
        self.ledger = ledger
        self.chain = chain
        self.indexer = indexer
        self.locks = locks

    def reconcile(self, deposit: Deposit) -> str:
        if deposit.status != DepositStatus.CONFIRMED:
            return SKIPPED

        # the sweep holds this lease from balance check to ledger write
        try:
            with self.locks.deposit(deposit.address):
                deposit = self.ledger.get_by_id(deposit.id)
                if deposit.status != DepositStatus.CONFIRMED:
                    return SKIPPED
                return self._reconcile_leased(deposit)
        except LockNotAcquired:
            logger.info(f"[Reconcile] {deposit.address} has an active run; skipping")
            return SKIPPED

    def _reconcile_leased(self, deposit: Deposit) -> str:
        balance = self.chain.get_token_balance(deposit.address)
        if balance > 0:
            return HAS_BALANCE

        treasury = self.config.treasury_address.lower()
        sweeps = [
            t
            for t in self.indexer.get_outgoing_token_transfers(deposit.address)
            if t.to_address == treasury
        ]
        if not sweeps:
            logger.warning(
                f"[Reconcile] {deposit.address} is empty but shows no transfer "
                f"to treasury; needs manual review"
            )
            return NO_EVIDENCE

        latest = max(sweeps, key=lambda t: t.block_number or 0)
        amount = sum(t.value for t in sweeps)
        self.ledger.mark_released(
            deposit,
            transaction_hash=latest.tx_hash,
            amount=amount,
            remaining_balance=balance,
        )
        logger.warning(
            f"[Reconcile] Deposit {deposit.id} marked RELEASED from chain "
            f"evidence: {amount} in {latest.tx_hash}"
        )
        return RELEASED

    def reconcile_all(self) -> dict:
        results = {RELEASED: 0, HAS_BALANCE: 0, NO_EVIDENCE: 0, SKIPPED: 0, "errors": 0}
        for deposit in self.ledger.non_terminal().filter(status=DepositStatus.CONFIRMED):
            try:
                results[self.reconcile(deposit)] += 1
            except Exception as e:
                logger.error(
                    f"[Reconcile] Failed for {deposit.address}: {e}", exc_info=True
                )
                results["errors"] += 1
        return results

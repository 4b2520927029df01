"""
Deposit ledger service.

The single writer of Deposit status. Every write bumps `version`; callers that
read a row and decide on it pass `expected_version` so a concurrent writer is
detected instead of overwritten.
"""

from __future__ import annotations

import logging
from datetime import datetime
from decimal import Decimal
from typing import Optional, Set

from django.db import IntegrityError, transaction
from django.db.models import F, QuerySet
from django.utils import timezone

from .crypto import create_deposit_wallet, decrypt_secret, encrypt_secret
from .models import OPEN_STATUSES, Deposit, DepositStatus

logger = logging.getLogger(__name__)

# status -> statuses it may be entered from
_ALLOWED_FROM = {
    DepositStatus.PENDING: {DepositStatus.PENDING},
    DepositStatus.CONFIRMED: {DepositStatus.PENDING, DepositStatus.CONFIRMED},
    DepositStatus.RELEASED: {DepositStatus.CONFIRMED},
    DepositStatus.EXPIRED: {DepositStatus.PENDING},
}


class OpenDepositExists(Exception):
    def __init__(self, deposit: Deposit):
        super().__init__(
            f"User {deposit.user_id} already has an open deposit at {deposit.address}"
        )
        self.deposit = deposit


class LedgerConflict(Exception):
    """The row changed (status or version) since the caller read it."""


class DepositLedger:
    # ============================================================
    # READS
    # ============================================================

    def get_by_id(self, deposit_id) -> Deposit:
        return Deposit.objects.get(id=deposit_id)

    def get_by_address(self, address: str) -> Optional[Deposit]:
        return Deposit.objects.filter(address__iexact=address).first()

    def get_open_for_user(self, user_id: str) -> Optional[Deposit]:
        return Deposit.objects.filter(
            user_id=user_id, status__in=OPEN_STATUSES
        ).first()

    def non_terminal(self) -> QuerySet:
        return Deposit.objects.filter(status__in=OPEN_STATUSES).order_by("created_at")

    def monitored_addresses(self) -> Set[str]:
        """Lower-cased addresses of every deposit still being watched."""
        return {
            a.lower()
            for a in Deposit.objects.filter(status__in=OPEN_STATUSES).values_list(
                "address", flat=True
            )
        }

    def signing_key(self, deposit: Deposit) -> str:
        return decrypt_secret(deposit.secret_encrypted)

    # ============================================================
    # WRITES
    # ============================================================

    def create(
        self,
        user_id: str,
        address: str,
        private_key: str,
        expected_amount: Decimal = Decimal("0"),
    ) -> Deposit:
        existing = self.get_open_for_user(user_id)
        if existing:
            raise OpenDepositExists(existing)
        try:
            with transaction.atomic():
                deposit = Deposit.objects.create(
                    user_id=user_id,
                    address=address,
                    secret_encrypted=encrypt_secret(private_key),
                    expected_amount=expected_amount,
                )
        except IntegrityError:
            # lost a race with another request for the same user
            existing = self.get_open_for_user(user_id)
            if existing:
                raise OpenDepositExists(existing)
            raise
        logger.info(f"[Ledger] Deposit {deposit.id} opened for user {user_id} at {address}")
        return deposit

    def open_deposit(self, user_id: str, expected_amount: Decimal = Decimal("0")) -> Deposit:
        existing = self.get_open_for_user(user_id)
        if existing:
            raise OpenDepositExists(existing)
        private_key, address = create_deposit_wallet()
        return self.create(user_id, address, private_key, expected_amount)

    def update_status(
        self,
        deposit_id,
        status: str,
        expected_version: Optional[int] = None,
        **fields,
    ) -> Deposit:
        """
        Move a deposit to `status` and write `fields` in one UPDATE.

        Raises LedgerConflict if the current status may not move to `status`
        (RELEASED and EXPIRED are terminal) or if `expected_version` no longer
        matches.
        """
        qs = Deposit.objects.filter(id=deposit_id, status__in=_ALLOWED_FROM[status])
        if expected_version is not None:
            qs = qs.filter(version=expected_version)

        updated = qs.update(
            status=status,
            version=F("version") + 1,
            updated_at=timezone.now(),
            **fields,
        )
        if updated != 1:
            current = Deposit.objects.filter(id=deposit_id).values("status", "version").first()
            raise LedgerConflict(
                f"Deposit {deposit_id} cannot move to {status} "
                f"(current: {current}, expected version: {expected_version})"
            )
        return self.get_by_id(deposit_id)

    def update_observed_balances(
        self,
        deposit: Deposit,
        *,
        native_balance: int,
        token_balance: int,
        token_received: int,
    ) -> Deposit:
        Deposit.objects.filter(id=deposit.id).update(
            native_balance=native_balance,
            token_balance=token_balance,
            token_received=token_received,
            last_checked_at=timezone.now(),
            version=F("version") + 1,
            updated_at=timezone.now(),
        )
        deposit.refresh_from_db()
        return deposit

    def mark_confirmed(self, deposit: Deposit, token_received: int) -> Deposit:
        return self.update_status(
            deposit.id,
            DepositStatus.CONFIRMED,
            expected_version=deposit.version,
            token_received=token_received,
            confirmed_at=timezone.now(),
        )

    def mark_released(
        self,
        deposit: Deposit,
        *,
        transaction_hash: str,
        amount: int,
        approval_tx_hash: Optional[str] = None,
        top_up_tx_hash: Optional[str] = None,
        remaining_balance: Optional[int] = None,
        leftover_allowance: Optional[int] = None,
    ) -> Deposit:
        released = self.update_status(
            deposit.id,
            DepositStatus.RELEASED,
            transaction_hash=transaction_hash,
            amount_transferred=amount,
            approval_tx_hash=approval_tx_hash,
            top_up_tx_hash=top_up_tx_hash,
            remaining_balance=remaining_balance,
            leftover_allowance=leftover_allowance,
            released_at=timezone.now(),
        )
        logger.info(f"[Ledger] Deposit {deposit.id} RELEASED in {transaction_hash}")
        return released

    def record_transfer_outcome(self, deposit: Deposit, outcome) -> None:
        """Audit row plus the deposit's last_transfer_* fields. Leaves status and version alone."""
        from intake.apps.treasury.errors import FailureReason
        from intake.apps.treasury.models import TransferAttempt

        reason = outcome.reason.value if outcome.reason else ""
        TransferAttempt.objects.create(
            deposit_id=deposit.id,
            success=outcome.success,
            reason=reason,
            state=(outcome.failed_at or outcome.state).value,
            ambiguous=outcome.ambiguous,
            amount=outcome.amount,
            top_up_tx_hash=outcome.top_up_tx_hash,
            approval_tx_hash=outcome.approval_tx_hash,
            transfer_tx_hash=outcome.transfer_tx_hash,
            remaining_balance=outcome.remaining_balance,
            leftover_allowance=outcome.leftover_allowance,
            error=outcome.error,
            details=outcome.to_dict(),
        )
        if outcome.reason == FailureReason.NO_BALANCE:
            # nothing to sweep; the deposit row stays as it was
            return
        Deposit.objects.filter(id=deposit.id).update(
            last_transfer_reason=reason,
            last_transfer_error=outcome.error,
            transfer_attempts=F("transfer_attempts") + 1,
        )

    def archive_expired(self, older_than: datetime) -> int:
        """PENDING deposits created before `older_than` become EXPIRED. Keys stay encrypted."""
        now = timezone.now()
        count = Deposit.objects.filter(
            status=DepositStatus.PENDING, created_at__lt=older_than
        ).update(
            status=DepositStatus.EXPIRED,
            archived_at=now,
            updated_at=now,
            version=F("version") + 1,
        )
        if count:
            logger.info(f"[Ledger] Archived {count} expired deposit(s)")
        return count

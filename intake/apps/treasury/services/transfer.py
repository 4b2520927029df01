"""
Treasury transfer orchestrator.

Moves the full USDT balance of a confirmed deposit wallet into the treasury:

1. Read the deposit's token balance; zero ends the run with NoBalance.
2. Estimate the approve, price it with a 50% buffer and check that the gas
   payer can fund everything the run will spend.
3. If the deposit wallet cannot pay for its own approve, the gas payer sends
   it exactly the buffered approval cost and waits for the receipt.
4. The deposit wallet approves the gas payer for the whole balance.
5. The allowance is read back.
6. The gas payer executes transferFrom(deposit -> treasury).
7. Remaining balance and leftover allowance are read for the record.
8. The ledger is marked RELEASED.

If an earlier run's approval already landed, steps 2-4 are skipped so the
wallet is never re-approved blindly.

Every step waits for its receipt before the next begins. Each run holds a lease
on the deposit address; gas payer transactions are serialized on a signer lock.
Failures come back as a TransferOutcome, never as an exception.
"""

from __future__ import annotations

import logging
import time
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Callable, List, Optional, Tuple

from django.db import DatabaseError
from redis.exceptions import RedisError

from intake.apps.deposits.ledger import LedgerConflict
from intake.apps.deposits.models import Deposit, DepositStatus

from ..config import TreasuryConfig
from ..errors import (
    AllowanceMismatch,
    ApprovalFailed,
    ChainError,
    ChainTimeoutError,
    FailureReason,
    LedgerSyncFailed,
    TopUpFailed,
    TransferFailed,
    TreasuryError,
)
from .chain import ChainClient, ChainOperation
from .gas import GasBudgeter, GasPlan
from .locks import LockNotAcquired

logger = logging.getLogger(__name__)


class TransferState(str, Enum):
    START = "START"
    BALANCE_CHECKED = "BALANCE_CHECKED"
    GAS_BUDGETED = "GAS_BUDGETED"
    TOPPED_UP = "TOPPED_UP"
    APPROVED = "APPROVED"
    ALLOWANCE_VERIFIED = "ALLOWANCE_VERIFIED"
    TRANSFERRED = "TRANSFERRED"
    VERIFIED = "VERIFIED"
    DONE = "DONE"
    FAILED = "FAILED"


@dataclass
class TransferOutcome:
    deposit_id: str
    success: bool = False
    reason: Optional[FailureReason] = None
    state: TransferState = TransferState.START
    amount: int = 0
    top_up_tx_hash: Optional[str] = None
    approval_tx_hash: Optional[str] = None
    transfer_tx_hash: Optional[str] = None
    remaining_balance: Optional[int] = None
    leftover_allowance: Optional[int] = None
    transactions: List[Tuple[str, str]] = field(default_factory=list)
    ambiguous: bool = False
    error: str = ""
    # last state reached before FAILED
    failed_at: Optional[TransferState] = None

    def fail(self, reason: FailureReason, error: str) -> "TransferOutcome":
        self.success = False
        self.reason = reason
        self.error = error
        self.failed_at = self.state
        self.state = TransferState.FAILED
        return self

    def to_dict(self) -> dict:
        data = asdict(self)
        data["reason"] = self.reason.value if self.reason else None
        data["state"] = self.state.value
        data["failed_at"] = self.failed_at.value if self.failed_at else None
        # uint256 values do not fit JSON numbers safely
        for key in ("amount", "remaining_balance", "leftover_allowance"):
            if data[key] is not None:
                data[key] = str(data[key])
        data["transactions"] = [list(t) for t in self.transactions]
        return data


class TreasuryTransferService:
    def __init__(
        self,
        config: TreasuryConfig,
        chain: ChainClient,
        ledger,
        locks,
        budgeter: Optional[GasBudgeter] = None,
        alerts=None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.config = config
        self.chain = chain
        self.ledger = ledger
        self.locks = locks
        self.budgeter = budgeter or GasBudgeter(config)
        self.alerts = alerts
        self.sleep = sleep

    def transfer_to_treasury(self, deposit_id) -> TransferOutcome:
        outcome = TransferOutcome(deposit_id=str(deposit_id))

        try:
            deposit = self.ledger.get_by_id(deposit_id)
        except Deposit.DoesNotExist:
            logger.warning(f"[Treasury] Deposit {deposit_id} not found")
            return outcome.fail(FailureReason.NOT_CONFIRMED, "Deposit not found")
        except DatabaseError as e:
            logger.error(
                f"[Treasury] Could not load deposit {deposit_id}: {e}", exc_info=True
            )
            return outcome.fail(FailureReason.CHAIN_ERROR, f"Ledger unavailable: {e}")

        if not self._precheck(deposit, outcome):
            return self._finish(deposit, outcome)

        try:
            with self.locks.deposit(deposit.address):
                deposit = self.ledger.get_by_id(deposit.id)
                if self._precheck(deposit, outcome):
                    self._execute(deposit, outcome)
        except LockNotAcquired as e:
            outcome.fail(FailureReason.IN_PROGRESS, str(e))
        except (RedisError, DatabaseError) as e:
            # lease backend or the re-read failed before any chain call
            logger.error(
                f"[Treasury] Could not start run for {deposit.address}: {e}",
                exc_info=True,
            )
            outcome.fail(FailureReason.CHAIN_ERROR, f"Lease or ledger unavailable: {e}")

        return self._finish(deposit, outcome)

    # ============================================================
    # STATE MACHINE
    # ============================================================

    def _precheck(self, deposit: Deposit, outcome: TransferOutcome) -> bool:
        if deposit.status == DepositStatus.RELEASED:
            outcome.fail(
                FailureReason.ALREADY_RELEASED,
                f"Deposit already released in {deposit.transaction_hash}",
            )
            return False
        if deposit.status != DepositStatus.CONFIRMED:
            outcome.fail(
                FailureReason.NOT_CONFIRMED,
                f"Deposit status is {deposit.status}, expected CONFIRMED",
            )
            return False
        return True

    def _execute(self, deposit: Deposit, outcome: TransferOutcome) -> None:
        try:
            self._run_steps(deposit, outcome)
        except TreasuryError as e:
            if isinstance(e, ChainTimeoutError):
                outcome.ambiguous = True
            outcome.fail(e.reason, str(e))
        except LockNotAcquired as e:
            outcome.fail(
                FailureReason.CHAIN_ERROR, f"Gas payer signer unavailable: {e}"
            )
        except Exception as e:
            logger.error(
                f"[Treasury] Unexpected error sweeping {deposit.address}: {e}",
                exc_info=True,
            )
            outcome.fail(FailureReason.CHAIN_ERROR, f"Unexpected error: {e}")

    def _run_steps(self, deposit: Deposit, outcome: TransferOutcome) -> None:
        cfg = self.config
        owner = deposit.address
        payer = cfg.gas_payer_address

        # Step 1: balance
        balance = self.chain.get_token_balance(owner)
        outcome.state = TransferState.BALANCE_CHECKED
        if balance == 0:
            outcome.fail(FailureReason.NO_BALANCE, "No USDT balance to transfer")
            return
        outcome.amount = balance
        logger.info(f"[Treasury] {owner} holds {balance} token units")

        plan: Optional[GasPlan] = None
        existing = self.chain.get_allowance(owner, payer)
        if existing >= balance:
            logger.info(
                f"[Treasury] Allowance {existing} already covers {balance} for "
                f"{owner}; skipping approval"
            )
        else:
            approve_op = ChainOperation.token_approve(
                cfg.token_address, owner, payer, balance
            )

            # Step 2: gas budget
            approval_units = self.chain.estimate_gas(approve_op)
            gas_price = self.chain.get_gas_price()
            deposit_native = self.chain.get_native_balance(owner)
            payer_native = self.chain.get_native_balance(payer)
            plan = self.budgeter.plan(approval_units, gas_price, deposit_native)
            self.budgeter.ensure_payer_funds(plan, payer_native)
            outcome.state = TransferState.GAS_BUDGETED
            logger.info(
                f"[Treasury] Approval ~{approval_units} gas @ {gas_price} wei, "
                f"buffered cost {plan.approval_cost}; deposit has {deposit_native}"
            )

            # Step 3: top up
            if plan.needs_top_up:
                self._top_up(owner, payer, plan, outcome)
                outcome.state = TransferState.TOPPED_UP

            # Step 4: approve
            self._approve(deposit, approve_op, plan, outcome)
            outcome.state = TransferState.APPROVED

        # Step 5: allowance
        granted = self.chain.get_allowance(owner, payer)
        if granted < balance:
            raise AllowanceMismatch(balance, granted)
        outcome.state = TransferState.ALLOWANCE_VERIFIED

        # Step 6: transferFrom, estimated only now that the allowance exists
        gas_price = plan.gas_price if plan else self.chain.get_gas_price()
        self._transfer_from(owner, payer, balance, gas_price, outcome)
        outcome.state = TransferState.TRANSFERRED

        # Step 7: verify
        try:
            outcome.remaining_balance = self.chain.get_token_balance(owner)
            outcome.leftover_allowance = self.chain.get_allowance(owner, payer)
        except ChainError as e:
            logger.warning(
                f"[Treasury] Post-transfer reads failed for {owner}: {e}"
            )
        outcome.state = TransferState.VERIFIED
        if outcome.remaining_balance:
            logger.warning(
                f"[Treasury] {owner} still holds {outcome.remaining_balance} "
                f"after sweep; funds arrived mid-run"
            )
        if outcome.leftover_allowance:
            logger.warning(
                f"[Treasury] {owner} has leftover allowance "
                f"{outcome.leftover_allowance} for the gas payer"
            )

        # Step 8: ledger
        try:
            self.ledger.mark_released(
                deposit,
                transaction_hash=outcome.transfer_tx_hash,
                amount=balance,
                approval_tx_hash=outcome.approval_tx_hash,
                top_up_tx_hash=outcome.top_up_tx_hash,
                remaining_balance=outcome.remaining_balance,
                leftover_allowance=outcome.leftover_allowance,
            )
        except (DatabaseError, LedgerConflict) as e:
            raise LedgerSyncFailed(
                f"Transfer {outcome.transfer_tx_hash} succeeded but the ledger "
                f"update failed: {e}",
                tx_hash=outcome.transfer_tx_hash,
            ) from e

        outcome.state = TransferState.DONE
        outcome.success = True

    def _top_up(
        self, owner: str, payer: str, plan: GasPlan, outcome: TransferOutcome
    ) -> None:
        op = ChainOperation.native_transfer(payer, owner, plan.top_up_amount)
        logger.info(
            f"[Treasury] Topping up {owner} with {plan.top_up_amount} wei"
        )
        with self.locks.signer(payer):
            tx_hash = self.chain.send_signed(
                op,
                self.config.gas_payer_private_key,
                plan.top_up_gas_limit,
                plan.gas_price,
            )
            outcome.top_up_tx_hash = tx_hash
            outcome.transactions.append(("top_up", tx_hash))
            receipt = self.chain.wait_for_receipt(tx_hash)

        if not receipt.success:
            raise TopUpFailed(f"Top-up {tx_hash} reverted", tx_hash=tx_hash)

        if self.config.top_up_settle_seconds > 0:
            self.sleep(self.config.top_up_settle_seconds)

    def _approve(
        self,
        deposit: Deposit,
        op: ChainOperation,
        plan: GasPlan,
        outcome: TransferOutcome,
    ) -> None:
        signing_key = self.ledger.signing_key(deposit)
        try:
            tx_hash = self.chain.send_signed(
                op, signing_key, plan.approval_gas_limit, plan.gas_price
            )
        except ChainError as e:
            raise ApprovalFailed(f"Approval could not be sent: {e}") from e

        outcome.approval_tx_hash = tx_hash
        outcome.transactions.append(("approve", tx_hash))
        try:
            receipt = self.chain.wait_for_receipt(tx_hash)
        except ChainTimeoutError as e:
            outcome.ambiguous = True
            raise ApprovalFailed(
                f"Approval {tx_hash} not confirmed in time", tx_hash=tx_hash
            ) from e

        if not receipt.success:
            raise ApprovalFailed(f"Approval {tx_hash} reverted", tx_hash=tx_hash)

    def _transfer_from(
        self,
        owner: str,
        payer: str,
        amount: int,
        gas_price: int,
        outcome: TransferOutcome,
    ) -> None:
        cfg = self.config
        op = ChainOperation.token_transfer_from(
            cfg.token_address, payer, owner, cfg.treasury_address, amount
        )
        units = self.chain.estimate_gas(op)
        gas_limit = self.budgeter.gas_limit(units, cfg.transfer_gas_buffer_pct)

        with self.locks.signer(payer):
            try:
                tx_hash = self.chain.send_signed(
                    op, cfg.gas_payer_private_key, gas_limit, gas_price
                )
            except ChainError as e:
                raise TransferFailed(f"transferFrom could not be sent: {e}") from e

            outcome.transfer_tx_hash = tx_hash
            outcome.transactions.append(("transfer_from", tx_hash))
            try:
                receipt = self.chain.wait_for_receipt(tx_hash)
            except ChainTimeoutError as e:
                outcome.ambiguous = True
                raise TransferFailed(
                    f"transferFrom {tx_hash} not confirmed in time", tx_hash=tx_hash
                ) from e

        if not receipt.success:
            raise TransferFailed(f"transferFrom {tx_hash} reverted", tx_hash=tx_hash)
        logger.info(
            f"[Treasury] Moved {amount} from {owner} to treasury in {tx_hash}"
        )

    # ============================================================
    # REPORTING
    # ============================================================

    def _finish(self, deposit: Deposit, outcome: TransferOutcome) -> TransferOutcome:
        if outcome.success:
            logger.info(
                f"[Treasury] Deposit {deposit.id} released: "
                f"{outcome.amount} in {outcome.transfer_tx_hash}"
            )
        else:
            reason = outcome.reason
            logger.log(
                reason.log_level,
                f"[Treasury] Deposit {deposit.id} ({deposit.address}) "
                f"{reason.value} at {outcome.failed_at.value}: {outcome.error}",
            )
            if reason.alerts_operator and self.alerts is not None:
                self.alerts.notify(reason, outcome.error, deposit_address=deposit.address)

        try:
            self.ledger.record_transfer_outcome(deposit, outcome)
        except DatabaseError:
            logger.error(
                f"[Treasury] Could not record transfer attempt for {deposit.id}",
                exc_info=True,
            )
        return outcome

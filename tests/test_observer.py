"""
Tests for the deposit observer: confirmation rule, hand-off to the transfer
service and fail-soft cycles.
"""
from dataclasses import replace
from decimal import Decimal

import pytest

from intake.apps.deposits import observer as obs
from intake.apps.deposits.models import Deposit, DepositStatus
from intake.apps.deposits.observer import DepositObserver, inflow_satisfies
from intake.apps.treasury.services.transfer import TransferOutcome

pytestmark = pytest.mark.django_db

SENDER = "0x1111111111111111111111111111111111111111"


class RecordingTransferService:
    def __init__(self, succeed=True):
        self.succeed = succeed
        self.calls = []

    def transfer_to_treasury(self, deposit_id):
        self.calls.append(str(deposit_id))
        return TransferOutcome(deposit_id=str(deposit_id), success=self.succeed)


@pytest.fixture
def transfers():
    return RecordingTransferService()


@pytest.fixture
def observer(config, ledger, indexer, transfers):
    # whole-unit token so expected amounts read plainly
    return DepositObserver(replace(config, token_decimals=0), ledger, indexer, transfers)


def test_inflow_rule():
    assert not inflow_satisfies(0, 0)
    assert inflow_satisfies(1, 0)
    assert not inflow_satisfies(499, 500)
    assert inflow_satisfies(500, 500)
    assert inflow_satisfies(501, 500)


def test_no_inflow_stays_pending(observer, indexer, transfers, pending_deposit):
    indexer.native[pending_deposit.address.lower()] = 7

    assert observer.check_deposit(pending_deposit) == obs.WAITING

    pending_deposit.refresh_from_db()
    assert pending_deposit.status == DepositStatus.PENDING
    assert pending_deposit.native_balance == 7
    assert pending_deposit.last_checked_at is not None
    assert transfers.calls == []


def test_partial_inflow_does_not_confirm(observer, ledger, indexer, transfers):
    deposit = ledger.open_deposit("user-9", Decimal("500"))
    indexer.add_transfer(SENDER, deposit.address, 200)
    indexer.tokens[deposit.address.lower()] = 200

    assert observer.check_deposit(deposit) == obs.WAITING
    deposit.refresh_from_db()
    assert deposit.token_received == 200
    assert transfers.calls == []


def test_sufficient_inflow_confirms_and_sweeps_once(observer, ledger, indexer, transfers):
    deposit = ledger.open_deposit("user-9", Decimal("500"))
    indexer.add_transfer(SENDER, deposit.address, 300, tx_hash="0x01")
    indexer.add_transfer(SENDER, deposit.address, 200, tx_hash="0x02")
    indexer.tokens[deposit.address.lower()] = 500

    assert observer.check_deposit(deposit) == obs.RELEASED

    deposit.refresh_from_db()
    assert deposit.status == DepositStatus.CONFIRMED
    assert deposit.confirmed_at is not None
    assert deposit.token_received == 500
    assert transfers.calls == [str(deposit.id)]


def test_balance_covers_indexer_lag(observer, indexer, transfers, pending_deposit):
    indexer.tokens[pending_deposit.address.lower()] = 50

    observer.check_deposit(pending_deposit)

    pending_deposit.refresh_from_db()
    assert pending_deposit.status == DepositStatus.CONFIRMED
    assert pending_deposit.token_received == 50
    assert len(transfers.calls) == 1


def test_confirmed_deposit_is_retried(observer, indexer, transfers, confirmed_deposit):
    transfers.succeed = False
    indexer.tokens[confirmed_deposit.address.lower()] = 50

    assert observer.check_deposit(confirmed_deposit) == obs.TRANSFER_FAILED
    assert transfers.calls == [str(confirmed_deposit.id)]


def test_terminal_deposits_are_skipped(observer, ledger, transfers, confirmed_deposit):
    ledger.mark_released(confirmed_deposit, transaction_hash="0x01", amount=1)
    released = Deposit.objects.get(id=confirmed_deposit.id)

    assert observer.check_deposit(released) == obs.SKIPPED
    assert observer.run_cycle().checked == 0


def test_cycle_is_fail_soft(observer, ledger, indexer, transfers):
    broken = ledger.open_deposit("broken")
    funded = ledger.open_deposit("funded")
    idle = ledger.open_deposit("idle")
    indexer.fail_for.add(broken.address.lower())
    indexer.tokens[funded.address.lower()] = 10

    report = observer.run_cycle()

    assert report.checked == 3
    assert report.released == 1
    assert list(report.errors) == [str(broken.id)]
    assert transfers.calls == [str(funded.id)]
    assert Deposit.objects.get(id=idle.id).last_checked_at is not None


def test_cycle_counts_confirmed_but_unswept(observer, ledger, indexer, transfers):
    transfers.succeed = False
    deposit = ledger.open_deposit("user-3")
    indexer.tokens[deposit.address.lower()] = 10

    report = observer.run_cycle()

    assert report.confirmed == 1
    assert report.transfer_failures == 1
    assert report.released == 0

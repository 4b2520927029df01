"""
Tests for the deposit ledger: one open deposit per user, guarded status moves,
versioning and archival.
"""
from datetime import timedelta
from decimal import Decimal

import pytest
from django.db import IntegrityError, transaction
from django.utils import timezone
from eth_account import Account

from intake.apps.deposits.ledger import LedgerConflict, OpenDepositExists
from intake.apps.deposits.models import Deposit, DepositStatus

pytestmark = pytest.mark.django_db


def test_open_deposit_stores_encrypted_key(ledger):
    deposit = ledger.open_deposit("user-1", Decimal("25"))

    assert deposit.status == DepositStatus.PENDING
    assert deposit.expected_amount == Decimal("25")
    key = ledger.signing_key(deposit)
    assert Account.from_key(key).address == deposit.address
    assert key.encode() not in bytes(deposit.secret_encrypted)


def test_second_open_deposit_for_user_is_refused(ledger, pending_deposit):
    with pytest.raises(OpenDepositExists) as exc:
        ledger.open_deposit("user-1", Decimal("10"))
    assert exc.value.deposit.address == pending_deposit.address

    ledger.update_status(pending_deposit.id, DepositStatus.CONFIRMED)
    with pytest.raises(OpenDepositExists):
        ledger.open_deposit("user-1")

    assert ledger.open_deposit("user-2").user_id == "user-2"


def test_user_may_open_again_after_release(ledger, confirmed_deposit):
    ledger.mark_released(confirmed_deposit, transaction_hash="0x01", amount=5)

    fresh = ledger.open_deposit("user-1")
    assert fresh.address != confirmed_deposit.address


def test_database_enforces_one_open_deposit(pending_deposit):
    with pytest.raises(IntegrityError):
        with transaction.atomic():
            Deposit.objects.create(
                user_id="user-1",
                address="0x0000000000000000000000000000000000000bad",
                secret_encrypted=b"x",
            )


def test_update_status_bumps_version_and_checks_it(ledger, pending_deposit):
    confirmed = ledger.update_status(
        pending_deposit.id, DepositStatus.CONFIRMED, expected_version=0
    )
    assert confirmed.version == 1

    with pytest.raises(LedgerConflict):
        ledger.update_status(confirmed.id, DepositStatus.CONFIRMED, expected_version=0)


def test_released_is_terminal(ledger, confirmed_deposit):
    ledger.mark_released(confirmed_deposit, transaction_hash="0x01", amount=5)

    with pytest.raises(LedgerConflict):
        ledger.update_status(confirmed_deposit.id, DepositStatus.CONFIRMED)
    with pytest.raises(LedgerConflict):
        ledger.mark_released(confirmed_deposit, transaction_hash="0x02", amount=5)

    confirmed_deposit.refresh_from_db()
    assert confirmed_deposit.transaction_hash == "0x01"


def test_pending_cannot_jump_to_released(ledger, pending_deposit):
    with pytest.raises(LedgerConflict):
        ledger.mark_released(pending_deposit, transaction_hash="0x01", amount=5)


def test_mark_confirmed_detects_concurrent_write(ledger, pending_deposit):
    stale = Deposit.objects.get(id=pending_deposit.id)
    ledger.update_observed_balances(
        pending_deposit, native_balance=1, token_balance=2, token_received=2
    )

    with pytest.raises(LedgerConflict):
        ledger.mark_confirmed(stale, token_received=2)


def test_lookups(ledger, pending_deposit):
    assert ledger.get_by_address(pending_deposit.address.lower()).id == pending_deposit.id
    assert ledger.get_by_address("0x0000000000000000000000000000000000000000") is None
    assert ledger.get_open_for_user("user-1").id == pending_deposit.id
    assert ledger.get_open_for_user("nobody") is None


def test_archive_expired_only_touches_old_pending(ledger):
    old = ledger.open_deposit("old")
    fresh = ledger.open_deposit("fresh")
    old_confirmed = ledger.open_deposit("old-confirmed")
    ledger.update_status(old_confirmed.id, DepositStatus.CONFIRMED)
    long_ago = timezone.now() - timedelta(days=31)
    Deposit.objects.filter(id__in=[old.id, old_confirmed.id]).update(created_at=long_ago)

    count = ledger.archive_expired(timezone.now() - timedelta(days=30))

    assert count == 1
    old.refresh_from_db()
    assert old.status == DepositStatus.EXPIRED
    assert old.archived_at is not None
    assert bytes(old.secret_encrypted)
    assert Deposit.objects.get(id=fresh.id).status == DepositStatus.PENDING
    assert Deposit.objects.get(id=old_confirmed.id).status == DepositStatus.CONFIRMED
    assert old.address.lower() not in ledger.monitored_addresses()


def test_monitored_addresses_follow_status(ledger, confirmed_deposit):
    other = ledger.open_deposit("user-2")
    assert ledger.monitored_addresses() == {
        confirmed_deposit.address.lower(),
        other.address.lower(),
    }

    ledger.mark_released(confirmed_deposit, transaction_hash="0x01", amount=1)
    assert ledger.monitored_addresses() == {other.address.lower()}

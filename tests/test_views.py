"""
Tests for the deposit HTTP endpoints.
"""
import json
from datetime import timedelta

import pytest
from django.utils import timezone

from intake.apps.deposits.models import Deposit, DepositStatus
from intake.apps.treasury import tasks as treasury_tasks

pytestmark = pytest.mark.django_db


def _create(client, payload):
    return client.post("/deposits/", data=json.dumps(payload), content_type="application/json")


def test_healthz(client):
    resp = client.get("/healthz")
    assert resp.status_code == 200
    assert resp.json() == {"status": "ok"}


def test_create_deposit(client):
    resp = _create(client, {"user_id": "u-1", "expected_amount": "12.5"})

    assert resp.status_code == 201
    data = resp.json()
    assert data["address"].startswith("0x")
    assert Deposit.objects.get(id=data["id"]).status == DepositStatus.PENDING


def test_create_deposit_conflict_returns_existing_address(client):
    first = _create(client, {"user_id": "u-1"}).json()

    resp = _create(client, {"user_id": "u-1", "expected_amount": "3"})

    assert resp.status_code == 409
    assert resp.json()["existing_deposit_address"] == first["address"]


@pytest.mark.parametrize(
    "payload", [{}, {"user_id": ""}, {"user_id": "u", "expected_amount": "abc"}, {"user_id": "u", "expected_amount": "-1"}]
)
def test_create_deposit_validation(client, payload):
    assert _create(client, payload).status_code == 400


def test_status_never_exposes_key(client, pending_deposit):
    resp = client.get(f"/deposits/{pending_deposit.id}/")

    assert resp.status_code == 200
    body = resp.content.decode()
    assert "secret" not in body
    assert resp.json()["address"] == pending_deposit.address
    assert resp.json()["status"] == "PENDING"


def test_status_unknown_deposit(client):
    assert client.get("/deposits/00000000-0000-0000-0000-000000000000/").status_code == 404


def test_pending_and_released_listings(client, ledger, confirmed_deposit):
    pending = client.get("/deposits/users/user-1/pending/").json()["deposits"]
    assert [d["id"] for d in pending] == [str(confirmed_deposit.id)]

    ledger.mark_released(confirmed_deposit, transaction_hash="0xaa", amount=10**18)
    old = ledger.open_deposit("user-1")
    ledger.update_status(old.id, DepositStatus.CONFIRMED)
    ledger.mark_released(old, transaction_hash="0xbb", amount=1)
    Deposit.objects.filter(id=old.id).update(released_at=timezone.now() - timedelta(days=91))

    released = client.get("/deposits/users/user-1/released/").json()["deposits"]
    assert [d["transaction_hash"] for d in released] == ["0xaa"]
    assert released[0]["amount_transferred"] == "1"
    assert client.get("/deposits/users/user-1/pending/").json()["deposits"] == []


def test_manual_transfer_requires_ops_token(client, confirmed_deposit):
    url = f"/deposits/{confirmed_deposit.id}/transfer/"
    assert client.post(url).status_code == 403
    assert client.post(url, HTTP_X_OPS_TOKEN="wrong").status_code == 403


def test_manual_transfer_is_queued(client, monkeypatch, confirmed_deposit):
    queued = []

    class Result:
        id = "task-1"

    class Task:
        def delay(self, deposit_id):
            queued.append(deposit_id)
            return Result()

    monkeypatch.setattr(treasury_tasks, "transfer_to_treasury_task", Task())

    resp = client.post(
        f"/deposits/{confirmed_deposit.id}/transfer/", HTTP_X_OPS_TOKEN="test-ops-token"
    )

    assert resp.status_code == 202
    assert resp.json()["task_id"] == "task-1"
    assert queued == [str(confirmed_deposit.id)]

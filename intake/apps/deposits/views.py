import hmac
import json
import logging
from datetime import timedelta
from decimal import Decimal, InvalidOperation

from django.conf import settings
from django.http import HttpResponse, JsonResponse
from django.utils import timezone
from django.views.decorators.csrf import csrf_exempt

from intake.apps.treasury.units import format_units

from .ledger import DepositLedger, OpenDepositExists
from .models import Deposit, DepositStatus

logger = logging.getLogger(__name__)

PENDING_WINDOW_DAYS = 30
RELEASED_WINDOW_DAYS = 90


def _public(deposit: Deposit) -> dict:
    """Everything a user may see about a deposit. Never the key."""
    decimals = settings.USDT_DECIMALS
    return {
        "id": str(deposit.id),
        "user_id": deposit.user_id,
        "address": deposit.address,
        "status": deposit.status,
        "expected_amount": str(deposit.expected_amount),
        "balances": {
            "usdt": str(format_units(int(deposit.token_balance), decimals)),
            "usdt_received": str(format_units(int(deposit.token_received), decimals)),
            "bnb": str(format_units(int(deposit.native_balance), 18)),
        },
        "transaction_hash": deposit.transaction_hash,
        "amount_transferred": (
            str(format_units(int(deposit.amount_transferred), decimals))
            if deposit.amount_transferred is not None
            else None
        ),
        "created_at": deposit.created_at.isoformat(),
        "confirmed_at": deposit.confirmed_at.isoformat() if deposit.confirmed_at else None,
        "released_at": deposit.released_at.isoformat() if deposit.released_at else None,
    }


@csrf_exempt
def create_deposit(request):
    """POST {user_id, expected_amount} -> a fresh deposit address."""
    if request.method != "POST":
        return HttpResponse(status=405)

    try:
        data = json.loads(request.body.decode("utf-8") or "{}")
    except (UnicodeDecodeError, json.JSONDecodeError):
        return JsonResponse({"error": "Invalid JSON"}, status=400)

    user_id = str(data.get("user_id") or "").strip()
    if not user_id:
        return JsonResponse({"error": "Missing user_id"}, status=400)
    try:
        expected = Decimal(str(data.get("expected_amount") or "0"))
    except InvalidOperation:
        return JsonResponse({"error": "Invalid expected_amount"}, status=400)
    if not expected.is_finite() or expected < 0:
        return JsonResponse({"error": "Invalid expected_amount"}, status=400)

    try:
        deposit = DepositLedger().open_deposit(user_id, expected)
    except OpenDepositExists as e:
        return JsonResponse(
            {
                "success": False,
                "message": "You already have an active deposit request.",
                "existing_deposit_address": e.deposit.address,
            },
            status=409,
        )

    return JsonResponse(
        {
            "success": True,
            "id": str(deposit.id),
            "address": deposit.address,
            "expected_amount": str(deposit.expected_amount),
        },
        status=201,
    )


def deposit_status(request, deposit_id):
    if request.method != "GET":
        return HttpResponse(status=405)
    try:
        deposit = DepositLedger().get_by_id(deposit_id)
    except Deposit.DoesNotExist:
        return JsonResponse({"error": "Deposit not found"}, status=404)
    return JsonResponse(_public(deposit))


def user_pending_deposits(request, user_id):
    if request.method != "GET":
        return HttpResponse(status=405)
    since = timezone.now() - timedelta(days=PENDING_WINDOW_DAYS)
    deposits = Deposit.objects.filter(
        user_id=user_id,
        status__in=[DepositStatus.PENDING, DepositStatus.CONFIRMED],
        created_at__gte=since,
    ).order_by("-created_at")
    return JsonResponse({"deposits": [_public(d) for d in deposits]})


def user_released_deposits(request, user_id):
    if request.method != "GET":
        return HttpResponse(status=405)
    since = timezone.now() - timedelta(days=RELEASED_WINDOW_DAYS)
    deposits = Deposit.objects.filter(
        user_id=user_id, status=DepositStatus.RELEASED, released_at__gte=since
    ).order_by("-released_at")
    return JsonResponse({"deposits": [_public(d) for d in deposits]})


@csrf_exempt
def trigger_transfer(request, deposit_id):
    """Ops-only: enqueue a treasury sweep for one deposit."""
    if request.method != "POST":
        return HttpResponse(status=405)

    token = settings.OPS_API_TOKEN
    if not token or not hmac.compare_digest(
        request.headers.get("X-Ops-Token", ""), token
    ):
        return JsonResponse({"error": "Forbidden"}, status=403)

    if not Deposit.objects.filter(id=deposit_id).exists():
        return JsonResponse({"error": "Deposit not found"}, status=404)

    from intake.apps.treasury.tasks import transfer_to_treasury_task

    result = transfer_to_treasury_task.delay(str(deposit_id))
    logger.info(f"[Ops] Manual transfer queued for {deposit_id}: {result.id}")
    return JsonResponse({"queued": True, "task_id": result.id}, status=202)

"""
Stream webhook for token transfers into deposit addresses.

The indexer POSTs block payloads signed with HMAC-SHA256 over the raw body.
Confirmed payloads are decoded here; each transfer into an open deposit
enqueues a check for that deposit. The webhook only triggers work the
poller would also do on its next pass.
"""

import hashlib
import hmac
import json
import logging
from typing import Any, Dict, List, Optional

from django.conf import settings
from django.http import HttpResponse, JsonResponse
from django.views.decorators.csrf import csrf_exempt

from .ledger import DepositLedger
from .tasks import check_deposit_task

logger = logging.getLogger(__name__)

TRANSFER_TOPIC = "0xddf252ad1be2c89b69c2b068fc378daa952ba7f163c4a11628f55a4df523b3ef"


def verify_signature(body: bytes, signature: Optional[str], secret: str) -> bool:
    if not secret or not signature:
        return False
    expected = hmac.new(secret.encode(), body, hashlib.sha256).hexdigest()
    return hmac.compare_digest(expected, signature.strip().lower())


def _topic_address(topic: str) -> str:
    # indexed address: last 20 bytes of the 32-byte topic
    return "0x" + topic[-40:].lower()


def decode_transfer_log(log: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    """ERC20 Transfer log -> {from, to, value, tx_hash}; None if it is not one."""
    topic0 = (log.get("topic0") or "").lower()
    if topic0 != TRANSFER_TOPIC:
        return None
    topic1, topic2 = log.get("topic1"), log.get("topic2")
    if not topic1 or not topic2:
        return None
    data = log.get("data") or "0x0"
    return {
        "from": _topic_address(topic1),
        "to": _topic_address(topic2),
        "value": int(data, 16),
        "tx_hash": log.get("transactionHash", ""),
        "block_number": log.get("blockNumber"),
    }


def extract_deposit_transfers(payload: Dict[str, Any], token_address: str) -> List[Dict[str, Any]]:
    """Decoded transfers of the deposit token. Logs that fail to decode are skipped."""
    token = token_address.lower()
    transfers = []
    for log in payload.get("logs") or []:
        try:
            if (log.get("address") or "").lower() != token:
                continue
            transfer = decode_transfer_log(log)
        except (AttributeError, TypeError, ValueError) as e:
            logger.warning(f"[Webhook] Skipping undecodable log: {e}")
            continue
        if transfer:
            transfers.append(transfer)
    return transfers


@csrf_exempt
def stream_webhook(request):
    if request.method != "POST":
        return HttpResponse(status=405)

    body = request.body
    if not verify_signature(
        body, request.headers.get("X-Signature"), settings.DEPOSIT_WEBHOOK_SECRET
    ):
        logger.warning("[Webhook] Invalid or missing signature")
        return JsonResponse({"success": False, "message": "Invalid signature"}, status=403)

    try:
        payload = json.loads(body.decode("utf-8") or "{}")
    except (UnicodeDecodeError, json.JSONDecodeError):
        return JsonResponse({"success": False, "message": "Invalid JSON"}, status=400)

    if not payload.get("confirmed"):
        return JsonResponse(
            {"success": True, "message": "Waiting for confirmation"}, status=202
        )

    ledger = DepositLedger()
    monitored = ledger.monitored_addresses()
    queued = set()
    for transfer in extract_deposit_transfers(payload, settings.USDT_CONTRACT_ADDRESS):
        to_address = transfer["to"]
        if to_address not in monitored or to_address in queued:
            continue
        deposit = ledger.get_by_address(to_address)
        if deposit is None:
            continue
        logger.info(
            f"[Webhook] Transfer of {transfer['value']} into {deposit.address} "
            f"in {transfer['tx_hash']}"
        )
        check_deposit_task.delay(str(deposit.id))
        queued.add(to_address)

    return JsonResponse({"success": True, "queued": len(queued)})

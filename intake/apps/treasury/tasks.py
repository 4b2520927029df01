from __future__ import annotations

import logging

import requests
from celery import shared_task
from django.conf import settings

logger = logging.getLogger(__name__)


@shared_task
def send_operator_alert_task(text: str) -> bool:
    """Push an operator alert to the configured Telegram chat."""
    token = settings.TELEGRAM_BOT_TOKEN
    chat_id = settings.OPS_ALERT_CHAT_ID
    if not token or not chat_id:
        logger.debug("[Alert] Telegram not configured; alert only logged")
        return False

    try:
        resp = requests.post(
            f"https://api.telegram.org/bot{token}/sendMessage",
            json={"chat_id": chat_id, "text": text},
            timeout=10,
        )
        resp.raise_for_status()
        return True
    except requests.RequestException as exc:
        logger.error(f"[Alert] Error sending alert to {chat_id}: {exc}")
        return False


@shared_task
def transfer_to_treasury_task(deposit_id: str) -> dict:
    """Run one sweep for a deposit (manual trigger or retry)."""
    from .services import build_transfer_service

    outcome = build_transfer_service().transfer_to_treasury(deposit_id)
    return outcome.to_dict()

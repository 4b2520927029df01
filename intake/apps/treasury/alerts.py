import logging

from django.conf import settings

from .errors import FailureReason

logger = logging.getLogger(__name__)


class OperatorAlerts:
    """Logs operator alerts and, when a chat is configured, pushes them to Telegram."""

    def notify(self, reason: FailureReason, message: str, *, deposit_address: str = ""):
        text = f"[{reason.value}] {deposit_address}: {message}"
        logger.log(max(reason.log_level, logging.ERROR), f"[Alert] {text}")

        if settings.TELEGRAM_BOT_TOKEN and settings.OPS_ALERT_CHAT_ID:
            from .tasks import send_operator_alert_task

            send_operator_alert_task.delay(text)

"""Alert dispatcher: routes critical security events to log and webhook channels."""

from ..core.types import SECURITY_ALERT, SecurityEvent
from ..utils.logging import get_logger
from .webhook import WebhookSender

logger = get_logger("alerting.dispatcher")


class AlertDispatcher:
    """Delivers critical events to every configured channel.

    The structured log is always a channel. Webhook delivery failures are
    logged and never raised: a broken notification endpoint must not
    interfere with event recording.
    """

    def __init__(
        self,
        webhook_urls: list[str] | None = None,
        sender: WebhookSender | None = None,
    ):
        self._webhook_urls = list(webhook_urls or [])
        self._sender = sender or WebhookSender()
        self.sent = 0
        self.failed = 0

    async def dispatch(self, event: SecurityEvent) -> None:
        alert_type = "security_alert" if event.type == SECURITY_ALERT else "critical_alert"
        payload = {
            "alert_type": alert_type,
            **event.to_dict(),
        }
        logger.critical(
            alert_type,
            event_type=event.type,
            event_id=event.id,
            source=event.source_address,
            identity=event.identity,
            description=event.description,
        )

        for url in self._webhook_urls:
            try:
                delivered = await self._sender.send(url, payload)
            except Exception as exc:
                logger.error("alert_delivery_error", url=url, event_id=event.id, error=str(exc))
                delivered = False
            if delivered:
                self.sent += 1
            else:
                self.failed += 1

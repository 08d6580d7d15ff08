"""Webhook alert sender: supports generic, Slack, and Discord formats."""

import httpx

from ..utils.logging import get_logger

logger = get_logger("alerting.webhook")


class WebhookSender:
    """Sends alert payloads via HTTP webhooks.

    Slack and Discord URLs get their platform message shape; anything else
    receives the raw payload plus a summary ``text`` field.
    """

    def __init__(self, timeout: float = 10.0, app_name: str = "LOCKWARDEN"):
        self._timeout = timeout
        self._app_name = app_name

    async def send(self, url: str, payload: dict, headers: dict | None = None) -> bool:
        """POST ``payload`` to ``url``. Returns True on a 2xx response."""
        send_headers = {"Content-Type": "application/json"}
        if headers:
            send_headers.update(headers)

        body = self._format_payload(url, payload)

        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                response = await client.post(url, json=body, headers=send_headers)
                response.raise_for_status()
                logger.info("webhook_sent", url=url, status=response.status_code)
                return True
        except httpx.HTTPStatusError as exc:
            logger.error(
                "webhook_http_error",
                url=url,
                status=exc.response.status_code,
                body=exc.response.text[:500],
            )
            return False
        except httpx.HTTPError as exc:
            logger.error("webhook_send_error", url=url, error=str(exc))
            return False
        except Exception as exc:
            logger.error("webhook_send_error", url=url, error=str(exc))
            return False

    def _format_payload(self, url: str, payload: dict) -> dict:
        message = self._build_message_text(payload)

        if "hooks.slack.com" in url:
            return {"text": message}

        if "discord.com" in url:
            return {"content": message}

        return {"text": message, **payload}

    def _build_message_text(self, payload: dict) -> str:
        alert_type = payload.get("alert_type", "security_alert")
        severity = payload.get("severity", "critical")
        description = payload.get("description", "")
        source = payload.get("source_address")
        created_at = payload.get("created_at", "")

        parts = [f"[{self._app_name}] {severity.upper()}: {alert_type}"]
        if description:
            parts.append(description)
        if source:
            parts.append(f"Source: {source}")
        if created_at:
            parts.append(f"Time: {created_at}")
        return "\n".join(parts)

"""Alert dispatch: routes critical security events to operators."""

from .dispatcher import AlertDispatcher
from .webhook import WebhookSender

__all__ = ["AlertDispatcher", "WebhookSender"]

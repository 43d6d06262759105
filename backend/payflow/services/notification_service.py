"""
Booking notifications.

Message content and delivery channels live outside this service; here a
notification is just ``(booking_id, kind)``. The default implementation
logs it. When a webhook URL is configured the event is POSTed there as JSON.
"""

import logging
from typing import Optional, Protocol

import httpx

from ..core.config import settings
from ..core.money import utcnow

logger = logging.getLogger(__name__)

PRE_AUTHORIZED = "pre_authorized"
CAPTURED = "captured"
CANCELLED = "cancelled"
NO_SHOW = "no_show"
APPOINTMENT_COMPLETED = "appointment_completed"


class NotificationService(Protocol):
    def notify(self, booking_id: str, kind: str) -> None:
        ...


class LoggingNotificationService:
    """Records notifications in the application log only."""

    def notify(self, booking_id: str, kind: str) -> None:
        logger.info(f"[NOTIFY] booking={booking_id} kind={kind}")


class WebhookNotificationService:
    """POSTs ``{booking_id, kind, sent_at}`` to a webhook; raises on failure."""

    def __init__(self, url: str, timeout_seconds: float = 10.0, client: Optional[httpx.Client] = None):
        self.url = url
        self.timeout = httpx.Timeout(timeout_seconds, connect=5.0)
        self._client = client

    def notify(self, booking_id: str, kind: str) -> None:
        payload = {"booking_id": booking_id, "kind": kind, "sent_at": utcnow().isoformat()}
        if self._client is not None:
            response = self._client.post(self.url, json=payload)
        else:
            with httpx.Client(timeout=self.timeout) as client:
                response = client.post(self.url, json=payload)
        response.raise_for_status()
        logger.info(f"[NOTIFY] booking={booking_id} kind={kind} delivered ({response.status_code})")


def build_notification_service() -> NotificationService:
    if settings.notification_webhook_url:
        return WebhookNotificationService(settings.notification_webhook_url)
    return LoggingNotificationService()


def dispatch_notification(dispatcher, notifier: NotificationService, booking_id: str, kind: str) -> None:
    """Fire-and-forget ``notifier.notify``; scheduling problems are logged, never raised."""
    try:
        dispatcher.submit(f"notify {kind} {booking_id}", notifier.notify, booking_id, kind)
    except Exception as exc:
        logger.warning(f"[NOTIFY] Could not dispatch {kind} for booking {booking_id}: {exc}")

import json

import httpx
import pytest

from payflow.services.background import InlineDispatcher
from payflow.services.notification_service import (
    CANCELLED,
    LoggingNotificationService,
    WebhookNotificationService,
    dispatch_notification,
)


def _client(status_code, captured):
    def handler(request: httpx.Request) -> httpx.Response:
        captured.append(request)
        return httpx.Response(status_code)

    return httpx.Client(transport=httpx.MockTransport(handler))


class TestWebhookNotificationService:
    def test_posts_booking_and_kind(self):
        requests = []
        notifier = WebhookNotificationService("https://hooks.example.com/payflow", client=_client(204, requests))

        notifier.notify("booking-1", CANCELLED)

        assert len(requests) == 1
        assert requests[0].method == "POST"
        body = json.loads(requests[0].content)
        assert body["booking_id"] == "booking-1"
        assert body["kind"] == CANCELLED
        assert "sent_at" in body

    def test_error_status_raises(self):
        notifier = WebhookNotificationService("https://hooks.example.com/payflow", client=_client(503, []))
        with pytest.raises(httpx.HTTPStatusError):
            notifier.notify("booking-1", CANCELLED)


class TestDispatchNotification:
    def test_failures_never_reach_the_caller(self):
        notifier = WebhookNotificationService("https://hooks.example.com/payflow", client=_client(500, []))
        dispatch_notification(InlineDispatcher(), notifier, "booking-1", CANCELLED)

    def test_logging_notifier(self, caplog):
        with caplog.at_level("INFO"):
            dispatch_notification(InlineDispatcher(), LoggingNotificationService(), "booking-1", CANCELLED)
        assert any("booking=booking-1 kind=cancelled" in r.getMessage() for r in caplog.records)

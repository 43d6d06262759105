# backend/payflow/services/stripe_gateway.py
"""
Stripe gateway for held payment intents.

Wraps an explicitly constructed ``stripe.StripeClient``: no module-level
``stripe.api_key``, a per-call timeout carried by the HTTP client, and no
network retries. Every ``stripe.StripeError`` leaves this module as a
``ProcessorError`` that says whether the batch may try again next run.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
import logging
from typing import Any, Dict, Mapping, Optional, Protocol

import stripe

from ..core.config import settings
from ..core.exceptions import ProcessorError
from ..core.money import Number, from_cents, to_cents
from ..monitoring.prometheus_metrics import prometheus_metrics
from .payment_router import RouteTarget

logger = logging.getLogger(__name__)

REQUIRES_CAPTURE = "requires_capture"


@dataclass(frozen=True)
class HeldIntent:
    intent_id: str
    status: str
    authorization_expires_at: Optional[datetime]


@dataclass(frozen=True)
class CaptureResult:
    intent_id: str
    captured_amount: Any


@dataclass(frozen=True)
class IntentSnapshot:
    intent_id: str
    status: str
    amount: Any
    amount_received: Any


@dataclass(frozen=True)
class RefundResult:
    refund_id: str
    amount: Any


class ProcessorGateway(Protocol):
    """Operations the jobs and handlers need from a card processor."""

    def create_held_intent(
        self,
        amount: Number,
        customer_ref: str,
        route_target: RouteTarget,
        metadata: Mapping[str, Any],
        payment_method_ref: str,
        idempotency_key: Optional[str] = None,
    ) -> HeldIntent:
        ...

    def capture_intent(
        self, intent_id: str, amount: Number, idempotency_key: Optional[str] = None
    ) -> CaptureResult:
        ...

    def retrieve_intent(self, intent_id: str) -> IntentSnapshot:
        ...

    def cancel_intent(self, intent_id: str) -> None:
        ...

    def refund_intent(self, intent_id: str, amount: Number, reason: str) -> RefundResult:
        ...


def _field(obj: Any, name: str) -> Any:
    if obj is None:
        return None
    if isinstance(obj, Mapping):
        return obj.get(name)
    return getattr(obj, name, None)


def extract_capture_before(intent: Any) -> Optional[datetime]:
    """Hold expiry reported by the card network, if the processor returned one."""
    charge = _field(intent, "latest_charge")
    if charge is None or isinstance(charge, str):
        return None
    card = _field(_field(charge, "payment_method_details"), "card")
    capture_before = _field(card, "capture_before")
    if capture_before is None:
        return None
    return datetime.fromtimestamp(int(capture_before), tz=timezone.utc)


def to_processor_error(exc: stripe.StripeError, operation: str) -> ProcessorError:
    """Classify a Stripe failure. Declines are final, transport failures are retryable."""
    retryable = isinstance(
        exc, (stripe.APIConnectionError, stripe.RateLimitError, stripe.APIError)
    )
    if isinstance(exc, stripe.CardError):
        retryable = False
    processor_code = getattr(exc, "code", None)
    message = getattr(exc, "user_message", None) or str(exc) or exc.__class__.__name__
    return ProcessorError(
        f"Stripe {operation} failed: {message}",
        retryable=retryable,
        processor_code=processor_code,
    )


def build_stripe_client(
    api_key: Optional[str] = None, timeout_seconds: Optional[float] = None
) -> stripe.StripeClient:
    key = api_key if api_key is not None else settings.stripe_secret_key.get_secret_value()
    timeout = timeout_seconds if timeout_seconds is not None else settings.processor_timeout_seconds
    return stripe.StripeClient(
        key,
        http_client=stripe.RequestsClient(timeout=timeout),
        max_network_retries=0,
    )


class StripeGateway:
    """ProcessorGateway backed by the Stripe API."""

    def __init__(self, client: Any = None, currency: Optional[str] = None):
        self.client = client if client is not None else build_stripe_client()
        self.currency = currency or settings.stripe_currency
        self.logger = logging.getLogger(self.__class__.__name__)

    @property
    def _services(self) -> Any:
        # Newer SDKs namespace resources under client.v1
        return getattr(self.client, "v1", self.client)

    def create_held_intent(
        self,
        amount: Number,
        customer_ref: str,
        route_target: RouteTarget,
        metadata: Mapping[str, Any],
        payment_method_ref: str,
        idempotency_key: Optional[str] = None,
    ) -> HeldIntent:
        params: Dict[str, Any] = {
            "amount": to_cents(amount),
            "currency": self.currency,
            "customer": customer_ref,
            "payment_method": payment_method_ref,
            "capture_method": "manual",
            "confirm": True,
            "off_session": True,
            "metadata": {key: str(value) for key, value in metadata.items() if value is not None},
            "expand": ["latest_charge"],
        }
        if not route_target.is_platform:
            params["transfer_data"] = {"destination": route_target.account_id}

        try:
            intent = self._services.payment_intents.create(
                params=params, options=self._options(idempotency_key)
            )
        except stripe.StripeError as e:
            prometheus_metrics.record_processor_call("create_held_intent", "error")
            self.logger.error(f"Stripe error creating held intent: {str(e)}")
            raise to_processor_error(e, "authorization")

        status = _field(intent, "status")
        intent_id = _field(intent, "id")
        if status != REQUIRES_CAPTURE:
            prometheus_metrics.record_processor_call("create_held_intent", "unexpected_status")
            self.logger.warning(f"Held intent {intent_id} returned status {status}")
            raise ProcessorError(
                f"Authorization not held: intent {intent_id} is {status}",
                retryable=status != "requires_payment_method",
                processor_code=status,
            )

        prometheus_metrics.record_processor_call("create_held_intent", "success")
        return HeldIntent(
            intent_id=intent_id,
            status=status,
            authorization_expires_at=extract_capture_before(intent),
        )

    def capture_intent(
        self, intent_id: str, amount: Number, idempotency_key: Optional[str] = None
    ) -> CaptureResult:
        try:
            intent = self._services.payment_intents.capture(
                intent_id,
                params={"amount_to_capture": to_cents(amount)},
                options=self._options(idempotency_key),
            )
        except stripe.StripeError as e:
            prometheus_metrics.record_processor_call("capture_intent", "error")
            self.logger.error(f"Stripe error capturing intent {intent_id}: {str(e)}")
            raise to_processor_error(e, "capture")

        prometheus_metrics.record_processor_call("capture_intent", "success")
        received = _field(intent, "amount_received")
        return CaptureResult(
            intent_id=intent_id,
            captured_amount=from_cents(received) if received is not None else amount,
        )

    def retrieve_intent(self, intent_id: str) -> IntentSnapshot:
        try:
            intent = self._services.payment_intents.retrieve(intent_id)
        except stripe.StripeError as e:
            self.logger.error(f"Stripe error retrieving intent {intent_id}: {str(e)}")
            raise to_processor_error(e, "retrieve")
        return IntentSnapshot(
            intent_id=intent_id,
            status=_field(intent, "status"),
            amount=from_cents(_field(intent, "amount")),
            amount_received=from_cents(_field(intent, "amount_received")),
        )

    def cancel_intent(self, intent_id: str) -> None:
        """Release a held authorization."""
        try:
            self._services.payment_intents.cancel(intent_id)
        except stripe.StripeError as e:
            prometheus_metrics.record_processor_call("cancel_intent", "error")
            self.logger.error(f"Stripe error canceling intent {intent_id}: {str(e)}")
            raise to_processor_error(e, "cancel")
        prometheus_metrics.record_processor_call("cancel_intent", "success")

    def refund_intent(self, intent_id: str, amount: Number, reason: str) -> RefundResult:
        try:
            refund = self._services.refunds.create(
                params={
                    "payment_intent": intent_id,
                    "amount": to_cents(amount),
                    "reason": "requested_by_customer",
                    "metadata": {"reason": reason[:500]},
                },
                options=self._options(f"refund:{intent_id}:{to_cents(amount)}"),
            )
        except stripe.StripeError as e:
            prometheus_metrics.record_processor_call("refund_intent", "error")
            self.logger.error(f"Stripe error refunding intent {intent_id}: {str(e)}")
            raise to_processor_error(e, "refund")

        prometheus_metrics.record_processor_call("refund_intent", "success")
        return RefundResult(refund_id=_field(refund, "id"), amount=from_cents(_field(refund, "amount")))

    @staticmethod
    def _options(idempotency_key: Optional[str]) -> Dict[str, Any]:
        return {"idempotency_key": idempotency_key} if idempotency_key else {}

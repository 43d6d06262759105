# backend/tests/routes/test_booking_routes.py
"""Tests for the cancellation and no-show endpoints."""

from datetime import timedelta

from payflow.core.exceptions import ProcessorError
from payflow.core.money import utcnow
from payflow.models import BookingStatus, PaymentStatus
from payflow.repositories import BookingRepository


def _pre_authorized_booking(seed, hours_until_start):
    booking = seed.booking(start=utcnow() + timedelta(hours=hours_until_start))
    payment = seed.payment(
        booking, status=PaymentStatus.PRE_AUTHORIZED.value, stripe_payment_intent_id="pi_route"
    )
    return booking, payment


class TestAuthentication:
    def test_cancel_requires_internal_secret(self, client, seed):
        booking = seed.booking()
        response = client.post(f"/api/bookings/{booking.id}/cancel", json={"reason": "x"})

        assert response.status_code == 401
        assert response.json()["detail"]["code"] == "UNAUTHORIZED"

    def test_cron_secret_is_not_accepted(self, client, seed, cron_headers):
        booking = seed.booking()
        response = client.post(
            f"/api/bookings/{booking.id}/cancel", json={"reason": "x"}, headers=cron_headers
        )
        assert response.status_code == 401


class TestCancelEndpoint:
    def test_cancel_inside_48h(self, client, seed, db, gateway, notifier, internal_headers):
        booking, payment = _pre_authorized_booking(seed, hours_until_start=30)

        response = client.post(
            f"/api/bookings/{booking.id}/cancel",
            json={"reason": "schedule conflict"},
            headers=internal_headers,
        )

        assert response.status_code == 200
        body = response.json()
        assert body["booking_id"] == booking.id
        assert body["status"] == "cancelled"
        assert body["charge_percentage"] == 25.0
        assert body["charge_amount"] == 25.0
        assert body["charged"] is True
        assert body["payment_status"] == "captured"
        assert body["cancelled_by"] == "client"
        assert body["policy_applied"] is True
        assert 29 < body["hours_until_appointment"] <= 30
        db.refresh(payment)
        assert payment.captured_amount is not None
        assert notifier.sent == [(booking.id, "cancelled")]

    def test_second_cancel_is_a_conflict(self, client, seed, internal_headers):
        booking, _ = _pre_authorized_booking(seed, hours_until_start=100)
        url = f"/api/bookings/{booking.id}/cancel"

        first = client.post(url, json={"reason": "first"}, headers=internal_headers)
        second = client.post(url, json={"reason": "second"}, headers=internal_headers)

        assert first.status_code == 200
        assert second.status_code == 409
        assert second.json()["detail"]["code"] == "ALREADY_PROCESSED"

    def test_unknown_booking(self, client, internal_headers):
        response = client.post(
            "/api/bookings/missing/cancel", json={"reason": "x"}, headers=internal_headers
        )
        assert response.status_code == 404

    def test_blank_reason(self, client, seed, internal_headers):
        booking = seed.booking()
        response = client.post(
            f"/api/bookings/{booking.id}/cancel", json={"reason": "  "}, headers=internal_headers
        )
        assert response.status_code == 400
        assert response.json()["detail"]["code"] == "REASON_REQUIRED"

    def test_unexpected_fields_rejected(self, client, seed, internal_headers):
        booking = seed.booking()
        response = client.post(
            f"/api/bookings/{booking.id}/cancel",
            json={"reason": "x", "charge": 0},
            headers=internal_headers,
        )
        assert response.status_code == 422

    def test_professional_cancel_refunds_the_client(self, client, seed, db, gateway, internal_headers):
        booking, payment = _pre_authorized_booking(seed, hours_until_start=2)

        response = client.post(
            f"/api/bookings/{booking.id}/cancel",
            json={"reason": "professional ill", "cancelled_by": "professional"},
            headers=internal_headers,
        )

        assert response.status_code == 200
        body = response.json()
        assert body["cancelled_by"] == "professional"
        assert body["policy_applied"] is False
        assert body["charge_amount"] == 0.0
        assert gateway.calls_to("cancel_intent") == [{"intent_id": "pi_route"}]
        db.refresh(booking)
        assert booking.cancelled_by == "professional"

    def test_forced_policy_on_professional_cancel(self, client, seed, gateway, internal_headers):
        booking, _ = _pre_authorized_booking(seed, hours_until_start=2)

        response = client.post(
            f"/api/bookings/{booking.id}/cancel",
            json={"reason": "client no longer needs it", "cancelled_by": "professional", "force_policy": True},
            headers=internal_headers,
        )

        assert response.status_code == 200
        body = response.json()
        assert body["policy_applied"] is True
        assert body["charge_amount"] == 50.0

    def test_unknown_initiator_rejected(self, client, seed, internal_headers):
        booking = seed.booking()
        response = client.post(
            f"/api/bookings/{booking.id}/cancel",
            json={"reason": "x", "cancelled_by": "platform"},
            headers=internal_headers,
        )
        assert response.status_code == 422

    def test_processor_failure_is_502_and_booking_stays_confirmed(
        self, client, seed, db, gateway, internal_headers
    ):
        booking, _ = _pre_authorized_booking(seed, hours_until_start=2)
        gateway.failures["capture_intent"] = ProcessorError("processor unavailable")

        response = client.post(
            f"/api/bookings/{booking.id}/cancel", json={"reason": "sick"}, headers=internal_headers
        )

        assert response.status_code == 502
        assert response.json()["detail"]["code"] == "PROCESSOR_ERROR"
        db.refresh(booking)
        assert booking.status == BookingStatus.CONFIRMED.value


class TestNoShowEndpoint:
    def test_marks_no_show_and_charges(self, client, seed, db, gateway, internal_headers):
        booking, _ = _pre_authorized_booking(seed, hours_until_start=-2)
        appointment = BookingRepository(db).get_appointment_by_booking_id(booking.id)

        response = client.post(
            f"/api/appointments/{appointment.id}/no-show",
            json={"charge_percentage": 150},
            headers=internal_headers,
        )

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "no_show"
        assert body["charge_percentage"] == 100.0
        assert body["charge_amount"] == 100.0
        assert body["hours_until_appointment"] is None
        db.refresh(booking)
        assert booking.status == BookingStatus.NO_SHOW.value

    def test_no_show_after_cancellation_is_a_conflict(self, client, seed, db, internal_headers):
        booking = seed.booking()
        appointment = BookingRepository(db).get_appointment_by_booking_id(booking.id)
        client.post(f"/api/bookings/{booking.id}/cancel", json={"reason": "x"}, headers=internal_headers)

        response = client.post(
            f"/api/appointments/{appointment.id}/no-show",
            json={"charge_percentage": 50},
            headers=internal_headers,
        )

        assert response.status_code == 409

    def test_unknown_appointment(self, client, internal_headers):
        response = client.post(
            "/api/appointments/missing/no-show",
            json={"charge_percentage": 50},
            headers=internal_headers,
        )
        assert response.status_code == 404

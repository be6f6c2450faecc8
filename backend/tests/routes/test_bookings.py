# backend/tests/routes/test_bookings.py
"""
Booking routes: confirmation through the API, the error contract and
cancellation. The processor is the in-memory fake from tests.helpers.
"""

from decimal import Decimal

from fastapi import status
import pytest

from cadence.core.ulid_helper import generate_ulid


def _confirm(client, studio_id, body, client_id="client-1"):
    return client.post(
        f"/api/v1/studios/{studio_id}/bookings/confirm",
        json=body,
        headers={"X-Client-Id": client_id},
    )


@pytest.fixture
def free_session(free_studio, make_class_session):
    return make_class_session(free_studio, capacity=2)


class TestConfirmBooking:
    def test_free_studio_books_without_payment(self, client, free_studio, free_session):
        response = _confirm(
            client,
            free_studio.id,
            {"class_session_id": free_session.id, "selection": {"booking_type": "SINGLE"}},
        )

        assert response.status_code == status.HTTP_200_OK
        body = response.json()
        assert body["status"] == "CONFIRMED"
        assert body["class_session_id"] == free_session.id
        assert body["client_id"] == "client-1"
        assert body["payment_id"] is None

    def test_paid_booking_with_authorized_hold(
        self, client, fake_stripe, paid_studio, make_class_session
    ):
        class_session = make_class_session(paid_studio, price=Decimal("30.00"))
        hold = client.post(
            f"/api/v1/studios/{paid_studio.id}/payment-intents",
            json={"class_session_id": class_session.id, "selection": {"booking_type": "SINGLE"}},
            headers={"X-Client-Id": "client-1"},
        ).json()
        fake_stripe.authorize(hold["external_reference"])

        body = {
            "class_session_id": class_session.id,
            "selection": {"booking_type": "SINGLE"},
            "payment_id": hold["payment_id"],
        }
        first = _confirm(client, paid_studio.id, body)
        second = _confirm(client, paid_studio.id, body)

        assert first.status_code == status.HTTP_200_OK
        assert Decimal(first.json()["amount"]) == Decimal("30.00")
        assert second.json()["id"] == first.json()["id"]
        assert fake_stripe.calls.count("capture_intent") == 1

    def test_unauthorized_hold_is_a_conflict(self, client, paid_studio, make_class_session):
        class_session = make_class_session(paid_studio)
        hold = client.post(
            f"/api/v1/studios/{paid_studio.id}/payment-intents",
            json={"class_session_id": class_session.id, "selection": {"booking_type": "SINGLE"}},
            headers={"X-Client-Id": "client-1"},
        ).json()

        response = _confirm(
            client,
            paid_studio.id,
            {
                "class_session_id": class_session.id,
                "selection": {"booking_type": "SINGLE"},
                "payment_id": hold["payment_id"],
            },
        )

        assert response.status_code == status.HTTP_409_CONFLICT
        assert response.json()["detail"]["code"] == "PAYMENT_NOT_SETTLED"

    def test_paid_studio_requires_payment(self, client, paid_studio, make_class_session):
        class_session = make_class_session(paid_studio)

        response = _confirm(
            client,
            paid_studio.id,
            {"class_session_id": class_session.id, "selection": {"booking_type": "SINGLE"}},
        )

        assert response.status_code == 422
        assert response.json()["detail"]["code"] == "PAYMENT_REQUIRED"

    def test_full_session_is_reported_as_unavailable(
        self, client, free_studio, make_class_session
    ):
        class_session = make_class_session(free_studio, capacity=1, booked_count=1)

        response = _confirm(
            client,
            free_studio.id,
            {"class_session_id": class_session.id, "selection": {"booking_type": "SINGLE"}},
        )

        assert response.status_code == status.HTTP_409_CONFLICT
        detail = response.json()["detail"]
        assert detail["code"] == "SLOT_UNAVAILABLE"
        assert detail["details"]["retryable"] is True

    def test_second_booking_for_same_session_is_a_duplicate(
        self, client, free_studio, free_session
    ):
        body = {"class_session_id": free_session.id, "selection": {"booking_type": "SINGLE"}}
        _confirm(client, free_studio.id, body)

        response = _confirm(client, free_studio.id, body)

        assert response.status_code == status.HTTP_409_CONFLICT
        assert response.json()["detail"]["code"] == "DUPLICATE_BOOKING"

    def test_session_of_another_studio_is_not_found(
        self, client, make_studio, free_session
    ):
        other = make_studio(payments_enabled=False)

        response = _confirm(
            client,
            other.id,
            {"class_session_id": free_session.id, "selection": {"booking_type": "SINGLE"}},
        )

        assert response.status_code == status.HTTP_404_NOT_FOUND

    def test_missing_client_identity_is_unauthorized(self, client, free_studio, free_session):
        response = client.post(
            f"/api/v1/studios/{free_studio.id}/bookings/confirm",
            json={"class_session_id": free_session.id, "selection": {"booking_type": "SINGLE"}},
        )

        assert response.status_code == status.HTTP_401_UNAUTHORIZED
        assert response.json()["detail"]["code"] == "CLIENT_ID_REQUIRED"

    def test_malformed_client_identity_is_rejected(self, client, free_studio, free_session):
        response = _confirm(
            client,
            free_studio.id,
            {"class_session_id": free_session.id, "selection": {"booking_type": "SINGLE"}},
            client_id="not a client",
        )

        assert response.status_code == status.HTTP_400_BAD_REQUEST

    @pytest.mark.parametrize(
        "selection",
        [
            {"booking_type": "DROP_IN"},
            {"booking_type": "PACK"},
            {"booking_type": "PACK", "pack_size": 0},
            {"booking_type": "SINGLE", "coupon": "FREE"},
        ],
    )
    def test_invalid_selection_is_rejected(self, client, free_studio, free_session, selection):
        response = _confirm(
            client,
            free_studio.id,
            {"class_session_id": free_session.id, "selection": selection},
        )

        assert response.status_code == 422


class TestCancelBooking:
    def test_cancel_releases_the_spot(self, client, free_studio, free_session):
        booking = _confirm(
            client,
            free_studio.id,
            {"class_session_id": free_session.id, "selection": {"booking_type": "SINGLE"}},
        ).json()

        response = client.post(
            f"/api/v1/bookings/{booking['id']}/cancel",
            json={"reason": "Feeling unwell"},
            headers={"X-Client-Id": "client-1"},
        )

        assert response.status_code == status.HTTP_200_OK
        body = response.json()
        assert body["status"] == "CANCELLED"
        assert body["cancellation_reason"] == "Feeling unwell"

        slots = client.get(
            f"/api/v1/studios/{free_studio.id}/slots",
            params={
                "location_id": free_session.location_id,
                "class_type_id": free_session.class_type_id,
            },
        ).json()
        assert slots["slots"][0]["spots_left"] == 2

    def test_cancel_without_body(self, client, free_studio, free_session):
        booking = _confirm(
            client,
            free_studio.id,
            {"class_session_id": free_session.id, "selection": {"booking_type": "SINGLE"}},
        ).json()

        response = client.post(
            f"/api/v1/bookings/{booking['id']}/cancel", headers={"X-Client-Id": "client-1"}
        )

        assert response.status_code == status.HTTP_200_OK
        assert response.json()["cancellation_reason"] is None

    def test_cancel_by_another_client_is_not_found(self, client, free_studio, free_session):
        booking = _confirm(
            client,
            free_studio.id,
            {"class_session_id": free_session.id, "selection": {"booking_type": "SINGLE"}},
        ).json()

        response = client.post(
            f"/api/v1/bookings/{booking['id']}/cancel", headers={"X-Client-Id": "client-2"}
        )

        assert response.status_code == status.HTTP_404_NOT_FOUND

    def test_unknown_booking_is_not_found(self, client):
        response = client.post(
            f"/api/v1/bookings/{generate_ulid()}/cancel", headers={"X-Client-Id": "client-1"}
        )

        assert response.status_code == status.HTTP_404_NOT_FOUND

    def test_malformed_booking_id_fails_validation(self, client):
        response = client.post(
            "/api/v1/bookings/not-a-ulid/cancel", headers={"X-Client-Id": "client-1"}
        )

        assert response.status_code == 422

from decimal import Decimal

from fastapi import status
import pytest

from cadence.models.payment import Payment


def _open_hold(client, studio_id, class_session_id, selection=None, client_id="client-1"):
    return client.post(
        f"/api/v1/studios/{studio_id}/payment-intents",
        json={
            "class_session_id": class_session_id,
            "selection": selection or {"booking_type": "SINGLE"},
        },
        headers={"X-Client-Id": client_id},
    )


@pytest.fixture
def paid_session(paid_studio, make_class_session):
    return make_class_session(paid_studio, price=Decimal("30.00"))


def test_create_payment_intent(client, fake_stripe, paid_studio, paid_session):
    response = _open_hold(client, paid_studio.id, paid_session.id)

    assert response.status_code == status.HTTP_201_CREATED
    body = response.json()
    assert body["merchant_sub_account_id"] == paid_studio.merchant_sub_account_id
    assert body["client_authorization_secret"].startswith(body["external_reference"])
    assert Decimal(body["amount"]) == Decimal("30.00")
    assert body["currency"] == "usd"
    assert body["external_reference"] in fake_stripe.intents


def test_pack_selection_is_priced_with_its_discount(client, paid_studio, paid_session):
    response = _open_hold(
        client, paid_studio.id, paid_session.id, {"booking_type": "PACK", "pack_size": 5}
    )

    assert response.status_code == status.HTTP_201_CREATED
    assert Decimal(response.json()["amount"]) == Decimal("135.00")


def test_processor_outage_is_retryable(client, db, fake_stripe, paid_studio, paid_session):
    fake_stripe.fail_hold_creation = True

    response = _open_hold(client, paid_studio.id, paid_session.id)

    assert response.status_code == status.HTTP_503_SERVICE_UNAVAILABLE
    assert response.headers["Retry-After"] == "2"
    detail = response.json()["detail"]
    assert detail["code"] == "PAYMENT_INITIALIZATION_FAILED"
    assert detail["details"]["retryable"] is True
    assert db.query(Payment).count() == 0


def test_unconfigured_merchant_account_is_not_retryable(client, make_studio, make_class_session):
    studio = make_studio(merchant_sub_account_id=None)
    class_session = make_class_session(studio)

    response = _open_hold(client, studio.id, class_session.id)

    assert response.status_code == 422
    detail = response.json()["detail"]
    assert detail["code"] == "CONFIGURATION_ERROR"
    assert detail["details"]["retryable"] is False


def test_free_studio_does_not_open_holds(client, free_studio, make_class_session):
    class_session = make_class_session(free_studio)

    response = _open_hold(client, free_studio.id, class_session.id)

    assert response.status_code == 422
    assert response.json()["detail"]["code"] == "PAYMENTS_DISABLED"


def test_abandon_voids_the_hold(client, fake_stripe, paid_studio, paid_session):
    hold = _open_hold(client, paid_studio.id, paid_session.id).json()

    response = client.post(
        f"/api/v1/payments/{hold['payment_id']}/abandon", headers={"X-Client-Id": "client-1"}
    )

    assert response.status_code == status.HTTP_200_OK
    assert response.json() == {"payment_id": hold["payment_id"], "status": "VOIDED"}
    assert fake_stripe.intents[hold["external_reference"]].status == "canceled"


def test_abandon_by_another_client_is_not_found(client, paid_studio, paid_session):
    hold = _open_hold(client, paid_studio.id, paid_session.id).json()

    response = client.post(
        f"/api/v1/payments/{hold['payment_id']}/abandon", headers={"X-Client-Id": "client-2"}
    )

    assert response.status_code == status.HTTP_404_NOT_FOUND

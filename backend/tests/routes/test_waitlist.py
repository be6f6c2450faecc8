# backend/tests/routes/test_waitlist.py
"""
Waitlist routes: join, list and leave through the API, and the offer a
cancellation makes to the first client in line.
"""

from fastapi import status
import pytest

from cadence.core.ulid_helper import generate_ulid


def _join(client, studio_id, class_session_id, client_id="client-1"):
    return client.post(
        f"/api/v1/studios/{studio_id}/waitlist",
        json={"class_session_id": class_session_id},
        headers={"X-Client-Id": client_id},
    )


@pytest.fixture
def full_session(free_studio, make_class_session):
    return make_class_session(free_studio, capacity=1, booked_count=1)


class TestJoinWaitlist:
    def test_join_returns_the_position(self, client, free_studio, full_session):
        _join(client, free_studio.id, full_session.id, client_id="client-0")

        response = _join(client, free_studio.id, full_session.id)

        assert response.status_code == status.HTTP_201_CREATED
        body = response.json()
        assert body["status"] == "WAITING"
        assert body["position"] == 2
        assert body["class_session_id"] == full_session.id

    def test_open_session_is_a_conflict(self, client, free_studio, make_class_session):
        class_session = make_class_session(free_studio, capacity=2)

        response = _join(client, free_studio.id, class_session.id)

        assert response.status_code == status.HTTP_409_CONFLICT
        assert response.json()["detail"]["code"] == "SPOTS_AVAILABLE"

    def test_unknown_session_is_not_found(self, client, free_studio):
        response = _join(client, free_studio.id, generate_ulid())

        assert response.status_code == status.HTTP_404_NOT_FOUND

    def test_extra_fields_are_rejected(self, client, free_studio, full_session):
        response = client.post(
            f"/api/v1/studios/{free_studio.id}/waitlist",
            json={"class_session_id": full_session.id, "position": 1},
            headers={"X-Client-Id": "client-1"},
        )

        assert response.status_code == 422


class TestListAndLeave:
    def test_list_then_leave(self, client, free_studio, full_session):
        entry = _join(client, free_studio.id, full_session.id).json()

        listed = client.get(
            f"/api/v1/studios/{free_studio.id}/waitlist", headers={"X-Client-Id": "client-1"}
        )
        assert listed.status_code == status.HTTP_200_OK
        assert listed.json()["count"] == 1
        assert listed.json()["entries"][0]["id"] == entry["id"]

        left = client.delete(
            f"/api/v1/studios/{free_studio.id}/waitlist/{entry['id']}",
            headers={"X-Client-Id": "client-1"},
        )
        assert left.status_code == status.HTTP_200_OK
        assert left.json()["status"] == "CANCELLED"

        after = client.get(
            f"/api/v1/studios/{free_studio.id}/waitlist", headers={"X-Client-Id": "client-1"}
        )
        assert after.json()["count"] == 0

    def test_other_clients_cannot_remove_an_entry(self, client, free_studio, full_session):
        entry = _join(client, free_studio.id, full_session.id).json()

        response = client.delete(
            f"/api/v1/studios/{free_studio.id}/waitlist/{entry['id']}",
            headers={"X-Client-Id": "client-2"},
        )

        assert response.status_code == status.HTTP_404_NOT_FOUND


def test_cancelled_booking_notifies_the_first_waiter(client, free_studio, make_class_session):
    class_session = make_class_session(free_studio, capacity=1)
    booking = client.post(
        f"/api/v1/studios/{free_studio.id}/bookings/confirm",
        json={"class_session_id": class_session.id, "selection": {"booking_type": "SINGLE"}},
        headers={"X-Client-Id": "client-1"},
    ).json()
    _join(client, free_studio.id, class_session.id, client_id="client-2")

    cancelled = client.post(
        f"/api/v1/bookings/{booking['id']}/cancel",
        json={"reason": "Cannot make it"},
        headers={"X-Client-Id": "client-1"},
    )
    assert cancelled.status_code == status.HTTP_200_OK

    entries = client.get(
        f"/api/v1/studios/{free_studio.id}/waitlist", headers={"X-Client-Id": "client-2"}
    ).json()["entries"]
    assert entries[0]["status"] == "NOTIFIED"
    assert entries[0]["expires_at"] is not None

from fastapi import status


def test_list_slots(client, paid_studio, make_class_session):
    class_session = make_class_session(paid_studio, capacity=6, booked_count=2)

    response = client.get(
        f"/api/v1/studios/{paid_studio.id}/slots",
        params={
            "location_id": class_session.location_id,
            "class_type_id": class_session.class_type_id,
            "date": class_session.start_time.date().isoformat(),
        },
    )

    assert response.status_code == status.HTTP_200_OK
    body = response.json()
    assert body["count"] == 1
    slot = body["slots"][0]
    assert slot["class_session_id"] == class_session.id
    assert slot["spots_left"] == 4
    assert slot["location_name"] == "Main Room"
    assert body["date"] == class_session.start_time.date().isoformat()


def test_malformed_date_returns_an_empty_list(client, paid_studio, make_class_session):
    class_session = make_class_session(paid_studio)

    response = client.get(
        f"/api/v1/studios/{paid_studio.id}/slots",
        params={
            "location_id": class_session.location_id,
            "class_type_id": class_session.class_type_id,
            "date": "31/12/2024",
        },
    )

    assert response.status_code == status.HTTP_200_OK
    assert response.json()["slots"] == []


def test_location_and_class_type_are_required(client, paid_studio):
    response = client.get(f"/api/v1/studios/{paid_studio.id}/slots")

    assert response.status_code == 422

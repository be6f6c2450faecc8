from fastapi.testclient import TestClient


def test_health(client: TestClient) -> None:
    res = client.get("/health")
    assert res.status_code == 200
    payload = res.json()
    assert payload["status"] == "healthy"
    assert payload["environment"]


def test_metrics_exposes_domain_counters(client: TestClient, free_studio, make_class_session) -> None:
    class_session = make_class_session(free_studio)
    client.post(
        f"/api/v1/studios/{free_studio.id}/bookings/confirm",
        json={"class_session_id": class_session.id, "selection": {"booking_type": "SINGLE"}},
        headers={"X-Client-Id": "client-1"},
    )

    res = client.get("/metrics")

    assert res.status_code == 200
    assert res.headers["content-type"].startswith("text/plain")
    assert "cadence_bookings_confirmed_total" in res.text
    assert "cadence_service_operation_duration_seconds" in res.text

from fastapi import status


def _click(client, studio_id, code, browsing_session=None):
    headers = {"X-Browsing-Session": browsing_session} if browsing_session else {}
    return client.post(
        f"/api/v1/studios/{studio_id}/tracking/clicks", json={"code": code}, headers=headers
    )


def test_click_then_read_attribution(client, paid_studio):
    assert _click(client, paid_studio.id, "summer-launch", "browser-1").json() == {"recorded": True}
    assert _click(client, paid_studio.id, "summer-launch", "browser-1").json() == {"recorded": False}
    _click(client, paid_studio.id, "summer-launch", "browser-2")

    response = client.get(f"/api/v1/studios/{paid_studio.id}/tracking/summer-launch")

    assert response.status_code == status.HTTP_200_OK
    body = response.json()
    assert body["clicks"] == 2
    assert body["conversions"] == 0
    assert body["code"] == "summer-launch"


def test_malformed_code_is_accepted_but_not_recorded(client, paid_studio):
    response = _click(client, paid_studio.id, "x!")

    assert response.status_code == status.HTTP_200_OK
    assert response.json() == {"recorded": False}


def test_unknown_code_is_not_found(client, paid_studio):
    response = client.get(f"/api/v1/studios/{paid_studio.id}/tracking/never-clicked")

    assert response.status_code == status.HTTP_404_NOT_FOUND
    assert response.json()["detail"]["code"] == "TRACKING_CODE_NOT_FOUND"

"""Every failure, whatever raised it, uses the same error envelope."""

HEADERS = {"X-User-Id": "contract-reader"}


def _assert_envelope(resp, status, code):
    assert resp.status_code == status
    body = resp.json()
    assert body["error"]["code"] == code
    assert body["error"]["message"] == body["detail"]
    assert body["error"]["request_id"] == resp.headers["x-request-id"]


def test_unknown_route(client):
    _assert_envelope(client.get("/v1/nope"), 404, "not_found")


def test_wrong_method(client):
    _assert_envelope(client.delete("/v1/streaks", headers=HEADERS), 405, "method_not_allowed")


def test_domain_error(client):
    _assert_envelope(client.get("/v1/goals/preferences", headers=HEADERS), 404, "not_found")


def test_body_validation_names_field(client):
    resp = client.post("/v1/reading-logs", headers=HEADERS, json={"pages_read": "lots"})
    _assert_envelope(resp, 400, "validation_error")
    assert resp.json()["error"]["message"].startswith("pages_read:")


def test_client_request_id_kept_on_error(client):
    resp = client.get("/v1/streaks", headers={**HEADERS, "X-Request-Id": "rid-from-client"})
    assert resp.headers["x-request-id"] == "rid-from-client"
    assert resp.json()["error"]["request_id"] == "rid-from-client"

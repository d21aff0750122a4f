import logging

import pytest
from fastapi import FastAPI, Request
from fastapi.testclient import TestClient

from bookstreak.core.logging import get_request_id
from bookstreak.core.middleware.request_id import RequestIdMiddleware


@pytest.fixture
def probe_client():
    app = FastAPI()
    app.add_middleware(RequestIdMiddleware)

    @app.get("/probe")
    async def probe(request: Request):
        return {"state": request.state.request_id, "context": get_request_id()}

    @app.get("/crash")
    async def crash():
        raise RuntimeError("boom")

    return TestClient(app, raise_server_exceptions=False)


def test_generated_id_matches_state_and_context(probe_client):
    resp = probe_client.get("/probe")
    rid = resp.headers["x-request-id"]
    assert rid
    assert resp.json() == {"state": rid, "context": rid}


def test_client_supplied_id_is_echoed(probe_client):
    resp = probe_client.get("/probe", headers={"X-Request-Id": "freeze-retry-42"})
    assert resp.headers["x-request-id"] == "freeze-retry-42"
    assert resp.json()["context"] == "freeze-retry-42"


def test_context_cleared_after_request(probe_client):
    probe_client.get("/probe")
    assert get_request_id() is None


def test_failed_request_logged_as_error(probe_client, caplog):
    with caplog.at_level(logging.INFO, logger="bookstreak"):
        resp = probe_client.get("/crash", headers={"X-Request-Id": "rid-crash"})
    assert resp.status_code == 500
    completions = [r for r in caplog.records if r.getMessage() == "request.complete"]
    assert completions[-1].levelno == logging.ERROR
    assert completions[-1].request_id == "rid-crash"
    assert completions[-1].path == "/crash"

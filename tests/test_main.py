"""Tests for the relay HTTP service."""

from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

import catchpoint.main as main
from catchpoint.config import Settings
from catchpoint.hub import get_current_hub, init
from catchpoint.models.options import ClientOptions


@pytest.fixture
def unbound_hub():
    hub = get_current_hub()
    previous = hub.client
    hub.bind_client(None)
    yield hub
    hub.bind_client(previous)


@pytest.fixture
def api(monkeypatch, unbound_hub, transport):
    monkeypatch.setattr(main, "get_settings", lambda: Settings(ignore_errors=["from settings"]))
    with TestClient(main.app, raise_server_exceptions=False) as test_client:
        init(ClientOptions(ignore_errors=["boom"], environment="test"), transport=transport)
        yield test_client


class TestRelayService:
    def test_health(self, api):
        response = api.get("/health")
        assert response.status_code == 200
        assert response.json() == {"status": "healthy"}

    def test_lifespan_builds_client_from_settings(self, monkeypatch, unbound_hub):
        monkeypatch.setattr(main, "get_settings", lambda: Settings(ignore_errors=["from settings"]))
        with TestClient(main.app) as test_client:
            client = unbound_hub.client
            assert client is not None
            assert client.options.ignore_errors == ["from settings"]
            assert test_client.get("/health").status_code == 200
        assert unbound_hub.client is None

    def test_filters(self, api):
        response = api.get("/filters")
        assert response.status_code == 200
        filters = response.json()["filters"]
        assert filters["ignore_errors"][0] == "boom"
        assert r"^Script error\.?$" in filters["ignore_errors"]
        assert filters["ignore_internal"] is True

    def test_capture_plain_record(self, api, transport):
        response = api.post(
            "/capture/exception",
            json={"exception": {"reason": "quota", "code": 42}, "event_id": "abc123"},
        )
        assert response.status_code == 200
        assert response.json() == {"status": "ok", "event_id": "abc123"}

    def test_capture_ignored_string_is_dropped(self, api, transport):
        response = api.post("/capture/exception", json={"exception": "Script error."})
        assert response.status_code == 200
        assert response.json() == {"status": "dropped", "event_id": None}

    def test_capture_message(self, api):
        response = api.post("/capture/message", json={"message": "deploy done", "level": "warning"})
        assert response.status_code == 200
        assert response.json()["status"] == "ok"

        response = api.post("/capture/message", json={"message": "boom"})
        assert response.json()["status"] == "dropped"

    def test_invalid_level_is_rejected(self, api):
        response = api.post("/capture/message", json={"message": "m", "level": "loud"})
        assert response.status_code == 422

    def test_route_failures_are_reported(self, api, monkeypatch):
        def broken(*args, **kwargs):
            raise RuntimeError("filters unavailable")

        monkeypatch.setattr(main, "merge_filter_options", broken)
        response = api.get("/filters")
        assert response.status_code == 500
        body = response.json()
        assert body["status"] == "error"
        assert body["event_id"] is not None


class TestDeliveredEvents:
    def test_events_are_delivered_on_shutdown(self, monkeypatch, unbound_hub, transport):
        monkeypatch.setattr(main, "get_settings", lambda: Settings())
        with TestClient(main.app, raise_server_exceptions=False) as test_client:
            init(ClientOptions(environment="test"), transport=transport)
            test_client.post("/capture/exception", json={"exception": {"reason": "quota", "code": 42}})
            test_client.post("/capture/message", json={"message": "deploy done"})

            def broken(*args, **kwargs):
                raise RuntimeError("filters unavailable")

            monkeypatch.setattr(main, "merge_filter_options", broken)
            test_client.get("/filters")

        record, message, failure = transport.events
        first = record.exception.values[0]
        assert first.type == "Error"
        assert first.value == "Non-Error exception captured with keys: code, reason"
        assert first.mechanism.synthetic is True
        assert record.environment == "test"

        assert message.message == "deploy done"

        failure_value = failure.exception.values[0]
        assert failure_value.type == "RuntimeError"
        assert failure_value.mechanism.type == "fastapi"
        assert failure_value.mechanism.handled is False


class TestUnconfigured:
    def test_capture_without_client(self, unbound_hub):
        test_client = TestClient(main.app)
        response = test_client.post("/capture/message", json={"message": "m"})
        assert response.status_code == 503

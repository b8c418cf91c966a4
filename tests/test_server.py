"""Tests for the FastAPI application (health and log endpoints)."""

import logging
from unittest.mock import AsyncMock, patch

import pytest
from fastapi.testclient import TestClient

from prbot.server import create_app


@pytest.fixture
def client(tmp_path, monkeypatch):
    for var in ("PRBOT_CI_WORKFLOW", "PRBOT_CI_REF", "PRBOT_PUBLIC_URL"):
        monkeypatch.delenv(var, raising=False)
    with patch("prbot.server.github_client_from_env", return_value=AsyncMock()):
        app = create_app(config_dir=tmp_path)
        with TestClient(app) as test_client:
            yield test_client


class TestHealth:
    def test_health(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "ok"
        assert body["queue_depth"] == 0
        assert body["failed_invocations"] == 0
        assert body["last_event_time"] is None


class TestLogs:
    def test_filters_by_correlation_id(self, client):
        log = logging.getLogger("prbot.test_server")
        log.warning("tagged entry", extra={"correlation_id": "d-5"})
        log.warning("other entry", extra={"correlation_id": "d-6"})

        response = client.get("/logs", params={"correlation_id": "d-5"})

        assert response.status_code == 200
        assert [e["message"] for e in response.json()["logs"]] == ["tagged entry"]

    def test_limit_validated(self, client):
        assert client.get("/logs", params={"limit": 0}).status_code == 422

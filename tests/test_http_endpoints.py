"""Test HTTP endpoint functionality."""

from __future__ import annotations

import json
import os
from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient

from panel_loader.adapters import (
    get_available_service_names,
    get_service,
    register_service,
)
from panel_loader.adapters.http import HttpQueryService
from panel_loader.server.http import create_app

PAYLOAD = {
    "panel": {
        "queryType": "sql",
        "queries": [{"query": "SELECT 1", "fields": {"stream_type": "logs"}}],
    },
    "timeRange": {
        "startTime": "2024-01-01T00:00:00Z",
        "endTime": "2024-01-01T01:00:00Z",
    },
    "width": 1000,
}


@pytest.fixture
def client():
    """Create a test client for the FastAPI app."""
    with patch.dict(os.environ, {}, clear=False):
        os.environ.pop("PANEL_LOADER_CONFIG", None)
        os.environ.pop("PANEL_LOADER_HTTP_TOKEN", None)
        app = create_app()
    return TestClient(app)


def test_health_endpoint(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_ready_requires_configured_service(client, fake_service):
    response = client.get("/ready")
    assert response.status_code == 503
    assert response.json()["detail"]["error_type"] == "service_unavailable"

    register_service("default", fake_service)
    response = client.get("/ready")
    assert response.status_code == 200
    assert response.json() == {"status": "ready"}


def test_load_without_service_is_structured_503(client):
    response = client.post("/api/panels/load", json=PAYLOAD)
    assert response.status_code == 503
    detail = response.json()["detail"]
    assert detail["error_type"] == "service_unavailable"
    assert detail["available_options"] == []


def test_load_panel(client, fake_service):
    fake_service.responses["SELECT 1"] = {"hits": [{"x": 1}]}
    register_service("default", fake_service)

    response = client.post("/api/panels/load", json=PAYLOAD)

    assert response.status_code == 200
    body = response.json()
    assert body["fetched"] is True
    assert body["state"]["data"] == [[{"x": 1}]]
    assert body["state"]["loading"] is False
    assert body["state"]["error_detail"] == ""
    meta = body["state"]["metadata"]["queries"][0]
    assert meta["start_time"] == 1704067200000
    assert meta["end_time"] == 1704070800000
    assert fake_service.calls[0][1][2] == "logs"


def test_load_panel_reports_subquery_errors(client, fake_service):
    fake_service.responses["SELECT 1"] = RuntimeError("backend down")
    register_service("default", fake_service)

    response = client.post("/api/panels/load", json=PAYLOAD)

    assert response.status_code == 200
    assert response.json()["state"]["data"] == [None]
    assert response.json()["state"]["error_detail"] == "backend down"


def test_validation_error_is_structured(client, fake_service):
    register_service("default", fake_service)
    response = client.post("/api/panels/load", json={"panel": {}})
    assert response.status_code == 400
    assert response.json()["detail"]["error_type"] == "validation_error"


def test_protected_endpoint_requires_auth(client, fake_service):
    register_service("default", fake_service)
    with patch.dict(os.environ, {"PANEL_LOADER_HTTP_TOKEN": "test-token"}):
        assert client.post("/api/panels/load", json=PAYLOAD).status_code == 401
        assert (
            client.post(
                "/api/panels/load",
                json=PAYLOAD,
                headers={"Authorization": "Bearer wrong"},
            ).status_code
            == 403
        )
        response = client.post(
            "/api/panels/load",
            json=PAYLOAD,
            headers={"Authorization": "Bearer test-token"},
        )
        assert response.status_code == 200
        # health probes stay open
        assert client.get("/health").status_code == 200


def test_config_from_environment(tmp_path):
    cfg_path = tmp_path / "config.json"
    cfg_path.write_text(
        json.dumps(
            {
                "service": {"endpoint": "http://backend:5080", "org_id": "acme"},
                "organization": {"scrape_interval": 30},
            }
        )
    )
    with patch.dict(os.environ, {"PANEL_LOADER_CONFIG": str(cfg_path)}):
        app = create_app()

    assert get_available_service_names() == ["default"]
    assert app.state.org_id == "acme"
    assert app.state.scrape_interval == 30


def test_invalid_config_does_not_break_startup(tmp_path):
    cfg_path = tmp_path / "config.json"
    cfg_path.write_text("{not json")
    with patch.dict(os.environ, {"PANEL_LOADER_CONFIG": str(cfg_path)}):
        app = create_app()

    assert get_available_service_names() == []
    assert TestClient(app).get("/health").status_code == 200


def test_http_query_service_is_registered_type(tmp_path):
    cfg_path = tmp_path / "config.json"
    cfg_path.write_text(json.dumps({"service": {"endpoint": "http://backend:5080"}}))
    with patch.dict(os.environ, {"PANEL_LOADER_CONFIG": str(cfg_path)}):
        create_app()

    assert isinstance(get_service("default"), HttpQueryService)

from __future__ import annotations

import sys
from pathlib import Path

from fastapi.testclient import TestClient

ROOT = Path(__file__).resolve().parents[2]
if str(ROOT) not in sys.path:
    sys.path.append(str(ROOT))

from backend.app.main import app

client = TestClient(app)


def test_health_reports_status_and_version() -> None:
    response = client.get("/api/v1/health")

    assert response.status_code == 200
    payload = response.json()
    assert payload["status"] == "healthy"
    assert payload["version"] == app.version
    assert payload["uptime"] >= 0
    assert response.headers["x-request-id"]


def test_request_id_is_echoed() -> None:
    response = client.get("/api/v1/health", headers={"x-request-id": "req-42"})
    assert response.headers["x-request-id"] == "req-42"


def test_metrics_are_exposed() -> None:
    client.get("/api/v1/health")

    response = client.get("/metrics")

    assert response.status_code == 200
    assert "http_requests_total" in response.text
    assert "predictor_invocations_total" in response.text


def test_root_redirects_to_docs() -> None:
    response = client.get("/", follow_redirects=False)
    assert response.status_code in (302, 307)
    assert response.headers["location"] == "/docs"

"""Contract tests for the health endpoints."""

from fastapi.testclient import TestClient
from starlette.status import HTTP_200_OK

from pms_sync_api.main import app


class TestHealth:
    def test_health(self):
        response = TestClient(app).get("/api/health")

        assert response.status_code == HTTP_200_OK
        data = response.json()
        assert data["status"] == "healthy"
        assert data["service"] == "pms-sync-api"
        assert data["environment"] == "test"

    def test_ping(self):
        response = TestClient(app).get("/api/ping")

        assert response.status_code == HTTP_200_OK
        assert response.json()["status"] == "ok"

    def test_correlation_id_is_echoed(self):
        response = TestClient(app).get(
            "/api/ping", headers={"X-Correlation-ID": "req-123"}
        )

        assert response.headers["X-Correlation-ID"] == "req-123"

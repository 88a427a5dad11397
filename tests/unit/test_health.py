"""Tests for health check endpoints."""

from unittest.mock import MagicMock

from fastapi.testclient import TestClient

from meditrap.api.routers.health import check_database, check_kv_store


class TestHealthEndpoints:
    """Test health check endpoints."""

    def test_basic_health_check(self, client: TestClient):
        """Test /health returns 200."""
        response = client.get("/health")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert "version" in data
        assert "timestamp" in data

    def test_liveness_probe(self, client: TestClient):
        """Test /health/live returns 200."""
        response = client.get("/health/live")
        assert response.status_code == 200
        assert response.json()["status"] == "alive"

    def test_readiness_probe_healthy(self, client: TestClient):
        """Test /health/ready when the database and store are up."""
        response = client.get("/health/ready")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "ready"
        assert data["checks"]["database"]["status"] == "healthy"
        assert data["checks"]["kv_store"]["backend"] == "MemoryKeyValueStore"
        assert data["failed"] == []

    def test_readiness_probe_store_down(self, client: TestClient):
        """Test /health/ready returns 503 when the key-value store is unreachable."""
        from meditrap.api import deps
        from meditrap.api.main import app

        broken = MagicMock()
        broken.exists.side_effect = ConnectionError("redis down")
        app.dependency_overrides[deps.get_kv_store] = lambda: broken

        response = client.get("/health/ready")
        assert response.status_code == 503
        data = response.json()
        assert data["status"] == "not_ready"
        assert data["failed"] == ["kv_store"]


class TestChecks:
    def test_check_database_failure(self):
        db = MagicMock()
        db.execute.side_effect = RuntimeError("connection refused")
        result = check_database(db)
        assert result["status"] == "unhealthy"
        assert "connection refused" in result["error"]

    def test_check_kv_store_healthy(self, kv_store):
        assert check_kv_store(kv_store)["status"] == "healthy"

"""
Integration Tests for Health Check Endpoints

Run with: pytest tests/integration/test_health.py -v
"""

import pytest

pytestmark = pytest.mark.integration


class TestBasicHealthEndpoint:
    def test_health_returns_healthy_status(self, test_client) -> None:
        response = test_client.get("/api/health")

        assert response.status_code == 200
        assert response.json() == {"status": "healthy", "service": "LearnPath"}


class TestDetailedHealthEndpoint:
    def test_reports_database_and_event_bus(self, test_client) -> None:
        response = test_client.get("/api/health/detailed")
        data = response.json()

        assert response.status_code == 200
        assert data["status"] == "healthy"
        assert data["dependencies"]["database"]["status"] == "healthy"
        assert data["dependencies"]["event_bus"]["status"] == "healthy"
        assert data["dependencies"]["event_bus"]["workers"] >= 1

    def test_scheduler_disabled_in_tests(self, test_client) -> None:
        data = test_client.get("/api/health/detailed").json()

        assert data["scheduled_jobs"] == []

# tests/test_health.py
from fastapi.testclient import TestClient
from route_drawing.main import app


client = TestClient(app)


def test_health_check():
    response = client.get("/health/")
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "ok"
    assert "app" in data
    assert "version" in data
    assert "environment" in data
    assert data["routing_provider"] in ("mapbox", "osmnx")

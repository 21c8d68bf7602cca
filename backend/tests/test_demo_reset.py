"""
Tests for demo reset endpoint. Demo reset is only available when DEMO_MODE=true.
"""
from fastapi.testclient import TestClient

from main import app
from models import mood_entries, pregnancy_records

client = TestClient(app)


class TestDemoResetEndpoint:
    """Test POST /demo/reset is gated by DEMO_MODE and behaves correctly."""

    def test_demo_reset_endpoint_disabled_when_demo_mode_false(self, monkeypatch):
        """When DEMO_MODE is false, POST /demo/reset returns 404."""
        monkeypatch.setenv("DEMO_MODE", "false")

        resp = client.post("/demo/reset")
        assert resp.status_code == 404
        assert "detail" in resp.json()

    def test_demo_reset_endpoint_disabled_when_demo_mode_unset(self, monkeypatch):
        """When DEMO_MODE is unset, POST /demo/reset returns 404."""
        monkeypatch.delenv("DEMO_MODE", raising=False)

        resp = client.post("/demo/reset")
        assert resp.status_code == 404

    def test_demo_reset_clears_state_when_demo_mode_true(self, monkeypatch):
        """When DEMO_MODE=true, reset drops the pregnancy record and mood log."""
        monkeypatch.setenv("DEMO_MODE", "TRUE")

        client.post("/pregnancy/stage", json={"stageType": "week", "stageValue": "25"})
        client.post("/mood", json={"mood": "okay"})
        assert pregnancy_records
        assert mood_entries

        resp = client.post("/demo/reset")
        assert resp.status_code == 200
        assert resp.json() == {"status": "ok"}
        assert not pregnancy_records
        assert not mood_entries
        assert client.get("/pregnancy").json()["currentWeek"] == 1

    def test_ids_restart_after_reset(self, monkeypatch):
        monkeypatch.setenv("DEMO_MODE", "true")

        client.post("/pregnancy/stage", json={"stageType": "week", "stageValue": "25"})
        client.post("/demo/reset")
        data = client.post("/pregnancy/stage", json={"stageType": "week", "stageValue": "5"}).json()
        assert data["id"] == 1

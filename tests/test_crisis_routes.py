"""
Tests for the /api/crisis HTTP surface.

Run with: python -m pytest tests/test_crisis_routes.py -v
"""

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from tests.conftest import NOW


@pytest.fixture
def client(session_factory, orchestrator, dispatcher, follow_up_scheduler, trend_analyzer, user_store, runner):
    from app.api.routes.crisis import router
    from app.db.session import get_db
    from app.services.registry import CrisisServices

    app = FastAPI()
    app.include_router(router, prefix="/api/crisis")
    app.state.crisis_services = CrisisServices(
        orchestrator=orchestrator,
        dispatcher=dispatcher,
        follow_up_scheduler=follow_up_scheduler,
        trend_analyzer=trend_analyzer,
        user_store=user_store,
        runner=runner,
    )

    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as c:
        yield c


# =============================================================================
# METRICS
# =============================================================================

class TestMetricsRoutes:
    def test_summary_for_user_without_crises(self, client, seed_user):
        response = client.get(f"/api/crisis/{seed_user()}/summary")

        assert response.status_code == 200
        body = response.json()
        assert body["total_crises"] == 0
        assert body["period"] == 30

    def test_trends_rejects_unknown_period(self, client, seed_user):
        response = client.get(f"/api/crisis/{seed_user()}/trends", params={"period": "1y"})

        assert response.status_code == 400

    def test_trends_accepts_known_period(self, client, seed_user):
        response = client.get(f"/api/crisis/{seed_user()}/trends", params={"period": "7d"})

        assert response.status_code == 200
        assert response.json()["period"] == "7d"

    def test_history_rejects_bad_filters(self, client, seed_user):
        user_id = seed_user()

        assert client.get(f"/api/crisis/{user_id}/history", params={"risk_level": "EXTREME"}).status_code == 400
        assert client.get(f"/api/crisis/{user_id}/history", params={"start_date": "yesterday"}).status_code == 400

    def test_history_empty(self, client, seed_user):
        response = client.get(f"/api/crisis/{seed_user()}/history", params={"risk_level": "high", "limit": 5})

        assert response.status_code == 200
        assert response.json() == {"crises": [], "total": 0, "limit": 5, "offset": 0, "has_more": False}

    def test_by_month_length(self, client, seed_user):
        response = client.get(f"/api/crisis/{seed_user()}/by-month", params={"months": 4})

        assert response.status_code == 200
        assert len(response.json()) == 4

    def test_days_out_of_range(self, client, seed_user):
        response = client.get(f"/api/crisis/{seed_user()}/alerts-stats", params={"days": 0})

        assert response.status_code == 422


# =============================================================================
# PIPELINE
# =============================================================================

class TestPipelineRoutes:
    def test_message_for_unknown_user(self, client):
        response = client.post("/api/crisis/messages", json={"user_id": 999, "message": {"content": "hi"}})

        assert response.status_code == 404

    def test_low_risk_message(self, client, seed_user):
        payload = {
            "user_id": seed_user(),
            "message": {"message_id": 5, "content": "I feel so sad and empty today"},
            "analyses": {"emotional": {"main_emotion": "sadness", "intensity": 4}},
        }

        response = client.post("/api/crisis/messages", json=payload)

        assert response.status_code == 200
        assert response.json() == {"is_crisis": False, "risk_level": "LOW", "crisis_event_id": None}

    def test_invalid_intensity_rejected(self, client, seed_user):
        payload = {
            "user_id": seed_user(),
            "message": {"content": "hi"},
            "analyses": {"emotional": {"intensity": 42}},
        }

        assert client.post("/api/crisis/messages", json=payload).status_code == 422

    def test_run_follow_ups(self, client):
        response = client.post("/api/crisis/followups/run")

        assert response.status_code == 200
        assert response.json()["total"] == 0


# =============================================================================
# LIVE ALERT SOCKET
# =============================================================================

class TestLiveAlertSocket:
    def test_ping_answers_with_utc_timestamp(self, monkeypatch):
        import main

        monkeypatch.setattr(main, "utcnow", lambda: NOW)

        with TestClient(main.app).websocket_connect("/ws/crisis-alerts/1") as ws:
            ws.send_text("ping")
            assert ws.receive_json() == {"type": "pong", "ts": "2026-03-15T12:00:00Z"}

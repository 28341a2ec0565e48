"""
Tests for the HTTP layer: routing and error mapping.
"""
import pytest
from fastapi.testclient import TestClient

from study_tracker.main import app
from study_tracker.database import get_db


@pytest.fixture
def client(db_session, default_settings):
    def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


def create_goal(client, **overrides):
    payload = {"title": "Read", "target": 4, "progress_unit": "sessions", "period": "weekly"}
    payload.update(overrides)
    return client.post("/api/users/user-1/goals", json=payload)


class TestGoalRoutes:
    """Tests for /api goal endpoints"""

    def test_create_and_fetch_goal(self, client):
        response = create_goal(client, milestones=[{"title": "Half", "target": 2}])

        assert response.status_code == 201
        body = response.json()
        assert body["status"] == "active"
        assert body["milestones"][0]["title"] == "Half"
        assert "expected_progress" in body

        fetched = client.get(f"/api/goals/{body['id']}")
        assert fetched.status_code == 200
        assert fetched.json()["id"] == body["id"]

    def test_missing_target_maps_to_400(self, client):
        response = create_goal(client, target=None)

        assert response.status_code == 400
        assert response.json()["field"] == "target"

    def test_zero_target_maps_to_409(self, client):
        assert create_goal(client, target=0).status_code == 409

    def test_unknown_goal_maps_to_404(self, client):
        assert client.get("/api/goals/9999").status_code == 404

    def test_progress_on_paused_goal_maps_to_409(self, client):
        goal_id = create_goal(client).json()["id"]
        client.post(f"/api/goals/{goal_id}/pause")

        response = client.post(f"/api/goals/{goal_id}/progress", json={"value": 1})

        assert response.status_code == 409

    def test_progress_completes_goal(self, client):
        goal_id = create_goal(client, target=2).json()["id"]

        response = client.post(f"/api/goals/{goal_id}/progress", json={"value": 5})

        assert response.status_code == 200
        body = response.json()
        assert body["just_completed"] is True
        assert body["goal"]["current_progress"] == 2

    def test_share_without_consent_is_rejected(self, client):
        goal_id = create_goal(client).json()["id"]

        response = client.post(f"/api/goals/{goal_id}/share", json={"guardian_id": "parent-1"})

        assert response.status_code == 409

    def test_cancelled_goals_hidden_by_default(self, client):
        goal_id = create_goal(client).json()["id"]
        client.post(f"/api/goals/{goal_id}/cancel")

        assert client.get("/api/users/user-1/goals").json() == []
        assert len(client.get("/api/users/user-1/goals", params={"include_cancelled": True}).json()) == 1

    def test_breakdown(self, client):
        goal_id = create_goal(client).json()["id"]

        response = client.get(f"/api/goals/{goal_id}/breakdown", params={"granularity": "week"})

        assert response.status_code == 200
        assert len(response.json()) == 1

    def test_update_lowering_target_completes_goal(self, client):
        goal_id = create_goal(client, target=4).json()["id"]
        client.post(f"/api/goals/{goal_id}/progress", json={"value": 2})

        response = client.put(f"/api/goals/{goal_id}", json={"target": 2, "title": "Read more"})

        assert response.status_code == 200
        body = response.json()
        assert body["just_completed"] is True
        assert body["goal"]["status"] == "completed"
        assert body["goal"]["title"] == "Read more"
        assert body["goal"]["completion_rate"] == 100

    def test_update_with_zero_target_maps_to_409(self, client):
        goal_id = create_goal(client).json()["id"]

        assert client.put(f"/api/goals/{goal_id}", json={"target": 0}).status_code == 409

    def test_goal_stats(self, client):
        first = create_goal(client, target=4).json()["id"]
        second = create_goal(client, target=4).json()["id"]
        client.post(f"/api/goals/{first}/progress", json={"value": 2})
        client.post(f"/api/goals/{second}/cancel")

        response = client.get("/api/users/user-1/goals/stats", params={"due_within_days": 3})

        assert response.status_code == 200
        body = response.json()
        assert body["total"] == 2
        assert body["active"] == 1
        assert body["by_status"]["cancelled"] == 1
        assert body["average_completion_rate"] == 50
        assert body["due_within_days"] == 3
        assert body["due_soon"] == []

    def test_goal_stats_rejects_negative_window(self, client):
        response = client.get("/api/users/user-1/goals/stats", params={"due_within_days": -1})

        assert response.status_code == 422


class TestSessionAndRewardRoutes:
    """Tests for session intake, rewards and notifications"""

    def test_session_event_updates_goal_and_rewards(self, client, seeded_catalog):
        goal_id = create_goal(client, target=1).json()["id"]
        event = {
            "user_id": "user-1",
            "duration_seconds": 1500,
            "started_at": "2026-03-11T10:00:00Z",
            "session_id": "timer-1",
        }

        response = client.post("/api/sessions/completed", json=event)

        assert response.status_code == 200
        body = response.json()
        assert body["goals_completed"] == [goal_id]
        assert "first_steps" in body["rewards_earned"]

        replay = client.post("/api/sessions/completed", json=event)
        assert replay.json()["duplicate"] is True

    def test_profile_of_unknown_user_is_404(self, client):
        assert client.get("/api/users/nobody/rewards").status_code == 404

    def test_bonus_validation(self, client):
        response = client.post("/api/users/user-1/rewards/bonus", json={"amount": 0, "reason": "x"})

        assert response.status_code == 422

    def test_bonus_and_rank(self, client):
        client.post("/api/users/alice/rewards/bonus", json={"amount": 50, "reason": "Quiz winner"})
        client.post("/api/users/bob/rewards/bonus", json={"amount": 20, "reason": "Helper"})

        board = client.get("/api/leaderboard").json()
        rank = client.get("/api/users/bob/rank").json()

        assert [e["user_id"] for e in board] == ["alice", "bob"]
        assert rank == {"user_id": "bob", "timeframe": "alltime", "rank": 2, "points": 20}

    def test_notifications_are_acknowledged(self, client):
        client.post("/api/users/user-1/rewards/bonus", json={"amount": 100, "reason": "Level me"})

        pending = client.get("/api/users/user-1/notifications").json()
        assert [n["type"] for n in pending] == ["level_up"]
        assert pending[0]["payload"]["level"] == 2

        ack = client.post("/api/users/user-1/notifications/ack", json={})
        assert ack.json() == {"acknowledged": 1}
        assert client.get("/api/users/user-1/notifications").json() == []

    def test_random_tip_falls_back(self, client):
        response = client.get("/api/tips/random")

        assert response.status_code == 200
        assert response.json()["type"] == "encouragement"

    def test_invalid_timezone_setting(self, client):
        response = client.put("/api/settings", json={"timezone": "Nowhere/City"})

        assert response.status_code == 400

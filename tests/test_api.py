from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from carbontrack.core.database import get_db
from carbontrack.main import app
from carbontrack.services.leaderboard_service import POINTS_CACHE_FILE, STREAK_CACHE_FILE


@pytest.fixture
def client(db):
    def _override_get_db():
        yield db

    app.dependency_overrides[get_db] = _override_get_db
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def today():
    return datetime.now(timezone.utc).date()


def test_health(client):
    response = client.get("/api/v1/health")

    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_activity_checkin_is_idempotent(client, db, make_user):
    user = make_user()
    db.commit()

    first = client.post("/api/v1/checkins", json={"user_id": user.id, "record_id": "rec-1"})
    second = client.post("/api/v1/checkins", json={"user_id": user.id, "record_id": "rec-2"})

    assert first.status_code == 200
    assert first.json()["recorded"] is True
    assert second.json()["recorded"] is False
    stats = second.json()["stats"]
    assert stats["current_streak"] == 1
    assert stats["active_today"] is True


def test_calendar_and_streak(client, db, make_user, add_checkins, today):
    user = make_user()
    add_checkins(user, [today - timedelta(days=1), today])
    db.commit()

    response = client.get("/api/v1/checkins", params={"user_id": user.id})

    assert response.status_code == 200
    body = response.json()
    assert body["range"]["start_date"] == today.replace(day=1).isoformat()
    assert today.isoformat() in [row["checkin_date"] for row in body["checkins"]]
    assert body["checkins"][-1]["source"] == "record"
    assert body["meta"] == {"timezone": "UTC", "server_today": today.isoformat()}
    assert body["makeup_quota"]["remaining"] == 3

    streak = client.get("/api/v1/checkins/streak", params={"user_id": user.id}).json()
    assert streak["current_streak"] == 2
    assert streak["total_days"] == 2


def test_calendar_requires_user(client):
    assert client.get("/api/v1/checkins").status_code == 422


def test_makeup_flow(client, db, make_user, add_checkins, today):
    user = make_user()
    add_checkins(user, [today])
    db.commit()
    yesterday = (today - timedelta(days=1)).isoformat()

    response = client.post("/api/v1/checkins/makeup", json={"user_id": user.id, "date": yesterday, "note": " late "})

    assert response.status_code == 200
    body = response.json()
    assert body["checkin_date"] == yesterday
    assert body["stats"]["current_streak"] == 2
    assert body["stats"]["makeup_days"] == 1
    assert body["makeup_quota"]["used"] == 1
    assert body["makeup_quota"]["remaining"] == 2

    again = client.post("/api/v1/checkins/makeup", json={"user_id": user.id, "date": yesterday})
    assert again.status_code == 409
    assert again.json()["detail"]["code"] == "ALREADY_CHECKED_IN"

    quota = client.get("/api/v1/checkins", params={"user_id": user.id}).json()["makeup_quota"]
    assert quota["used"] == 1


@pytest.mark.parametrize(
    "payload, status, code",
    [
        ({}, 400, "DATE_REQUIRED"),
        ({"date": "31/31/2026"}, 400, "INVALID_DATE"),
        ({"date": "2999-01-01"}, 400, "DATE_IN_FUTURE"),
    ],
)
def test_makeup_rejections(client, db, make_user, payload, status, code):
    user = make_user()
    db.commit()

    response = client.post("/api/v1/checkins/makeup", json={"user_id": user.id, **payload})

    assert response.status_code == status
    assert response.json()["detail"]["code"] == code


def test_makeup_unknown_user(client, today):
    response = client.post("/api/v1/checkins/makeup", json={"user_id": 999, "date": today.isoformat()})

    assert response.status_code == 404
    assert response.json()["detail"]["code"] == "USER_NOT_FOUND"


def test_makeup_quota_exceeded(client, db, make_user, test_settings, today):
    test_settings.makeup_monthly_limit = 0
    user = make_user()
    db.commit()

    response = client.post("/api/v1/checkins/makeup", json={"user_id": user.id, "date": today.isoformat()})

    assert response.status_code == 429
    assert response.json()["detail"]["code"] == "QUOTA_EXCEEDED"


def test_points_leaderboard_is_cached(client, db, make_user, test_settings):
    leader = make_user("leader", points=50, region_code="CN-GD")
    runner = make_user("runner", points=20)
    expected = [leader.id, runner.id]
    db.commit()

    body = client.get("/api/v1/leaderboards/points").json()

    assert [row["user_id"] for row in body["global"]] == expected
    assert body["global"][0]["rank"] == 1
    assert body["ttl_seconds"] == 600
    assert "CN-GD" in body["regions"]
    assert (Path(test_settings.cache_dir) / POINTS_CACHE_FILE).exists()

    make_user("newcomer", points=500)
    db.commit()
    assert len(client.get("/api/v1/leaderboards/points").json()["global"]) == 2
    assert len(client.get("/api/v1/leaderboards/points", params={"force": True}).json()["global"]) == 3


def test_streak_leaderboard_and_rank_lookup(client, db, make_user, add_checkins, today):
    first = make_user(region_code="US-CA")
    second = make_user(region_code="US-CA")
    add_checkins(first, [today - timedelta(days=2), today - timedelta(days=1), today])
    add_checkins(second, [today])
    db.commit()

    body = client.get("/api/v1/leaderboards/streaks").json()

    assert [row["user_id"] for row in body["global"]] == [first.id, second.id]
    assert body["ranks"]["global"] == {str(first.id): 1, str(second.id): 2}

    rank = client.get(f"/api/v1/leaderboards/streaks/rank/{second.id}").json()
    assert rank["global_rank"] == 2
    assert rank["region_code"] == "US-CA"
    assert rank["region_rank"] == 2


def test_refresh_requires_configured_key(client):
    response = client.post("/api/v1/leaderboards/refresh", params={"key": "whatever"})

    assert response.status_code == 503


def test_refresh_rejects_wrong_key(client, test_settings):
    test_settings.leaderboard_trigger_key = "s3cret"

    assert client.post("/api/v1/leaderboards/refresh", params={"key": "nope"}).status_code == 403
    assert client.post("/api/v1/leaderboards/refresh").status_code == 403


def test_refresh_rebuilds_requested_boards(client, db, make_user, add_checkins, test_settings, today):
    test_settings.leaderboard_trigger_key = "s3cret"
    user = make_user(points=10)
    add_checkins(user, [today])
    db.commit()

    points = client.post("/api/v1/leaderboards/refresh", params={"key": "s3cret"})
    assert points.status_code == 200
    assert points.json()["success"] is True
    assert [item["kind"] for item in points.json()["data"]] == ["points"]
    assert points.json()["data"][0]["global_count"] == 1

    both = client.post("/api/v1/leaderboards/refresh", params={"trigger_key": "s3cret", "kind": "all"})
    assert [item["kind"] for item in both.json()["data"]] == ["points", "streak"]
    assert (Path(test_settings.cache_dir) / STREAK_CACHE_FILE).exists()

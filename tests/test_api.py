from datetime import datetime

import pytest
from fastapi.testclient import TestClient

from cinelog import config
from cinelog.api import app
from cinelog.auth import create_access_token
from cinelog.database import get_db
from cinelog.models import Review


@pytest.fixture
def client(db):
    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


def auth(uid):
    return {"Authorization": f"Bearer {create_access_token({'sub': uid})}"}


@pytest.fixture
def users(make_user):
    return make_user("alice", display_name="Alice"), make_user("bob", display_name="Bob")


class TestAuth:

    def test_missing_token(self, client):
        assert client.get("/api/users/me").status_code == 401

    def test_bad_token(self, client):
        assert client.get("/api/users/me", headers={"Authorization": "Bearer junk"}).status_code == 401

    def test_me(self, client, users):
        res = client.get("/api/users/me", headers=auth("alice"))
        assert res.status_code == 200
        assert res.json()["display_name"] == "Alice"

    def test_google_sign_in_creates_user(self, client, monkeypatch):
        monkeypatch.setattr("cinelog.api.verify_google_token", lambda credential: {
            "sub": "g-42", "email": "g@example.com", "name": "Gail", "picture": "g.png",
        })
        res = client.post("/api/auth/google", json={"credential": "token"})

        assert res.status_code == 200
        token = res.json()["access_token"]
        me = client.get("/api/users/me", headers={"Authorization": f"Bearer {token}"})
        assert me.json()["id"] == "g-42"


class TestIdentityRoutes:

    def test_reserve_and_resolve(self, client, users):
        res = client.put("/api/users/me/username", json={"username": "Nova"}, headers=auth("alice"))
        assert res.json() == {"status": "reserved", "username": "nova"}

        assert client.get("/api/usernames/NOVA/available").json()["available"] is False
        assert client.get("/api/users/nova").json()["id"] == "alice"

    def test_taken_username_is_409(self, client, users):
        client.put("/api/users/me/username", json={"username": "nova"}, headers=auth("alice"))
        res = client.put("/api/users/me/username", json={"username": "nova"}, headers=auth("bob"))
        assert res.status_code == 409

    def test_unknown_username_is_404(self, client):
        assert client.get("/api/users/nobody").status_code == 404

    def test_empty_username_is_400(self, client, users):
        res = client.put("/api/users/me/username", json={"username": " "}, headers=auth("alice"))
        assert res.status_code == 400


class TestConnectionRoutes:

    def test_request_accept_flow(self, client, users):
        sent = client.post("/api/connections/request/bob", headers=auth("alice")).json()
        assert sent["status"] == "pending"

        incoming = client.get("/api/connections/incoming", headers=auth("bob")).json()
        assert [r["from_user"]["id"] for r in incoming] == ["alice"]

        res = client.post(f"/api/connections/{sent['request_id']}/accept", params={"from_id": "alice"}, headers=auth("bob"))
        assert res.json()["status"] == "accepted"

        status = client.get("/api/connections/status/bob", headers=auth("alice")).json()
        assert status["status"] == "accepted"
        assert [u["id"] for u in client.get("/api/connections", headers=auth("bob")).json()] == ["alice"]

    def test_duplicate_request_is_409(self, client, users):
        client.post("/api/connections/request/bob", headers=auth("alice"))
        res = client.post("/api/connections/request/bob", headers=auth("alice"))
        assert res.status_code == 409


class TestFeedAndStats:

    def test_log_then_feed_and_stats(self, client, users):
        client.post("/api/connections/request/bob", headers=auth("alice"))
        client.post("/api/connections/request/alice", headers=auth("bob"))
        client.put("/api/users/me/username", json={"username": "bob"}, headers=auth("bob"))

        for day, title, visibility in [(1, "Heat", "public"), (3, "Ran", "followers"), (2, "Ikiru", "private")]:
            res = client.post("/api/log", headers=auth("bob"), json={
                "movie_id": day,
                "movie": {"title": title, "genres": ["Drama"], "runtime": 120},
                "watched_date": datetime(2026, 5, day).isoformat(),
                "rating": 4,
                "visibility": visibility,
            })
            assert res.status_code == 200

        feed = client.get("/api/feed", headers=auth("alice")).json()
        assert [item["log"]["movie"]["title"] for item in feed] == ["Ran", "Heat"]
        assert feed[0]["user_name"] == "Bob"

        stats = client.get("/api/users/bob/stats", headers=auth("alice")).json()
        assert stats["total_watched"] == 2
        assert stats["top_genres"] == [{"name": "Drama", "count": 2}]
        assert len(stats["films_per_month"]) == 12

        recent = client.get("/api/activity/recent").json()
        assert {a["type"] for a in recent} >= {"log", "connection"}

    def test_half_star_log_accepted(self, client, users):
        res = client.post("/api/log", headers=auth("alice"), json={
            "movie_id": 7,
            "movie": {"title": "Stalker", "runtime": 161},
            "watched_date": datetime(2026, 5, 1).isoformat(),
            "rating": 3.5,
        })
        assert res.status_code == 200
        assert res.json()["rating"] == 3.5


class TestEngagementRoutes:

    def test_like_roundtrip(self, client, users, db):
        review_id = client.post("/api/reviews", headers=auth("alice"), json={
            "movie_id": 550, "movie_title": "Fight Club", "rating": 4, "text": "First rule.",
        }).json()["id"]

        liked = client.post(f"/api/like/review/{review_id}", headers=auth("bob")).json()
        assert liked == {"active": True, "count": 1}
        unliked = client.post(f"/api/like/review/{review_id}", headers=auth("bob")).json()
        assert unliked == {"active": False, "count": 0}

        db.expire_all()
        assert db.get(Review, review_id).like_count == 0

    def test_like_missing_is_404(self, client, users):
        assert client.post("/api/like/review/nope", headers=auth("bob")).status_code == 404

    def test_comment_and_notification(self, client, users):
        list_id = client.post("/api/lists", headers=auth("alice"), json={"name": "Noir"}).json()["id"]
        res = client.post(f"/api/comments/list/{list_id}", headers=auth("bob"), json={"text": "Great picks"})
        assert res.status_code == 200

        comments = client.get(f"/api/comments/list/{list_id}").json()
        assert [c["text"] for c in comments] == ["Great picks"]

        notes = client.get("/api/notifications", headers=auth("alice")).json()
        assert [n["type"] for n in notes] == ["comment_list"]
        client.post("/api/notifications/clear", headers=auth("alice"))
        assert client.get("/api/notifications", headers=auth("alice")).json() == []

    def test_save_list(self, client, users):
        list_id = client.post("/api/lists", headers=auth("alice"), json={"name": "Noir"}).json()["id"]
        res = client.post(f"/api/lists/alice/{list_id}/save", headers=auth("bob")).json()
        assert res == {"active": True, "count": 1}


class TestAdminRoutes:

    def test_requires_admin(self, client, users, monkeypatch):
        monkeypatch.setattr(config, "ADMIN_UIDS", {"alice"})
        assert client.get("/api/admin/stats", headers=auth("bob")).status_code == 403

    def test_snapshot_and_reconcile(self, client, users, monkeypatch):
        monkeypatch.setattr(config, "ADMIN_UIDS", {"alice"})

        first = client.get("/api/admin/stats", headers=auth("alice")).json()
        assert first["counters"]["totalUsers"] == 2
        assert first["changes"] == {}

        second = client.get("/api/admin/stats", headers=auth("alice")).json()
        assert second["changes"]["totalUsers"]["trend"] == "neutral"

        res = client.post("/api/admin/reconcile", headers=auth("alice"))
        assert res.json()["status"] == "reconciled"

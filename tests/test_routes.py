"""HTTP behaviour of the API routes backed by in-memory storage."""

from __future__ import annotations

import json
from typing import Any

import httpx
from fastapi.testclient import TestClient

from app.config import Settings
from app.main import create_app


def build_settings(**overrides: Any) -> Settings:
    base: dict[str, Any] = {"ENVIRONMENT": "development"}
    base.update(overrides)
    return Settings(_env_file=None, **base)  # type: ignore[arg-type]


def as_user(user_id: str) -> dict[str, str]:
    return {"X-User-Id": user_id, "X-User-Name": user_id}


def first_title_id(client: TestClient) -> str:
    response = client.get("/api/titles/trending")
    assert response.status_code == 200
    return response.json()[0]["id"]


def test_health_reports_backends() -> None:
    with TestClient(create_app(build_settings())) as client:
        response = client.get("/api/health")

    assert response.status_code == 200
    assert response.json() == {
        "status": "ok",
        "environment": "development",
        "storage": "memory",
        "catalog": False,
        "recommendations": False,
    }


def test_identity_is_required_in_production() -> None:
    app = create_app(build_settings(ENVIRONMENT="production"))
    with TestClient(app) as client:
        assert client.get("/api/auth/user").status_code == 401

        dev = client.get("/api/auth/user", headers={"Authorization": "Bearer DEV"})
        assert dev.status_code == 200
        assert dev.json()["id"] == "dev-user"

        trusted = client.get("/api/auth/user", headers=as_user("alice"))
        assert trusted.status_code == 200
        assert trusted.json()["username"] == "alice"

        watchlist = client.get("/api/users/alice/watchlist", headers=as_user("alice"))
        assert watchlist.status_code == 200
        assert watchlist.json()["isSystem"] is True


def test_like_and_unlike_cycle() -> None:
    with TestClient(create_app(build_settings())) as client:
        title_id = first_title_id(client)
        created = client.post("/api/posts", json={"titleId": title_id, "caption": "Loved it"})
        assert created.status_code == 201
        post_id = created.json()["id"]

        assert client.post(f"/api/posts/{post_id}/like").json() == {"message": "Post liked"}
        again = client.post(f"/api/posts/{post_id}/like")
        assert again.status_code == 400

        post = client.get(f"/api/posts/{post_id}").json()
        assert post["likesCount"] == 1
        assert post["isLiked"] is True
        assert post["title"]["id"] == title_id

        assert client.delete(f"/api/posts/{post_id}/like").status_code == 200
        assert client.delete(f"/api/posts/{post_id}/like").status_code == 400
        assert client.get(f"/api/posts/{post_id}").json()["likesCount"] == 0

        assert client.post("/api/posts/missing/like").status_code == 404


def test_post_validation_errors_return_400() -> None:
    with TestClient(create_app(build_settings())) as client:
        assert client.post("/api/posts", json={"caption": "no title"}).status_code == 400
        assert client.post("/api/posts", json={"titleId": "unknown"}).status_code == 400
        assert client.post("/api/posts", content="not json").status_code == 400
        assert client.get("/api/feed", params={"limit": 0}).status_code == 400


def test_feed_includes_followed_authors() -> None:
    with TestClient(create_app(build_settings())) as client:
        title_id = first_title_id(client)
        client.get("/api/auth/user", headers=as_user("alice"))
        bob_post = client.post(
            "/api/posts", json={"titleId": title_id}, headers=as_user("bob")
        ).json()
        client.post("/api/posts", json={"titleId": title_id}, headers=as_user("carol"))

        assert client.post("/api/users/bob/follow", headers=as_user("alice")).status_code == 200
        assert client.post("/api/users/alice/follow", headers=as_user("alice")).status_code == 400
        assert client.post("/api/users/ghost/follow", headers=as_user("alice")).status_code == 404

        feed = client.get("/api/feed", headers=as_user("alice")).json()
        assert [item["id"] for item in feed] == [bob_post["id"]]
        assert feed[0]["author"]["id"] == "bob"

        stats = client.get("/api/users/bob/follow-stats", headers=as_user("alice")).json()
        assert stats == {"followers": 1, "following": 0, "isFollowing": True}


def test_search_requires_query_and_matches_locally() -> None:
    with TestClient(create_app(build_settings())) as client:
        assert client.get("/api/search").status_code == 400
        results = client.get("/api/search", params={"q": "BEAR"}).json()

    assert [title["name"] for title in results] == ["The Bear"]


def test_ai_routes_need_a_configured_key() -> None:
    with TestClient(create_app(build_settings())) as client:
        assert client.post("/api/ai/chat", json={"message": "hi"}).status_code == 503
        assert client.post("/api/ai/search", json={"query": "hi"}).status_code == 503


def test_ai_chat_returns_unresolved_suggestions() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        reply = {
            "message": "How about this?",
            "recommendations": [{"title": "Nonexistent Film XYZ", "reason": "test"}],
        }
        return httpx.Response(
            200, json={"choices": [{"message": {"content": json.dumps(reply)}}]}
        )

    app = create_app(
        build_settings(OPENAI_API_KEY="sk-test"),
        chat_transport=httpx.MockTransport(handler),
    )
    with TestClient(app) as client:
        assert client.post("/api/ai/chat", json={}).status_code == 400
        response = client.post(
            "/api/ai/chat", json={"message": "Surprise me", "sessionId": "abc"}
        )

    assert response.status_code == 200
    payload = response.json()
    assert payload["message"] == "How about this?"
    assert payload["conversationContinues"] is True
    assert payload["sessionId"] == "abc"
    [item] = payload["recommendations"]
    assert item["resolved"] is False
    assert item["name"] == "Nonexistent Film XYZ"
    assert item["reason"] == "test"


def test_ai_chat_degrades_when_upstream_fails() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(502, text="bad gateway")

    app = create_app(
        build_settings(OPENAI_API_KEY="sk-test"),
        chat_transport=httpx.MockTransport(handler),
    )
    with TestClient(app) as client:
        chat = client.post("/api/ai/chat", json={"message": "Surprise me"})
        search = client.post("/api/ai/search", json={"query": "cozy"})

    assert chat.status_code == 200
    assert chat.json()["recommendations"] == []
    assert chat.json()["sessionId"].startswith("session_")
    assert search.json() == {"results": []}


def test_watchlist_and_system_list_protection() -> None:
    with TestClient(create_app(build_settings())) as client:
        title_id = first_title_id(client)

        assert client.get(f"/api/watchlist/{title_id}").json()["inWatchlist"] is False
        added = client.post(f"/api/watchlist/{title_id}")
        assert added.status_code == 200
        assert added.json()["titleIds"] == [title_id]
        assert client.get(f"/api/watchlist/{title_id}").json()["inWatchlist"] is True
        assert client.post("/api/favorites/unknown").status_code == 404
        assert client.delete(f"/api/watchlist/{title_id}").json()["titleIds"] == []

        watchlist_id = client.get("/api/users/dev-user/watchlist").json()["id"]
        assert client.delete(f"/api/lists/{watchlist_id}").status_code == 400
        assert (
            client.patch(f"/api/lists/{watchlist_id}", json={"name": "Later"}).status_code
            == 400
        )
        assert (
            client.patch(f"/api/lists/{watchlist_id}", json={"isPublic": True}).json()["isPublic"]
            is True
        )

        assert client.post("/api/lists", json={"name": "Favorites"}).status_code == 400
        custom = client.post("/api/lists", json={"name": "Rainy days"})
        assert custom.status_code == 201
        list_id = custom.json()["id"]
        other = client.patch(
            f"/api/lists/{list_id}", json={"name": "Mine now"}, headers=as_user("mallory")
        )
        assert other.status_code == 403
        renamed = client.patch(f"/api/lists/{list_id}", json={"name": "Snow days"})
        assert renamed.json()["name"] == "Snow days"
        assert client.post(f"/api/lists/{list_id}/titles/{title_id}").json()["titleIds"] == [
            title_id
        ]
        assert client.delete(f"/api/lists/{list_id}").status_code == 200
        assert client.delete(f"/api/lists/{list_id}").status_code == 404


def test_reports_flow() -> None:
    with TestClient(create_app(build_settings())) as client:
        title_id = first_title_id(client)
        post_id = client.post(
            "/api/posts", json={"titleId": title_id}, headers=as_user("bob")
        ).json()["id"]

        report = client.post(f"/api/posts/{post_id}/report", json={"reason": "spoilers"})
        assert report.status_code == 201
        report_id = report.json()["id"]

        pending = client.get("/api/reports", params={"status": "pending"}).json()
        assert [item["id"] for item in pending] == [report_id]

        updated = client.patch(f"/api/reports/{report_id}", json={"status": "resolved"})
        assert updated.json()["status"] == "resolved"
        assert client.patch("/api/reports/missing", json={"status": "resolved"}).status_code == 404
        assert client.get(f"/api/posts/{post_id}").json()["isReported"] is True


def test_packages_expose_the_application_factory() -> None:
    import app as app_package
    import cineloop

    assert app_package.create_app is create_app
    assert cineloop.create_app is create_app
    assert app_package.__version__ == create_app(build_settings()).version


def test_system_lists_reject_null_and_partial_renames() -> None:
    with TestClient(create_app(build_settings())) as client:
        title_id = first_title_id(client)
        watchlist_id = client.get("/api/users/dev-user/watchlist").json()["id"]

        for body in ({"name": None}, {"isPublic": None}):
            response = client.patch(f"/api/lists/{watchlist_id}", json=body)
            assert response.status_code == 400

        described = client.patch(
            f"/api/lists/{watchlist_id}", json={"description": "Weekend queue"}
        )
        assert described.status_code == 200
        assert described.json()["name"] == "Watchlist"
        assert described.json()["description"] == "Weekend queue"

        assert client.get(f"/api/watchlist/{title_id}").status_code == 200
        watchlist = client.get("/api/users/dev-user/watchlist").json()
        assert watchlist["id"] == watchlist_id
        assert watchlist["isSystem"] is True


def test_undecodable_body_returns_400() -> None:
    with TestClient(create_app(build_settings())) as client:
        response = client.post(
            "/api/posts",
            content=b'{"titleId": "\xff"}',
            headers={"Content-Type": "application/json"},
        )

    assert response.status_code == 400

"""HTTP tests for the FastAPI application."""

import pytest
from fastapi.testclient import TestClient

SEARCH = {"freeText": "a detective in Victorian London", "genreSlug": "mystery", "languageCode": "en", "modelId": 3}


@pytest.fixture
def app(settings, generator):
    from server.api_app import create_app
    return create_app(settings, generator=generator)


def _auth(user):
    return {"Authorization": f"Bearer {user.api_token}"}


class TestHealth:
    def test_healthz(self, app):
        with TestClient(app) as client:
            response = client.get("/healthz")
        assert response.status_code == 200
        assert response.json() == {"status": "ok"}


class TestSearchEndpoint:
    def test_fresh_search(self, app, user, generator):
        with TestClient(app) as client:
            response = client.post("/search", json=SEARCH, headers=_auth(user))

        assert response.status_code == 200
        body = response.json()
        assert body["cached"] is False
        assert body["pageNumber"] == 1
        assert len(body["books"]) == 3
        book = body["books"][0]
        assert book["rank"] == 1
        assert book["pageCount"] == 12
        assert book["language"] == "en"
        assert book["author"]["penName"].startswith("Ada Quill")
        assert book["sections"][0]["fromPage"] == 1
        assert book["editionId"]
        assert generator.count("BookBatch") == 1

    def test_repeat_is_cached_and_free(self, app, user, ledger):
        with TestClient(app) as client:
            first = client.post("/search", json=SEARCH, headers=_auth(user)).json()
            second = client.post("/search", json=SEARCH).json()
        assert second["cached"] is True
        assert second["searchId"] == first["searchId"]
        assert ledger.balance(user.id) == 46

    def test_missing_model_id(self, app):
        with TestClient(app) as client:
            response = client.post("/search", json={"freeText": "anything"})
        assert response.status_code == 400
        assert response.json() == {"error": "modelId is required"}

    def test_malformed_body(self, app):
        with TestClient(app) as client:
            response = client.post("/search", json={**SEARCH, "pageNumber": "first"})
        assert response.status_code == 400
        assert "error" in response.json()

    def test_unknown_genre(self, app, user):
        with TestClient(app) as client:
            response = client.post("/search", json={**SEARCH, "genreSlug": "cookbooks"}, headers=_auth(user))
        assert response.status_code == 400

    def test_anonymous_miss(self, app, generator):
        with TestClient(app) as client:
            response = client.post("/search", json=SEARCH)
        assert response.status_code == 401
        assert response.json()["error"] == "Authentication required for new searches"
        assert generator.calls == []

    def test_invalid_token(self, app):
        with TestClient(app) as client:
            response = client.post("/search", json=SEARCH, headers={"Authorization": "Bearer nope"})
        assert response.status_code == 401
        assert response.json() == {"error": "Invalid API token"}

    def test_insufficient_credits(self, app, db, ledger):
        poor = db.create_user("poor@example.com")
        ledger.open_account(poor.id, signup_credits=4)
        with TestClient(app) as client:
            response = client.post("/search", json=SEARCH, headers=_auth(poor))
        assert response.status_code == 402
        assert response.json() == {"error": "Insufficient credits and no API key configured"}

    def test_generation_failure(self, app, user, generator):
        generator.failing = {"BookBatch"}
        with TestClient(app) as client:
            response = client.post("/search", json=SEARCH, headers=_auth(user))
        assert response.status_code == 500
        assert "failed" in response.json()["error"]


class TestUserEndpoints:
    def test_billing(self, app, user):
        with TestClient(app) as client:
            client.post("/search", json=SEARCH, headers=_auth(user))
            response = client.get("/user/billing", headers=_auth(user))
        assert response.status_code == 200
        assert response.json() == {"userId": user.id, "credits": 46, "heldCredits": 0, "available": 46}

    def test_billing_requires_token(self, app):
        with TestClient(app) as client:
            response = client.get("/user/billing")
        assert response.status_code == 401

    def test_transactions(self, app, user, ledger):
        for n in range(3):
            ledger.grant(user.id, n + 1)
        with TestClient(app) as client:
            response = client.get("/user/transactions", params={"page": 1, "limit": 2}, headers=_auth(user))
        body = response.json()
        assert [t["amount"] for t in body["transactions"]] == [3, 2]
        assert body["transactions"][0]["transactionType"] == "grant"
        assert body["pagination"] == {"page": 1, "limit": 2, "total": 4, "totalPages": 2, "hasMore": True}

    def test_transactions_limit_is_capped(self, app, user):
        with TestClient(app) as client:
            response = client.get("/user/transactions", params={"limit": 500}, headers=_auth(user))
        assert response.json()["pagination"]["limit"] == 100


class TestBooksEndpoint:
    def test_book_detail(self, app, user):
        with TestClient(app) as client:
            search = client.post("/search", json=SEARCH, headers=_auth(user)).json()
            book_id = search["books"][0]["id"]
            response = client.get(f"/books/{book_id}")
        assert response.status_code == 200
        body = response.json()
        assert body["id"] == book_id
        assert body["author"]["penName"] == search["books"][0]["author"]["penName"]
        assert body["sections"][-1]["toPage"] == body["pageCount"]
        assert len(body["editions"]) == 1
        assert body["editions"][0]["languageCode"] == "en"
        assert body["editions"][0]["modelName"] == "claude-opus-4-1"

    def test_unknown_book(self, app):
        with TestClient(app) as client:
            response = client.get("/books/does-not-exist")
        assert response.status_code == 404
        assert response.json() == {"error": "Book not found"}


def _record_loop_use(target, name, seen):
    """Wrap target.name so each call records whether it ran on an event loop thread."""
    import asyncio
    original = getattr(target, name)

    def wrapper(*args, **kwargs):
        try:
            asyncio.get_running_loop()
            seen.append((name, True))
        except RuntimeError:
            seen.append((name, False))
        return original(*args, **kwargs)

    setattr(target, name, wrapper)


class TestBlockingWork:
    def test_store_calls_stay_off_the_event_loop(self, app, user):
        seen = []
        with TestClient(app) as client:
            _record_loop_use(app.state.db, "get_user_by_token", seen)
            _record_loop_use(app.state.db, "get_book", seen)
            _record_loop_use(app.state.ledger, "summary", seen)
            _record_loop_use(app.state.ledger, "authorize", seen)
            _record_loop_use(app.state.pipeline.cache, "get", seen)

            book_id = client.post("/search", json=SEARCH, headers=_auth(user)).json()["books"][0]["id"]
            client.get(f"/books/{book_id}")
            client.get("/user/billing", headers=_auth(user))

        assert {name for name, _ in seen} == {"get_user_by_token", "get_book", "summary", "authorize", "get"}
        assert not any(on_loop for _, on_loop in seen)


class _StalledPipeline:
    """Pipeline whose run blocks until released, then fails or succeeds."""

    def __init__(self, error=None):
        import asyncio
        self.release = asyncio.Event()
        self.started = asyncio.Event()
        self.error = error

    async def run(self, search_request, user_id):
        from types import SimpleNamespace
        self.started.set()
        await self.release.wait()
        if self.error is not None:
            raise self.error
        return SimpleNamespace(search_id="search-1")


async def _abandon_search(settings, pipeline, user):
    import asyncio
    from types import SimpleNamespace
    from server.routers.search import handle_search
    from server.schemas.requests import SearchBody

    request = SimpleNamespace(app=SimpleNamespace(state=SimpleNamespace(settings=settings, pipeline=pipeline)))
    body = SearchBody(free_text="a detective", genre_slug="mystery", language_code="en", model_id=3)
    handler = asyncio.ensure_future(handle_search(request, body, user))
    await pipeline.started.wait()
    handler.cancel()
    with pytest.raises(asyncio.CancelledError):
        await handler
    pipeline.release.set()
    for _ in range(5):
        await asyncio.sleep(0)


class TestAbandonedSearch:
    @pytest.mark.asyncio
    async def test_failure_after_disconnect_is_logged(self, settings, user, caplog):
        import logging
        from config.exceptions import GenerationFailedError
        pipeline = _StalledPipeline(GenerationFailedError("BookBatch", 3))
        with caplog.at_level(logging.INFO, logger="server.routers.search"):
            await _abandon_search(settings, pipeline, user)
        failures = [r for r in caplog.records if r.levelno == logging.WARNING]
        assert len(failures) == 1
        assert "GenerationFailedError" in failures[0].getMessage()

    @pytest.mark.asyncio
    async def test_completion_after_disconnect_is_logged(self, settings, user, caplog):
        import logging
        pipeline = _StalledPipeline()
        with caplog.at_level(logging.INFO, logger="server.routers.search"):
            await _abandon_search(settings, pipeline, user)
        assert any("search-1" in r.getMessage() for r in caplog.records)
        assert not any(r.levelno >= logging.WARNING for r in caplog.records)

"""Shared pytest fixtures for the librarium test suite."""

import asyncio
import random

import pytest


# ---------------------------------------------------------------------------
# Fake structured generator
# ---------------------------------------------------------------------------

class FakeStructuredGenerator:
    """In-memory StructuredGenerator.

    Answers by schema title (AuthorBatch, BookBatch, FacetClassification)
    with exactly the requested number of items. Queued responses are used
    first: an Exception instance is raised, anything else is returned.
    Titles in failing always raise LLMError.
    """

    def __init__(self, page_count: int = 12, genre: str = "mystery", language: str = "en", delay: float = 0.0):
        self.page_count = page_count
        self.genre = genre
        self.language = language
        self.delay = delay
        self.queued: list = []
        self.failing: set[str] = set()
        self.calls: list[dict] = []
        self._serial = 0

    def count(self, title: str) -> int:
        return sum(1 for c in self.calls if c["title"] == title)

    async def generate_structured(self, system_prompt, user_prompt, schema, temperature, model=None):
        title = schema.get("title", "")
        self.calls.append({
            "title": title,
            "system_prompt": system_prompt,
            "user_prompt": user_prompt,
            "temperature": temperature,
            "model": model,
        })
        if self.delay:
            await asyncio.sleep(self.delay)
        if title in self.failing:
            from config.exceptions import LLMError
            raise LLMError(f"{title} generation unavailable")
        if self.queued:
            response = self.queued.pop(0)
            if isinstance(response, Exception):
                raise response
            return response

        if title == "AuthorBatch":
            count = schema["properties"]["authors"]["minItems"]
            return {"authors": [self._author() for _ in range(count)]}
        if title == "BookBatch":
            count = schema["properties"]["books"]["minItems"]
            return {"books": [self._book() for _ in range(count)]}
        if title == "FacetClassification":
            return {"genreSlug": self.genre, "languageCode": self.language, "reasoning": "test"}
        raise AssertionError(f"Unexpected schema: {title}")

    def _author(self) -> dict:
        self._serial += 1
        return {
            "penName": f"Ada Quill {self._serial}",
            "stylePrompt": "Spare, precise prose with dry humor",
            "bio": "Ada writes about fog, gaslight and bad decisions.",
        }

    def _book(self) -> dict:
        self._serial += 1
        half = self.page_count // 2
        return {
            "title": f"The Gaslight Ledger {self._serial}",
            "summary": "A clerk finds a ledger that records crimes before they happen.",
            "pageCount": self.page_count,
            "coverPrompt": "A leather ledger under a gas lamp",
            "sections": [
                {"title": "Part One", "fromPage": 1, "toPage": half, "summary": "The ledger appears."},
                {"title": "Part Two", "fromPage": half + 1, "toPage": self.page_count, "summary": "The ledger is wrong."},
            ],
        }


def make_book(page_count: int = 10, sections=None, title: str = "A Book") -> dict:
    """Camel-case book payload as the generator returns it."""
    return {
        "title": title,
        "summary": "Summary.",
        "pageCount": page_count,
        "coverPrompt": "",
        "sections": sections if sections is not None else [
            {"title": "All of it", "fromPage": 1, "toPage": page_count, "summary": "Everything."},
        ],
    }


# ---------------------------------------------------------------------------
# Settings and database fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def settings(tmp_path):
    """Return a Settings instance with all paths pointing to tmp_path and no waiting."""
    from config.settings import Settings
    return Settings(
        _env_file=None,
        sqlite_db_path=tmp_path / "librarium.db",
        log_dir=tmp_path / "logs",
        generation_backoff_seconds=0,
        generation_timeout_seconds=5,
        generation_lock_poll_seconds=0.01,
        generation_lock_wait_seconds=2,
    )


@pytest.fixture
def db(settings):
    """Return an initialized Database instance backed by a temp file."""
    from models.database import Database
    return Database(settings.sqlite_db_path)


# ---------------------------------------------------------------------------
# Generation fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def make_generator():
    """The FakeStructuredGenerator class, for tests that need custom settings."""
    return FakeStructuredGenerator


@pytest.fixture
def book_payload():
    return make_book


@pytest.fixture
def generator():
    return FakeStructuredGenerator()


@pytest.fixture
def gateway(generator, settings):
    from tools.generation_gateway import ContentGeneratorGateway
    return ContentGeneratorGateway(generator, settings)


# ---------------------------------------------------------------------------
# Billing, cache and pipeline fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def ledger(db, settings):
    from billing.ledger import CreditLedger
    return CreditLedger(db, settings)


@pytest.fixture
def cache(db):
    from cache.search_cache import SearchCache
    return SearchCache(db)


@pytest.fixture
def user(db, ledger):
    """A user holding the default 50 signup credits."""
    created = db.create_user("reader@example.com")
    ledger.open_account(created.id)
    return created


@pytest.fixture
def pipeline(db, gateway, settings, ledger):
    from workflow.graph import SearchPipeline
    return SearchPipeline(db, gateway, settings, ledger=ledger, rng=random.Random(7))


@pytest.fixture
def sample_context(db):
    """SearchContext for mystery / English / claude-opus-4-1."""
    from models.search import SearchContext
    return SearchContext(
        language=db.get_language("en"),
        genre=db.get_genre("mystery"),
        model=db.get_model(3),
        tags=db.get_tags(["dark"]),
    )

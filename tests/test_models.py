"""Tests for the SQLite database layer and data models."""

import sqlite3

import pytest

from models.book import Author
from models.enums import AuthorizationPath, PipelineState, TransactionType


class TestEnums:
    def test_values_are_strings(self):
        assert PipelineState.CACHE_HIT == "cache_hit"
        assert AuthorizationPath.API_KEY.value == "api_key"
        assert TransactionType("search") is TransactionType.SEARCH


class TestCatalog:
    def test_seeded_catalog(self, db):
        assert {lang.code for lang in db.list_languages()} == {"en", "el", "es", "fr"}
        assert len(db.list_genres()) == 10
        assert db.list_genres()[0].slug == "fiction"
        assert [m.name for m in db.list_models()] == ["claude-haiku-4-5", "claude-sonnet-4-5", "claude-opus-4-1"]

    def test_seeding_is_idempotent(self, db, settings):
        from models.database import Database
        Database(settings.sqlite_db_path)
        assert db.count_rows("genres") == 10
        assert db.count_rows("llm_models") == 3

    def test_get_tags_skips_unknown(self, db):
        tags = db.get_tags(["urban", "dark", "not-a-tag"])
        assert [t.slug for t in tags] == ["dark", "urban"]
        assert db.get_tags([]) == []

    def test_inactive_genres_hidden(self, db):
        with db.connection() as conn:
            conn.execute("UPDATE genres SET is_active = FALSE WHERE slug = 'horror'")
        assert "horror" not in {g.slug for g in db.list_genres()}
        assert "horror" in {g.slug for g in db.list_genres(active_only=False)}

    def test_inactive_model_not_returned(self, db):
        with db.connection() as conn:
            conn.execute("UPDATE llm_models SET is_active = FALSE WHERE id = 1")
        assert db.get_model(1) is None
        assert db.get_model(1, active_only=False).name == "claude-haiku-4-5"

    def test_genre_prompt_falls_back_to_slug(self):
        from models.catalog import Genre
        assert Genre(slug="poetry").prompt == "Generate poetry books"

    def test_count_rows_rejects_unknown_table(self, db):
        with pytest.raises(ValueError):
            db.count_rows("sqlite_master; DROP TABLE users")


class TestUsers:
    def test_create_and_lookup(self, db):
        user = db.create_user("reader@example.com")
        assert len(user.api_token) > 20
        assert db.get_user(user.id).email == "reader@example.com"
        assert db.get_user_by_token(user.api_token).id == user.id
        assert db.get_user_by_email("reader@example.com").id == user.id
        assert db.get_user_by_token("wrong") is None

    def test_duplicate_email_rejected(self, db):
        from config.exceptions import DatabaseError
        db.create_user("reader@example.com")
        with pytest.raises(DatabaseError, match="already exists"):
            db.create_user("reader@example.com")

    def test_api_keys_are_per_domain(self, db):
        user = db.create_user("byok@example.com")
        db.add_api_key(user.id, "anthropic", "sk-1")
        db.add_api_key(user.id, "anthropic", "sk-2")
        assert db.has_api_key(user.id, "anthropic")
        assert not db.has_api_key(user.id, "openai")
        assert db.count_rows("user_api_keys") == 1


class TestAuthors:
    def test_pen_name_gets_suffix(self, db):
        stored = db.create_author(Author(pen_name="  Ada Quill ", bio="b", style_prompt="s"))
        assert stored.id
        assert stored.pen_name.startswith("Ada Quill ")
        assert len(stored.pen_name) == len("Ada Quill ") + 4
        assert db.get_author(stored.id).pen_name == stored.pen_name

    def test_collision_retries_with_new_suffix(self, db, monkeypatch):
        suffixes = iter(["aaaa", "aaaa", "bbbb"])
        monkeypatch.setattr(db, "_pen_name_suffix", lambda: next(suffixes))
        db.create_author(Author(pen_name="Ada Quill"))
        second = db.create_author(Author(pen_name="Ada Quill"))
        assert second.pen_name == "Ada Quill bbbb"

    def test_gives_up_after_repeated_collisions(self, db, monkeypatch):
        from config.exceptions import DatabaseError
        monkeypatch.setattr(db, "_pen_name_suffix", lambda: "aaaa")
        db.create_author(Author(pen_name="Ada Quill"))
        with pytest.raises(DatabaseError, match="unique pen name"):
            db.create_author(Author(pen_name="Ada Quill"))
        assert db.count_rows("authors") == 1

    def test_random_authors_by_origin_genre(self, db):
        mystery = db.get_genre("mystery")
        fantasy = db.get_genre("fantasy")
        for n in range(4):
            db.create_author(Author(pen_name=f"Sleuth {n}", origin_genre_id=mystery.id))
        db.create_author(Author(pen_name="Wizard", origin_genre_id=fantasy.id))

        picked = db.get_random_authors_by_genre(mystery.id, 3)
        assert len(picked) == 3
        assert all(a.pen_name.startswith("Sleuth") for a in picked)
        assert len(db.get_random_authors_by_genre(fantasy.id, 3)) == 1
        assert db.get_random_authors_by_genre(mystery.id, 0) == []


class TestTransactions:
    def test_transaction_rolls_back_on_error(self, db):
        with pytest.raises(sqlite3.IntegrityError):
            with db.transaction() as conn:
                conn.execute("INSERT INTO users (id, email, api_token) VALUES ('u1', 'a@example.com', 't1')")
                conn.execute("INSERT INTO users (id, email, api_token) VALUES ('u2', 'a@example.com', 't2')")
        assert db.count_rows("users") == 0

    def test_transaction_commits(self, db):
        with db.transaction() as conn:
            conn.execute("INSERT INTO users (id, email, api_token) VALUES ('u1', 'a@example.com', 't1')")
        assert db.get_user("u1").email == "a@example.com"

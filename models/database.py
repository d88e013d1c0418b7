"""SQLite database initialization, catalog seed data and CRUD operations."""

import logging
import secrets
import sqlite3
import uuid
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional

from config.exceptions import DatabaseError
from models.book import Author, Book, Edition, Section
from models.catalog import Genre, Language, LlmModel, Tag, User

logger = logging.getLogger(__name__)

# SQL for creating all tables
_CREATE_TABLES_SQL = """
CREATE TABLE IF NOT EXISTS languages (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    code TEXT UNIQUE NOT NULL,
    label TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS genres (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    slug TEXT UNIQUE NOT NULL,
    label TEXT NOT NULL,
    prompt_boost TEXT,
    is_active BOOLEAN DEFAULT TRUE,
    order_index INTEGER NOT NULL DEFAULT 0
);

CREATE TABLE IF NOT EXISTS tags (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    slug TEXT UNIQUE NOT NULL,
    label TEXT NOT NULL,
    prompt_boost TEXT,
    is_active BOOLEAN DEFAULT TRUE
);

CREATE TABLE IF NOT EXISTS model_domains (
    code TEXT PRIMARY KEY,
    label TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS llm_models (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT NOT NULL,
    domain_code TEXT NOT NULL REFERENCES model_domains(code),
    search_credits INTEGER,
    page_generation_credits INTEGER,
    is_active BOOLEAN DEFAULT TRUE,
    UNIQUE (name, domain_code)
);

CREATE TABLE IF NOT EXISTS users (
    id TEXT PRIMARY KEY,
    email TEXT UNIQUE NOT NULL,
    api_token TEXT UNIQUE NOT NULL,
    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
);

CREATE TABLE IF NOT EXISTS user_api_keys (
    user_id TEXT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
    domain_code TEXT NOT NULL REFERENCES model_domains(code),
    api_key_enc TEXT NOT NULL,
    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
    PRIMARY KEY (user_id, domain_code)
);

CREATE TABLE IF NOT EXISTS user_billing (
    user_id TEXT PRIMARY KEY REFERENCES users(id) ON DELETE CASCADE,
    credits INTEGER NOT NULL DEFAULT 0 CHECK (credits >= 0),
    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
);

CREATE TABLE IF NOT EXISTS credit_transactions (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id TEXT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
    amount INTEGER NOT NULL,
    transaction_type TEXT NOT NULL,
    description TEXT,
    reference TEXT UNIQUE,
    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
);

CREATE TABLE IF NOT EXISTS credit_holds (
    id TEXT PRIMARY KEY,
    user_id TEXT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
    amount INTEGER NOT NULL CHECK (amount >= 0),
    expires_at REAL NOT NULL,
    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
);

CREATE TABLE IF NOT EXISTS settlement_failures (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id TEXT NOT NULL,
    reference TEXT,
    amount INTEGER NOT NULL,
    reason TEXT NOT NULL,
    resolved BOOLEAN DEFAULT FALSE,
    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
);

CREATE TABLE IF NOT EXISTS authors (
    id TEXT PRIMARY KEY,
    pen_name TEXT UNIQUE NOT NULL,
    style_prompt TEXT,
    bio TEXT,
    origin_genre_id INTEGER REFERENCES genres(id),
    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
);

CREATE TABLE IF NOT EXISTS books (
    id TEXT PRIMARY KEY,
    title TEXT NOT NULL,
    summary TEXT NOT NULL,
    page_count INTEGER NOT NULL CHECK (page_count > 0),
    cover_prompt TEXT,
    cover_url TEXT,
    author_id TEXT NOT NULL REFERENCES authors(id),
    primary_language_id INTEGER NOT NULL REFERENCES languages(id),
    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
);

CREATE TABLE IF NOT EXISTS book_sections (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    book_id TEXT NOT NULL REFERENCES books(id) ON DELETE CASCADE,
    title TEXT NOT NULL,
    from_page INTEGER NOT NULL CHECK (from_page >= 1),
    to_page INTEGER NOT NULL CHECK (to_page >= from_page),
    summary TEXT NOT NULL,
    order_index INTEGER NOT NULL,
    UNIQUE (book_id, order_index)
);

CREATE TABLE IF NOT EXISTS editions (
    id TEXT PRIMARY KEY,
    book_id TEXT NOT NULL REFERENCES books(id) ON DELETE CASCADE,
    language_id INTEGER NOT NULL REFERENCES languages(id),
    model_id INTEGER NOT NULL REFERENCES llm_models(id),
    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
    UNIQUE (book_id, language_id, model_id)
);

CREATE TABLE IF NOT EXISTS searches (
    id TEXT PRIMARY KEY,
    hash TEXT NOT NULL,
    page_number INTEGER NOT NULL CHECK (page_number >= 1),
    page_size INTEGER NOT NULL,
    user_id TEXT NOT NULL REFERENCES users(id),
    language_id INTEGER NOT NULL REFERENCES languages(id),
    genre_id INTEGER NOT NULL REFERENCES genres(id),
    model_id INTEGER NOT NULL REFERENCES llm_models(id),
    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
    UNIQUE (hash, page_number)
);

CREATE TABLE IF NOT EXISTS search_params (
    search_id TEXT PRIMARY KEY REFERENCES searches(id) ON DELETE CASCADE,
    free_text TEXT,
    tag_slugs TEXT
);

CREATE TABLE IF NOT EXISTS search_books (
    search_id TEXT NOT NULL REFERENCES searches(id) ON DELETE CASCADE,
    book_id TEXT NOT NULL REFERENCES books(id) ON DELETE CASCADE,
    edition_id TEXT REFERENCES editions(id),
    rank INTEGER NOT NULL CHECK (rank > 0),
    page_number INTEGER NOT NULL DEFAULT 1,
    PRIMARY KEY (search_id, page_number, rank)
);

CREATE TABLE IF NOT EXISTS generation_locks (
    hash TEXT NOT NULL,
    page_number INTEGER NOT NULL,
    token TEXT NOT NULL,
    expires_at REAL NOT NULL,
    PRIMARY KEY (hash, page_number)
);

CREATE TABLE IF NOT EXISTS facet_classifications (
    text_hash TEXT PRIMARY KEY,
    genre_slug TEXT NOT NULL,
    language_code TEXT NOT NULL,
    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
);
"""

# Indexes added via migration (idempotent)
_MIGRATION_SQL = [
    "CREATE INDEX IF NOT EXISTS idx_books_author_id ON books(author_id)",
    "CREATE INDEX IF NOT EXISTS idx_authors_origin_genre ON authors(origin_genre_id)",
    "CREATE INDEX IF NOT EXISTS idx_search_books_book_id ON search_books(book_id)",
    "CREATE INDEX IF NOT EXISTS idx_searches_genre ON searches(genre_id)",
    "CREATE INDEX IF NOT EXISTS idx_book_sections_book ON book_sections(book_id, order_index)",
    "CREATE INDEX IF NOT EXISTS idx_credit_transactions_user ON credit_transactions(user_id, created_at)",
    "CREATE INDEX IF NOT EXISTS idx_credit_holds_user ON credit_holds(user_id)",
]

# Catalog rows; inserted with INSERT OR IGNORE so re-running is harmless
_SEED_SQL = [
    (
        "INSERT OR IGNORE INTO languages (code, label) VALUES (?, ?)",
        [("en", "English"), ("el", "Greek"), ("es", "Spanish"), ("fr", "French")],
    ),
    (
        "INSERT OR IGNORE INTO model_domains (code, label) VALUES (?, ?)",
        [("anthropic", "Anthropic"), ("openai", "OpenAI"), ("google", "Google")],
    ),
    (
        "INSERT OR IGNORE INTO llm_models (name, domain_code, search_credits, page_generation_credits) "
        "VALUES (?, ?, ?, ?)",
        [
            ("claude-haiku-4-5", "anthropic", 5, 1),
            ("claude-sonnet-4-5", "anthropic", 10, 3),
            ("claude-opus-4-1", "anthropic", 20, 5),
        ],
    ),
    (
        "INSERT OR IGNORE INTO genres (slug, label, prompt_boost, order_index) VALUES (?, ?, ?, ?)",
        [
            ("fiction", "Fiction", "Generate engaging general fiction with memorable characters and clear stakes.", 0),
            ("non-fiction", "Non-Fiction", "Generate instructional, educational or factual books with a clear structure.", 1),
            ("fantasy", "Fantasy", "Create fantasy literature with magic, mythical creatures, and otherworldly realms.", 2),
            ("sci-fi", "Science Fiction", "Generate science fiction that explores future technologies, space exploration, and AI.", 3),
            ("mystery", "Mystery", "Craft mystery and detective stories with puzzles, clues, red herrings and surprising revelations.", 4),
            ("romance", "Romance", "Write romantic literature focusing on relationships and emotional connections.", 5),
            ("horror", "Horror", "Create horror fiction designed to frighten, unsettle, and create suspense.", 6),
            ("literary", "Literary Fiction", "Generate sophisticated literary fiction with complex characters and elegant prose.", 7),
            ("thriller", "Thriller", "Write fast-paced thrillers with high stakes, constant tension and plot twists.", 8),
            ("historical", "Historical Fiction", "Create historical fiction with careful attention to period details.", 9),
        ],
    ),
    (
        "INSERT OR IGNORE INTO tags (slug, label, prompt_boost) VALUES (?, ?, ?)",
        [
            ("dark", "Dark", "Incorporate dark themes, moral ambiguity, and shadowy atmospheres"),
            ("whimsical", "Whimsical", "Add playful, quirky, and lighthearted elements with gentle humor"),
            ("lyrical", "Lyrical", "Use poetic, flowing prose with beautiful imagery and rhythm"),
            ("minimalist", "Minimalist", "Employ spare, concise writing with economy of language"),
            ("epistolary", "Epistolary", "Structure as letters, diary entries, or documents"),
            ("urban", "Urban", "Set in cities with modern, metropolitan environments"),
            ("time-travel", "Time Travel", "Include temporal displacement and its consequences"),
            ("unreliable-narrator", "Unreliable Narrator", "Use narrators whose credibility is compromised"),
        ],
    ),
]

_PEN_NAME_ATTEMPTS = 5


class Database:
    """SQLite database manager for the catalog, accounts and generated content."""

    def __init__(self, db_path: str | Path):
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    def _get_conn(self) -> sqlite3.Connection:
        # Autocommit mode; multi-statement writes go through transaction()
        conn = sqlite3.connect(str(self.db_path), timeout=30, isolation_level=None)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        conn.execute("PRAGMA journal_mode = WAL")
        return conn

    @contextmanager
    def connection(self) -> Iterator[sqlite3.Connection]:
        """Yield a connection for reads or single-statement writes."""
        conn = self._get_conn()
        try:
            yield conn
        finally:
            conn.close()

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """Yield a connection inside BEGIN IMMEDIATE; commit on success, roll back on error.

        IMMEDIATE takes the write lock up front, so read-check-write sequences
        inside the block are serialized against every other writer.
        """
        conn = self._get_conn()
        try:
            conn.execute("BEGIN IMMEDIATE")
            try:
                yield conn
            except BaseException:
                conn.execute("ROLLBACK")
                raise
            conn.execute("COMMIT")
        finally:
            conn.close()

    def _init_db(self):
        with self.connection() as conn:
            conn.executescript(_CREATE_TABLES_SQL)
        self._migrate()
        self._seed()

    def _migrate(self):
        """Apply idempotent schema migrations (indexes)."""
        with self.connection() as conn:
            for sql in _MIGRATION_SQL:
                try:
                    conn.execute(sql)
                except sqlite3.OperationalError as e:
                    logger.debug("Migration skipped (already applied): %s", e)

    def _seed(self):
        with self.transaction() as conn:
            for sql, rows in _SEED_SQL:
                conn.executemany(sql, rows)

    # ---- Catalog ----

    def get_language(self, code: str) -> Optional[Language]:
        with self.connection() as conn:
            row = conn.execute("SELECT * FROM languages WHERE code = ?", (code,)).fetchone()
            return Language(id=row["id"], code=row["code"], label=row["label"]) if row else None

    def list_languages(self) -> list[Language]:
        with self.connection() as conn:
            rows = conn.execute("SELECT * FROM languages ORDER BY id").fetchall()
            return [Language(id=r["id"], code=r["code"], label=r["label"]) for r in rows]

    def get_genre(self, slug: str) -> Optional[Genre]:
        with self.connection() as conn:
            row = conn.execute("SELECT * FROM genres WHERE slug = ?", (slug,)).fetchone()
            return self._row_to_genre(row) if row else None

    def list_genres(self, active_only: bool = True) -> list[Genre]:
        with self.connection() as conn:
            sql = "SELECT * FROM genres"
            if active_only:
                sql += " WHERE is_active = TRUE"
            rows = conn.execute(sql + " ORDER BY order_index, id").fetchall()
            return [self._row_to_genre(r) for r in rows]

    def _row_to_genre(self, row) -> Genre:
        return Genre(
            id=row["id"], slug=row["slug"], label=row["label"],
            prompt_boost=row["prompt_boost"], is_active=bool(row["is_active"]),
        )

    def get_tags(self, slugs) -> list[Tag]:
        """Return active tags for the given slugs, ordered by slug. Unknown slugs are skipped."""
        slugs = sorted(set(slugs))
        if not slugs:
            return []
        placeholders = ", ".join("?" for _ in slugs)
        with self.connection() as conn:
            rows = conn.execute(
                f"SELECT * FROM tags WHERE is_active = TRUE AND slug IN ({placeholders}) ORDER BY slug",
                slugs,
            ).fetchall()
            return [
                Tag(id=r["id"], slug=r["slug"], label=r["label"], prompt_boost=r["prompt_boost"])
                for r in rows
            ]

    def get_model(self, model_id: int, active_only: bool = True) -> Optional[LlmModel]:
        with self.connection() as conn:
            sql = "SELECT * FROM llm_models WHERE id = ?"
            if active_only:
                sql += " AND is_active = TRUE"
            row = conn.execute(sql, (model_id,)).fetchone()
            return self._row_to_model(row) if row else None

    def list_models(self) -> list[LlmModel]:
        with self.connection() as conn:
            rows = conn.execute("SELECT * FROM llm_models ORDER BY id").fetchall()
            return [self._row_to_model(r) for r in rows]

    def set_model_costs(self, model_id: int, search_credits: Optional[int], page_generation_credits: Optional[int]):
        with self.connection() as conn:
            conn.execute(
                "UPDATE llm_models SET search_credits = ?, page_generation_credits = ? WHERE id = ?",
                (search_credits, page_generation_credits, model_id),
            )

    def _row_to_model(self, row) -> LlmModel:
        return LlmModel(
            id=row["id"], name=row["name"], domain_code=row["domain_code"],
            search_credits=row["search_credits"],
            page_generation_credits=row["page_generation_credits"],
            is_active=bool(row["is_active"]),
        )

    # ---- Facet classifications ----

    def get_facet_classification(self, text_hash: str) -> Optional[tuple[str, str]]:
        """Stored (genre_slug, language_code) detected for a free-text query."""
        with self.connection() as conn:
            row = conn.execute(
                "SELECT genre_slug, language_code FROM facet_classifications WHERE text_hash = ?",
                (text_hash,),
            ).fetchone()
            return (row["genre_slug"], row["language_code"]) if row else None

    def save_facet_classification(self, text_hash: str, genre_slug: str, language_code: str) -> None:
        """Keep the first classification of a query; later ones are ignored."""
        with self.connection() as conn:
            conn.execute(
                "INSERT OR IGNORE INTO facet_classifications (text_hash, genre_slug, language_code) "
                "VALUES (?, ?, ?)",
                (text_hash, genre_slug, language_code),
            )

    # ---- Users ----

    def create_user(self, email: str, api_token: Optional[str] = None) -> User:
        user = User(
            id=str(uuid.uuid4()),
            email=email,
            api_token=api_token or secrets.token_urlsafe(32),
        )
        try:
            with self.connection() as conn:
                conn.execute(
                    "INSERT INTO users (id, email, api_token) VALUES (?, ?, ?)",
                    (user.id, user.email, user.api_token),
                )
        except sqlite3.IntegrityError as e:
            raise DatabaseError(f"User already exists: {email}") from e
        logger.info("User created: id=%s, email=%s", user.id, email)
        return user

    def get_user(self, user_id: str) -> Optional[User]:
        with self.connection() as conn:
            row = conn.execute("SELECT * FROM users WHERE id = ?", (user_id,)).fetchone()
            return self._row_to_user(row) if row else None

    def get_user_by_token(self, api_token: str) -> Optional[User]:
        with self.connection() as conn:
            row = conn.execute("SELECT * FROM users WHERE api_token = ?", (api_token,)).fetchone()
            return self._row_to_user(row) if row else None

    def get_user_by_email(self, email: str) -> Optional[User]:
        with self.connection() as conn:
            row = conn.execute("SELECT * FROM users WHERE email = ?", (email,)).fetchone()
            return self._row_to_user(row) if row else None

    def _row_to_user(self, row) -> User:
        return User(id=row["id"], email=row["email"], api_token=row["api_token"], created_at=row["created_at"])

    def add_api_key(self, user_id: str, domain_code: str, api_key_enc: str):
        """Store (or replace) a user's own provider credential for a model domain."""
        with self.connection() as conn:
            conn.execute(
                "INSERT OR REPLACE INTO user_api_keys (user_id, domain_code, api_key_enc) VALUES (?, ?, ?)",
                (user_id, domain_code, api_key_enc),
            )

    def has_api_key(self, user_id: str, domain_code: str) -> bool:
        with self.connection() as conn:
            row = conn.execute(
                "SELECT 1 FROM user_api_keys WHERE user_id = ? AND domain_code = ?",
                (user_id, domain_code),
            ).fetchone()
            return row is not None

    # ---- Authors ----

    def _pen_name_suffix(self) -> str:
        return secrets.token_hex(2)

    def create_author(self, author: Author) -> Author:
        """Insert an author, appending a random suffix to make the pen name unique.

        The suffix is regenerated on every collision, up to a fixed number of
        attempts.

        Returns:
            The stored Author with its id and final pen name.
        """
        base_name = author.pen_name.strip()
        for attempt in range(1, _PEN_NAME_ATTEMPTS + 1):
            stored = Author(
                id=str(uuid.uuid4()),
                pen_name=f"{base_name} {self._pen_name_suffix()}",
                style_prompt=author.style_prompt,
                bio=author.bio,
                origin_genre_id=author.origin_genre_id,
            )
            try:
                with self.connection() as conn:
                    conn.execute(
                        "INSERT INTO authors (id, pen_name, style_prompt, bio, origin_genre_id) "
                        "VALUES (?, ?, ?, ?, ?)",
                        (stored.id, stored.pen_name, stored.style_prompt, stored.bio, stored.origin_genre_id),
                    )
                return stored
            except sqlite3.IntegrityError:
                logger.debug("Pen name collision on attempt %d: %s", attempt, stored.pen_name)
        raise DatabaseError(
            f"Could not find a unique pen name for '{base_name}'",
            {"attempts": _PEN_NAME_ATTEMPTS},
        )

    def get_author(self, author_id: str) -> Optional[Author]:
        with self.connection() as conn:
            row = conn.execute("SELECT * FROM authors WHERE id = ?", (author_id,)).fetchone()
            return self._row_to_author(row) if row else None

    def get_random_authors_by_genre(self, genre_id: int, limit: int) -> list[Author]:
        """Random sample of authors with affinity to a genre.

        Affinity is the genre an author was created for, or any genre of a
        search in which one of their books ranks.
        """
        if limit <= 0:
            return []
        with self.connection() as conn:
            rows = conn.execute(
                "SELECT * FROM ("
                "  SELECT a.* FROM authors a WHERE a.origin_genre_id = ?"
                "  UNION"
                "  SELECT a.* FROM authors a"
                "  JOIN books b ON b.author_id = a.id"
                "  JOIN search_books sb ON sb.book_id = b.id"
                "  JOIN searches s ON s.id = sb.search_id"
                "  WHERE s.genre_id = ?"
                ") ORDER BY RANDOM() LIMIT ?",
                (genre_id, genre_id, limit),
            ).fetchall()
            return [self._row_to_author(r) for r in rows]

    def _row_to_author(self, row) -> Author:
        return Author(
            id=row["id"], pen_name=row["pen_name"],
            style_prompt=row["style_prompt"] or "", bio=row["bio"] or "",
            origin_genre_id=row["origin_genre_id"], created_at=row["created_at"],
        )

    # ---- Books ----

    def get_book(self, book_id: str) -> Optional[Book]:
        with self.connection() as conn:
            row = conn.execute("SELECT * FROM books WHERE id = ?", (book_id,)).fetchone()
            if not row:
                return None
            book = self.row_to_book(row)
            book.sections = self.get_sections(conn, book_id)
            return book

    def get_sections(self, conn: sqlite3.Connection, book_id: str) -> list[Section]:
        rows = conn.execute(
            "SELECT * FROM book_sections WHERE book_id = ? ORDER BY order_index",
            (book_id,),
        ).fetchall()
        return [
            Section(title=r["title"], from_page=r["from_page"], to_page=r["to_page"], summary=r["summary"])
            for r in rows
        ]

    def row_to_book(self, row) -> Book:
        return Book(
            id=row["id"], title=row["title"], summary=row["summary"],
            page_count=row["page_count"], cover_prompt=row["cover_prompt"] or "",
            cover_url=row["cover_url"], author_id=row["author_id"],
            primary_language_id=row["primary_language_id"],
            created_at=row["created_at"],
        )

    def get_editions(self, book_id: str) -> list[Edition]:
        with self.connection() as conn:
            rows = conn.execute(
                "SELECT * FROM editions WHERE book_id = ? ORDER BY created_at, id",
                (book_id,),
            ).fetchall()
            return [
                Edition(
                    id=r["id"], book_id=r["book_id"], language_id=r["language_id"],
                    model_id=r["model_id"], created_at=r["created_at"],
                )
                for r in rows
            ]

    def count_rows(self, table: str) -> int:
        """Row count of a table (diagnostics and tests)."""
        if table not in _KNOWN_TABLES:
            raise ValueError(f"Unknown table: {table}")
        with self.connection() as conn:
            return conn.execute(f"SELECT COUNT(*) AS n FROM {table}").fetchone()["n"]


_KNOWN_TABLES = frozenset({
    "languages", "genres", "tags", "model_domains", "llm_models", "users",
    "user_api_keys", "user_billing", "credit_transactions", "credit_holds",
    "settlement_failures", "authors", "books", "book_sections", "editions",
    "searches", "search_params", "search_books", "generation_locks",
    "facet_classifications",
})

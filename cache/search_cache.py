"""Durable search result cache keyed by (fingerprint, page number)."""

import json
import logging
import sqlite3
import uuid
from typing import Optional, Sequence

from config.exceptions import PersistenceFailedError
from models.book import Author, Edition
from models.database import Database
from models.drafts import BookDraft
from models.search import RankedBook, SearchContext, SearchRequest, SearchResult

logger = logging.getLogger(__name__)

_RESULT_SQL = """
SELECT sb.rank, b.*,
       a.id AS a_id, a.pen_name AS a_pen_name, a.style_prompt AS a_style_prompt,
       a.bio AS a_bio, a.origin_genre_id AS a_origin_genre_id, a.created_at AS a_created_at,
       e.id AS e_id, e.language_id AS e_language_id, e.model_id AS e_model_id,
       e.created_at AS e_created_at,
       COALESCE(el.code, bl.code) AS language_code
FROM search_books sb
JOIN books b ON b.id = sb.book_id
JOIN authors a ON a.id = b.author_id
LEFT JOIN editions e ON e.id = sb.edition_id
LEFT JOIN languages el ON el.id = e.language_id
JOIN languages bl ON bl.id = b.primary_language_id
WHERE sb.search_id = ? AND sb.page_number = ?
ORDER BY sb.rank
"""


class SearchCache:
    """Read and write persisted search result pages.

    A result page is written once, in a single transaction, and never
    modified afterwards.
    """

    def __init__(self, db: Database):
        self.db = db

    def get(self, fingerprint: str, page_number: int) -> Optional[SearchResult]:
        """Return the stored result page, or None on a miss."""
        with self.db.connection() as conn:
            return self._load(conn, fingerprint, page_number)

    def put(
        self,
        fingerprint: str,
        request: SearchRequest,
        context: SearchContext,
        entries: Sequence[tuple[BookDraft, Author]],
        user_id: str,
    ) -> SearchResult:
        """Persist a generated result page with its books, sections and editions.

        All rows are written in one transaction and the returned result has
        cached=False. If the page already exists (a concurrent or retried
        put), nothing is written and the stored result is returned instead,
        with cached=True.

        Raises:
            PersistenceFailedError: If the write fails; nothing is committed.
        """
        page_number = request.page_number
        try:
            with self.db.transaction() as conn:
                existing = self._load(conn, fingerprint, page_number)
                if existing is not None:
                    logger.info("Search %s page %d already cached, keeping stored result",
                                fingerprint[:12], page_number)
                    return existing
                search_id = self._insert_graph(conn, fingerprint, request, context, entries, user_id)
                result = self._load(conn, fingerprint, page_number)
        except sqlite3.IntegrityError as e:
            stored = self.get(fingerprint, page_number)
            if stored is not None:
                logger.info("Lost insert race for %s page %d", fingerprint[:12], page_number)
                return stored
            raise PersistenceFailedError(f"Failed to persist search: {e}", {"fingerprint": fingerprint[:12]}) from e
        except sqlite3.Error as e:
            raise PersistenceFailedError(f"Failed to persist search: {e}", {"fingerprint": fingerprint[:12]}) from e

        logger.info("Cached search %s (%s page %d): %d books",
                    search_id, fingerprint[:12], page_number, len(entries))
        result.cached = False
        return result

    def _insert_graph(
        self,
        conn: sqlite3.Connection,
        fingerprint: str,
        request: SearchRequest,
        context: SearchContext,
        entries: Sequence[tuple[BookDraft, Author]],
        user_id: str,
    ) -> str:
        search_id = str(uuid.uuid4())
        conn.execute(
            "INSERT INTO searches (id, hash, page_number, page_size, user_id, language_id, genre_id, model_id) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
            (search_id, fingerprint, request.page_number, request.page_size, user_id,
             context.language.id, context.genre.id, context.model.id),
        )
        conn.execute(
            "INSERT INTO search_params (search_id, free_text, tag_slugs) VALUES (?, ?, ?)",
            (search_id, request.free_text, json.dumps(sorted(request.tag_slugs))),
        )

        for rank, (draft, author) in enumerate(entries, start=1):
            book_id = str(uuid.uuid4())
            conn.execute(
                "INSERT INTO books (id, title, summary, page_count, cover_prompt, author_id, primary_language_id) "
                "VALUES (?, ?, ?, ?, ?, ?, ?)",
                (book_id, draft.title, draft.summary, draft.page_count, draft.cover_prompt,
                 author.id, context.language.id),
            )
            conn.executemany(
                "INSERT INTO book_sections (book_id, title, from_page, to_page, summary, order_index) "
                "VALUES (?, ?, ?, ?, ?, ?)",
                [
                    (book_id, s.title, s.from_page, s.to_page, s.summary, index)
                    for index, s in enumerate(draft.sections)
                ],
            )
            edition_id = str(uuid.uuid4())
            conn.execute(
                "INSERT INTO editions (id, book_id, language_id, model_id) VALUES (?, ?, ?, ?)",
                (edition_id, book_id, context.language.id, context.model.id),
            )
            conn.execute(
                "INSERT INTO search_books (search_id, book_id, edition_id, rank, page_number) "
                "VALUES (?, ?, ?, ?, ?)",
                (search_id, book_id, edition_id, rank, request.page_number),
            )
        return search_id

    def _load(self, conn: sqlite3.Connection, fingerprint: str, page_number: int) -> Optional[SearchResult]:
        search = conn.execute(
            "SELECT id FROM searches WHERE hash = ? AND page_number = ?",
            (fingerprint, page_number),
        ).fetchone()
        if search is None:
            return None

        books = []
        for row in conn.execute(_RESULT_SQL, (search["id"], page_number)).fetchall():
            book = self.db.row_to_book(row)
            book.sections = self.db.get_sections(conn, book.id)
            author = Author(
                id=row["a_id"], pen_name=row["a_pen_name"],
                style_prompt=row["a_style_prompt"] or "", bio=row["a_bio"] or "",
                origin_genre_id=row["a_origin_genre_id"], created_at=row["a_created_at"],
            )
            edition = None
            if row["e_id"]:
                edition = Edition(
                    id=row["e_id"], book_id=book.id, language_id=row["e_language_id"],
                    model_id=row["e_model_id"], created_at=row["e_created_at"],
                )
            books.append(RankedBook(
                rank=row["rank"], book=book, author=author,
                edition=edition, language_code=row["language_code"],
            ))

        return SearchResult(
            search_id=search["id"], fingerprint=fingerprint,
            page_number=page_number, books=books, cached=True,
        )


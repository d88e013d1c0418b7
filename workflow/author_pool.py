"""Author pool: reuse existing genre authors or invent new ones."""

import asyncio
import logging
import random
from typing import Callable, Optional

from agents.author_agent import AuthorAgent
from config.exceptions import InvalidRequestError
from config.settings import Settings
from models.book import Author
from models.database import Database

logger = logging.getLogger(__name__)

# Decides whether an author selection should try the existing pool first
ReusePolicy = Callable[[], bool]


def probabilistic_reuse(probability: float, rng: random.Random) -> ReusePolicy:
    """Reuse with the given probability, drawing from rng."""
    return lambda: rng.random() < probability


class AuthorPoolSelector:
    """Selects exactly count authors for a genre.

    When the reuse policy says so, existing authors with affinity to the
    genre are drawn at random first; the shortfall is generated and
    persisted right away, so new authors are reusable even if the rest of
    the search later fails.
    """

    def __init__(
        self,
        db: Database,
        author_agent: AuthorAgent,
        settings: Optional[Settings] = None,
        rng: Optional[random.Random] = None,
        reuse_policy: Optional[ReusePolicy] = None,
    ):
        self.db = db
        self.author_agent = author_agent
        self.settings = settings or Settings()
        self.rng = rng or random.Random()
        self.reuse_policy = reuse_policy or probabilistic_reuse(
            self.settings.author_reuse_probability, self.rng,
        )

    async def select_or_create(
        self,
        genre_slug: str,
        count: int,
        language_code: str,
        free_text: Optional[str] = None,
        model: Optional[str] = None,
    ) -> list[Author]:
        """Return count authors for genre_slug, reusing or generating as needed.

        Raises:
            InvalidRequestError: If the genre is unknown.
            GenerationFailedError: If generating the shortfall fails.
        """
        genre = await asyncio.to_thread(self.db.get_genre, genre_slug)
        if genre is None:
            raise InvalidRequestError(f"Unknown genre: {genre_slug}")
        if count <= 0:
            return []

        authors: list[Author] = []
        if self.reuse_policy():
            authors = await asyncio.to_thread(self.db.get_random_authors_by_genre, genre.id, count)
            logger.info("Reusing %d/%d existing authors for '%s'", len(authors), count, genre_slug)

        shortfall = count - len(authors)
        if shortfall > 0:
            drafts = await self.author_agent.generate_authors(
                genre, language_code, shortfall, free_text=free_text, model=model,
            )
            for draft in drafts:
                authors.append(await asyncio.to_thread(self.db.create_author, Author(
                    pen_name=draft.pen_name,
                    style_prompt=draft.style_prompt,
                    bio=draft.bio,
                    origin_genre_id=genre.id,
                )))
            logger.info("Created %d new authors for '%s'", len(drafts), genre_slug)

        return authors

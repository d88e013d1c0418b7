"""Search request and cached result models."""

from dataclasses import dataclass, field
from typing import Optional

from models.book import Author, Book, Edition
from models.catalog import Genre, Language, LlmModel, Tag


@dataclass
class SearchRequest:
    """A validated search request.

    language_code / genre_slug may be None until facet resolution fills them.
    """
    model_id: int
    free_text: Optional[str] = None
    language_code: Optional[str] = None
    genre_slug: Optional[str] = None
    tag_slugs: frozenset[str] = frozenset()
    page_number: int = 1
    page_size: int = 3


@dataclass
class SearchContext:
    """Catalog rows a resolved request refers to.

    language stays None until a miss needs it: it is not part of the cache
    key, so a hit never pays for detecting it.
    """
    language: Optional[Language]
    genre: Genre
    model: LlmModel
    tags: list[Tag] = field(default_factory=list)

    @property
    def tag_prompts(self) -> list[str]:
        return [t.prompt_boost for t in self.tags if t.prompt_boost]


@dataclass
class RankedBook:
    rank: int
    book: Book
    author: Author
    edition: Optional[Edition] = None
    language_code: str = ""


@dataclass
class SearchResult:
    search_id: str
    fingerprint: str
    page_number: int
    books: list[RankedBook] = field(default_factory=list)
    cached: bool = True

    @property
    def total_pages(self) -> int:
        """Sum of page counts of every book on this result page."""
        return sum(rb.book.page_count for rb in self.books)

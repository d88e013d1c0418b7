"""Author, book, section and edition data models."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional


@dataclass
class Author:
    """A fictional author. Pen names are globally unique."""
    id: Optional[str] = None
    pen_name: str = ""
    style_prompt: str = ""
    bio: str = ""
    origin_genre_id: Optional[int] = None  # Genre the author was created for
    created_at: Optional[datetime] = None


@dataclass
class Section:
    title: str = ""
    from_page: int = 1
    to_page: int = 1
    summary: str = ""


@dataclass
class Book:
    id: Optional[str] = None
    title: str = ""
    summary: str = ""
    page_count: int = 0
    cover_prompt: str = ""
    cover_url: Optional[str] = None
    author_id: Optional[str] = None
    primary_language_id: Optional[int] = None
    sections: list[Section] = field(default_factory=list)
    created_at: Optional[datetime] = None


@dataclass
class Edition:
    """A (book, language, model) printing of a conceptual book."""
    id: Optional[str] = None
    book_id: str = ""
    language_id: int = 0
    model_id: int = 0
    created_at: Optional[datetime] = None

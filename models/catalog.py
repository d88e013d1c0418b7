"""Catalog and account data models (languages, genres, tags, models, users)."""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional


@dataclass
class Language:
    id: Optional[int] = None
    code: str = ""
    label: str = ""


@dataclass
class Genre:
    id: Optional[int] = None
    slug: str = ""
    label: str = ""
    prompt_boost: Optional[str] = None
    is_active: bool = True

    @property
    def prompt(self) -> str:
        """Prompt context for this genre, falling back to the slug."""
        return self.prompt_boost or f"Generate {self.slug} books"


@dataclass
class Tag:
    id: Optional[int] = None
    slug: str = ""
    label: str = ""
    prompt_boost: Optional[str] = None


@dataclass
class LlmModel:
    """A generation model and its credit costs."""
    id: Optional[int] = None
    name: str = ""
    domain_code: str = ""
    search_credits: Optional[int] = None
    page_generation_credits: Optional[int] = None
    is_active: bool = True


@dataclass
class User:
    id: str = ""
    email: str = ""
    api_token: str = ""
    created_at: Optional[datetime] = None

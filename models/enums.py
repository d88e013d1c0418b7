"""Enumerations for search, generation and billing state."""

from enum import Enum


class GenerationKind(str, Enum):
    AUTHORS = "authors"
    BOOKS = "books"
    FACETS = "facets"


class PipelineState(str, Enum):
    FACETS_RESOLVED = "facets_resolved"
    KEY_DERIVED = "key_derived"
    CACHE_CHECKED = "cache_checked"
    CACHE_HIT = "cache_hit"
    LOCK_ACQUIRED = "lock_acquired"
    AUTHORIZING = "authorizing"
    AUTHORS_RESOLVED = "authors_resolved"
    BOOKS_GENERATED = "books_generated"
    PERSISTING = "persisting"
    SETTLING = "settling"
    DONE = "done"
    FAILED = "failed"


class AuthorizationPath(str, Enum):
    CREDITS = "credits"
    API_KEY = "api_key"


class TransactionType(str, Enum):
    SIGNUP = "signup"
    GRANT = "grant"
    SEARCH = "search"

"""Search request validation, canonicalization and fingerprinting.

The fingerprint is the cache key of a result page. Model and language are
deliberately left out: they pick an edition of the same conceptual books,
not a different set of books. Page number and size are included so every
result page is cached on its own.
"""

import hashlib
import json
from typing import Iterable, Optional

from config.exceptions import InvalidRequestError
from models.search import SearchRequest


def _clean(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = value.strip()
    return value or None


def validate_search_request(
    model_id: Optional[int],
    free_text: Optional[str] = None,
    language_code: Optional[str] = None,
    genre_slug: Optional[str] = None,
    tag_slugs: Optional[Iterable[str]] = None,
    page_number: Optional[int] = 1,
    page_size: int = 3,
) -> SearchRequest:
    """Build a SearchRequest from raw fields.

    Raises:
        InvalidRequestError: If model_id is missing, if free text, genre and
            language are all missing, or if the page number is below 1.
    """
    if not model_id:
        raise InvalidRequestError("modelId is required")

    free_text = _clean(free_text)
    language_code = _clean(language_code)
    genre_slug = _clean(genre_slug)
    if free_text is None and genre_slug is None and language_code is None:
        raise InvalidRequestError("One of freeText, genreSlug or languageCode is required")

    page_number = page_number or 1
    if page_number < 1:
        raise InvalidRequestError("pageNumber must be >= 1", {"page_number": page_number})
    if page_size < 1:
        raise InvalidRequestError("pageSize must be >= 1", {"page_size": page_size})

    tags = frozenset(t.strip() for t in (tag_slugs or []) if t and t.strip())

    return SearchRequest(
        model_id=model_id,
        free_text=free_text,
        language_code=language_code,
        genre_slug=genre_slug,
        tag_slugs=tags,
        page_number=page_number,
        page_size=page_size,
    )


def canonicalize(request: SearchRequest) -> dict:
    """Return the normalized structure the fingerprint is computed from."""
    return {
        "freeText": _clean(request.free_text),
        "genreSlug": request.genre_slug or None,
        "tagSlugs": sorted(set(request.tag_slugs)),
        "pageNumber": request.page_number,
        "pageSize": request.page_size,
    }


def canonical_json(data: dict) -> str:
    """Stable JSON encoding: sorted keys, no insignificant whitespace."""
    return json.dumps(data, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def fingerprint(request: SearchRequest) -> str:
    """SHA-256 hex digest of the canonical request."""
    encoded = canonical_json(canonicalize(request)).encode("utf-8")
    return hashlib.sha256(encoded).hexdigest()


def text_key(free_text: str) -> str:
    """Key of a stored facet classification; whitespace-insensitive at the ends."""
    return hashlib.sha256((_clean(free_text) or "").encode("utf-8")).hexdigest()

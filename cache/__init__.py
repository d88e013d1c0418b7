"""Cache package: persisted search result pages and the generation lock."""

from cache.generation_lock import GenerationLock
from cache.search_cache import SearchCache

__all__ = ["GenerationLock", "SearchCache"]

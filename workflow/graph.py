"""LangGraph StateGraph: the search commit pipeline.

Hit path:  resolve_facets -> derive_key -> check_cache -> finish
Miss path: ... -> acquire_lock -> authorize -> detect_language ->
           resolve_authors -> generate_books -> persist -> settle -> finish

Every node records failures in the state instead of raising; failing nodes
route to handle_error, which releases the credit hold and the generation
lock. SearchPipeline.run() re-raises the recorded error.

Store calls run in worker threads so a contended SQLite write lock never
stalls the event loop.
"""

import asyncio
import logging
import random
from dataclasses import replace
from typing import Optional

from langgraph.graph import StateGraph, END

from agents.author_agent import AuthorAgent
from agents.book_agent import BookAgent
from agents.classifier_agent import ClassifierAgent, DEFAULT_GENRE, DEFAULT_LANGUAGE
from billing.ledger import CreditLedger
from cache.generation_lock import GenerationLock
from cache.search_cache import SearchCache
from config.exceptions import (
    AuthenticationRequiredError,
    InsufficientCreditsError,
    InvalidRequestError,
    LibrariumError,
    SettlementFailedError,
)
from config.settings import Settings
from models.database import Database
from models.enums import PipelineState
from models.search import SearchContext, SearchRequest, SearchResult
from tools.generation_gateway import ContentGeneratorGateway
from tools.search_key import fingerprint as compute_fingerprint, text_key
from workflow.author_pool import AuthorPoolSelector
from workflow.callbacks import PipelineCallback
from workflow.conditions import continue_unless_error, route_after_cache, route_after_lock
from workflow.state import SearchPipelineState

logger = logging.getLogger(__name__)


def _failed(node: str, error: LibrariumError) -> dict:
    logger.warning("Pipeline node %s failed: %s", node, error)
    return {"error": str(error), "failure": error, "last_node": node, "history": [node]}


class SearchPipeline:
    """Serves a search request from the cache or generates and commits it."""

    def __init__(
        self,
        db: Database,
        gateway: ContentGeneratorGateway,
        settings: Optional[Settings] = None,
        ledger: Optional[CreditLedger] = None,
        cache: Optional[SearchCache] = None,
        lock: Optional[GenerationLock] = None,
        author_pool: Optional[AuthorPoolSelector] = None,
        rng: Optional[random.Random] = None,
    ):
        self.db = db
        self.settings = settings or Settings()
        self.rng = rng or random.Random()
        self.ledger = ledger or CreditLedger(db, self.settings)
        self.cache = cache or SearchCache(db)
        self.lock = lock or GenerationLock(db, self.settings)
        self.classifier = ClassifierAgent(gateway, self.settings)
        self.book_agent = BookAgent(gateway, self.settings)
        self.author_pool = author_pool or AuthorPoolSelector(
            db, AuthorAgent(gateway, self.settings), self.settings, rng=self.rng,
        )
        self._app = self.build_graph()

    # ------------------------------------------------------------------
    # Nodes
    # ------------------------------------------------------------------

    async def resolve_facets(self, state: SearchPipelineState) -> dict:
        """Fill in the genre the cache key needs and load the catalog rows.

        A missing language is left to detect_language on the miss path. A
        missing genre must be known before the key: it comes from a stored
        classification of the same text, or from a fresh classifier call,
        which only an authenticated caller may trigger.
        """
        logger.info("Entering node: resolve_facets")
        request: SearchRequest = state["request"]
        genre_slug = request.genre_slug
        language_code = request.language_code

        if request.free_text and not (genre_slug and language_code):
            stored = await asyncio.to_thread(self.db.get_facet_classification, text_key(request.free_text))
            if stored is not None:
                genre_slug = genre_slug or stored[0]
                language_code = language_code or stored[1]

        if not genre_slug:
            if request.free_text:
                if not state.get("user_id"):
                    return _failed("resolve_facets", AuthenticationRequiredError())
                genre_slug, detected_language = await self._classify(request.free_text)
                language_code = language_code or detected_language
            else:
                genre_slug = DEFAULT_GENRE
        if not language_code and not request.free_text:
            language_code = DEFAULT_LANGUAGE

        try:
            context = await asyncio.to_thread(self._load_context, request, genre_slug, language_code)
        except InvalidRequestError as e:
            return _failed("resolve_facets", e)

        return {
            "request": replace(request, genre_slug=genre_slug, language_code=language_code),
            "context": context,
            "state": PipelineState.FACETS_RESOLVED,
            "last_node": "resolve_facets",
            "history": ["resolve_facets"],
        }

    async def derive_key(self, state: SearchPipelineState) -> dict:
        logger.info("Entering node: derive_key")
        key = compute_fingerprint(state["request"])
        logger.debug("Search fingerprint: %s", key)
        return {
            "fingerprint": key,
            "state": PipelineState.KEY_DERIVED,
            "last_node": "derive_key",
            "history": ["derive_key"],
        }

    async def check_cache(self, state: SearchPipelineState) -> dict:
        logger.info("Entering node: check_cache")
        hit = await asyncio.to_thread(self.cache.get, state["fingerprint"], state["request"].page_number)
        update = {"last_node": "check_cache", "history": ["check_cache"]}
        if hit is not None:
            logger.info("Cache hit: %s page %d", state["fingerprint"][:12], hit.page_number)
            update.update(result=hit, state=PipelineState.CACHE_HIT)
        else:
            update["state"] = PipelineState.CACHE_CHECKED
        return update

    async def acquire_lock(self, state: SearchPipelineState) -> dict:
        """Take the generation lease, or wait for the current owner and re-check the cache."""
        logger.info("Entering node: acquire_lock")
        if not state.get("user_id"):
            return _failed("acquire_lock", AuthenticationRequiredError())

        key = state["fingerprint"]
        page_number = state["request"].page_number
        update = {"last_node": "acquire_lock", "history": ["acquire_lock"]}
        while True:
            token = await asyncio.to_thread(self.lock.try_acquire, key, page_number)
            if token is not None:
                # Double check: the previous owner may have committed before releasing
                hit = await asyncio.to_thread(self.cache.get, key, page_number)
                if hit is not None:
                    await asyncio.to_thread(self.lock.release, key, page_number, token)
                    update.update(result=hit, state=PipelineState.CACHE_HIT)
                    return update
                update.update(lock_token=token, state=PipelineState.LOCK_ACQUIRED)
                return update

            logger.info("Generation of %s page %d in progress elsewhere, waiting", key[:12], page_number)
            try:
                await self.lock.wait_until_released(key, page_number)
            except LibrariumError as e:
                return _failed("acquire_lock", e)
            hit = await asyncio.to_thread(self.cache.get, key, page_number)
            if hit is not None:
                update.update(result=hit, state=PipelineState.CACHE_HIT)
                return update
            # The owner failed without committing; compete for the lease again

    async def authorize(self, state: SearchPipelineState) -> dict:
        logger.info("Entering node: authorize")
        user_id = state["user_id"]
        authorization = await asyncio.to_thread(self.ledger.authorize, user_id, state["request"].model_id)
        if not authorization.allowed:
            return _failed(
                "authorize",
                InsufficientCreditsError(user_id, authorization.estimated_cost, authorization.available),
            )
        return {
            "authorization": authorization,
            "state": PipelineState.AUTHORIZING,
            "last_node": "authorize",
            "history": ["authorize"],
        }

    async def detect_language(self, state: SearchPipelineState) -> dict:
        """Detect the language of a miss whose request left it open."""
        logger.info("Entering node: detect_language")
        update = {"last_node": "detect_language", "history": ["detect_language"]}
        context: SearchContext = state["context"]
        if context.language is not None:
            return update

        request: SearchRequest = state["request"]
        _, language_code = await self._classify(request.free_text)
        language = await asyncio.to_thread(self.db.get_language, language_code)
        if language is None:
            return _failed("detect_language", InvalidRequestError(f"Unknown language: {language_code}"))
        update.update(
            request=replace(request, language_code=language_code),
            context=replace(context, language=language),
        )
        return update

    async def resolve_authors(self, state: SearchPipelineState) -> dict:
        logger.info("Entering node: resolve_authors")
        request: SearchRequest = state["request"]
        context: SearchContext = state["context"]
        try:
            authors = await self.author_pool.select_or_create(
                context.genre.slug, request.page_size, context.language.code,
                free_text=request.free_text, model=context.model.name,
            )
        except LibrariumError as e:
            return _failed("resolve_authors", e)
        return {
            "authors": authors,
            "state": PipelineState.AUTHORS_RESOLVED,
            "last_node": "resolve_authors",
            "history": ["resolve_authors"],
        }

    async def generate_books(self, state: SearchPipelineState) -> dict:
        logger.info("Entering node: generate_books")
        request: SearchRequest = state["request"]
        try:
            books = await self.book_agent.generate_books(
                state["context"], request.free_text, request.page_number, request.page_size,
            )
        except LibrariumError as e:
            return _failed("generate_books", e)
        return {
            "books": books,
            "state": PipelineState.BOOKS_GENERATED,
            "last_node": "generate_books",
            "history": ["generate_books"],
        }

    async def persist(self, state: SearchPipelineState) -> dict:
        """Write the whole result page in one transaction."""
        logger.info("Entering node: persist")
        authors = list(state["authors"])
        self.rng.shuffle(authors)
        entries = list(zip(state["books"], authors))
        try:
            result = await asyncio.to_thread(
                self.cache.put,
                state["fingerprint"], state["request"], state["context"], entries, state["user_id"],
            )
        except LibrariumError as e:
            return _failed("persist", e)
        return {
            "result": result,
            "state": PipelineState.PERSISTING,
            "last_node": "persist",
            "history": ["persist"],
        }

    async def settle(self, state: SearchPipelineState) -> dict:
        """Debit the committed search. Failures are recorded, never raised."""
        logger.info("Entering node: settle")
        authorization = state["authorization"]
        result: SearchResult = state["result"]
        update = {"state": PipelineState.SETTLING, "last_node": "settle", "history": ["settle"]}

        if result.cached:
            # Another writer committed this page first; nothing was generated for it here
            await asyncio.to_thread(self.ledger.release, authorization)
            return update
        if not authorization.is_metered:
            return update

        request: SearchRequest = state["request"]
        description = f"Search (page {request.page_number}, {result.total_pages} pages)"
        try:
            await asyncio.to_thread(
                self.ledger.settle, authorization, result.total_pages, description, reference=result.search_id,
            )
        except SettlementFailedError as e:
            await asyncio.to_thread(self.ledger.record_settlement_failure, e, result.search_id)
            update["settlement_error"] = str(e)
        return update

    async def finish(self, state: SearchPipelineState) -> dict:
        logger.info("Entering node: finish")
        await asyncio.to_thread(self._release, state)
        return {"lock_token": None, "state": PipelineState.DONE, "last_node": "finish", "history": ["finish"]}

    async def handle_error(self, state: SearchPipelineState) -> dict:
        """Release held resources; the recorded error is raised by run()."""
        logger.info("Entering node: handle_error")
        logger.error("Search pipeline failed in %s: %s", state.get("last_node", "?"), state.get("error"))
        await asyncio.to_thread(self._release, state)
        if state.get("authorization") is not None:
            await asyncio.to_thread(self.ledger.release, state["authorization"])
        return {"lock_token": None, "state": PipelineState.FAILED, "history": ["handle_error"]}

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _load_context(
        self, request: SearchRequest, genre_slug: str, language_code: Optional[str],
    ) -> SearchContext:
        """Catalog rows for a request; the language may still be open."""
        language = None
        if language_code is not None:
            language = self.db.get_language(language_code)
            if language is None:
                raise InvalidRequestError(f"Unknown language: {language_code}")
        genre = self.db.get_genre(genre_slug)
        if genre is None or not genre.is_active:
            raise InvalidRequestError(f"Unknown genre: {genre_slug}")
        model = self.db.get_model(request.model_id)
        if model is None:
            raise InvalidRequestError(f"Unknown or inactive model: {request.model_id}")

        tags = self.db.get_tags(request.tag_slugs)
        unknown = set(request.tag_slugs) - {t.slug for t in tags}
        if unknown:
            logger.warning("Ignoring unknown tags: %s", ", ".join(sorted(unknown)))
        return SearchContext(language=language, genre=genre, model=model, tags=tags)

    async def _classify(self, free_text: str) -> tuple[str, str]:
        """Classify free_text and remember the answer; an outage falls back to defaults."""
        genres = await asyncio.to_thread(self.db.list_genres)
        languages = await asyncio.to_thread(self.db.list_languages)
        try:
            genre_slug, language_code = await self.classifier.classify(free_text, genres, languages)
        except LibrariumError as e:
            logger.warning("Facet classification failed, using defaults: %s", e)
            return DEFAULT_GENRE, DEFAULT_LANGUAGE
        await asyncio.to_thread(self.db.save_facet_classification, text_key(free_text), genre_slug, language_code)
        return genre_slug, language_code

    def _release(self, state: dict) -> None:
        token = state.get("lock_token")
        if token:
            self.lock.release(state["fingerprint"], state["request"].page_number, token)

    async def _keep_alive(self, state: dict) -> None:
        """Renew the generation lease and the credit hold while a run owns them."""
        interval = min(self.settings.generation_lock_ttl_seconds, self.settings.credit_hold_ttl_seconds) / 3
        while True:
            await asyncio.sleep(interval)
            try:
                token = state.get("lock_token")
                if token:
                    renewed = await asyncio.to_thread(
                        self.lock.renew, state["fingerprint"], state["request"].page_number, token,
                    )
                    if not renewed:
                        logger.warning("Generation lease for %s was lost", state["fingerprint"][:12])
                if state.get("authorization") is not None:
                    await asyncio.to_thread(self.ledger.extend_hold, state["authorization"])
            except LibrariumError as e:
                logger.warning("Could not renew lease or hold: %s", e)

    # ------------------------------------------------------------------
    # Graph construction
    # ------------------------------------------------------------------

    def build_graph(self):
        """Build and return the compiled LangGraph pipeline."""
        graph = StateGraph(SearchPipelineState)

        graph.add_node("resolve_facets", self.resolve_facets)
        graph.add_node("derive_key", self.derive_key)
        graph.add_node("check_cache", self.check_cache)
        graph.add_node("acquire_lock", self.acquire_lock)
        graph.add_node("authorize", self.authorize)
        graph.add_node("detect_language", self.detect_language)
        graph.add_node("resolve_authors", self.resolve_authors)
        graph.add_node("generate_books", self.generate_books)
        graph.add_node("persist", self.persist)
        graph.add_node("settle", self.settle)
        graph.add_node("finish", self.finish)
        graph.add_node("handle_error", self.handle_error)

        graph.set_entry_point("resolve_facets")

        # Linear steps that can fail
        for node, next_node in [
            ("resolve_facets", "derive_key"),
            ("authorize", "detect_language"),
            ("detect_language", "resolve_authors"),
            ("resolve_authors", "generate_books"),
            ("generate_books", "persist"),
            ("persist", "settle"),
        ]:
            graph.add_conditional_edges(
                node,
                continue_unless_error(next_node),
                {next_node: next_node, "handle_error": "handle_error"},
            )

        graph.add_edge("derive_key", "check_cache")

        # Hit -> finish, miss -> lock
        graph.add_conditional_edges(
            "check_cache",
            route_after_cache,
            {"finish": "finish", "acquire_lock": "acquire_lock", "handle_error": "handle_error"},
        )

        # Filled while waiting -> finish, else generate
        graph.add_conditional_edges(
            "acquire_lock",
            route_after_lock,
            {"finish": "finish", "authorize": "authorize", "handle_error": "handle_error"},
        )

        graph.add_edge("settle", "finish")
        graph.add_edge("finish", END)
        graph.add_edge("handle_error", END)

        return graph.compile()

    # ------------------------------------------------------------------
    # Entry point
    # ------------------------------------------------------------------

    async def run(
        self,
        request: SearchRequest,
        user_id: Optional[str] = None,
        callback: Optional[PipelineCallback] = None,
    ) -> SearchResult:
        """Run the pipeline for one request.

        Args:
            request: A validated request; facets may still be unresolved.
            user_id: Authenticated user, or None for anonymous callers
                (who can only be served from the cache).
            callback: Optional PipelineCallback for progress reporting.

        Raises:
            LibrariumError: The error that aborted the pipeline.
        """
        initial_state: SearchPipelineState = {"request": request, "user_id": user_id, "history": []}
        accumulated: dict = {}
        heartbeat = asyncio.ensure_future(self._keep_alive(accumulated))

        try:
            async for event in self._app.astream(initial_state):
                # Each event is {node_name: state_update_dict}
                for node_name, node_update in event.items():
                    if not isinstance(node_update, dict):
                        continue
                    for key, value in node_update.items():
                        if key == "history":
                            accumulated["history"] = accumulated.get("history", []) + value
                        else:
                            accumulated[key] = value
                    if callback is not None:
                        callback.on_node_exit(node_name, accumulated)
                        if node_update.get("error"):
                            callback.on_error(node_name, node_update["error"])
        finally:
            heartbeat.cancel()
            # Cancelled or crashed mid-run: never leave a lease or hold behind
            if accumulated.get("state") not in (PipelineState.DONE, PipelineState.FAILED):
                if accumulated.get("fingerprint"):
                    self._release(accumulated)
                if accumulated.get("authorization") is not None:
                    self.ledger.release(accumulated["authorization"])

        if callback is not None:
            callback.on_pipeline_complete(accumulated)

        failure = accumulated.get("failure")
        if failure is not None:
            raise failure

        result: SearchResult = accumulated["result"]
        logger.info(
            "Search %s page %d served (%s): %s",
            result.fingerprint[:12], result.page_number,
            "cached" if result.cached else "generated",
            " -> ".join(accumulated.get("history", [])),
        )
        return result

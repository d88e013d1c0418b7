"""Search router: cached or freshly generated book search pages."""

import asyncio
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Request

from models.catalog import User
from server.dependencies.auth import get_optional_user
from server.schemas.requests import SearchBody
from server.schemas.responses import SearchResponse
from tools.search_key import validate_search_request

logger = logging.getLogger(__name__)

search_router = APIRouter()


@search_router.post("/search", response_model=SearchResponse, tags=["Search"])
async def handle_search(
    request: Request,
    body: SearchBody,
    user: Optional[User] = Depends(get_optional_user),
) -> SearchResponse:
    """Serve one page of search results.

    Anonymous callers are served from the cache only; a miss needs a
    bearer token. The pipeline task is shielded so a client disconnect
    does not abandon a generation that is already being paid for.
    """
    settings = request.app.state.settings
    search_request = validate_search_request(
        model_id=body.model_id,
        free_text=body.free_text,
        language_code=body.language_code,
        genre_slug=body.genre_slug,
        tag_slugs=body.tag_slugs,
        page_number=body.page_number,
        page_size=settings.page_size,
    )
    logger.info(
        "Search received: user=%s, genre=%s, language=%s, page=%d, text=%r",
        user.id if user else "anonymous", search_request.genre_slug,
        search_request.language_code, search_request.page_number,
        (search_request.free_text or "")[:80],
    )

    pipeline = request.app.state.pipeline
    task = asyncio.ensure_future(pipeline.run(search_request, user.id if user else None))
    try:
        result = await asyncio.shield(task)
    except asyncio.CancelledError:
        task.add_done_callback(_report_abandoned)
        raise
    return SearchResponse.from_result(result)


def _report_abandoned(task: asyncio.Future) -> None:
    """Log how a search finished after its client went away."""
    if task.cancelled():
        return
    error = task.exception()
    if error is not None:
        logger.warning("Abandoned search failed: %s: %s", type(error).__name__, error)
    else:
        logger.info("Abandoned search completed: %s", task.result().search_id)

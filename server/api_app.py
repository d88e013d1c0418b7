"""FastAPI application entry point for the librarium search API."""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from billing.ledger import CreditLedger
from config.exceptions import (
    AuthenticationRequiredError,
    GenerationInProgressError,
    InsufficientCreditsError,
    InvalidRequestError,
    LibrariumError,
)
from config.settings import Settings, get_settings
from models.database import Database
from server.routers.books import books_router
from server.routers.search import search_router
from server.routers.user import user_router
from tools.agent_sdk_client import AgentSDKClient
from tools.generation_gateway import ContentGeneratorGateway
from tools.llm_client import StructuredGenerator
from workflow.graph import SearchPipeline

logger = logging.getLogger(__name__)

# Checked in order; the first matching class wins
_STATUS_BY_ERROR: list[tuple[type[LibrariumError], int]] = [
    (InvalidRequestError, 400),
    (AuthenticationRequiredError, 401),
    (InsufficientCreditsError, 402),
    (GenerationInProgressError, 503),
]


def status_for(error: LibrariumError) -> int:
    """HTTP status for a pipeline error; anything unlisted is a server failure."""
    for error_cls, status in _STATUS_BY_ERROR:
        if isinstance(error, error_cls):
            return status
    return 500


def create_app(
    settings: Optional[Settings] = None,
    generator: Optional[StructuredGenerator] = None,
) -> FastAPI:
    """Build the API application.

    Args:
        settings: Settings to use. Defaults to the cached get_settings().
        generator: Structured generation capability. Defaults to the
            Claude Agent SDK client.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        """Manage application startup and shutdown."""
        app.state.settings = settings or get_settings()
        app.state.db = Database(app.state.settings.sqlite_db_path)
        app.state.ledger = CreditLedger(app.state.db, app.state.settings)
        gateway = ContentGeneratorGateway(
            generator or AgentSDKClient(app.state.settings), app.state.settings,
        )
        app.state.pipeline = SearchPipeline(
            app.state.db, gateway, app.state.settings, ledger=app.state.ledger,
        )
        logger.info("Librarium API ready (db=%s)", app.state.settings.sqlite_db_path)
        yield
        logger.info("Librarium API shut down.")

    app = FastAPI(
        title="Librarium",
        description="Search an infinite library of generated books.",
        version="0.1.0",
        lifespan=lifespan,
    )

    @app.exception_handler(LibrariumError)
    async def handle_librarium_error(request: Request, exc: LibrariumError) -> JSONResponse:
        status = status_for(exc)
        if status >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc)
        else:
            logger.info("%s %s rejected (%d): %s", request.method, request.url.path, status, exc)
        return JSONResponse(status_code=status, content={"error": exc.message})

    @app.exception_handler(RequestValidationError)
    async def handle_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
        errors = exc.errors()
        message = errors[0].get("msg", "Invalid request") if errors else "Invalid request"
        return JSONResponse(status_code=400, content={"error": message})

    @app.exception_handler(StarletteHTTPException)
    async def handle_http_error(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        return JSONResponse(status_code=exc.status_code, content={"error": str(exc.detail)})

    @app.get("/healthz", tags=["Health"])
    async def healthz():
        return {"status": "ok"}

    app.include_router(search_router)
    app.include_router(user_router)
    app.include_router(books_router)
    return app

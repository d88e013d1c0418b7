"""Content generator gateway: schema-validated generation with retry and backoff."""

import asyncio
import logging
from typing import Callable, Optional, TypeVar

from pydantic import BaseModel, ValidationError

from config.exceptions import (
    GenerationFailedError,
    LLMError,
    LLMTimeoutError,
    SchemaValidationError,
)
from config.settings import Settings
from models.drafts import AuthorBatch, AuthorDraft, BookBatch, BookDraft, FacetClassification
from models.enums import GenerationKind
from tools.llm_client import StructuredGenerator
from tools.sections import check_section_coverage

logger = logging.getLogger(__name__)

T = TypeVar("T")

# kind -> (batch schema, list field)
_BATCH_SCHEMAS: dict[GenerationKind, tuple[type[BaseModel], str]] = {
    GenerationKind.AUTHORS: (AuthorBatch, "authors"),
    GenerationKind.BOOKS: (BookBatch, "books"),
}


def batch_schema(kind: GenerationKind, count: int) -> dict:
    """JSON schema for a batch of exactly count items of the given kind."""
    batch_cls, field = _BATCH_SCHEMAS[kind]
    schema = batch_cls.model_json_schema(by_alias=True)
    items = schema["properties"][field]
    items["minItems"] = count
    items["maxItems"] = count
    items["description"] = f"Exactly {count} {field}"
    return schema


class ContentGeneratorGateway:
    """Invokes the structured generator and validates what comes back.

    Schema violations (including broken book sections), transport errors and
    timeouts are retried up to generation_max_attempts times with exponential
    backoff. When every attempt fails, GenerationFailedError is raised.
    """

    def __init__(
        self,
        generator: StructuredGenerator,
        settings: Optional[Settings] = None,
        sleep: Callable[[float], object] = asyncio.sleep,
    ):
        self.generator = generator
        self.settings = settings or Settings()
        self._sleep = sleep

    def backoff_delay(self, attempt: int) -> float:
        """Delay after the given failed attempt (1-based)."""
        return self.settings.generation_backoff_seconds * (2 ** (attempt - 1))

    async def generate(
        self,
        kind: GenerationKind,
        system_prompt: str,
        user_prompt: str,
        count: int,
        model: Optional[str] = None,
    ) -> list[AuthorDraft] | list[BookDraft]:
        """Generate exactly count validated authors or books.

        Raises:
            GenerationFailedError: After exhausting all attempts.
        """
        if kind not in _BATCH_SCHEMAS:
            raise ValueError(f"Unsupported batch kind: {kind}")
        batch_cls, field = _BATCH_SCHEMAS[kind]
        schema = batch_schema(kind, count)

        def validate(raw: dict) -> list:
            items = getattr(batch_cls.model_validate(raw), field)
            if len(items) != count:
                raise SchemaValidationError(
                    f"Expected exactly {count} {field}, got {len(items)}",
                    {"expected": count, "actual": len(items)},
                )
            if kind == GenerationKind.BOOKS:
                for book in items:
                    check_section_coverage(book.title, book.sections, book.page_count)
            return items

        return await self._invoke(
            kind, system_prompt, user_prompt, schema,
            self.settings.generation_temperature, validate, model,
        )

    async def classify(
        self,
        system_prompt: str,
        user_prompt: str,
        model: Optional[str] = None,
    ) -> FacetClassification:
        """Run the low-temperature genre/language classification."""
        schema = FacetClassification.model_json_schema(by_alias=True)
        return await self._invoke(
            GenerationKind.FACETS, system_prompt, user_prompt, schema,
            self.settings.classification_temperature,
            FacetClassification.model_validate, model,
        )

    async def _invoke(
        self,
        kind: GenerationKind,
        system_prompt: str,
        user_prompt: str,
        schema: dict,
        temperature: float,
        validate: Callable[[dict], T],
        model: Optional[str],
    ) -> T:
        max_attempts = self.settings.generation_max_attempts
        timeout = self.settings.generation_timeout_seconds
        last_error: Optional[Exception] = None

        for attempt in range(1, max_attempts + 1):
            logger.info("Generating %s: attempt %d/%d", kind.value, attempt, max_attempts)
            try:
                raw = await asyncio.wait_for(
                    self.generator.generate_structured(
                        system_prompt, user_prompt, schema, temperature, model=model,
                    ),
                    timeout=timeout,
                )
                result = validate(raw)
                logger.info("Generated %s on attempt %d", kind.value, attempt)
                return result
            except asyncio.TimeoutError:
                last_error = LLMTimeoutError(
                    f"Generation of {kind.value} timed out", {"timeout": timeout},
                )
            except ValidationError as e:
                last_error = SchemaValidationError(
                    f"Generated {kind.value} do not match the schema: {e.error_count()} errors",
                    {"first_error": str(e.errors()[0].get("msg", "")) if e.errors() else ""},
                )
            except LLMError as e:
                last_error = e

            logger.warning(
                "Generation of %s failed on attempt %d/%d: %s",
                kind.value, attempt, max_attempts, last_error,
            )
            if attempt < max_attempts:
                await self._sleep(self.backoff_delay(attempt))

        logger.error("All %d attempts to generate %s failed", max_attempts, kind.value)
        raise GenerationFailedError(kind.value, max_attempts, last_error) from last_error

"""Author Agent: invents fictional authors for a genre."""

import logging
from typing import Optional

from agents.base_agent import BaseAgent, query_context
from config.settings import Settings
from models.catalog import Genre
from models.drafts import AuthorDraft
from models.enums import GenerationKind
from tools.generation_gateway import ContentGeneratorGateway

logger = logging.getLogger(__name__)


class AuthorAgent(BaseAgent):
    """Generates batches of fictional authors with pen name, style and bio."""

    def __init__(
        self,
        gateway: Optional[ContentGeneratorGateway] = None,
        settings: Optional[Settings] = None,
    ):
        super().__init__(gateway, settings)
        self._template = self._load_prompt("authors")

    async def generate_authors(
        self,
        genre: Genre,
        language_code: str,
        count: int,
        free_text: Optional[str] = None,
        model: Optional[str] = None,
    ) -> list[AuthorDraft]:
        """Generate exactly count authors who write in genre.

        Raises:
            GenerationFailedError: If the gateway exhausts its attempts.
        """
        if count <= 0:
            return []
        system_prompt, user_prompt = self._render(
            self._template,
            genre_prompt=genre.prompt,
            language_code=language_code,
            query_context=query_context(free_text),
            count=count,
        )
        logger.info("AuthorAgent: generating %d authors for '%s'", count, genre.slug)
        drafts = await self.gateway.generate(
            GenerationKind.AUTHORS, system_prompt, user_prompt, count,
            model=model or self.settings.llm_model_generation,
        )
        logger.info("AuthorAgent: %s", ", ".join(d.pen_name for d in drafts))
        return drafts

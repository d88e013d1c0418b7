"""Book Agent: generates one page of fictional search results."""

import logging
from typing import Optional

from agents.base_agent import BaseAgent, query_context
from config.settings import Settings
from models.drafts import BookDraft
from models.enums import GenerationKind
from models.search import SearchContext
from tools.generation_gateway import ContentGeneratorGateway

logger = logging.getLogger(__name__)


class BookAgent(BaseAgent):
    """Generates books with page-ranged sections for a resolved search."""

    def __init__(
        self,
        gateway: Optional[ContentGeneratorGateway] = None,
        settings: Optional[Settings] = None,
    ):
        super().__init__(gateway, settings)
        self._template = self._load_prompt("books")

    async def generate_books(
        self,
        context: SearchContext,
        free_text: Optional[str],
        page_number: int,
        page_size: int,
    ) -> list[BookDraft]:
        """Generate exactly page_size books for one result page.

        Sections of every returned book partition its pages; the gateway
        retries generations that break this.
        """
        first_rank = (page_number - 1) * page_size + 1
        tag_prompts = "; ".join(context.tag_prompts) or "None"
        system_prompt, user_prompt = self._render(
            self._template,
            page_number=page_number,
            page_size=page_size,
            first_rank=first_rank,
            last_rank=first_rank + page_size - 1,
            genre_prompt=context.genre.prompt,
            tag_prompts=tag_prompts,
            language_code=context.language.code,
            query_context=query_context(free_text),
        )

        logger.info(
            "BookAgent: generating %d books (page %d, genre=%s, language=%s, model=%s)",
            page_size, page_number, context.genre.slug, context.language.code, context.model.name,
        )
        books = await self.gateway.generate(
            GenerationKind.BOOKS, system_prompt, user_prompt, page_size,
            model=context.model.name or self.settings.llm_model_generation,
        )
        logger.info("BookAgent: completed, %d pages in total", sum(b.page_count for b in books))
        return books

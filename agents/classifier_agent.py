"""Classifier Agent: fills in missing genre and language from free text."""

import logging
from typing import Optional

from agents.base_agent import BaseAgent
from config.settings import Settings
from models.catalog import Genre, Language
from tools.generation_gateway import ContentGeneratorGateway

logger = logging.getLogger(__name__)

DEFAULT_GENRE = "fiction"
DEFAULT_LANGUAGE = "en"


class ClassifierAgent(BaseAgent):
    """Detects the genre and language of a search query.

    Answers outside the catalog fall back to DEFAULT_GENRE /
    DEFAULT_LANGUAGE. Generator failures propagate; the caller decides
    whether to fall back.
    """

    def __init__(
        self,
        gateway: Optional[ContentGeneratorGateway] = None,
        settings: Optional[Settings] = None,
    ):
        super().__init__(gateway, settings)
        self._template = self._load_prompt("classifier")

    async def classify(
        self,
        free_text: str,
        genres: list[Genre],
        languages: list[Language],
    ) -> tuple[str, str]:
        """Return (genre_slug, language_code) for free_text.

        Raises:
            GenerationFailedError: If the classifier keeps failing.
        """
        genre_slugs = {g.slug for g in genres}
        language_codes = {lang.code for lang in languages}
        system_prompt, user_prompt = self._render(
            self._template,
            genre_options="\n".join(f"- {g.slug}: {g.label}" for g in genres),
            language_options="\n".join(f"- {lang.code}: {lang.label}" for lang in languages),
            free_text=free_text,
        )

        result = await self.gateway.classify(
            system_prompt, user_prompt, model=self.settings.llm_model_classifier,
        )

        genre_slug = result.genre_slug.strip().lower()
        if genre_slug not in genre_slugs:
            logger.warning("Classifier returned unknown genre '%s', using '%s'", genre_slug, DEFAULT_GENRE)
            genre_slug = DEFAULT_GENRE
        language_code = result.language_code.strip().lower()
        if language_code not in language_codes:
            logger.warning("Classifier returned unknown language '%s', using '%s'", language_code, DEFAULT_LANGUAGE)
            language_code = DEFAULT_LANGUAGE

        logger.info("ClassifierAgent: '%s' -> genre=%s, language=%s (%s)",
                    free_text[:60], genre_slug, language_code, result.reasoning[:80])
        return genre_slug, language_code

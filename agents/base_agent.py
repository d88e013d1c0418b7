"""Base agent class with common generation and prompt utilities."""

import logging
import re
from functools import lru_cache
from pathlib import Path
from typing import Optional

from config.settings import Settings
from tools.agent_sdk_client import AgentSDKClient
from tools.generation_gateway import ContentGeneratorGateway

logger = logging.getLogger(__name__)

_PROMPTS_DIR = Path(__file__).parent.parent / "config" / "prompts"
_SECTION_HEADER = re.compile(r"^[ \t]*##[ \t]+(.+?)[ \t]*$", re.MULTILINE)


@lru_cache(maxsize=32)
def _read_prompt_file(path: str) -> str:
    """Read and cache a prompt file by absolute path string."""
    return Path(path).read_text(encoding="utf-8")


class BaseAgent:
    """Base class for the prompt-building agents of the search pipeline."""

    def __init__(
        self,
        gateway: Optional[ContentGeneratorGateway] = None,
        settings: Optional[Settings] = None,
    ):
        self.settings = settings or Settings()
        self.gateway = gateway or ContentGeneratorGateway(AgentSDKClient(self.settings), self.settings)

    def _load_prompt(self, template_name: str) -> str:
        """Load a prompt template from config/prompts/ (cached after first read).

        Args:
            template_name: Filename without extension, e.g. 'books'.

        Returns:
            The prompt template text.
        """
        path = _PROMPTS_DIR / f"{template_name}.md"
        if not path.exists():
            raise FileNotFoundError(f"Prompt template not found: {path}")
        return _read_prompt_file(str(path))

    def _extract_section(self, template: str, section_header: str) -> str:
        """Return the body under the first '## ' header naming section_header, or ''."""
        headers = list(_SECTION_HEADER.finditer(template))
        for i, match in enumerate(headers):
            if section_header in match.group(1):
                end = headers[i + 1].start() if i + 1 < len(headers) else len(template)
                return template[match.end():end].strip()
        return ""

    def _fill(self, text: str, **values) -> str:
        """Substitute {name} placeholders; other braces are left alone."""
        for key, value in values.items():
            text = text.replace("{" + key + "}", str(value))
        return text

    def _render(self, template: str, **values) -> tuple[str, str]:
        """Return the filled (system prompt, instruction) pair of a template."""
        system_prompt = self._fill(self._extract_section(template, "System Prompt"), **values)
        user_prompt = self._fill(self._extract_section(template, "Instruction"), **values)
        return system_prompt, user_prompt


def query_context(free_text: Optional[str]) -> str:
    """Prompt line carrying the user's own description, if any."""
    if not free_text:
        return ""
    return f'\nUSER QUERY: "{free_text}"\nUse the query as inspiration while keeping every result unique.\n'

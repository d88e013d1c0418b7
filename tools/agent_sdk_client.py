"""Claude Agent SDK wrapper implementing the structured-generation capability."""

import logging
import os
from typing import Callable, Optional

from claude_agent_sdk import (
    query,
    ClaudeAgentOptions,
    ResultMessage,
    AssistantMessage,
)

from config.settings import Settings
from tools.llm_client import parse_json_object, schema_instructions
from config.exceptions import LLMError, LLMResponseParseError

logger = logging.getLogger(__name__)

# The SDK refuses to start when this is set by an enclosing CLI session.
os.environ.pop("CLAUDECODE", None)


class AgentSDKClient:
    """Claude Agent SDK wrapper.

    Uses claude_agent_sdk.query() for all LLM interactions. Authentication
    is handled by the SDK. Sampling temperature is not exposed by the SDK,
    so the requested creativity is expressed in the prompt instead.
    """

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or Settings()
        self.total_calls = 0

    async def chat(
        self,
        system_prompt: str,
        user_prompt: str,
        model: Optional[str] = None,
        on_event: Optional[Callable[[dict], None]] = None,
    ) -> str:
        """Send a single-turn request and return the text result.

        Args:
            system_prompt: System message guiding the model's behavior.
            user_prompt: User message content.
            model: Model name override. Defaults to the generation model.
            on_event: Optional callback fired with {"type": "text"} on the
                first text chunk and {"type": "result"} when done.

        Raises:
            LLMError: If the query fails.
        """
        model = model or self.settings.llm_model_generation
        self.total_calls += 1

        logger.debug("AgentSDK call #%d: model=%s", self.total_calls, model)

        try:
            result_text = ""
            text_fired = False
            # Do not return/break early from inside the async for loop: query()
            # uses anyio cancel scopes and must be exhausted in the same task.
            async for message in query(
                prompt=user_prompt,
                options=ClaudeAgentOptions(
                    system_prompt=system_prompt,
                    model=model,
                    max_turns=1,
                ),
            ):
                if isinstance(message, ResultMessage):
                    result_text = message.result or ""
                    logger.debug(
                        "AgentSDK result: %d chars, cost=$%s",
                        len(result_text),
                        message.total_cost_usd,
                    )
                    if on_event:
                        on_event({"type": "result"})
                elif isinstance(message, AssistantMessage):
                    for block in message.content:
                        text = getattr(block, "text", None)
                        if text:
                            if on_event and not text_fired:
                                text_fired = True
                                on_event({"type": "text", "text": text})
                            if not result_text:
                                result_text += text
        except Exception as e:
            raise LLMError(f"Agent SDK query failed: {e}") from e

        if not result_text:
            logger.warning("AgentSDK returned no content")

        return result_text

    async def chat_json(
        self,
        system_prompt: str,
        user_prompt: str,
        model: Optional[str] = None,
        wrap_key: Optional[str] = None,
    ) -> dict:
        """Send a request and parse the response as a JSON object.

        Raises:
            LLMResponseParseError: If response cannot be parsed as JSON.
        """
        text = await self.chat(system_prompt, user_prompt, model)
        try:
            return parse_json_object(text, wrap_key=wrap_key)
        except ValueError as e:
            raise LLMResponseParseError(str(e), raw_response=text) from e

    async def generate_structured(
        self,
        system_prompt: str,
        user_prompt: str,
        schema: dict,
        temperature: float,
        model: Optional[str] = None,
    ) -> dict:
        """Generate a JSON object that should match schema.

        The result is parsed but not validated; validation belongs to the
        caller, which knows the expected model and item counts.
        """
        properties = schema.get("properties", {})
        # Single-list schemas ({"books": [...]}) tolerate a bare array reply
        wrap_key = next(iter(properties)) if len(properties) == 1 else None
        system = f"{system_prompt}\n\n{schema_instructions(schema, temperature)}"
        logger.info(
            "Structured generation: schema=%s, model=%s, temperature=%.2f",
            schema.get("title", "?"), model or self.settings.llm_model_generation, temperature,
        )
        return await self.chat_json(system, user_prompt, model=model, wrap_key=wrap_key)

"""LLM response parsing and structured-generation capability.

StructuredGenerator is the capability the generator gateway depends on;
AgentSDKClient is the production implementation. The JSON helpers turn
free-form model text into the object the schema asked for.
"""

import json
import re
from typing import Any, Optional, Protocol, runtime_checkable

# Precompiled regex for JSON extraction
_JSON_FENCE_RE = re.compile(r"```(?:json)?\s*\n?(.*?)\n?\s*```", re.DOTALL)

# Lenient decoder that allows control characters (raw newlines, tabs) inside
# JSON strings; models frequently produce these instead of proper \n escapes.
_LENIENT_DECODER = json.JSONDecoder(strict=False)


@runtime_checkable
class StructuredGenerator(Protocol):
    """Generate an object matching a JSON schema from a prompt pair."""

    async def generate_structured(
        self,
        system_prompt: str,
        user_prompt: str,
        schema: dict,
        temperature: float,
        model: Optional[str] = None,
    ) -> dict:
        ...


def _try_loads(text: str) -> Any:
    """Try parsing JSON, first strictly then leniently."""
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        pass
    return _LENIENT_DECODER.decode(text)


def parse_json_response(text: str) -> Any:
    """Extract and parse a JSON value from LLM response text.

    Handles bare JSON, JSON wrapped in markdown code fences, and JSON
    embedded in surrounding prose.

    Raises:
        ValueError: If no JSON value can be extracted.
    """
    text = text.strip()

    try:
        return _try_loads(text)
    except json.JSONDecodeError:
        pass

    match = _JSON_FENCE_RE.search(text)
    if match:
        try:
            return _try_loads(match.group(1).strip())
        except json.JSONDecodeError:
            pass

    # Outermost object first, then array
    for start_char, end_char in [("{", "}"), ("[", "]")]:
        start = text.find(start_char)
        end = text.rfind(end_char)
        if start != -1 and end != -1 and end > start:
            try:
                return _try_loads(text[start:end + 1])
            except json.JSONDecodeError:
                continue

    raise ValueError(f"Failed to parse JSON from LLM response: {text[:200]}...")


def parse_json_object(text: str, wrap_key: Optional[str] = None) -> dict:
    """Parse a JSON object from LLM text.

    A bare top-level array is wrapped as {wrap_key: [...]} when wrap_key is
    given, since models sometimes drop the outer object of a list schema.

    Raises:
        ValueError: If the text holds no JSON object.
    """
    result = parse_json_response(text)
    if isinstance(result, dict):
        return result
    if isinstance(result, list) and wrap_key:
        return {wrap_key: result}
    raise ValueError(f"Expected a JSON object, got {type(result).__name__}")


def schema_instructions(schema: dict, temperature: float) -> str:
    """Prompt suffix asking for JSON that matches schema."""
    if temperature >= 0.7:
        creativity = "Favor bold, surprising and varied ideas over safe, predictable ones."
    elif temperature <= 0.3:
        creativity = "Be precise and consistent; do not improvise."
    else:
        creativity = "Balance originality with coherence."
    return (
        f"{creativity}\n\n"
        "Respond with a single JSON object and nothing else. It must validate against this JSON schema:\n"
        f"```json\n{json.dumps(schema, ensure_ascii=False)}\n```"
    )

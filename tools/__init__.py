"""Tools package: Agent SDK client, generator gateway, search keys and JSON parsing."""

from tools.agent_sdk_client import AgentSDKClient
from tools.generation_gateway import ContentGeneratorGateway
from tools.llm_client import StructuredGenerator, parse_json_response
from tools.search_key import canonicalize, fingerprint, text_key, validate_search_request
from tools.sections import check_section_coverage

__all__ = [
    "AgentSDKClient",
    "ContentGeneratorGateway",
    "StructuredGenerator",
    "parse_json_response",
    "canonicalize",
    "fingerprint",
    "text_key",
    "validate_search_request",
    "check_section_coverage",
]

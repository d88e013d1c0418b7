"""Configuration package: settings, logging, and exceptions."""

from config.exceptions import (
    LibrariumError,
    InvalidRequestError,
    AuthenticationRequiredError,
    InsufficientCreditsError,
    LLMError,
    LLMTimeoutError,
    LLMResponseParseError,
    SchemaValidationError,
    SectionCoverageError,
    GenerationFailedError,
    GenerationInProgressError,
    DatabaseError,
    PersistenceFailedError,
    SettlementFailedError,
    InvalidConfigError,
)
from config.logging_config import setup_logging
from config.settings import Settings, get_settings

__all__ = [
    "Settings",
    "get_settings",
    "setup_logging",
    "LibrariumError",
    "InvalidRequestError",
    "AuthenticationRequiredError",
    "InsufficientCreditsError",
    "LLMError",
    "LLMTimeoutError",
    "LLMResponseParseError",
    "SchemaValidationError",
    "SectionCoverageError",
    "GenerationFailedError",
    "GenerationInProgressError",
    "DatabaseError",
    "PersistenceFailedError",
    "SettlementFailedError",
    "InvalidConfigError",
]

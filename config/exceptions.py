"""Custom exception hierarchy for the search and generation pipeline."""

from typing import Optional


class LibrariumError(Exception):
    """Base exception for all librarium errors."""

    def __init__(self, message: str, details: Optional[dict] = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)

    def __str__(self) -> str:
        if self.details:
            detail_str = ", ".join(f"{k}={v}" for k, v in self.details.items())
            return f"{self.message} ({detail_str})"
        return self.message


# ---- Request Errors ----

class InvalidRequestError(LibrariumError):
    """Search parameters are missing or invalid. Not retried."""


class AuthenticationRequiredError(LibrariumError):
    """A cache miss was requested by an anonymous caller."""

    def __init__(self, message: str = "Authentication required for new searches"):
        super().__init__(message)


class InsufficientCreditsError(LibrariumError):
    """The user cannot cover the estimated cost and has no provider key."""

    def __init__(self, user_id: str, required: int, available: int):
        super().__init__(
            "Insufficient credits and no API key configured",
            {"user_id": user_id, "required": required, "available": available},
        )
        self.required = required
        self.available = available


# ---- LLM Errors ----

class LLMError(LibrariumError):
    """Base exception for LLM transport errors."""


class LLMTimeoutError(LLMError):
    """LLM request exceeded the generation timeout."""


class LLMResponseParseError(LLMError):
    """Failed to parse LLM response."""

    def __init__(self, message: str = "Failed to parse LLM response", raw_response: str = ""):
        details = {"raw_response": raw_response[:200]} if raw_response else {}
        super().__init__(message, details)
        self.raw_response = raw_response


class SchemaValidationError(LLMError):
    """Structured output did not match the requested schema."""


class SectionCoverageError(SchemaValidationError):
    """Book sections do not partition [1, page_count]."""

    def __init__(self, title: str, reason: str):
        super().__init__(f"Sections of '{title}' are invalid: {reason}", {"title": title})
        self.reason = reason


class GenerationFailedError(LibrariumError):
    """Generation still failed after all retry attempts."""

    def __init__(self, kind: str, attempts: int, last_error: Optional[Exception] = None):
        details = {"kind": kind, "attempts": attempts}
        if last_error is not None:
            details["last_error"] = str(last_error)[:200]
        super().__init__(f"Generation of {kind} failed after {attempts} attempts", details)
        self.last_error = last_error


class GenerationInProgressError(LibrariumError):
    """Another request still holds the generation lock for this search page."""

    def __init__(self, fingerprint: str, page_number: int, waited: float):
        super().__init__(
            "Generation for this search is still in progress",
            {"fingerprint": fingerprint[:12], "page_number": page_number, "waited": round(waited, 1)},
        )


# ---- Storage Errors ----

class DatabaseError(LibrariumError):
    """Database operation failed."""


class PersistenceFailedError(DatabaseError):
    """Writing the search graph failed; nothing was committed."""


# ---- Billing Errors ----

class SettlementFailedError(LibrariumError):
    """Debiting credits after a successful commit failed."""

    def __init__(self, user_id: str, amount: int, reason: str):
        super().__init__(
            f"Credit settlement failed: {reason}",
            {"user_id": user_id, "amount": amount},
        )
        self.user_id = user_id
        self.amount = amount
        self.reason = reason


# ---- Configuration Errors ----

class InvalidConfigError(LibrariumError):
    """Configuration value is invalid."""

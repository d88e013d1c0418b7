"""Configuration settings loaded from .env file."""

from pathlib import Path

from pydantic import ValidationError, field_validator, model_validator
from pydantic_settings import BaseSettings

from config.exceptions import InvalidConfigError


class Settings(BaseSettings):
    """Application settings, loaded from .env file.

    Provider authentication is handled by the Claude Agent SDK itself.
    Credit costs per model live in the catalog (llm_models table); the
    values here are fallbacks for models without explicit costs.
    """

    # LLM Models
    llm_model_generation: str = "claude-sonnet-4-5"   # Fallback for books / authors
    llm_model_classifier: str = "claude-haiku-4-5"    # Genre / language detection

    # Database
    sqlite_db_path: Path = Path("./data/librarium.db")

    # Search
    page_size: int = 3
    author_reuse_probability: float = 0.5

    # Generation
    generation_temperature: float = 0.9
    classification_temperature: float = 0.1
    generation_max_attempts: int = 3
    generation_backoff_seconds: float = 1.0
    generation_timeout_seconds: float = 120.0

    # Credits
    pages_per_credit: int = 10
    default_search_credits: int = 5
    default_page_generation_credits: int = 3
    signup_credits: int = 50
    credit_hold_ttl_seconds: int = 600

    # Generation lock
    generation_lock_ttl_seconds: int = 300
    generation_lock_wait_seconds: float = 180.0
    generation_lock_poll_seconds: float = 0.5

    # API server
    api_host: str = "0.0.0.0"
    api_port: int = 8000

    # Logging
    log_dir: Path = Path("./data/logs")

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
    }

    @field_validator("page_size", "generation_max_attempts", "pages_per_credit")
    @classmethod
    def validate_positive(cls, v: int, info) -> int:
        if v < 1:
            raise ValueError(f"{info.field_name} must be >= 1")
        return v

    @field_validator("author_reuse_probability")
    @classmethod
    def validate_probability(cls, v: float) -> float:
        if not 0.0 <= v <= 1.0:
            raise ValueError("author_reuse_probability must be between 0 and 1")
        return v

    @field_validator("generation_temperature", "classification_temperature")
    @classmethod
    def validate_temperature(cls, v: float) -> float:
        if not 0.0 <= v <= 2.0:
            raise ValueError("Temperature must be between 0 and 2")
        return v

    @field_validator(
        "generation_backoff_seconds",
        "default_search_credits",
        "default_page_generation_credits",
        "signup_credits",
    )
    @classmethod
    def validate_non_negative(cls, v):
        if v < 0:
            raise ValueError("Value must be non-negative")
        return v

    @field_validator("sqlite_db_path", "log_dir")
    @classmethod
    def ensure_parent_dirs(cls, v: Path) -> Path:
        v.parent.mkdir(parents=True, exist_ok=True)
        return v

    @model_validator(mode="after")
    def validate_lock_timings(self) -> "Settings":
        if self.generation_lock_poll_seconds <= 0:
            raise ValueError("generation_lock_poll_seconds must be positive")
        if self.generation_lock_wait_seconds < self.generation_lock_poll_seconds:
            raise ValueError(
                f"generation_lock_wait_seconds ({self.generation_lock_wait_seconds}) must be >= "
                f"generation_lock_poll_seconds ({self.generation_lock_poll_seconds})"
            )
        return self


_settings_instance: Settings | None = None


def load_settings(**overrides) -> Settings:
    """Build Settings from the environment and .env file.

    Raises:
        InvalidConfigError: If a value fails validation.
    """
    try:
        return Settings(**overrides)
    except ValidationError as e:
        problems = "; ".join(
            f"{'.'.join(str(p) for p in err['loc']) or 'settings'}: {err['msg']}" for err in e.errors()
        )
        raise InvalidConfigError(f"Invalid configuration: {problems}", {"errors": e.error_count()}) from e


def get_settings() -> Settings:
    """Get cached settings instance."""
    global _settings_instance
    if _settings_instance is None:
        _settings_instance = load_settings()
    return _settings_instance

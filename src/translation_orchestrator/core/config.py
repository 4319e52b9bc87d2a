"""
Process-wide configuration. Read once from the environment and treated as
immutable for the lifetime of the process.
"""

from functools import lru_cache
from typing import List, Optional

from pydantic import ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

from .exceptions import ConfigurationError

ENV_PREFIX = "TRANSLATOR_"


class Settings(BaseSettings):
    app_name: str = "Translation Orchestrator"
    log_level: str = "INFO"

    # Object store and translation service
    bucket_name: str
    access_role_arn: str
    aws_region: Optional[str] = None
    account_id: Optional[str] = None
    input_prefix: str = "uploads/"
    output_prefix: str = "translated/"
    source_language: str = "auto"

    # Preflight
    preflight_max_attempts: int = 5
    preflight_base_delay: float = 0.5

    # Polling
    poll_interval: float = 5.0
    poll_budget: float = 900.0
    max_finalizing_attempts: int = 3

    # Transport
    request_timeout: float = 10.0
    presigned_url_expiry: int = 3600

    # Result resolution, tried in order
    naming_conventions: List[str] = [
        "account_job_language",
        "language_prefixed",
        "reported_location",
    ]

    model_config = SettingsConfigDict(
        env_prefix=ENV_PREFIX,
        env_file=".env",
        extra="ignore",
        frozen=True,
    )


def load_settings(**overrides) -> Settings:
    """
    Build settings from the environment, failing fast on missing values.

    Raises:
        ConfigurationError: if a required variable is missing or invalid
    """
    try:
        return Settings(**overrides)
    except ValidationError as e:
        missing = []
        invalid = []
        for error in e.errors():
            name = f"{ENV_PREFIX}{str(error['loc'][0]).upper()}"
            if error["type"] == "missing":
                missing.append(name)
            else:
                invalid.append(name)
        parts = []
        if missing:
            parts.append(f"missing: {', '.join(missing)}")
        if invalid:
            parts.append(f"invalid: {', '.join(invalid)}")
        raise ConfigurationError(f"Configuration error ({'; '.join(parts)})") from e


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return load_settings()

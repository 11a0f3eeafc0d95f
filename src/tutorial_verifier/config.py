"""
Configuration
=============

Validated run settings, read from the environment and overridden by CLI
flags.
"""

import os
from typing import Any, Literal, Optional

from pydantic import BaseModel, Field, ValidationError, field_validator

from tutorial_verifier.engine import DEFAULT_TIMEOUT
from tutorial_verifier.errors import ConfigurationError
from tutorial_verifier.models import ErrorPolicy

ENV_PREFIX = "TUTORIAL_VERIFIER_"


class VerifierSettings(BaseModel):
    """Settings for one verification run."""

    dsn: str = Field("", description="Database connection string; empty defers to PG* variables")
    timeout: float = Field(DEFAULT_TIMEOUT, gt=0, description="Per-block timeout in seconds")
    on_error: ErrorPolicy = Field(ErrorPolicy.HALT, description="halt or continue")
    output_format: Literal["text", "json"] = "text"
    timings: bool = False
    log_level: str = "WARNING"
    log_format: Literal["console", "json"] = "console"
    metrics_file: Optional[str] = None
    connect_timeout: int = Field(10, gt=0)

    @field_validator("log_level")
    @classmethod
    def _check_level(cls, value: str) -> str:
        level = value.upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"unknown log level {value!r}")
        return level

    @classmethod
    def from_env(cls, overrides: dict[str, Any] | None = None) -> "VerifierSettings":
        """
        Build settings from environment variables, then apply overrides.

        Args:
            overrides: Values from the command line; None entries are ignored

        Raises:
            ConfigurationError: If a value fails validation
        """
        values: dict[str, Any] = {}
        dsn = os.getenv(f"{ENV_PREFIX}DSN") or os.getenv("DATABASE_URL")
        if dsn:
            values["dsn"] = dsn
        env_map = {
            "timeout": f"{ENV_PREFIX}TIMEOUT",
            "on_error": f"{ENV_PREFIX}ON_ERROR",
            "metrics_file": f"{ENV_PREFIX}METRICS_FILE",
            "log_level": "LOG_LEVEL",
            "log_format": "LOG_FORMAT",
        }
        for field_name, variable in env_map.items():
            value = os.getenv(variable)
            if value:
                values[field_name] = value.lower() if field_name in ("on_error", "log_format") else value

        for key, value in (overrides or {}).items():
            if value is not None:
                values[key] = value

        try:
            return cls(**values)
        except ValidationError as e:
            problems = "; ".join(
                f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()
            )
            raise ConfigurationError(f"Invalid settings: {problems}") from e

"""Per-provider CLI timeouts, overridable through environment variables."""

import logging
import os
from collections.abc import Mapping

from pydantic import BaseModel, Field

from crewx.domain.constants import DEFAULT_TIMEOUT_MS

logger = logging.getLogger(__name__)

ENV_PREFIX = "CREWX_TIMEOUT_"


class TimeoutConfig(BaseModel):
    """Timeouts in milliseconds, one per built-in provider and mode."""

    claude_query: int = Field(default=DEFAULT_TIMEOUT_MS, gt=0)
    claude_execute: int = Field(default=DEFAULT_TIMEOUT_MS, gt=0)
    gemini_query: int = Field(default=DEFAULT_TIMEOUT_MS, gt=0)
    gemini_execute: int = Field(default=DEFAULT_TIMEOUT_MS, gt=0)
    copilot_query: int = Field(default=DEFAULT_TIMEOUT_MS, gt=0)
    copilot_execute: int = Field(default=DEFAULT_TIMEOUT_MS, gt=0)
    codex_query: int = Field(default=DEFAULT_TIMEOUT_MS, gt=0)
    codex_execute: int = Field(default=DEFAULT_TIMEOUT_MS, gt=0)
    parallel: int = Field(default=DEFAULT_TIMEOUT_MS, gt=0)

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "TimeoutConfig":
        """Read ``CREWX_TIMEOUT_<FIELD>`` overrides; bad values keep the default."""
        environ = os.environ if environ is None else environ
        values: dict[str, int] = {}
        for field_name in cls.model_fields:
            key = f"{ENV_PREFIX}{field_name.upper()}"
            raw = environ.get(key)
            if raw is None:
                continue
            try:
                parsed = int(raw)
            except ValueError:
                logger.warning(f"Ignoring non-numeric {key}={raw!r}")
                continue
            if parsed <= 0:
                logger.warning(f"Ignoring non-positive {key}={raw!r}")
                continue
            values[field_name] = parsed
        return cls(**values)

"""Engine settings."""

from __future__ import annotations

import logging
from enum import Enum
from typing import Any, Mapping

from pydantic import ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .errors import ConfigurationError

logger = logging.getLogger(__name__)

ENV_PREFIX = "SHEETWRITER_"


class GenerationMode(str, Enum):
    """How the rendered workbook is produced."""

    DIRECT = "direct"
    STREAMING = "streaming"

    @classmethod
    def parse(cls, value) -> "GenerationMode":
        if isinstance(value, cls):
            return value
        normalised = str(value or "").strip().lower()
        for mode in cls:
            if mode.value == normalised:
                return mode
        allowed = ", ".join(mode.value for mode in cls)
        raise ConfigurationError(f"Unsupported generation mode {value!r}; expected one of: {allowed}")


class EngineSettings(BaseSettings):
    """Settings read from ``SHEETWRITER_*`` environment variables or passed in."""

    model_config = SettingsConfigDict(env_prefix=ENV_PREFIX, frozen=True, extra="ignore")

    generation_mode: GenerationMode = GenerationMode.STREAMING

    def __init__(self, **values: Any):
        try:
            super().__init__(**values)
        except ValidationError as exc:
            raise ConfigurationError(f"Invalid engine settings: {exc}") from exc

    @field_validator("generation_mode", mode="before")
    @classmethod
    def _parse_generation_mode(cls, value):
        # Blank values fall back to the default, like an unset variable.
        if value is None or (isinstance(value, str) and not value.strip()):
            return GenerationMode.STREAMING
        return GenerationMode.parse(value)

    @property
    def streaming(self) -> bool:
        return self.generation_mode is GenerationMode.STREAMING

    @classmethod
    def from_mapping(cls, mapping: Mapping[str, Any] | None) -> "EngineSettings":
        """Build settings from a plain mapping, ignoring unknown keys."""

        if not mapping:
            return cls()
        unknown = sorted(key for key in mapping if key not in cls.model_fields)
        if unknown:
            logger.debug("Ignoring unknown engine settings: %s", ", ".join(unknown))
        return cls(**{key: value for key, value in mapping.items() if key in cls.model_fields})

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "EngineSettings":
        """Read settings from ``environ``, or from the process environment."""

        if environ is None:
            return cls()
        values = {
            key[len(ENV_PREFIX):].lower(): value
            for key, value in environ.items()
            if key.upper().startswith(ENV_PREFIX)
        }
        return cls.from_mapping(values)

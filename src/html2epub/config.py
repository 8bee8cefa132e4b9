"""Runtime settings for html2epub.

Settings are read from ``HTML2EPUB_*`` environment variables, after loading a
``.env`` file from the working directory when one exists.
"""

from __future__ import annotations

import codecs
import os
from pathlib import Path
from typing import Any, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from html2epub.errors import ConfigError
from html2epub.logger import LEVEL_NAMES

ENV_PREFIX = "HTML2EPUB_"


class Settings(BaseModel):
    """Validated settings shared by the book, the loaders and the CLI."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    encoding: str = Field(
        "utf-8", description="Default text encoding for chapter sources"
    )
    log_level: str = Field("SUCCESS", description="Console log level")
    log_file: Optional[Path] = Field(
        None, description="Optional path of a plain-text TRACE log"
    )
    stylesheet: Optional[Path] = Field(
        None, description="CSS file replacing the bundled stylesheet"
    )
    jpeg_quality: int = Field(
        90, ge=1, le=95, description="Quality used when transcoding images"
    )
    http_timeout: float = Field(
        30.0, gt=0, description="Timeout in seconds for remote image requests"
    )

    @field_validator("encoding")
    @classmethod
    def _known_encoding(cls, value: str) -> str:
        try:
            return codecs.lookup(value).name
        except LookupError as exc:
            raise ValueError(f"unknown text encoding: {value!r}") from exc

    @field_validator("log_level")
    @classmethod
    def _known_level(cls, value: str) -> str:
        level = value.strip().upper()
        if level not in LEVEL_NAMES:
            raise ValueError(
                f"log level must be one of {', '.join(LEVEL_NAMES)}, got {value!r}"
            )
        return level

    @classmethod
    def from_env(cls, **overrides: Any) -> "Settings":
        """Build settings from the environment; ``overrides`` win when not None."""
        load_dotenv()
        values: dict[str, Any] = {}
        for name in cls.model_fields:
            raw = os.getenv(f"{ENV_PREFIX}{name.upper()}")
            if raw not in (None, ""):
                values[name] = raw
        values.update({k: v for k, v in overrides.items() if v is not None})
        try:
            return cls(**values)
        except ValidationError as exc:
            raise ConfigError(str(exc)) from exc

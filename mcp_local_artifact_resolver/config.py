"""Application configuration using pydantic-settings.

All fields are overridable via environment variables with the same names
(case-insensitive). List-valued fields take JSON, e.g.
``DEPMAP_PATHS='["etc/maven/fragments"]'``.

Notes:
- Relative paths are taken relative to RESOLVER_ROOT.
- REPOSITORY_CONFIG, when set, replaces the built-in repository chain with the
  one described by that XML document.
"""

from __future__ import annotations

from typing import Literal, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Top-level application settings."""

    # System layout
    RESOLVER_ROOT: str = "/"
    DEPMAP_PATHS: list[str] = Field(
        default_factory=lambda: ["etc/maven/fragments", "usr/share/maven-fragments"]
    )
    METADATA_PATHS: list[str] = Field(default_factory=lambda: ["usr/share/maven-metadata"])
    JAVA_ROOT: str = "usr/share/java"
    REPOSITORY_CONFIG: Optional[str] = None
    REPOSITORY_ID: str = "system"

    # Fragment loading
    FRAGMENT_LOAD_TIMEOUT_SECONDS: Optional[float] = Field(default=None, gt=0)

    # Logging
    LOG_LEVEL: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"
    LOG_JSON: bool = False

    TRANSPORT: Literal["stdio", "http"] = "stdio"

    model_config = SettingsConfigDict(env_prefix="", case_sensitive=False)


__all__ = ["Settings"]

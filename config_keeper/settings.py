from __future__ import annotations

from enum import Enum

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

__all__ = ["SaveMode", "KeeperSettings"]


class SaveMode(str, Enum):
    SIMPLE = "simple"
    DECORATED = "decorated"


class KeeperSettings(BaseSettings):
    """Library-wide defaults, overridable through ``CONFIG_KEEPER_*`` env vars."""

    default_mode: SaveMode = Field(
        default=SaveMode.DECORATED,
        description="Save mode used when a loader is not told otherwise.",
    )
    encoding: str = Field(default="utf-8", description="Text encoding of config files.")
    temp_suffix: str = Field(
        default=".tmp",
        description="Suffix of the temporary file written before the atomic replace.",
    )
    fsync: bool = Field(
        default=True,
        description="Flush the temporary file to disk before it replaces the target.",
    )

    model_config = SettingsConfigDict(env_prefix="CONFIG_KEEPER_", extra="ignore")

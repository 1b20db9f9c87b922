"""Configuration for the local-first workflow desk.

Configuration is loaded from:
- environment variables
- and a local `.env` file (if present)

Nothing here is required: with no configuration at all, state is persisted
under `./desk_state` and the sample templates are seeded on first use.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

_LOG_LEVELS = {"CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"}


class DeskSettings(BaseSettings):
    """Settings for the workflow desk.

    Environment variables:
    - LOG_LEVEL                   (optional)
    - WORKFLOW_DESK_STATE_PATH    (optional)
    - WORKFLOW_DESK_STORAGE       (optional, `file` or `memory`)
    - WORKFLOW_DESK_SEED_SAMPLES  (optional)

    Notes:
        Pydantic-settings supports overriding the env file in tests via:
        `DeskSettings(_env_file=path_to_env)`.
    """

    log_level: str = Field(
        default="INFO",
        validation_alias="LOG_LEVEL",
        description="Root logging level",
    )

    state_path: Path = Field(
        default=Path("desk_state"),
        validation_alias="WORKFLOW_DESK_STATE_PATH",
        description="Directory where the key-value store keeps its JSON blobs",
    )

    storage_backend: Literal["file", "memory"] = Field(
        default="file",
        validation_alias="WORKFLOW_DESK_STORAGE",
        description="Key-value backend: `file` persists to state_path, `memory` keeps nothing",
    )

    seed_samples: bool = Field(
        default=True,
        validation_alias="WORKFLOW_DESK_SEED_SAMPLES",
        description="Create the sample templates when the template collection is empty",
    )

    model_config = SettingsConfigDict(
        env_prefix="",
        env_file=".env",
        extra="ignore",
    )

    @field_validator("log_level")
    @classmethod
    def _known_log_level(cls, value: str) -> str:
        normalized = value.strip().upper()
        if normalized not in _LOG_LEVELS:
            raise ValueError(f"Unknown log level: {value!r}")
        return normalized

    @property
    def numeric_log_level(self) -> int:
        return getattr(logging, self.log_level, logging.INFO)

"""SDK configuration (pydantic BaseModel) and YAML loading."""

from __future__ import annotations

import os
import random
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, ValidationError

from .exceptions import MolassesError, MolassesErrorCodes

DEFAULT_BASE_URL = "https://sdk.molasses.app/v1"
API_KEY_ENV = "MOLASSES_API_KEY"


class BackoffSection(BaseModel):
    """Reconnect backoff for the streaming transport."""

    initial_delay: float = Field(default=0.5, gt=0)
    max_delay: float = Field(default=30.0, gt=0)
    multiplier: float = Field(default=2.0, ge=1.0)
    jitter: bool = True

    def compute_delay(self, attempt: int) -> float:
        """Delay in seconds before reconnect number ``attempt`` (0-based)."""
        base = self.initial_delay * (self.multiplier ** min(attempt, 64))
        capped = min(base, self.max_delay)
        if self.jitter:
            return capped * (0.9 + random.random() * 0.2)
        return capped


class MolassesConfig(BaseModel):
    """Options for MolassesClient. ``api_key`` is required by the client."""

    api_key: str = ""
    base_url: str = DEFAULT_BASE_URL
    debug: bool = False
    polling: bool = False
    auto_send_events: bool = False
    refresh_interval_seconds: float = Field(default=15.0, gt=0)
    timeout_seconds: float = Field(default=5.0, gt=0)
    backoff: BackoffSection = Field(default_factory=BackoffSection)


def _read_yaml(path: Path) -> dict[str, Any]:
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as e:
        raise MolassesError(
            code=MolassesErrorCodes.READ_FILE,
            message=f"Failed to read config file: {path}",
            cause=e,
        ) from e
    try:
        data: dict[str, Any] = yaml.safe_load(text) or {}
    except yaml.YAMLError as e:
        raise MolassesError(
            code=MolassesErrorCodes.PARSE_YAML,
            message=f"Failed to parse YAML: {path}",
            cause=e,
        ) from e
    if not isinstance(data, dict):
        raise MolassesError(
            code=MolassesErrorCodes.PARSE_YAML,
            message=f"Config root must be a mapping: {path}",
        )
    return data


def load_config(path: Path) -> MolassesConfig:
    """Load a MolassesConfig from a YAML file.

    An empty ``api_key`` falls back to the MOLASSES_API_KEY environment variable.
    """
    data = _read_yaml(path)
    if not data.get("api_key"):
        env_key = os.environ.get(API_KEY_ENV)
        if env_key:
            data["api_key"] = env_key
    try:
        return MolassesConfig.model_validate(data)
    except ValidationError as e:
        raise MolassesError(
            code=MolassesErrorCodes.VALIDATION,
            message=f"Config validation failed: {e}",
            cause=e,
        ) from e

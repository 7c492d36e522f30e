"""
Pipeline settings.

Settings gate which canvas operations are applied to each item and size the
scheduler. They are validated with pydantic and can be loaded from a JSON file
using either snake_case or the camelCase keys the settings store emits.
"""

import json
from pathlib import Path
from typing import Any, Dict, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel

from .errors import ConfigError
from .utils.log_utils import get_logger

logger = get_logger(__name__)

MAX_BATCH_SIZE = 100
DEFAULT_CONCURRENCY = 3


class DetectorSettings(BaseModel):
    """Tunables for blob auto-detection."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="forbid")

    threshold: int = Field(200, ge=0, le=256)
    step: int = Field(10, ge=1)
    padding: int = Field(10, ge=0)
    min_size: int = Field(20, ge=0)


class PipelineSettings(BaseModel):
    """Options consumed by the per-item pipeline and the scheduler."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="forbid")

    auto_enhance: bool = True
    expand_before_crop: bool = False
    expansion_percentage: int = Field(10, ge=0, le=50)
    show_grid: bool = False
    concurrency: int = Field(DEFAULT_CONCURRENCY, ge=1, le=10)
    max_batch_size: int = Field(MAX_BATCH_SIZE, ge=1, le=MAX_BATCH_SIZE)
    detector: DetectorSettings = Field(default_factory=DetectorSettings)

    @property
    def expansion_enabled(self) -> bool:
        return self.expand_before_crop and self.expansion_percentage > 0


def build_settings(data: Optional[Dict[str, Any]] = None, **overrides: Any) -> PipelineSettings:
    """Validate a settings mapping, applying keyword overrides on top.

    Raises:
        ConfigError: If any option is unknown or out of range.
    """
    merged = dict(data or {})
    for key, value in overrides.items():
        if value is None:
            continue
        # store under the alias so a file's camelCase key cannot shadow it
        merged.pop(key, None)
        merged[to_camel(key)] = value
    try:
        return PipelineSettings.model_validate(merged)
    except ValidationError as e:
        raise ConfigError(f"Invalid pipeline settings: {e}") from e


def load_settings(path: Optional[Union[str, Path]] = None, **overrides: Any) -> PipelineSettings:
    """Load settings from a JSON file (optional) and apply overrides."""
    data: Dict[str, Any] = {}
    if path is not None:
        path = Path(path)
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            raise ConfigError(f"Could not read settings from {path}: {e}") from e
        if not isinstance(data, dict):
            raise ConfigError(f"Settings file {path} must contain a JSON object")
        logger.debug(f"Loaded settings from {path}")
    return build_settings(data, **overrides)

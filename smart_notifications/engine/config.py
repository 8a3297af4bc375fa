"""
Engine configuration.

Defaults, overlaid by an optional JSON file, overlaid by SMART_NOTIFY_*
environment variables.
"""

import json
import logging
import os
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field

ENV_PREFIX = "SMART_NOTIFY_"


class EngineConfig(BaseModel):
    """Runtime knobs. Insight thresholds and weights are algorithm constants, not config."""

    event_window_days: int = Field(default=90, ge=1)
    event_window_limit: int = Field(default=1000, ge=1)
    recent_cache_size: int = Field(default=100, ge=0)
    currency_symbol: str = "₦"
    rules_file: Optional[str] = None
    log_level: str = "INFO"


def load_config(path: Optional[str] = None) -> EngineConfig:
    data: Dict[str, Any] = {}
    path = path or os.environ.get(f"{ENV_PREFIX}CONFIG")
    if path and os.path.exists(path):
        with open(path) as f:
            data.update(json.load(f))

    for name in EngineConfig.model_fields:
        value = os.environ.get(f"{ENV_PREFIX}{name.upper()}")
        if value is not None:
            data[name] = value

    return EngineConfig(**data)


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

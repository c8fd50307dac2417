"""
Run configuration: ``sources.yml`` plus environment overrides.
"""

import logging
import os
from pathlib import Path
from typing import List, Optional

import yaml
from pydantic import BaseModel, Field, ValidationError

from .errors import ConfigError

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = "sources.yml"


class Settings(BaseModel):
    data_dir: str = "public/data"
    lkg_dirname: str = "_lkg"
    debug_dir: Optional[str] = "debug"
    browser_budget: int = Field(default=3, ge=0)
    timeout_s: float = Field(default=10.0, gt=0)
    max_retries: int = Field(default=2, ge=0)
    headless: bool = True
    # Empty means every discovered adapter.
    sources: List[str] = Field(default_factory=list)


_ENV_OVERRIDES = {
    "NEXTRESET_DATA_DIR": "data_dir",
    "NEXTRESET_DEBUG_DIR": "debug_dir",
    "NEXTRESET_BROWSER_BUDGET": "browser_budget",
}


def load_settings(config_path: Optional[str] = None) -> Settings:
    """Load settings from YAML, then apply ``NEXTRESET_*`` environment overrides.

    A missing file means defaults. A file that exists but is not valid YAML,
    or does not validate, raises :class:`ConfigError`.
    """
    config_path = config_path or os.getenv("NEXTRESET_CONFIG", DEFAULT_CONFIG_PATH)
    path = Path(config_path)

    data: dict = {}
    if not path.exists():
        logger.warning("Config file not found: %s (using defaults)", config_path)
    else:
        try:
            with path.open(encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigError(f"Cannot parse {config_path}: {e}") from e
        if not isinstance(data, dict):
            raise ConfigError(f"{config_path} must contain a mapping at top level")

    for env_name, field in _ENV_OVERRIDES.items():
        value = os.getenv(env_name)
        if value is None:
            continue
        if field == "debug_dir" and not value:
            # An empty NEXTRESET_DEBUG_DIR disables diagnostics.
            data[field] = None
        else:
            data[field] = value

    try:
        return Settings(**data)
    except ValidationError as e:
        raise ConfigError(f"Invalid configuration in {config_path}: {e}") from e

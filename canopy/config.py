"""Application settings: defaults, then canopy.yml, then environment."""

import logging
import os
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_FILE = "canopy.yml"

_ENV_OVERRIDES = {
    "CANOPY_DB_PATH": "db_path",
    "CANOPY_LOG_LEVEL": "log_level",
    "CANOPY_DEFAULT_PROVIDER": "default_provider",
    "CANOPY_DEFAULT_MODEL": "default_model",
}


class LayoutSettings(BaseModel):
    node_width: float = 436
    h_spacing: float = 250
    v_spacing: float = 150
    collapsed_node_height: float = 80
    node_header_height: float = 56
    default_block_height: float = 100
    minimized_block_height: float = 40


class LimitSettings(BaseModel):
    max_content_length: int = 50_000
    max_name_length: int = 100


class Settings(BaseModel):
    db_path: str = "canopy.db"
    log_level: str = "INFO"
    default_provider: str | None = None
    default_model: str | None = None
    system_prompt: str | None = None
    max_tokens: int = 2048
    workspace_cache_size: int = Field(default=64, ge=1)
    cors_origins: list[str] = Field(default_factory=lambda: ["http://localhost:5173"])
    layout: LayoutSettings = Field(default_factory=LayoutSettings)
    limits: LimitSettings = Field(default_factory=LimitSettings)


def load_settings(config_path: str | Path | None = None, *, env_file: bool = True) -> Settings:
    """Build Settings from the YAML file (if any) and environment variables.

    ``config_path`` wins over ``CANOPY_CONFIG``; without either, ``canopy.yml``
    in the working directory is used when it exists.
    """
    if env_file:
        load_dotenv()

    path = config_path or os.environ.get("CANOPY_CONFIG")
    data: dict[str, Any] = {}
    if path is not None:
        data = _read_yaml(Path(path))
    elif Path(DEFAULT_CONFIG_FILE).is_file():
        data = _read_yaml(Path(DEFAULT_CONFIG_FILE))

    for env_name, key in _ENV_OVERRIDES.items():
        value = os.environ.get(env_name)
        if value:
            data[key] = value

    return Settings.model_validate(data)


def _read_yaml(path: Path) -> dict[str, Any]:
    with path.open(encoding="utf-8") as f:
        loaded = yaml.safe_load(f) or {}
    if not isinstance(loaded, dict):
        raise ValueError(f"Config file {path} must contain a mapping, got {type(loaded).__name__}")
    logger.info("Loaded settings from %s", path)
    return loaded

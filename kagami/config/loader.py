"""Load and validate the YAML configuration file."""

from __future__ import annotations

from pathlib import Path

import yaml
from loguru import logger
from pydantic import ValidationError

from kagami.config.schema import Config

DEFAULT_CONFIG_PATH = Path("env.yaml")


class ConfigError(Exception):
    """The configuration file is missing, unreadable or invalid."""


def load_config(path: Path | str | None = None) -> Config:
    """Read ``path`` (default ``env.yaml`` in the working directory) into a Config.

    Raises:
        ConfigError: If the file doesn't exist, isn't YAML, or fails validation.
    """
    config_path = Path(path) if path else DEFAULT_CONFIG_PATH
    logger.debug(f"Loading config from: {config_path}")

    if not config_path.exists():
        raise ConfigError(f"Config file not found: {config_path}")

    try:
        with open(config_path, encoding="utf-8") as f:
            raw = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"Config file {config_path} is not valid YAML: {e}") from e

    if not isinstance(raw, dict):
        raise ConfigError(f"Config file {config_path} must contain a mapping at top level")

    try:
        config = Config.model_validate(raw)
    except ValidationError as e:
        raise ConfigError(f"Invalid config {config_path}:\n{e}") from e

    logger.info(
        f"Config loaded: {len(config.llm_providers)} provider(s), "
        f"models={config.llm.models}, groups={config.napcat.groups}"
    )
    return config

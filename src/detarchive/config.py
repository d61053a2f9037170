"""
Configuration loading.

Settings live in ``$DETARCHIVE_HOME/config.yaml`` (default
``~/.detarchive/config.yaml``). A missing or broken file falls back to
defaults. Configuration shapes how the archiver is constructed; a
build never consults it, or the environment, once running.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

import yaml
from pydantic import ValidationError

from . import DETARCHIVE_HOME
from .models import ArchiverConfig

logger = logging.getLogger("detarchive.config")

CONFIG_FILENAME = "config.yaml"


def default_config_path() -> Path:
    """Where config.yaml is looked up when no path is given."""
    return Path(DETARCHIVE_HOME).expanduser() / CONFIG_FILENAME


def load_config(path: Optional[Path] = None) -> ArchiverConfig:
    """Load archiver configuration from disk.

    Args:
        path: Explicit config file. Defaults to the home config.

    Returns:
        ArchiverConfig loaded from YAML, or defaults.
    """
    config_file = Path(path).expanduser() if path else default_config_path()
    if not config_file.exists():
        logger.debug("No config at %s, using defaults", config_file)
        return ArchiverConfig()
    try:
        data = yaml.safe_load(config_file.read_text(encoding="utf-8")) or {}
        return ArchiverConfig(**data)
    except (yaml.YAMLError, ValidationError, TypeError) as exc:
        logger.warning("Failed to load config %s: %s — using defaults", config_file, exc)
    return ArchiverConfig()


def save_config(config: ArchiverConfig, path: Optional[Path] = None) -> Path:
    """Write configuration as YAML.

    Args:
        config: Settings to persist.
        path: Target file. Defaults to the home config.

    Returns:
        Path: The written file.
    """
    config_file = Path(path).expanduser() if path else default_config_path()
    config_file.parent.mkdir(parents=True, exist_ok=True)
    config_file.write_text(
        yaml.dump(config.model_dump(mode="json"), default_flow_style=False),
        encoding="utf-8",
    )
    return config_file

from __future__ import annotations

import logging
import os
import tomllib
from pathlib import Path
from typing import Any, Dict

logger = logging.getLogger(__name__)

CONFIG_ENV_VAR = "CHATLOBBY_CONFIG"
DEFAULT_CONFIG_PATH = Path("config.toml")


def config_path() -> Path:
    """``$CHATLOBBY_CONFIG`` when set, else ``config.toml`` in the working directory."""

    override = os.getenv(CONFIG_ENV_VAR)
    return Path(override) if override else DEFAULT_CONFIG_PATH


def load_raw_config(path: str | Path | None = None) -> Dict[str, Any]:
    """
    Read the lobby's TOML config.

    A missing file yields ``{}`` so each section falls back to environment
    variables and built-in defaults. A ``chatlobby`` entry that is not a table
    is rejected, since every section class reads ``[chatlobby.<section>]``.
    """
    target = Path(path) if path is not None else config_path()
    if not target.is_file():
        if path is not None or os.getenv(CONFIG_ENV_VAR):
            logger.warning("Config file %s not found; using environment and defaults", target)
        return {}

    with target.open("rb") as handle:
        raw = tomllib.load(handle)

    lobby = raw.get("chatlobby", {})
    if not isinstance(lobby, dict):
        raise ValueError(f"{target}: 'chatlobby' must be a table")
    for section, values in lobby.items():
        if not isinstance(values, dict):
            raise ValueError(f"{target}: [chatlobby.{section}] must be a table")
    return raw


__all__ = ["load_raw_config", "config_path", "CONFIG_ENV_VAR", "DEFAULT_CONFIG_PATH"]

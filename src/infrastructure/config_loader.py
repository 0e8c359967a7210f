"""
infrastructure.config_loader - Load the JSON configuration record.

Top-level keys: agency, agents, team, brief, workflows, jobSchemas.
Relative paths are resolved against the configured base directory.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Union

from domain.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

KNOWN_SECTIONS = ("agency", "agents", "team", "brief", "workflows", "jobSchemas")


def load_config(path: Union[str, Path], base_dir: Union[str, Path, None] = None) -> dict[str, Any]:
    """Read and parse a configuration file.

    Raises:
        FileNotFoundError: the file does not exist.
        ConfigurationError: the file is not a JSON object.
    """
    p = Path(path)
    if not p.is_absolute() and base_dir is not None:
        p = Path(base_dir) / p
    if not p.exists():
        raise FileNotFoundError(f"Config file not found: {p}")

    try:
        with open(p, "r", encoding="utf-8") as f:
            data = json.load(f)
    except json.JSONDecodeError as exc:
        raise ConfigurationError(f"Invalid JSON in {p}: {exc}") from exc

    if not isinstance(data, dict):
        raise ConfigurationError(f"Config {p} must contain a JSON object")

    unknown = [k for k in data if k not in KNOWN_SECTIONS]
    if unknown:
        logger.debug("Config %s has extra section(s): %s", p, ", ".join(unknown))
    logger.info("Loaded configuration from %s", p)
    return data

"""
Configuration Loader (``fulfillment_config.loader``).

Responsibility
--------------
Reads an engine configuration YAML file into an ``EngineConfig``.  A missing
file is an error; an empty file yields the defaults.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Unknown keys or out-of-range values  -> ``ValueError``.
"""

from __future__ import annotations

import hashlib
import json
import logging
from pathlib import Path
from typing import Any

import yaml

from fulfillment_config.schema import EngineConfig

_logger = logging.getLogger("fulfillment_kernel.config")


def load_yaml_file(path: Path | str) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
        ValueError: if the document is not a mapping.
    """
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"{path}: top level must be a mapping, got {type(data).__name__}")
    return data


def compute_checksum(data: dict[str, Any]) -> str:
    """SHA-256 of the canonical JSON form; identical data, identical hash."""
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()


def load_config(path: Path | str) -> EngineConfig:
    """
    Load ``path`` into an ``EngineConfig``.

    The settings may sit at the top level or under an ``engine:`` key.
    """
    data = load_yaml_file(path)
    section = data.get("engine", data)
    if not isinstance(section, dict):
        raise ValueError(f"{path}: 'engine' must be a mapping")
    config = EngineConfig.from_dict(section)
    _logger.info(
        "FULFILLMENT_CONFIG_TRACE",
        extra={
            "path": str(path),
            "checksum": compute_checksum(config.to_dict()),
        },
    )
    return config

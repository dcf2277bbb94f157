"""
Configuration Loader (``repair_config.loader``).

Responsibility
--------------
Loads shop configuration YAML files and parses them into typed
``repair_config.schema.ShopConfig`` instances.

Architecture position
---------------------
**Config layer** -- infrastructure tooling. Depends on the kernel for value
types only.

Invariants enforced
-------------------
* Parse errors raise ``InvalidConfigError``; no silent defaults for
  ``shop_id``.
* ``compute_checksum`` produces a deterministic SHA-256 hash for
  configuration identity and change detection.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* A file holding something other than a mapping -> ``InvalidConfigError``.
"""

from __future__ import annotations

import hashlib
import json
from pathlib import Path
from typing import Any

import yaml

from repair_config.schema import ShopConfig
from repair_kernel.exceptions import InvalidConfigError
from repair_kernel.logging_config import get_logger

logger = get_logger("config.loader")


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
        InvalidConfigError: if the document is not a mapping.
    """
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise InvalidConfigError(str(path), "top-level document must be a mapping")
    return data


def compute_checksum(data: dict[str, Any]) -> str:
    """SHA-256 of the canonical JSON serialization of ``data``."""
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()


def load_shop_config(path: Path | str) -> ShopConfig:
    """Load and validate one shop's configuration file."""
    path = Path(path)
    data = load_yaml_file(path)
    # A file may nest everything under a top-level "shop" key.
    if set(data) == {"shop"} and isinstance(data["shop"], dict):
        data = data["shop"]

    config = ShopConfig.from_dict(data)
    logger.info(
        "shop_config_loaded",
        extra={
            "path": str(path),
            "shop_id": config.shop_id,
            "checksum": compute_checksum(data),
        },
    )
    return config

"""
Configuration loader (``billing_config.loader``).

Responsibility
--------------
Reads a YAML file and turns it into a validated ``BillingConfig``.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* A top-level document that is not a mapping  -> ``ValueError``.
* Unknown keys  -> ``TypeError`` from the dataclass constructor.
* Invalid values  -> ``ValueError`` from ``__post_init__`` validation.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml

from billing_config.schema import BillingConfig


def load_yaml_file(path: Path) -> dict[str, Any]:
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
        raise ValueError(f"{path}: expected a mapping at the top level, got {type(data).__name__}")
    return data


def load_config(path: Path | str) -> BillingConfig:
    return BillingConfig.from_dict(load_yaml_file(Path(path)))

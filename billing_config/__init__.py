"""
billing_config -- single public entrypoint for billing configuration.

Responsibility:
    ``get_active_config()`` is the only way the service layer obtains
    configuration.  It loads the packaged ``defaults.yaml`` unless a path
    is passed or the ``BILLING_CONFIG`` environment variable names one.

Architecture position:
    Configuration sits above ``billing_kernel`` and below
    ``billing_services``.  The kernel never imports from this package;
    services receive plain values (policy, limits, prefixes) instead.

Failure modes:
    - ``FileNotFoundError`` for a missing override file.
    - ``ValueError`` / ``TypeError`` for invalid or unknown settings.

Audit relevance:
    Every successful call logs ``billing_config_loaded`` with the source
    path, so a run's policy can be traced to the file that set it.
"""

from __future__ import annotations

import os
from pathlib import Path

from billing_config.loader import load_config, load_yaml_file
from billing_config.schema import BackfillConfig, BillingConfig, InvoicingConfig, NumberingConfig
from billing_kernel.logging_config import get_logger

logger = get_logger("config")

DEFAULT_CONFIG_PATH = Path(__file__).parent / "defaults.yaml"
CONFIG_ENV_VAR = "BILLING_CONFIG"


def get_active_config(path: Path | str | None = None) -> BillingConfig:
    """Load configuration from ``path``, ``$BILLING_CONFIG`` or the packaged defaults."""
    source = Path(path or os.environ.get(CONFIG_ENV_VAR) or DEFAULT_CONFIG_PATH)
    config = load_config(source)
    logger.info(
        "billing_config_loaded",
        extra={"source": str(source), "backfill_policy": config.backfill.policy.value},
    )
    return config


__all__ = [
    "BackfillConfig",
    "BillingConfig",
    "CONFIG_ENV_VAR",
    "DEFAULT_CONFIG_PATH",
    "InvoicingConfig",
    "NumberingConfig",
    "get_active_config",
    "load_config",
    "load_yaml_file",
]

"""
Billing configuration schema.

Typed, validated settings for period backfill, document numbering and
invoicing.  Values come from ``defaults.yaml`` or a deployment override
file; see ``billing_config.loader``.
"""

from dataclasses import dataclass, field
from typing import Any, Self

from billing_kernel.domain.recurrence import DEFAULT_MAX_PERIODS
from billing_kernel.domain.types import BackfillPolicy
from billing_kernel.logging_config import get_logger

logger = get_logger("config.schema")


@dataclass
class BackfillConfig:
    """Period generation settings."""

    policy: BackfillPolicy = BackfillPolicy.TASK_DRIVEN
    max_periods_per_run: int = DEFAULT_MAX_PERIODS

    def __post_init__(self):
        try:
            self.policy = BackfillPolicy(self.policy)
        except ValueError:
            valid = sorted(p.value for p in BackfillPolicy)
            raise ValueError(f"policy must be one of {valid}, got '{self.policy}'") from None
        if self.max_periods_per_run <= 0:
            raise ValueError("max_periods_per_run must be positive")


@dataclass
class NumberingConfig:
    """Invoice and receipt number formats."""

    invoice_prefix: str = "INV-"
    invoice_width: int = 5
    invoice_start: int = 1
    receipt_prefix: str = "RV-"
    receipt_width: int = 5

    def __post_init__(self):
        if not self.invoice_prefix or not self.receipt_prefix:
            raise ValueError("number prefixes cannot be empty")
        if self.invoice_prefix == self.receipt_prefix:
            raise ValueError("invoice_prefix and receipt_prefix must differ")
        if self.invoice_width <= 0 or self.receipt_width <= 0:
            raise ValueError("number widths must be positive")
        if self.invoice_start <= 0:
            raise ValueError("invoice_start must be positive")


@dataclass
class InvoicingConfig:
    payment_terms_days: int = 30

    def __post_init__(self):
        if self.payment_terms_days < 0:
            raise ValueError("payment_terms_days cannot be negative")


@dataclass
class BillingConfig:
    """
    Top-level configuration for the billing cascade.

        config = BillingConfig.from_dict(load_yaml_file(path))
    """

    backfill: BackfillConfig = field(default_factory=BackfillConfig)
    numbering: NumberingConfig = field(default_factory=NumberingConfig)
    invoicing: InvoicingConfig = field(default_factory=InvoicingConfig)

    def __post_init__(self):
        logger.info(
            "billing_config_initialized",
            extra={
                "backfill_policy": self.backfill.policy.value,
                "max_periods_per_run": self.backfill.max_periods_per_run,
                "invoice_prefix": self.numbering.invoice_prefix,
                "receipt_prefix": self.numbering.receipt_prefix,
                "payment_terms_days": self.invoicing.payment_terms_days,
            },
        )

    @classmethod
    def with_defaults(cls) -> Self:
        logger.info("billing_config_created_with_defaults")
        return cls()

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Self:
        """Create config from a parsed YAML mapping.  Unknown keys raise TypeError."""
        logger.info(
            "billing_config_loading_from_dict",
            extra={"keys": sorted(data.keys())},
        )
        return cls(
            backfill=BackfillConfig(**(data.get("backfill") or {})),
            numbering=NumberingConfig(**(data.get("numbering") or {})),
            invoicing=InvoicingConfig(**(data.get("invoicing") or {})),
        )

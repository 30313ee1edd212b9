"""
billing_services -- orchestration over the billing kernel.

Responsibility:
    Wires the kernel services into the ordered billing cascade (period
    generation, tasks, aggregation, invoice, ledger) and runs periodic
    re-evaluation of recurring works.  This is the only layer that reads
    configuration or defaults to wall-clock time.

Architecture position:
    Services -- above ``billing_kernel`` and ``billing_config``.
        billing_services/ -> billing_kernel/, billing_config/  (allowed)
        billing_kernel/   -> billing_services/                  (FORBIDDEN)
"""

from billing_services.cascade import BillingCascade, CascadeResult
from billing_services.recurrence_scheduler import RecurrenceScheduler

__all__ = [
    "BillingCascade",
    "CascadeResult",
    "RecurrenceScheduler",
]

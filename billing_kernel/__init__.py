"""
Billing Kernel

Recurring engagement billing with:
- Calendar-aligned period backfill under an explicit policy
- Task materialization from service templates
- Completion roll-up from tasks to periods and works
- Draft invoice generation on completion
- Balanced double-entry posting driven by invoice status
"""

__version__ = "0.1.0"

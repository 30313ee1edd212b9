"""Database layer - engine, base classes and money helpers."""

from billing_kernel.db.base import UUID, Base, TrackedBase, UUIDString
from billing_kernel.db.engine import (
    create_tables,
    get_engine,
    get_session,
    init_engine_from_url,
    session_scope,
)
from billing_kernel.db.types import round_money

__all__ = [
    "get_engine",
    "get_session",
    "create_tables",
    "init_engine_from_url",
    "session_scope",
    "Base",
    "TrackedBase",
    "UUIDString",
    "UUID",
    "round_money",
]

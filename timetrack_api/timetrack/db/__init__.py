"""
Database layer: settings, the async engine and sessions, and the Row-Level
Security tenant context (the `app.tenant_id` GUC) every tenant-scoped query
relies on.

Importing this package registers all ORM models with `Base.metadata`.
"""

from .base import Base
from .config import Settings, get_settings
from .session import (
    get_async_session,
    get_engine,
    get_session_maker,
    set_current_tenant,
    tenant_context,
)
from . import models as models  # noqa: F401

__all__ = [
    "Base",
    "Settings",
    "get_settings",
    "get_engine",
    "get_session_maker",
    "get_async_session",
    "set_current_tenant",
    "tenant_context",
    "models",
]

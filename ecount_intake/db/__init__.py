"""Database package."""

from .database import get_db, init_db, AsyncSessionLocal, Base
from .models import (
    Organization,
    EcountConnection,
    EcountSessionRow,
    EcountLog,
    OrderLog,
)
from .repositories import (
    SqlSessionStore,
    SqlAuditSink,
    SqlCredentialsStore,
    ConnectionRepository,
    OrderLogRepository,
    get_or_create_organization,
)

__all__ = [
    "get_db",
    "init_db",
    "AsyncSessionLocal",
    "Base",
    "Organization",
    "EcountConnection",
    "EcountSessionRow",
    "EcountLog",
    "OrderLog",
    "SqlSessionStore",
    "SqlAuditSink",
    "SqlCredentialsStore",
    "ConnectionRepository",
    "OrderLogRepository",
    "get_or_create_organization",
]

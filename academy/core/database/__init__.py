"""
Database subsystem for Academy.

Async SQLAlchemy engine and session management, ORM base classes and the
store retry policy.
"""

from academy.core.database.base import Base, IdMixin, TimestampMixin, utcnow
from academy.core.database.retry_policy import RetryConfig, RetryPolicy, retry_until_found
from academy.core.database.service import (
    DatabaseInitializationError,
    DatabaseNotInitializedError,
    DatabaseService,
)

__all__ = [
    # ORM Base & Mixins
    "Base",
    "IdMixin",
    "TimestampMixin",
    "utcnow",
    # Main service
    "DatabaseService",
    # Exceptions
    "DatabaseInitializationError",
    "DatabaseNotInitializedError",
    # Retries
    "RetryConfig",
    "RetryPolicy",
    "retry_until_found",
]

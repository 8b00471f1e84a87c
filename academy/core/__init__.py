"""
Core infrastructure layer for Academy.

Purpose
-------
A single import surface for the infrastructure subsystems:

- Configuration (Config, Environment)
- Database (DatabaseService, retries)
- Logging (logger factory, request context)
- Event bus
- Infrastructure exceptions

Design Decisions
----------------
- Thin: no logic, no configuration, no I/O on import.
- Domain exceptions stay in `academy.modules.shared.exceptions`; feature
  modules import from their own domains.
"""

from __future__ import annotations

from academy.core.config import Config, Environment
from academy.core.database import DatabaseService, RetryPolicy, retry_until_found
from academy.core.event import EventBus, EventNames
from academy.core.exceptions import (
    AcademyInfrastructureException,
    ConfigurationError,
    DuplicateRecordError,
    ErrorSeverity,
    StoreError,
    StoreUnavailableError,
)
from academy.core.logging import LogContext, get_logger, setup_logging, shutdown_logging

__all__ = [
    # Configuration
    "Config",
    "Environment",
    # Database
    "DatabaseService",
    "RetryPolicy",
    "retry_until_found",
    # Events
    "EventBus",
    "EventNames",
    # Logging
    "LogContext",
    "get_logger",
    "setup_logging",
    "shutdown_logging",
    # Infrastructure Exceptions
    "AcademyInfrastructureException",
    "ConfigurationError",
    "StoreError",
    "StoreUnavailableError",
    "DuplicateRecordError",
    "ErrorSeverity",
]

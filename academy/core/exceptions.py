"""
Infrastructure exceptions for Academy.

Purpose
-------
Define the structured exception hierarchy for infrastructure-level concerns:
store failures, uniqueness violations surfaced by the store, and
configuration errors.

Design Notes
------------
- All infrastructure exceptions inherit from `AcademyInfrastructureException`.
- Each exception carries:
  - `message`: human-readable description
  - `details`: additional structured context (dict)
  - `severity`: `ErrorSeverity` value for logging/alerting
  - `is_retryable`: whether the operation can be retried
  - `error_code`: short, stable identifier for programmatic use
- `DuplicateRecordError` is how a store reports a rejected insert on a
  uniqueness constraint. Services treat it as "already done", not a failure.
- Helpers that classify exceptions live in `academy.modules.shared.exceptions`.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, Optional


class ErrorSeverity(Enum):
    """Error severity levels for logging and alerting."""

    DEBUG = "debug"  # duplicate completions and badge races
    INFO = "info"  # rejected input, failed quizzes
    WARNING = "warning"  # store unreachable, retried
    ERROR = "error"
    CRITICAL = "critical"  # bad configuration


class AcademyInfrastructureException(Exception):
    """
    Base exception for all Academy infrastructure-level errors.

    Args:
        message: Human-readable error message
        details: Additional structured data about the error
        severity: Error severity level for logging handlers
        is_retryable: Whether the operation can be retried
        error_code: Optional code for programmatic handling
    """

    DEFAULT_SEVERITY: ErrorSeverity = ErrorSeverity.ERROR
    DEFAULT_RETRYABLE: bool = False

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        severity: Optional[ErrorSeverity] = None,
        is_retryable: Optional[bool] = None,
        error_code: Optional[str] = None,
    ) -> None:
        self.message: str = message
        self.details: Dict[str, Any] = details or {}
        self.severity: ErrorSeverity = severity or self.DEFAULT_SEVERITY
        self.is_retryable: bool = (
            is_retryable if is_retryable is not None else self.DEFAULT_RETRYABLE
        )
        self.error_code: str = error_code or self.__class__.__name__
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for logging/serialization."""
        return {
            "error_type": self.__class__.__name__,
            "error_code": self.error_code,
            "message": self.message,
            "details": self.details,
            "severity": self.severity.value,
            "is_retryable": self.is_retryable,
        }

    def __str__(self) -> str:
        details_str = f" | Details: {self.details}" if self.details else ""
        return f"[{self.error_code}] {self.message}{details_str}"

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}"
            f"({self.error_code!r}, {self.message!r}, details={self.details!r})"
        )


class ConfigurationError(AcademyInfrastructureException):
    """
    Raised when a configuration key is invalid or missing.

    Args:
        config_key: The configuration key that has issues
        message: Description of the configuration problem
    """

    DEFAULT_SEVERITY = ErrorSeverity.CRITICAL
    DEFAULT_RETRYABLE = False

    def __init__(self, config_key: str, message: str) -> None:
        self.config_key = config_key
        super().__init__(
            f"Configuration error for {config_key}: {message}",
            details={"config_key": config_key, "message": message},
            error_code="CONFIG_ERROR",
        )


class StoreError(AcademyInfrastructureException):
    """
    Raised when a store operation fails for a non-domain reason.

    Args:
        operation: Stable name of the store operation (e.g. "store.award_xp")
        original_error: The underlying exception, when there is one
    """

    DEFAULT_SEVERITY = ErrorSeverity.ERROR
    DEFAULT_RETRYABLE = False

    def __init__(
        self,
        operation: str,
        original_error: Optional[BaseException] = None,
        message: Optional[str] = None,
    ) -> None:
        self.operation = operation
        self.original_error = original_error
        reason = message or (str(original_error) if original_error else "unknown failure")
        super().__init__(
            f"Store error during {operation}: {reason}",
            details={
                "operation": operation,
                "error": str(original_error) if original_error else reason,
                "error_type": type(original_error).__name__ if original_error else None,
            },
            error_code="STORE_ERROR",
        )


class StoreUnavailableError(StoreError):
    """
    Raised for network-class store failures (connection drops, timeouts).

    These are the only failures read paths retry.
    """

    DEFAULT_SEVERITY = ErrorSeverity.WARNING
    DEFAULT_RETRYABLE = True

    def __init__(
        self,
        operation: str,
        original_error: Optional[BaseException] = None,
        message: Optional[str] = None,
    ) -> None:
        super().__init__(operation, original_error, message)
        self.error_code = "STORE_UNAVAILABLE"


class DuplicateRecordError(AcademyInfrastructureException):
    """
    Raised when the store rejects an insert on a uniqueness constraint.

    Args:
        entity: Record type (e.g. "lesson_completion", "user_achievement")
        key: The natural key that collided
    """

    DEFAULT_SEVERITY = ErrorSeverity.DEBUG
    DEFAULT_RETRYABLE = False

    def __init__(self, entity: str, key: Dict[str, Any]) -> None:
        self.entity = entity
        self.key = key
        super().__init__(
            f"Duplicate {entity}: {key}",
            details={"entity": entity, "key": key},
            error_code="DUPLICATE_RECORD",
        )


"""
Base Service Foundation

Purpose
-------
Foundation class for Academy domain services. Services implement the
business rules, talk to the injected store and publish domain events.

This base class provides:
- Structured logging with operation context
- Safe config access
- Event emission helpers
- Input validation that raises domain `ValidationError`

What this class does NOT do:
- Own the store (each service receives it explicitly)
- Manage transactions
- Contain progression logic

Usage
-----
    class ProgressService(BaseService):
        def __init__(self, store, config_manager, event_bus, logger):
            super().__init__(config_manager, event_bus, logger)
            self._store = store
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Dict, Optional

from academy.core.exceptions import ConfigurationError
from academy.modules.shared.exceptions import ValidationError

if TYPE_CHECKING:
    from logging import Logger

    from academy.core.config.manager import ConfigManager
    from academy.core.event.bus import EventBus


class BaseService:
    """
    Base class for all domain services.

    Args:
        config_manager: Gamification configuration manager
        event_bus: Event bus for domain events
        logger: Structured logger instance
    """

    def __init__(
        self,
        config_manager: ConfigManager,
        event_bus: EventBus,
        logger: Logger,
    ) -> None:
        self._config = config_manager
        self._events = event_bus
        self.log = logger

    def get_config(
        self, key: str, default: Optional[Any] = None, required: bool = False
    ) -> Any:
        """
        Safely retrieve a configuration value.

        Raises:
            ConfigurationError: If required=True and key is missing
        """
        value = self._config.get(key, default)
        if required and value is None:
            raise ConfigurationError(
                key, f"Required configuration key '{key}' is missing"
            )
        return value

    def get_int_config(self, key: str, default: int) -> int:
        """Integer config value; a non-integer setting is a configuration error."""
        value = self.get_config(key, default)
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise ConfigurationError(key, f"expected an integer, got {value!r}")
        return int(value)

    async def emit_event(
        self,
        event_type: str,
        data: Dict[str, Any],
        context: Optional[Dict[str, Any]] = None,
    ) -> None:
        """
        Publish a domain event.

        Args:
            event_type: Event name (e.g. "lesson.completed")
            data: Event payload data
            context: Optional additional context merged into the payload
        """
        await self._events.publish(event_type, {**data, **(context or {})})

    def log_operation(self, operation: str, **context: Any) -> None:
        self.log.info(
            f"Service operation: {operation}",
            extra={"operation": operation, **context},
        )

    def log_error(
        self,
        operation: str,
        error: BaseException,
        **context: Any,
    ) -> None:
        """
        Log a service error with full context.

        Args:
            operation: Name of the operation that failed
            error: The exception that occurred
            **context: Additional context data
        """
        self.log.error(
            f"Service error during {operation}: {error}",
            extra={
                "operation": operation,
                "error_type": type(error).__name__,
                "error_message": str(error),
                **context,
            },
        )

    def validate_non_negative_int(self, value: Any, name: str) -> None:
        if isinstance(value, bool) or not isinstance(value, int) or value < 0:
            raise ValidationError(
                name, f"{name} must be a non-negative integer, got {value!r}"
            )

    def validate_range(self, value: Any, name: str, min_val: int, max_val: int) -> None:
        """
        Validate that `value` is an integer within [min_val, max_val].

        Raises:
            ValidationError: If value is not an integer or out of range
        """
        if isinstance(value, bool) or not isinstance(value, int):
            raise ValidationError(name, f"{name} must be an integer, got {value!r}")
        if not (min_val <= value <= max_val):
            raise ValidationError(
                name,
                f"{name} must be between {min_val} and {max_val}, got {value}",
            )

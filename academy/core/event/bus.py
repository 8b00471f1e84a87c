"""
EventBus for Academy domain events.

Services publish facts (`lesson.completed`, `course.completed`,
`user.leveled_up`, `badge.awarded`); embedding applications subscribe to
drive notifications, analytics or UI refreshes. Publishing never raises
because of a listener.

Subscriptions match exact names or shell-style patterns such as
`course.*` and `*`.
"""

from __future__ import annotations

import inspect
from fnmatch import fnmatchcase
from typing import TYPE_CHECKING, Any, Optional

from academy.core.event.scheduler import EventScheduler
from academy.core.event.types import (
    CallbackType,
    EventListener,
    EventPayload,
    ListenerPriority,
)
from academy.core.logging.logger import get_logger

if TYPE_CHECKING:
    from academy.core.config.manager import ConfigManager

logger = get_logger(__name__)


class EventBus:
    """
    In-process pub/sub with tiered concurrency.

    Examples
    --------
    >>> bus = EventBus()
    >>> bus.subscribe("user.leveled_up", on_level_up, priority=ListenerPriority.HIGH)
    >>> await bus.publish("user.leveled_up", {"user_id": "u1", "new_level": 3})
    """

    def __init__(
        self,
        config_manager: Optional["ConfigManager"] = None,
        *,
        critical_timeout_seconds: Optional[float] = None,
        high_timeout_seconds: Optional[float] = None,
    ) -> None:
        self._config_manager = config_manager
        self._listeners: dict[str, list[EventListener]] = {}
        self._scheduler = EventScheduler()

        self._critical_timeout = self._load_timeout(
            "events.listener_timeout.critical_seconds", critical_timeout_seconds, 5.0
        )
        self._high_timeout = self._load_timeout(
            "events.listener_timeout.high_seconds", high_timeout_seconds, 5.0
        )

    def _load_timeout(self, key: str, override: Optional[float], default: float) -> float:
        """override, then config, then default."""
        if override is not None:
            return float(override)
        if self._config_manager is None:
            return float(default)

        value = self._config_manager.get(key, default)
        try:
            return float(value)
        except (TypeError, ValueError):
            logger.warning(
                "Invalid listener timeout in config, using default",
                extra={"config_key": key, "default_value": default, "value": repr(value)},
            )
            return float(default)

    @staticmethod
    def _validate_callback_signature(callback: CallbackType) -> None:
        try:
            sig = inspect.signature(callback)
        except (TypeError, ValueError):
            return

        params = list(sig.parameters.values())
        if len(params) != 1:
            callback_name = getattr(callback, "__qualname__", None) or repr(callback)
            raise ValueError(
                f"Event listener must accept exactly 1 parameter (EventPayload), "
                f"got {len(params)} parameters for '{callback_name}'"
            )

    # ------------------------------------------------------------------ #
    # Subscription API
    # ------------------------------------------------------------------ #

    def subscribe(
        self,
        event_name: str,
        callback: CallbackType,
        *,
        priority: ListenerPriority = ListenerPriority.NORMAL,
        identifier: Optional[str] = None,
        once: bool = False,
    ) -> str:
        """
        Register `callback` for `event_name` (or a wildcard pattern).

        Returns the listener identifier. Registering the same identifier twice
        for one event is ignored with a warning.
        """
        self._validate_callback_signature(callback)

        listener = EventListener.from_callback(
            event_name=event_name,
            callback=callback,
            priority=priority,
            identifier=identifier,
            once=once,
        )

        bucket = self._listeners.setdefault(event_name, [])
        if any(existing.identifier == listener.identifier for existing in bucket):
            logger.warning(
                "EventBus: duplicate listener prevented",
                extra={"event_name": event_name, "listener_id": listener.identifier},
            )
            return listener.identifier

        bucket.append(listener)
        logger.debug(
            "EventBus: subscribed listener",
            extra={
                "event_name": event_name,
                "listener_id": listener.identifier,
                "priority": listener.priority.name,
                "once": listener.once,
            },
        )
        return listener.identifier

    def unsubscribe(self, event_name: str, identifier: str) -> bool:
        bucket = self._listeners.get(event_name, [])
        remaining = [lst for lst in bucket if lst.identifier != identifier]
        removed = len(remaining) != len(bucket)

        if remaining:
            self._listeners[event_name] = remaining
        else:
            self._listeners.pop(event_name, None)

        if removed:
            logger.debug(
                "EventBus: unsubscribed listener",
                extra={"event_name": event_name, "listener_id": identifier},
            )
        return removed

    def clear(self) -> None:
        total = self.get_listener_count()
        self._listeners.clear()
        logger.info("EventBus: cleared all listeners", extra={"previous_listener_count": total})

    # ------------------------------------------------------------------ #
    # Publish API
    # ------------------------------------------------------------------ #

    def _extract_listeners(self, event_name: str) -> list[EventListener]:
        matched: list[EventListener] = []
        for key in list(self._listeners):
            if key != event_name and not fnmatchcase(event_name, key):
                continue
            bucket = self._listeners[key]
            matched.extend(bucket)

            # one-shot listeners leave the registry before they run
            kept = [lst for lst in bucket if not lst.once]
            if kept:
                self._listeners[key] = kept
            else:
                del self._listeners[key]

        matched.sort(key=lambda lst: lst.priority.value)
        return matched

    async def publish(self, event_name: str, data: EventPayload) -> list[Any]:
        """
        Deliver `data` to every listener matching `event_name`.

        Returns results from CRITICAL, HIGH and NORMAL listeners.
        """
        listeners = self._extract_listeners(event_name)

        logger.debug(
            "EventBus: publishing event",
            extra={
                "event_name": event_name,
                "payload_keys": list(data.keys()),
                "listener_count": len(listeners),
            },
        )

        if not listeners:
            return []

        return await self._scheduler.execute(
            event_name=event_name,
            payload=data,
            listeners=listeners,
            logger=logger,
            critical_timeout=self._critical_timeout,
            high_timeout=self._high_timeout,
        )

    async def drain(self) -> None:
        """Wait for fire-and-forget listeners to finish (shutdown and tests)."""
        await self._scheduler.drain()

    # ------------------------------------------------------------------ #
    # Introspection
    # ------------------------------------------------------------------ #

    def get_listener_count(self, event_name: Optional[str] = None) -> int:
        if event_name is None:
            return sum(len(bucket) for bucket in self._listeners.values())
        return sum(
            len(bucket)
            for key, bucket in self._listeners.items()
            if key == event_name or fnmatchcase(event_name, key)
        )

    def get_all_events(self) -> list[str]:
        return sorted(self._listeners)

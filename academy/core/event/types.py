"""
Core event types for the Academy EventBus.

Priority Levels
---------------
- CRITICAL (0): sequential, awaited, timeout-protected.
- HIGH (10): sequential, awaited, timeout-protected.
- NORMAL (50): concurrent, awaited.
- LOW (100): fire-and-forget.

Event names published by the engine
-----------------------------------
- `lesson.completed`
- `course.completed`
- `user.leveled_up`
- `badge.awarded`
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Optional, Union

# Should stay JSON-serializable
EventPayload = dict[str, Any]


class ListenerPriority(Enum):
    """
    Priority levels for event listeners.

    Lower values run earlier.
    """

    CRITICAL = 0
    HIGH = 10
    NORMAL = 50
    LOW = 100


CallbackType = Union[
    Callable[[EventPayload], Any],
    Callable[[EventPayload], Awaitable[Any]],
]


@dataclass(slots=True, frozen=True)
class EventListener:
    """
    Immutable registration of one listener.

    Attributes
    ----------
    callback:
        Async or sync callable invoked with the event payload.
    priority:
        Determines execution order and concurrency.
    identifier:
        Unique string used for deduplication and unsubscription.
    once:
        Removed from the registry before its first execution.
    """

    callback: CallbackType
    priority: ListenerPriority
    identifier: str
    once: bool = False

    @classmethod
    def from_callback(
        cls,
        event_name: str,
        callback: CallbackType,
        priority: ListenerPriority,
        identifier: Optional[str],
        once: bool,
    ) -> EventListener:
        """Build a listener, deriving `module.qualname@event` when no identifier is given."""
        if identifier is None:
            module = getattr(callback, "__module__", "unknown")
            qualname = getattr(
                callback, "__qualname__", getattr(callback, "__name__", "callback")
            )
            identifier = f"{module}.{qualname}@{event_name}"

        return cls(
            callback=callback,
            priority=priority,
            identifier=identifier,
            once=once,
        )


class EventNames:
    LESSON_COMPLETED = "lesson.completed"
    COURSE_COMPLETED = "course.completed"
    USER_LEVELED_UP = "user.leveled_up"
    BADGE_AWARDED = "badge.awarded"

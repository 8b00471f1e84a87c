"""
Event system for Academy.

Instance-based EventBus; each engine owns one.
"""

from .bus import EventBus
from .types import (
    CallbackType,
    EventListener,
    EventNames,
    EventPayload,
    ListenerPriority,
)

__all__ = [
    "EventBus",
    "EventPayload",
    "EventNames",
    "ListenerPriority",
    "EventListener",
    "CallbackType",
]

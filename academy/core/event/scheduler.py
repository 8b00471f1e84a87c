"""
Tiered listener execution for the EventBus.

- CRITICAL / HIGH: sequential, awaited, optional timeout per listener
- NORMAL: concurrent via asyncio.gather, awaited
- LOW: background tasks, not awaited

Every listener runs isolated: an exception or timeout is logged and the
listener's result becomes None.
"""

from __future__ import annotations

import asyncio
import inspect
from logging import Logger
from typing import Any, Optional

from academy.core.event.types import EventListener, EventPayload, ListenerPriority


class EventScheduler:
    def __init__(self) -> None:
        # Strong references so LOW-tier tasks are not garbage collected mid-run
        self._background_tasks: set[asyncio.Task[Any]] = set()

    async def execute(
        self,
        *,
        event_name: str,
        payload: EventPayload,
        listeners: list[EventListener],
        logger: Logger,
        critical_timeout: Optional[float],
        high_timeout: Optional[float],
    ) -> list[Any]:
        """
        Run `listeners` (already priority-sorted) for one published event.

        Returns results of CRITICAL, HIGH and NORMAL listeners in that order.
        """
        critical = [lst for lst in listeners if lst.priority == ListenerPriority.CRITICAL]
        high = [lst for lst in listeners if lst.priority == ListenerPriority.HIGH]
        normal = [lst for lst in listeners if lst.priority == ListenerPriority.NORMAL]
        low = [lst for lst in listeners if lst.priority == ListenerPriority.LOW]

        results: list[Any] = []

        for listener in critical:
            results.append(
                await self._run_with_timeout(
                    listener, event_name, payload, logger, critical_timeout
                )
            )

        for listener in high:
            results.append(
                await self._run_with_timeout(listener, event_name, payload, logger, high_timeout)
            )

        if normal:
            normal_results = await asyncio.gather(
                *[self._run_listener(lst, event_name, payload, logger) for lst in normal]
            )
            results.extend(normal_results)

        if low:
            loop = asyncio.get_running_loop()
            for listener in low:
                task = loop.create_task(
                    self._run_listener(listener, event_name, payload, logger),
                    name=f"eventbus-low-{event_name}-{listener.identifier}",
                )
                self._background_tasks.add(task)
                task.add_done_callback(self._background_tasks.discard)

        return results

    async def _run_with_timeout(
        self,
        listener: EventListener,
        event_name: str,
        payload: EventPayload,
        logger: Logger,
        timeout: Optional[float],
    ) -> Any:
        if timeout is None or timeout <= 0:
            return await self._run_listener(listener, event_name, payload, logger)

        try:
            return await asyncio.wait_for(
                self._run_listener(listener, event_name, payload, logger),
                timeout=timeout,
            )
        except asyncio.TimeoutError:
            logger.error(
                "EventBus listener timeout",
                extra={
                    "event_name": event_name,
                    "listener_id": listener.identifier,
                    "priority": listener.priority.name,
                    "timeout_seconds": timeout,
                },
            )
            return None

    async def _run_listener(
        self,
        listener: EventListener,
        event_name: str,
        payload: EventPayload,
        logger: Logger,
    ) -> Any:
        try:
            if inspect.iscoroutinefunction(listener.callback):
                return await listener.callback(payload)
            return listener.callback(payload)

        except Exception as exc:
            logger.error(
                "EventBus listener failed",
                extra={
                    "event_name": event_name,
                    "listener_id": listener.identifier,
                    "priority": listener.priority.name,
                    "error": str(exc),
                    "error_type": type(exc).__name__,
                },
                exc_info=True,
            )
            return None

    def get_background_task_count(self) -> int:
        return len(self._background_tasks)

    async def drain(self) -> None:
        """Wait for all outstanding LOW-tier tasks."""
        if self._background_tasks:
            await asyncio.gather(*list(self._background_tasks), return_exceptions=True)

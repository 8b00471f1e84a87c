"""
Store Retry Policy

Purpose
-------
Execute async store operations with retry semantics for transient failures,
using exponential backoff, optional jitter and structured logs per attempt.

Also provides `retry_until_found`, the bounded re-read used when a record
written by another process (enrollment, for instance) may not be visible yet.

Responsibilities
----------------
- Execute async operations with retry logic
- Classify errors as retriable or non-retriable
- Compute exponential backoff with jitter
- Log each failed attempt and the final give-up

Non-Responsibilities
--------------------
- Transaction management (the store owns its transactions)
- Business rules

Retry Classification
--------------------
- Retriable: `StoreUnavailableError` (network-class failures surfaced by a store)
- Non-retriable: everything else, including `DuplicateRecordError` and
  domain exceptions

Backoff Strategy
----------------
min(initial_backoff_ms * 2^(attempt-1), max_backoff_ms) + random(0, jitter_ms)

Configuration
-------------
All values sourced from Config:
- STORE_RETRY_MAX_ATTEMPTS (default: 2)
- STORE_RETRY_INITIAL_BACKOFF_MS (default: 500)
- STORE_RETRY_MAX_BACKOFF_MS (default: 2000)
- STORE_RETRY_JITTER_MS (default: 0)

Usage Example
-------------
>>> retry_policy = RetryPolicy.from_config()
>>> progress = await retry_policy.execute(
...     lambda: store.get_course_progress(user_id, course_id),
...     operation_name="progress.get_course_progress",
...     context={"user_id": user_id, "course_id": course_id},
... )
"""

from __future__ import annotations

import asyncio
import random
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional, Tuple, Type, TypeVar

from academy.core.config.config import Config
from academy.core.exceptions import StoreUnavailableError
from academy.core.logging.logger import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

SleepFn = Callable[[float], Awaitable[Any]]


# ============================================================================
# Configuration
# ============================================================================


@dataclass
class RetryConfig:
    """
    Configuration for store retry behavior.

    Attributes
    ----------
    max_attempts : int
        Maximum number of attempts (including initial attempt).
    initial_backoff_ms : int
        Initial backoff duration in milliseconds.
    max_backoff_ms : int
        Maximum backoff duration in milliseconds.
    jitter_ms : int
        Maximum random jitter to add to backoff in milliseconds.
    retriable_exceptions : Tuple[Type[BaseException], ...]
        Exception types considered retriable.
    """

    max_attempts: int
    initial_backoff_ms: int
    max_backoff_ms: int
    jitter_ms: int = 0
    retriable_exceptions: Tuple[Type[BaseException], ...] = (StoreUnavailableError,)

    @classmethod
    def from_config(cls) -> "RetryConfig":
        """Build retry configuration from Config."""
        return cls(
            max_attempts=int(Config.STORE_RETRY_MAX_ATTEMPTS),
            initial_backoff_ms=int(Config.STORE_RETRY_INITIAL_BACKOFF_MS),
            max_backoff_ms=int(Config.STORE_RETRY_MAX_BACKOFF_MS),
            jitter_ms=int(Config.STORE_RETRY_JITTER_MS),
        )


# ============================================================================
# Retry Policy
# ============================================================================


class RetryPolicy:
    """
    Execute async store operations with retry semantics.

    Public API
    ----------
    - from_config() -> Create policy from Config
    - execute(operation, operation_name, context) -> Execute with retries
    """

    def __init__(self, config: RetryConfig, sleep: Optional[SleepFn] = None) -> None:
        self._config = config
        self._sleep: SleepFn = sleep or asyncio.sleep

    @classmethod
    def from_config(cls, sleep: Optional[SleepFn] = None) -> "RetryPolicy":
        return cls(RetryConfig.from_config(), sleep=sleep)

    @property
    def config(self) -> RetryConfig:
        return self._config

    def _is_retriable(self, exc: BaseException) -> bool:
        return isinstance(exc, self._config.retriable_exceptions)

    def compute_backoff_ms(self, attempt: int) -> int:
        """
        Compute backoff duration for a given 1-indexed attempt.

        Exponential, capped at max_backoff_ms, then jittered.
        """
        exponent = max(attempt - 1, 0)
        base = self._config.initial_backoff_ms * (2**exponent)
        capped = min(base, self._config.max_backoff_ms)

        jitter = (
            random.randint(0, self._config.jitter_ms)
            if self._config.jitter_ms > 0
            else 0
        )
        return capped + jitter

    async def execute(
        self,
        operation: Callable[[], Awaitable[T]],
        *,
        operation_name: str,
        context: Optional[dict[str, Any]] = None,
    ) -> T:
        """
        Execute an async operation, retrying retriable exceptions.

        Parameters
        ----------
        operation : Callable[[], Awaitable[T]]
            Zero-argument async callable performing store work.
        operation_name : str
            Stable identifier for logging (e.g., "progress.get_course_progress").
        context : Optional[dict[str, Any]]
            Additional structured context for logs.

        Raises
        ------
        Exception
            The last exception when retries are exhausted, or the first
            non-retriable exception.
        """
        ctx_extra = context.copy() if context else {}
        ctx_extra["operation"] = operation_name

        attempt = 0

        while True:
            attempt += 1

            try:
                return await operation()

            except Exception as exc:
                error_type = type(exc).__name__
                retriable = self._is_retriable(exc)
                will_retry = retriable and attempt < self._config.max_attempts

                if not will_retry:
                    if retriable:
                        logger.error(
                            "Store operation retries exhausted",
                            extra={
                                **ctx_extra,
                                "attempt": attempt,
                                "error_type": error_type,
                                "max_attempts": self._config.max_attempts,
                            },
                        )
                    raise

                backoff_ms = self.compute_backoff_ms(attempt)
                logger.warning(
                    "Store operation failed; backing off before retry",
                    extra={
                        **ctx_extra,
                        "attempt": attempt,
                        "error_type": error_type,
                        "backoff_ms": backoff_ms,
                    },
                )
                await self._sleep(backoff_ms / 1000.0)


async def retry_until_found(
    fetch: Callable[[], Awaitable[Optional[T]]],
    *,
    attempts: int = 3,
    initial_backoff_ms: int = 100,
    operation_name: str = "store.lookup",
    context: Optional[dict[str, Any]] = None,
    sleep: Optional[SleepFn] = None,
) -> Optional[T]:
    """
    Call `fetch` until it returns a non-None value or attempts run out.

    Sleeps initial_backoff_ms, then doubles, between attempts (100 ms then
    200 ms with the defaults). Exceptions from `fetch` propagate unchanged.
    """
    sleeper: SleepFn = sleep or asyncio.sleep
    ctx_extra = context.copy() if context else {}
    ctx_extra["operation"] = operation_name

    backoff_ms = initial_backoff_ms
    for attempt in range(1, max(attempts, 1) + 1):
        result = await fetch()
        if result is not None:
            return result

        if attempt < attempts:
            logger.debug(
                "Record not visible yet; retrying lookup",
                extra={**ctx_extra, "attempt": attempt, "backoff_ms": backoff_ms},
            )
            await sleeper(backoff_ms / 1000.0)
            backoff_ms *= 2

    logger.warning(
        "Record not found after retries",
        extra={**ctx_extra, "attempts": attempts},
    )
    return None

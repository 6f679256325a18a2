"""Exponential-backoff retry policy applied to every driver primitive."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, TypeVar

log = logging.getLogger(__name__)

T = TypeVar("T")

Sleep = Callable[[float], Awaitable[None]]


@dataclass(slots=True)
class RetryEvent:
    operation: str
    attempt: int
    max_attempts: int
    error: Optional[str] = None
    delay_s: Optional[float] = None

    @property
    def failed(self) -> bool:
        return self.error is not None

    def as_dict(self) -> dict:
        return {
            "operation": self.operation,
            "attempt": self.attempt,
            "max_attempts": self.max_attempts,
            "error": self.error,
            "delay_s": self.delay_s,
        }


def backoff_delay(attempt: int) -> float:
    """Seconds to wait after ``attempt`` (1-based) before the next one."""

    return float(2 ** attempt)


class RetryPolicy:
    def __init__(
        self,
        max_retries: int = 0,
        *,
        sleep: Sleep = asyncio.sleep,
        observer: Optional[Callable[[RetryEvent], None]] = None,
    ) -> None:
        self.max_retries = max_retries
        self._sleep = sleep
        self._observer = observer

    def resolve_ceiling(self, max_retries: Optional[int] = None) -> int:
        return max_retries or self.max_retries or 0

    async def run(
        self,
        operation: Callable[[], Awaitable[T]],
        name: str,
        max_retries: Optional[int] = None,
    ) -> T:
        ceiling = self.resolve_ceiling(max_retries)
        # A zero ceiling still executes the operation once, without retries.
        attempts = max(1, ceiling)
        attempt = 0

        while True:
            attempt += 1
            log.info("Attempt %d/%d for %s", attempt, attempts, name)
            self._emit(RetryEvent(operation=name, attempt=attempt, max_attempts=attempts))
            try:
                return await operation()
            except Exception as exc:
                log.warning("Attempt %d/%d failed for %s: %s", attempt, attempts, name, exc)
                final = attempt >= attempts
                delay = None if final else backoff_delay(attempt)
                self._emit(
                    RetryEvent(
                        operation=name,
                        attempt=attempt,
                        max_attempts=attempts,
                        error=str(exc),
                        delay_s=delay,
                    )
                )
                if final:
                    raise
            log.info("Waiting %dms before retry...", int(delay * 1000))
            await self._sleep(delay)

    def _emit(self, event: RetryEvent) -> None:
        if self._observer is None:
            return
        try:
            self._observer(event)
        except Exception as exc:
            log.debug("Retry observer failed: %s", exc)

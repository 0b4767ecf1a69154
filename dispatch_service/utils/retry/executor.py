"""Outcome-driven retry loop for delivery attempts.

Unlike the ``retry`` decorator, which retries on exceptions and re-raises
when it gives up, ``RetryExecutor`` retries on a *returned* outcome and
never raises: a permanent answer (delivered or invalid token) stops the
loop at once, a transient one is retried with exponential backoff until the
attempt budget is spent, and an exception escaping the attempt is treated
as transient.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import TYPE_CHECKING

from dispatch_service.core.delivery import SendResult
from dispatch_service.infra.logging import get_logger
from dispatch_service.infra.metrics.tracking import (
    track_retry_attempt,
    track_retry_exhausted,
    track_retry_success,
)

from .strategies import RetryStrategy

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from dispatch_service.core.settings.notifications import NotificationSettings

    SleepFn = Callable[[float], Awaitable[object]]


@dataclass(frozen=True, slots=True)
class ExecutionResult:
    """Final outcome of an executed attempt sequence.

    Attributes:
        result: Outcome of the last attempt made.
        attempts: Number of attempts made (1..max_attempts).
        delays: Backoff delays slept between attempts, in order.
    """

    result: SendResult
    attempts: int
    delays: tuple[float, ...] = ()


class RetryExecutor:
    """Run an attempt function until it yields a final outcome.

    Example:
        executor = RetryExecutor(max_attempts=3, initial_delay=0.5)
        execution = await executor.execute(lambda: sender.send(token, title, body, data))
        if execution.result.is_invalid:
            ...
    """

    def __init__(
        self,
        max_attempts: int = 3,
        initial_delay: float = 0.5,
        multiplier: float = 2.0,
        max_delay: float | None = None,
        sleep: SleepFn = asyncio.sleep,
    ) -> None:
        # Delays must follow the schedule exactly, so no jitter
        self._strategy = RetryStrategy(
            max_attempts=max_attempts,
            initial_delay=initial_delay,
            max_delay=max_delay,
            exponential_base=multiplier,
            jitter=False,
        )
        self._sleep = sleep
        self._logger = get_logger(__name__)

    @classmethod
    def from_settings(
        cls,
        settings: NotificationSettings,
        sleep: SleepFn = asyncio.sleep,
    ) -> RetryExecutor:
        return cls(
            max_attempts=settings.max_attempts,
            initial_delay=settings.initial_delay,
            multiplier=settings.backoff_multiplier,
            max_delay=settings.max_delay,
            sleep=sleep,
        )

    @property
    def max_attempts(self) -> int:
        return self._strategy.max_attempts

    async def execute(
        self,
        attempt_fn: Callable[[], Awaitable[SendResult]],
        *,
        operation: str = "push.send",
    ) -> ExecutionResult:
        """Run ``attempt_fn`` with backoff until a final outcome or the budget runs out.

        Args:
            attempt_fn: Zero-argument coroutine function making one attempt.
            operation: Label for retry metrics and log records.

        Returns:
            ExecutionResult with the last outcome, attempt count and delays.
        """
        delays: list[float] = []
        max_attempts = self._strategy.max_attempts
        result = SendResult.transient("not attempted")
        attempt = 0

        for attempt in range(1, max_attempts + 1):
            try:
                result = await attempt_fn()
            except Exception as exc:
                result = SendResult.transient(f"{type(exc).__name__}: {exc}")
                self._logger.warning(
                    f"{operation} attempt raised, treating as transient",
                    extra={"operation": operation, "attempt": attempt, "error": str(exc)},
                )

            if result.is_final:
                if attempt > 1 and result.is_delivered:
                    track_retry_success(operation, attempt)
                return ExecutionResult(result, attempt, tuple(delays))

            if attempt == max_attempts:
                break

            delay = self._strategy.calculate_delay(attempt - 1)
            delays.append(delay)
            track_retry_attempt(operation, attempt + 1)
            self._logger.debug(
                f"Retrying {operation} after {delay:.2f}s (attempt {attempt}/{max_attempts})",
                extra={"operation": operation, "attempt": attempt, "reason": result.reason},
            )
            await self._sleep(delay)

        track_retry_exhausted(operation)
        return ExecutionResult(result, attempt, tuple(delays))

"""Exception type and statistics for the ``retry`` decorator."""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass
class RetryStatistics:
    """What happened across the attempts of one decorated call."""

    attempts: int = 0
    delays: list[float] = field(default_factory=list)
    exceptions: list[str] = field(default_factory=list)

    @property
    def total_delay(self) -> float:
        """Seconds spent sleeping between attempts."""
        return sum(self.delays)


class RetryError(Exception):
    """Raised by ``retry`` once every attempt failed with a retryable error.

    The final underlying exception is chained as ``__cause__`` and kept on
    ``last_exception``.
    """

    def __init__(
        self,
        last_exception: Exception,
        attempts: int,
        statistics: RetryStatistics | None = None,
    ) -> None:
        self.last_exception = last_exception
        self.attempts = attempts
        self.statistics = statistics or RetryStatistics(attempts=attempts)
        super().__init__(f"Failed after {attempts} attempts. Last error: {last_exception}")

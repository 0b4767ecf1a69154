from __future__ import annotations

from dispatch_service.utils.retry.decorator import retry
from dispatch_service.utils.retry.exceptions import RetryError, RetryStatistics
from dispatch_service.utils.retry.executor import ExecutionResult, RetryExecutor
from dispatch_service.utils.retry.strategies import RetryStrategy

__all__ = [
    "ExecutionResult",
    "RetryError",
    "RetryExecutor",
    "RetryStatistics",
    "RetryStrategy",
    "retry",
]

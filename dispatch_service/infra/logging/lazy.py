"""Deferred message construction for debug logging.

Debug lines in the repositories and the dispatch pipeline describe rows and
token sets. Passing a lambda instead of a string means that work is skipped
entirely when the level is disabled.
"""

from __future__ import annotations

import logging
from typing import Any


class LazyLoggerAdapter(logging.LoggerAdapter):
    """Adapter that calls callable messages and arguments only when emitting.

    ``LoggerAdapter.debug``/``info``/... all route through :meth:`log`, so
    overriding it is enough for every level.

    Example:
        lazy = get_lazy_logger(__name__)
        lazy.debug(lambda: f"tokens: {[t.token[:8] for t in tokens]}")
        lazy.info("dispatch state: %s", lambda: summary.model_dump())
    """

    def log(self, level: int, msg: Any, *args: Any, **kwargs: Any) -> None:
        if not self.isEnabledFor(level):
            return
        if callable(msg):
            msg = msg()
        super().log(level, msg, *(arg() if callable(arg) else arg for arg in args), **kwargs)


def get_lazy_logger(name: str, **context: Any) -> LazyLoggerAdapter:
    """Return a :class:`LazyLoggerAdapter` for ``name`` carrying ``context`` as extra."""
    return LazyLoggerAdapter(logging.getLogger(name), context)

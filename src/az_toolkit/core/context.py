"""Explicit operation context: message sink, caches, background worker."""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Generator
from concurrent.futures import Future, ThreadPoolExecutor
from contextlib import contextmanager
from typing import Any, Protocol, runtime_checkable

from az_toolkit.azure_api._cache import CacheManager

logger = logging.getLogger(__name__)


@runtime_checkable
class Messager(Protocol):
    """Sink for user-facing progress messages."""

    def info(self, message: str) -> None: ...
    def success(self, message: str) -> None: ...
    def warning(self, message: str) -> None: ...
    def error(self, message: str) -> None: ...


class LoggingMessager:
    """Last-resort sink used when nothing else was registered."""

    def info(self, message: str) -> None:
        logger.info("DUMMY MESSAGE:%s", message)

    def success(self, message: str) -> None:
        logger.info("DUMMY MESSAGE:%s", message)

    def warning(self, message: str) -> None:
        logger.warning("DUMMY MESSAGE:%s", message)

    def error(self, message: str) -> None:
        logger.error("DUMMY MESSAGE:%s", message)


class ToolkitContext:
    """State threaded through façades, modules and drafts.

    Holds the default :class:`Messager` (settable once), a stack of
    per-operation messagers, the :class:`CacheManager` and a small worker
    pool for best-effort background work.
    """

    def __init__(
        self,
        caches: CacheManager | None = None,
        max_workers: int = 2,
    ) -> None:
        self.caches = caches or CacheManager()
        self._max_workers = max_workers
        self._executor: ThreadPoolExecutor | None = None
        self._default_messager: Messager | None = None
        self._local = threading.local()
        self._lock = threading.Lock()

    # ---- messaging ----

    def set_default_messager(self, messager: Messager) -> None:
        with self._lock:
            if self._default_messager is None:
                self._default_messager = messager
                return
        self.messager.warning("default messager has already been registered")

    @property
    def default_messager(self) -> Messager:
        return self._default_messager or LoggingMessager()

    @property
    def messager(self) -> Messager:
        stack: list[Messager] = getattr(self._local, "stack", [])
        return stack[-1] if stack else self.default_messager

    @contextmanager
    def operation(self, messager: Messager) -> Generator[Messager]:
        """Route messages to *messager* for the duration of the block."""
        stack: list[Messager] = getattr(self._local, "stack", None) or []
        self._local.stack = stack
        stack.append(messager)
        try:
            yield messager
        finally:
            stack.pop()

    # ---- background work ----

    def run_in_background(self, fn: Callable[..., Any], *args: Any) -> Future:
        """Submit *fn* to the worker pool; failures are logged, never raised."""

        def _guarded() -> None:
            try:
                fn(*args)
            except Exception:
                logger.warning("Background task %r failed", fn, exc_info=True)

        with self._lock:
            if self._executor is None:
                self._executor = ThreadPoolExecutor(
                    max_workers=self._max_workers, thread_name_prefix="az-toolkit"
                )
            executor = self._executor
        return executor.submit(_guarded)

    def shutdown(self, wait: bool = True) -> None:
        with self._lock:
            executor, self._executor = self._executor, None
        if executor is not None:
            executor.shutdown(wait=wait)

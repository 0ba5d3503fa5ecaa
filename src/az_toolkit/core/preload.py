"""Static registry of cache warm-up functions.

Service modules register their warm-up function at import time::

    @register_preload
    def _preload_function_apps(toolkit: AzureToolkit) -> None:
        ...

:func:`run_preloads` is dispatched to a background worker once the user has
selected subscriptions.  It is purely an optimisation: every failure is
logged and swallowed.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from az_toolkit.toolkit import AzureToolkit

logger = logging.getLogger(__name__)

PreloadFn = Callable[["AzureToolkit"], Any]

_preloads: dict[str, PreloadFn] = {}


def register_preload(fn: PreloadFn) -> PreloadFn:
    """Register *fn* (keyed by its qualified name); returns it unchanged."""
    key = f"{fn.__module__}.{fn.__qualname__}"
    if key in _preloads:
        logger.debug("Preload %s already registered", key)
    _preloads[key] = fn
    return fn


def registered_preloads() -> list[PreloadFn]:
    return list(_preloads.values())


def run_preloads(toolkit: AzureToolkit) -> int:
    """Run every registered warm-up function; return how many succeeded."""
    logger.debug("Start preloading (%d registered)", len(_preloads))
    succeeded = 0
    for key, fn in list(_preloads.items()):
        try:
            logger.debug("preloading [%s]", key)
            fn(toolkit)
            succeeded += 1
            logger.debug("preloaded [%s]", key)
        except Exception:
            logger.warning("Preload: %s failed", key, exc_info=True)
    logger.debug("End preloading")
    return succeeded

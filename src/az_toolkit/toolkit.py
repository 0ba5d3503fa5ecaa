"""The toolkit hub: account, settings, context and façade instances."""

from __future__ import annotations

import importlib
import logging
import threading
from typing import TypeVar

from az_toolkit.auth.account import Account
from az_toolkit.azure_api._cache import CacheManager
from az_toolkit.azure_api.resource_id import ResourceId
from az_toolkit.config import ToolkitSettings
from az_toolkit.config import settings as default_settings
from az_toolkit.core.context import ToolkitContext
from az_toolkit.core.preload import run_preloads
from az_toolkit.core.resource import AzResource
from az_toolkit.core.service import AzService

logger = logging.getLogger(__name__)

S = TypeVar("S", bound=AzService)

# Importing these registers their preload functions.
_SERVICE_MODULES = (
    "az_toolkit.services.resources",
    "az_toolkit.services.mysql",
    "az_toolkit.services.container_registry",
    "az_toolkit.services.network",
    "az_toolkit.services.monitor",
    "az_toolkit.services.application_insights",
    "az_toolkit.services.appservice",
)


def load_services() -> dict[str, type[AzService]]:
    """Import every façade module; return ``{provider (lower): façade}``."""
    by_provider: dict[str, type[AzService]] = {}
    for name in _SERVICE_MODULES:
        module = importlib.import_module(name)
        for cls in getattr(module, "__all__", ()):
            service = getattr(module, cls)
            for kind in service.kinds:
                by_provider.setdefault((kind.provider or "").lower(), service)
    return by_provider


class AzureToolkit:
    """Entry point wiring one :class:`Account` to the resource façades.

    ``toolkit.service(AzureMySql)`` returns the shared façade instance.
    """

    def __init__(
        self,
        account: Account | None = None,
        settings: ToolkitSettings | None = None,
        context: ToolkitContext | None = None,
    ) -> None:
        self.settings = settings or default_settings
        self.context = context or ToolkitContext(
            caches=CacheManager(self.settings.cache_ttl),
            max_workers=self.settings.preload_workers,
        )
        self.account = account or Account(self.settings, context=self.context)
        self.account.after_selection = self._after_selection
        self._services: dict[type[AzService], AzService] = {}
        self._lock = threading.Lock()

    def service(self, cls: type[S]) -> S:
        with self._lock:
            instance = self._services.get(cls)
            if instance is None:
                instance = self._services[cls] = cls(self)
        return instance  # type: ignore[return-value]

    def get_by_id(self, resource_id: str) -> AzResource | None:
        """Route *resource_id* to the façade owning its provider."""
        rid = ResourceId.from_string(resource_id)
        cls = load_services().get((rid.provider or "").lower())
        if cls is None:
            logger.debug("No façade handles provider %s", rid.provider)
            return None
        return self.service(cls).get_by_id(resource_id)

    def invalidate_cache(self) -> None:
        with self._lock:
            services = list(self._services.values())
        for service in services:
            service.invalidate_cache()

    def _after_selection(self, account: Account) -> None:
        if not self.settings.enable_preloading:
            return
        load_services()
        self.context.run_in_background(run_preloads, self)

    def close(self) -> None:
        self.context.shutdown(wait=False)

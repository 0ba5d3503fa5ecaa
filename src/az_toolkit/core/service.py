"""Service façades: per-subscription module roots and ID dispatch."""

from __future__ import annotations

import logging
import threading
from typing import TYPE_CHECKING

from az_toolkit.azure_api.resource_id import ResourceId
from az_toolkit.core.resource import AzResource, ResourceKind, ResourceModule

if TYPE_CHECKING:
    from az_toolkit.azure_api.client import ArmClient
    from az_toolkit.toolkit import AzureToolkit

logger = logging.getLogger(__name__)


class ServiceSubscription:
    """Root of one façade's module tree inside one subscription."""

    def __init__(self, service: AzService, subscription_id: str, arm_client: ArmClient) -> None:
        self.service = service
        self.subscription_id = subscription_id
        self.arm_client = arm_client
        self._modules = {kind.module_name: ResourceModule(kind, self) for kind in service.kinds}

    def __repr__(self) -> str:
        return f"<{type(self.service).__name__} subscription={self.subscription_id}>"

    @property
    def id(self) -> str:
        return f"/subscriptions/{self.subscription_id}"

    @property
    def toolkit(self) -> AzureToolkit:
        return self.service.toolkit

    def exists(self) -> bool:
        return True

    @property
    def modules(self) -> list[ResourceModule]:
        return list(self._modules.values())

    def module(self, name: str) -> ResourceModule:
        try:
            return self._modules[name]
        except KeyError:
            raise KeyError(f"{type(self.service).__name__} has no module {name!r}") from None

    def invalidate_cache(self) -> None:
        for module in self._modules.values():
            module.invalidate_cache()


class AzService:
    """Entry point for one family of resource kinds.

    Subclasses list their top-level :attr:`kinds` and usually add typed
    accessors (``servers(subscription_id)`` …).
    """

    display_name: str = ""
    kinds: tuple[ResourceKind, ...] = ()

    def __init__(self, toolkit: AzureToolkit) -> None:
        self.toolkit = toolkit
        self._subscriptions: dict[str, ServiceSubscription] = {}
        self._lock = threading.Lock()

    def __repr__(self) -> str:
        return f"<{type(self).__name__}>"

    def subscription(self, subscription_id: str) -> ServiceSubscription:
        key = subscription_id.lower()
        with self._lock:
            root = self._subscriptions.get(key)
            if root is None:
                client = self.toolkit.account.client(subscription_id)
                root = self._subscriptions[key] = ServiceSubscription(self, subscription_id, client)
            return root

    def list(self) -> list[ServiceSubscription]:
        """One root per selected subscription."""
        return [self.subscription(s.id) for s in self.toolkit.account.selected_subscriptions]

    def module(self, subscription_id: str, name: str) -> ResourceModule:
        return self.subscription(subscription_id).module(name)

    def get_by_id(self, resource_id: str) -> AzResource | None:
        """Resolve *resource_id* by walking the module tree.

        Returns ``None`` when no module of this façade handles the type.
        """
        rid = ResourceId.from_string(resource_id)
        root = self.subscription(rid.subscription_id)
        if not rid.segments:
            return None
        module = self._top_module(root, rid)
        if module is None:
            return None
        resource = module.get(rid.segments[0][1], rid.resource_group_name)
        for type_, name in rid.segments[1:]:
            if type_.lower() == "providers":
                # extension resources: .../sites/app/providers/Microsoft.ServiceLinker/linkers/x
                continue
            kind = _match(resource.kind.sub_kinds, type_)
            if kind is None:
                logger.debug("No sub-module of %s handles %s", resource.kind.type_name, type_)
                return None
            resource = resource.sub_module(kind.module_name).get(name, rid.resource_group_name)
        return resource

    def _top_module(self, root: ServiceSubscription, rid: ResourceId) -> ResourceModule | None:
        provider = (rid.provider or "").lower()
        candidates = [k for k in self.kinds if (k.provider or "").lower() == provider]
        kind = _match(tuple(candidates), rid.segments[0][0])
        return root.module(kind.module_name) if kind is not None else None

    def invalidate_cache(self) -> None:
        with self._lock:
            roots = list(self._subscriptions.values())
            self._subscriptions.clear()
        for root in roots:
            root.invalidate_cache()


def _match(kinds: tuple[ResourceKind, ...], resource_type: str) -> ResourceKind | None:
    wanted = resource_type.lower()
    return next((k for k in kinds if k.resource_type.lower() == wanted), None)

"""Generic resource lifecycle: entity, module, draft and the kind strategy.

Every Azure resource type is modelled with the same three classes:

* :class:`AzResource` - local handle on one remote object.  Holds the last
  fetched *remote snapshot* (a plain ARM JSON dict) and derives a status.
* :class:`ResourceModule` - the collection of one kind under a parent
  (a subscription root or another resource).  Owns the entity cache.
* :class:`ResourceDraft` - a one-shot overlay of pending field values that
  is committed with exactly one vendor write.

What differs per type lives in a :class:`ResourceKind` strategy: where the
resource lives in ARM, how to read its fields, and how to create / update /
delete it.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Iterator
from enum import StrEnum
from typing import TYPE_CHECKING, Any, Protocol

from az_toolkit.azure_api.resource_id import ResourceId
from az_toolkit.exceptions import AzureExecutionError

if TYPE_CHECKING:
    from az_toolkit.azure_api.client import ArmClient
    from az_toolkit.core.context import Messager, ToolkitContext
    from az_toolkit.toolkit import AzureToolkit

logger = logging.getLogger(__name__)


class Status(StrEnum):
    UNKNOWN = "Unknown"
    LOADING = "Loading"
    CREATING = "Creating"
    UPDATING = "Updating"
    DELETING = "Deleting"
    DELETED = "Deleted"
    ACTIVE = "Active"


FieldReader = str | Callable[["AzResource"], Any]


def dig(data: dict | None, path: str) -> Any:
    """Read a dotted *path* (``"properties.state"``) out of nested dicts."""
    current: Any = data
    for part in path.split("."):
        if not isinstance(current, dict):
            return None
        current = current.get(part)
    return current


class ResourceParent(Protocol):
    """What a module needs from its parent."""

    subscription_id: str

    @property
    def id(self) -> str: ...
    @property
    def toolkit(self) -> AzureToolkit: ...
    @property
    def arm_client(self) -> ArmClient: ...
    def exists(self) -> bool: ...


# ---------------------------------------------------------------------------
# Kind strategy
# ---------------------------------------------------------------------------


class ResourceKind:
    """Per-type behaviour plugged into the generic lifecycle.

    The defaults implement a plain ARM resource living at
    ``/subscriptions/{s}/resourceGroups/{rg}/providers/{provider}/{type}/{name}``
    (or ``{parent id}/{type}/{name}`` for child kinds).  Subclasses override
    :meth:`create` / :meth:`update` and whatever else differs.
    """

    module_name: str = ""
    resource_type: str = ""
    type_name: str = "resource"
    provider: str = ""
    api_version: str = ""

    fields: dict[str, FieldReader] = {"region": "location"}
    write_only_fields: tuple[str, ...] = ()
    required_for_create: tuple[str, ...] = ()
    sub_kinds: tuple[ResourceKind, ...] = ()

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.module_name}>"

    # ---- addressing ----

    def resource_path(self, module: ResourceModule, name: str, resource_group: str | None) -> str:
        parent = module.parent
        if isinstance(parent, AzResource):
            return f"{parent.id}/{self.resource_type}/{name}"
        return (
            f"/subscriptions/{module.subscription_id}/resourceGroups/{resource_group}"
            f"/providers/{self.provider}/{self.resource_type}/{name}"
        )

    def list_path(self, module: ResourceModule) -> str:
        parent = module.parent
        if isinstance(parent, AzResource):
            return f"{parent.id}/{self.resource_type}"
        return f"/subscriptions/{module.subscription_id}/providers/{self.provider}/{self.resource_type}"

    def group_of(self, name: str, resource_group: str | None) -> str | None:
        """Resource group used for caching; resource groups are their own group."""
        return resource_group

    def identity(self, module: ResourceModule, remote: dict) -> tuple[str, str | None]:
        """Return ``(name, resource_group)`` for a remote snapshot."""
        name = remote["name"].split("/")[-1]
        resource_group = None
        if remote.get("id"):
            resource_group = ResourceId.from_string(remote["id"]).resource_group_name
        return name, resource_group

    # ---- vendor calls ----

    def build_client(self, module: ResourceModule) -> Any:
        return module.arm_client

    def accept(self, remote: dict) -> bool:
        """Filter for list results sharing one ARM type (e.g. sites)."""
        return True

    def load_pages(self, module: ResourceModule) -> Iterator[list[dict]]:
        return module.client.iter_pages(self.list_path(module), self.api_version)

    def load_one(self, module: ResourceModule, name: str, resource_group: str | None) -> dict | None:
        remote = module.client.get(self.resource_path(module, name, resource_group), self.api_version)
        if remote is not None and not self.accept(remote):
            return None
        return remote

    def delete(self, module: ResourceModule, resource: AzResource) -> None:
        module.client.delete(resource.id, self.api_version)

    def create(self, draft: ResourceDraft) -> dict:
        raise AzureExecutionError(f"Creating {self.type_name} is not supported.")

    def update(self, draft: ResourceDraft, remote: dict) -> dict:
        raise AzureExecutionError(f"Updating {self.type_name} is not supported.")

    def after_commit(self, draft: ResourceDraft, resource: AzResource) -> None:
        """Follow-up writes once the main create / update has succeeded."""

    # ---- reading ----

    def load_status(self, remote: dict) -> str:
        return dig(remote, "properties.provisioningState") or Status.ACTIVE

    def read_field(self, resource: AzResource, field: str) -> Any:
        reader = self.fields.get(field)
        if reader is None:
            return None
        if callable(reader):
            return reader(resource)
        return dig(resource.remote, reader)


# ---------------------------------------------------------------------------
# Entity
# ---------------------------------------------------------------------------


class AzResource:
    """Local handle on one remote resource.

    The remote snapshot is fetched lazily on first access.  ``remote is None``
    after loading means the resource does not exist in the cloud.
    """

    def __init__(
        self,
        name: str,
        resource_group: str | None,
        module: ResourceModule,
        remote: dict | None = None,
    ) -> None:
        self.name = name
        self.resource_group = resource_group
        self.module = module
        self._remote = remote
        self._loaded = remote is not None
        self._status: str | None = None
        self._sub_modules: dict[str, ResourceModule] = {}

    def __repr__(self) -> str:
        return f"<{self.kind.type_name} {self.name!r} rg={self.resource_group!r} status={self.status}>"

    # ---- identity ----

    @property
    def kind(self) -> ResourceKind:
        return self.module.kind

    @property
    def parent(self) -> ResourceParent:
        return self.module.parent

    @property
    def subscription_id(self) -> str:
        return self.module.subscription_id

    @property
    def id(self) -> str:
        if self._remote and self._remote.get("id"):
            return self._remote["id"]
        return self.kind.resource_path(self.module, self.name, self.resource_group)

    @property
    def toolkit(self) -> AzureToolkit:
        return self.module.toolkit

    @property
    def arm_client(self) -> ArmClient:
        return self.module.arm_client

    @property
    def messager(self) -> Messager:
        return self.toolkit.context.messager

    # ---- remote snapshot ----

    @property
    def remote(self) -> dict | None:
        if not self._loaded:
            self.refresh()
        return self._remote

    def refresh(self) -> AzResource:
        """Re-fetch the remote snapshot (one vendor call)."""
        self._status = Status.LOADING
        try:
            remote = self.kind.load_one(self.module, self.name, self.resource_group)
        except Exception:
            self._status = None
            raise
        self.set_remote(remote)
        return self

    def set_remote(self, remote: dict | None) -> None:
        self._remote = remote
        self._loaded = True
        self._status = None

    def exists(self) -> bool:
        return self.remote is not None

    @property
    def status(self) -> str:
        if self._status is not None:
            return self._status
        if not self._loaded:
            return Status.UNKNOWN
        if self._remote is None:
            return Status.DELETED
        return self.kind.load_status(self._remote)

    def field(self, name: str) -> Any:
        return self.kind.read_field(self, name)

    @property
    def region(self) -> str | None:
        return self.field("region")

    # ---- lifecycle ----

    def do_modify(self, body: Callable[[], dict | None], status: str) -> AzResource:
        """Run *body* while showing *status*; store the returned snapshot."""
        self._status = status
        try:
            remote = body()
        except Exception:
            self._status = None
            raise
        if remote is None:
            self.refresh()
        else:
            self.set_remote(remote)
        return self

    def update(self) -> ResourceDraft:
        return self.module.update(self)

    def delete(self) -> None:
        self.module.delete(self)

    # ---- children ----

    @property
    def sub_modules(self) -> list[ResourceModule]:
        return [self.sub_module(k.module_name) for k in self.kind.sub_kinds]

    def sub_module(self, module_name: str) -> ResourceModule:
        module = self._sub_modules.get(module_name)
        if module is None:
            kind = next((k for k in self.kind.sub_kinds if k.module_name == module_name), None)
            if kind is None:
                raise KeyError(f"{self.kind.type_name} has no sub-module {module_name!r}")
            module = self._sub_modules[module_name] = ResourceModule(kind, self)
        return module


# ---------------------------------------------------------------------------
# Module
# ---------------------------------------------------------------------------


class ResourceModule:
    """A cached collection of one resource kind under a parent."""

    def __init__(self, kind: ResourceKind, parent: ResourceParent) -> None:
        self.kind = kind
        self.parent = parent
        self._cache: dict[tuple[str, str], AzResource] = {}
        self._evicted: set[tuple[str, str]] = set()
        self._synced = False
        self._client: Any = None
        # guards _cache, _evicted and _synced; never held across vendor calls
        self._lock = threading.Lock()

    def __repr__(self) -> str:
        return f"<ResourceModule {self.name} of {self.parent.id}>"

    @property
    def name(self) -> str:
        return self.kind.module_name

    @property
    def subscription_id(self) -> str:
        return self.parent.subscription_id

    @property
    def toolkit(self) -> AzureToolkit:
        return self.parent.toolkit

    @property
    def context(self) -> ToolkitContext:
        return self.toolkit.context

    @property
    def arm_client(self) -> ArmClient:
        return self.parent.arm_client

    @property
    def client(self) -> Any:
        if self._client is None:
            self._client = self.kind.build_client(self)
        return self._client

    @staticmethod
    def _key(name: str, resource_group: str | None) -> tuple[str, str]:
        return name.lower(), (resource_group or "").lower()

    def _flush_evictions(self) -> None:
        with self._lock:
            for key in self._evicted:
                self._cache.pop(key, None)
            self._evicted.clear()

    def _parent_exists(self) -> bool:
        if self.parent.exists():
            return True
        logger.debug("[%s] parent %s does not exist, clearing cache", self.name, self.parent.id)
        self.invalidate_cache()
        return False

    def _adopt(self, remote: dict) -> AzResource:
        name, resource_group = self.kind.identity(self, remote)
        key = self._key(name, resource_group)
        with self._lock:
            resource = self._cache.get(key)
            if resource is None:
                resource = self._cache[key] = AzResource(name, resource_group, self, remote)
                return resource
        resource.set_remote(remote)
        return resource

    # ---- reading ----

    def list_pages(self) -> Iterator[list[AzResource]]:
        """Lazily yield pages of entities straight from the vendor API."""
        self._flush_evictions()
        if not self._parent_exists():
            return
        for page in self.kind.load_pages(self):
            yield [self._adopt(remote) for remote in page if self.kind.accept(remote)]

    def list(self) -> list[AzResource]:
        """All existing entities; the first call pages through the vendor API."""
        self._flush_evictions()
        if not self._synced:
            if not self._parent_exists():
                return []
            listed = [
                self._adopt(remote)
                for page in self.kind.load_pages(self)
                for remote in page
                if self.kind.accept(remote)
            ]
            keep = {self._key(r.name, r.resource_group) for r in listed}
            with self._lock:
                for key in [k for k in self._cache if k not in keep]:
                    del self._cache[key]
                self._synced = True
        with self._lock:
            resources = list(self._cache.values())
        return [r for r in resources if r._loaded and r._remote is not None]

    def get(self, name: str, resource_group: str | None = None) -> AzResource:
        """Return the cached entity, fetching it once on a miss.

        A resource that does not exist comes back in ``DELETED`` state.
        """
        resource_group = self.kind.group_of(name, resource_group)
        self._flush_evictions()
        key = self._key(name, resource_group)
        with self._lock:
            cached = self._cache.get(key)
        if cached is not None:
            return cached
        resource = AzResource(name, resource_group, self)
        if not self._parent_exists():
            resource.set_remote(None)
            return resource
        logger.debug("[%s]:get(%s, %s) loading from Azure", self.name, name, resource_group)
        resource.refresh()
        with self._lock:
            return self._cache.setdefault(key, resource)

    def exists(self, name: str, resource_group: str | None = None) -> bool:
        return self.get(name, resource_group).exists()

    def get_by_id(self, resource_id: str | ResourceId) -> AzResource:
        rid = resource_id if isinstance(resource_id, ResourceId) else ResourceId.from_string(resource_id)
        return self.get(rid.name, rid.resource_group_name)

    # ---- writing ----

    def create(self, name: str, resource_group: str | None = None) -> ResourceDraft:
        """Return a draft for a new resource; nothing is sent yet."""
        resource_group = self.kind.group_of(name, resource_group)
        return ResourceDraft(self, name, resource_group)

    def update(self, resource: AzResource) -> ResourceDraft:
        """Return a draft for updating *resource*; nothing is sent yet."""
        return ResourceDraft(self, resource.name, resource.resource_group, origin=resource)

    def delete(self, resource: AzResource) -> None:
        logger.debug("[%s]:delete(%s)", self.name, resource.name)
        resource._status = Status.DELETING
        try:
            self.kind.delete(self, resource)
        except Exception:
            resource._status = None
            raise
        resource.set_remote(None)
        with self._lock:
            self._evicted.add(self._key(resource.name, resource.resource_group))

    def _commit_create(self, draft: ResourceDraft) -> AzResource:
        key = self._key(draft.name, draft.resource_group)
        resource = AzResource(draft.name, draft.resource_group, self)
        resource._status = Status.CREATING
        with self._lock:
            previous = self._cache.get(key)
            self._cache[key] = resource
            self._evicted.discard(key)
        try:
            remote = draft.create_resource_in_azure()
        except Exception:
            with self._lock:
                if previous is None:
                    self._cache.pop(key, None)
                else:
                    self._cache[key] = previous
            raise
        if remote:
            resource.set_remote(remote)
        else:
            resource.refresh()
        self.kind.after_commit(draft, resource)
        return resource

    def _commit_update(self, draft: ResourceDraft) -> AzResource:
        resource = self.get(draft.name, draft.resource_group)
        if not resource.exists():
            raise AzureExecutionError(f'resource "{draft.name}" doesn\'t exist')
        logger.debug("[%s]:update(draft:%s)", self.name, draft.name)
        resource.do_modify(
            lambda: draft.update_resource_in_azure(resource.remote or {}), Status.UPDATING
        )
        self.kind.after_commit(draft, resource)
        return resource

    def invalidate_cache(self) -> None:
        with self._lock:
            self._cache.clear()
            self._evicted.clear()
            self._synced = False
        self._client = None


# ---------------------------------------------------------------------------
# Draft
# ---------------------------------------------------------------------------


class ResourceDraft:
    """Pending create or update of one resource.

    Field values set on the draft shadow the origin's values until the draft
    is committed.  A draft can be committed once.
    """

    def __init__(
        self,
        module: ResourceModule,
        name: str,
        resource_group: str | None,
        origin: AzResource | None = None,
    ) -> None:
        self.module = module
        self.name = name
        self.resource_group = resource_group
        self.origin = origin
        self.config: dict[str, Any] = {}
        self._committed = False

    def __repr__(self) -> str:
        action = "create" if self.is_draft_for_creating else "update"
        return f"<Draft({action}) {self.kind.type_name} {self.name!r} {self.config}>"

    @property
    def kind(self) -> ResourceKind:
        return self.module.kind

    @property
    def subscription_id(self) -> str:
        return self.module.subscription_id

    @property
    def toolkit(self) -> AzureToolkit:
        return self.module.toolkit

    @property
    def messager(self) -> Messager:
        return self.toolkit.context.messager

    @property
    def id(self) -> str:
        return self.kind.resource_path(self.module, self.name, self.resource_group)

    @property
    def is_draft_for_creating(self) -> bool:
        return self.origin is None

    @property
    def committed(self) -> bool:
        return self._committed

    # ---- overlay ----

    def original(self, field: str) -> Any:
        return self.origin.field(field) if self.origin is not None else None

    def get(self, field: str) -> Any:
        value = self.config.get(field)
        return value if value is not None else self.original(field)

    def set(self, field: str, value: Any) -> ResourceDraft:
        if self._committed:
            raise AzureExecutionError(f"Draft of {self.kind.type_name} {self.name!r} is already committed.")
        if field not in self.kind.fields and field not in self.kind.write_only_fields:
            raise KeyError(f"{self.kind.type_name} has no field {field!r}")
        self.config[field] = value
        return self

    def update_config(self, **values: Any) -> ResourceDraft:
        for field, value in values.items():
            self.set(field, value)
        return self

    def reset(self) -> None:
        self.config.clear()

    def is_modified(self) -> bool:
        return any(
            value is not None and value != self.original(field)
            for field, value in self.config.items()
        )

    # ---- vendor writes ----

    def _begin(self) -> None:
        if self._committed:
            raise AzureExecutionError(f"Draft of {self.kind.type_name} {self.name!r} is already committed.")
        self._committed = True

    def create_resource_in_azure(self) -> dict:
        for field in self.kind.required_for_create:
            if self.get(field) in (None, ""):
                raise AzureExecutionError(f"'{field}' is required to create {self.kind.type_name}.")
        self._begin()
        return self.kind.create(self)

    def update_resource_in_azure(self, remote: dict) -> dict:
        self._begin()
        return self.kind.update(self, remote)

    def commit(self) -> AzResource:
        """Send the draft to Azure; returns the refreshed cached entity."""
        if self.is_draft_for_creating:
            return self.module._commit_create(self)
        return self.module._commit_update(self)

    def create_if_not_exist(self) -> AzResource:
        existing = self.module.get(self.name, self.resource_group)
        if existing.exists():
            return existing
        return self.commit()

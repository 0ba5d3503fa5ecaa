"""Resource groups and generic resource metadata."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from az_toolkit.azure_api.client import raise_for_response
from az_toolkit.azure_api.resource_id import ResourceId
from az_toolkit.core.preload import register_preload
from az_toolkit.core.resource import ResourceDraft, ResourceKind, ResourceModule
from az_toolkit.core.service import AzService

if TYPE_CHECKING:
    from az_toolkit.toolkit import AzureToolkit

__all__ = ["AzureResources"]

logger = logging.getLogger(__name__)

RESOURCES_API_VERSION = "2021-04-01"


class ResourceGroupKind(ResourceKind):
    module_name = "groups"
    resource_type = "resourceGroups"
    type_name = "resource group"
    api_version = RESOURCES_API_VERSION
    fields = {"region": "location", "tags": "tags"}
    required_for_create = ("region",)

    def resource_path(self, module: ResourceModule, name: str, resource_group: str | None) -> str:
        return f"/subscriptions/{module.subscription_id}/resourcegroups/{name}"

    def list_path(self, module: ResourceModule) -> str:
        return f"/subscriptions/{module.subscription_id}/resourcegroups"

    def group_of(self, name: str, resource_group: str | None) -> str | None:
        return name

    def identity(self, module: ResourceModule, remote: dict) -> tuple[str, str | None]:
        return remote["name"], remote["name"]

    def create(self, draft: ResourceDraft) -> dict:
        body = {"location": draft.get("region"), "tags": draft.get("tags") or {}}
        return draft.module.client.put(draft.id, self.api_version, body)

    def update(self, draft: ResourceDraft, remote: dict) -> dict:
        return draft.module.client.patch(draft.id, self.api_version, {"tags": draft.get("tags") or {}})


class AzureResources(AzService):
    display_name = "Resource Groups"
    kinds = (ResourceGroupKind(),)

    def groups(self, subscription_id: str) -> ResourceModule:
        return self.module(subscription_id, "groups")

    def get_generic_resource(self, resource_id: str) -> dict | None:
        """Look up the ARM metadata (``kind``, ``type`` …) of any resource.

        Uses the resource-group listing filtered by type and name.  A 404 and
        an HTTP 200 carrying an ``error`` body both mean "absent".
        """
        rid = ResourceId.from_string(resource_id)
        if not rid.resource_group_name or not rid.provider:
            return None
        client = self.toolkit.account.client(rid.subscription_id)
        name = "/".join(n for _, n in rid.segments)
        query = f"resourceType eq '{rid.full_resource_type}' and name eq '{name}'"
        resp = client.request(
            "GET",
            f"/subscriptions/{rid.subscription_id}/resourceGroups/{rid.resource_group_name}/resources",
            RESOURCES_API_VERSION,
            **{"$filter": query},
        )
        if resp.status_code == 404:
            return None
        raise_for_response(resp)
        body = resp.json() if resp.content else {}
        if body.get("error"):
            logger.debug("Generic lookup of %s returned an error body: %s", resource_id, body["error"])
            return None
        values = body.get("value") or []
        return values[0] if values else None


@register_preload
def _preload_resource_groups(toolkit: AzureToolkit) -> None:
    for root in toolkit.service(AzureResources).list():
        root.module("groups").list()

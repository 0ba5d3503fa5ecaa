"""Log Analytics workspaces."""

from __future__ import annotations

from az_toolkit.core.resource import ResourceDraft, ResourceKind, ResourceModule
from az_toolkit.core.service import AzService

__all__ = ["AzureLogAnalyticsWorkspace"]

WORKSPACE_API_VERSION = "2022-10-01"

DEFAULT_SKU = "PerGB2018"
DEFAULT_RETENTION_DAYS = 30


class LogAnalyticsWorkspaceKind(ResourceKind):
    module_name = "workspaces"
    resource_type = "workspaces"
    type_name = "Log Analytics workspace"
    provider = "Microsoft.OperationalInsights"
    api_version = WORKSPACE_API_VERSION
    fields = {
        "region": "location",
        "customer_id": "properties.customerId",
        "sku": "properties.sku.name",
        "retention_in_days": "properties.retentionInDays",
    }
    required_for_create = ("region",)

    def create(self, draft: ResourceDraft) -> dict:
        body = {
            "location": draft.get("region"),
            "properties": {
                "sku": {"name": draft.get("sku") or DEFAULT_SKU},
                "retentionInDays": draft.get("retention_in_days") or DEFAULT_RETENTION_DAYS,
            },
        }
        draft.messager.info(f"Start creating Log Analytics workspace ({draft.name})...")
        remote = draft.module.client.put(draft.id, self.api_version, body)
        draft.messager.success(f"Log Analytics workspace ({draft.name}) is successfully created.")
        return remote


class AzureLogAnalyticsWorkspace(AzService):
    display_name = "Log Analytics workspaces"
    kinds = (LogAnalyticsWorkspaceKind(),)

    def workspaces(self, subscription_id: str) -> ResourceModule:
        return self.module(subscription_id, "workspaces")

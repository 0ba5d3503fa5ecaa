"""Application Insights components."""

from __future__ import annotations

from typing import TYPE_CHECKING

from pydantic import BaseModel, model_validator

from az_toolkit.core.preload import register_preload
from az_toolkit.core.region import Region
from az_toolkit.core.resource import AzResource, ResourceDraft, ResourceKind, ResourceModule
from az_toolkit.core.service import AzService
from az_toolkit.exceptions import AzureExecutionError
from az_toolkit.services.monitor import AzureLogAnalyticsWorkspace
from az_toolkit.services.resources import AzureResources

if TYPE_CHECKING:
    from az_toolkit.toolkit import AzureToolkit

__all__ = ["AzureApplicationInsights"]

INSIGHTS_API_VERSION = "2020-02-02"


class LogAnalyticsWorkspaceConfig(BaseModel):
    """Workspace backing a new component: an existing one, or one to create."""

    name: str | None = None
    resource_id: str | None = None
    new_create: bool = False

    @model_validator(mode="after")
    def _check(self) -> LogAnalyticsWorkspaceConfig:
        if self.new_create and not self.name:
            raise ValueError("a name is required to create a new Log Analytics workspace")
        if not self.new_create and not self.resource_id:
            raise ValueError("resource_id is required to use an existing Log Analytics workspace")
        return self

    @classmethod
    def create_new(cls, name: str) -> LogAnalyticsWorkspaceConfig:
        return cls(name=name, new_create=True)

    @classmethod
    def existing(cls, resource_id: str) -> LogAnalyticsWorkspaceConfig:
        return cls(resource_id=resource_id)


def _workspace_resource_id(draft: ResourceDraft) -> str | None:
    """Resolve the workspace id, creating group and workspace when asked to.

    A new workspace lands in ``DefaultResourceGroup-<region abbreviation>``.
    """
    config: LogAnalyticsWorkspaceConfig | None = draft.get("workspace_config")
    if config is None:
        return None
    if not config.new_create:
        return config.resource_id
    region = Region.from_name(draft.get("region"))
    group_name = f"DefaultResourceGroup-{region.abbreviation}"
    toolkit = draft.toolkit
    groups = toolkit.service(AzureResources).groups(draft.subscription_id)
    groups.create(group_name, group_name).set("region", region.name).create_if_not_exist()
    workspaces = toolkit.service(AzureLogAnalyticsWorkspace).workspaces(draft.subscription_id)
    workspace = workspaces.create(config.name or "", group_name).set("region", region.name)
    return workspace.create_if_not_exist().id


def _workspace(component: AzResource) -> AzResource | None:
    resource_id = component.field("workspace_resource_id")
    if not resource_id:
        return None
    return component.toolkit.service(AzureLogAnalyticsWorkspace).get_by_id(resource_id)


class ApplicationInsightsKind(ResourceKind):
    module_name = "components"
    resource_type = "components"
    type_name = "Application Insights"
    provider = "Microsoft.Insights"
    api_version = INSIGHTS_API_VERSION
    fields = {
        "region": "location",
        "kind": "kind",
        "instrumentation_key": "properties.InstrumentationKey",
        "connection_string": "properties.ConnectionString",
        "workspace_resource_id": "properties.WorkspaceResourceId",
        "workspace": _workspace,
    }
    write_only_fields = ("workspace_config",)
    required_for_create = ("region",)

    def create(self, draft: ResourceDraft) -> dict:
        workspace_id = _workspace_resource_id(draft)
        body = {
            "location": draft.get("region"),
            "kind": "web",
            "properties": {"Application_Type": "web", "WorkspaceResourceId": workspace_id},
        }
        draft.messager.info(f"Start creating Application Insights ({draft.name})...")
        remote = draft.module.client.put(draft.id, self.api_version, body)
        draft.messager.success(f"Application Insights ({draft.name}) is successfully created.")
        return remote

    def update(self, draft: ResourceDraft, remote: dict) -> dict:
        raise AzureExecutionError("not supported")


class AzureApplicationInsights(AzService):
    display_name = "Application Insights"
    kinds = (ApplicationInsightsKind(),)

    def components(self, subscription_id: str) -> ResourceModule:
        return self.module(subscription_id, "components")


@register_preload
def _preload_components(toolkit: AzureToolkit) -> None:
    for root in toolkit.service(AzureApplicationInsights).list():
        root.module("components").list()

"""App Service: plans, Web Apps and Function Apps.

Web Apps and Function Apps share the ``Microsoft.Web/sites`` type and are
told apart by the site ``kind``.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, Field

from az_toolkit.azure_api.resource_id import ResourceId
from az_toolkit.core.preload import register_preload
from az_toolkit.core.resource import AzResource, ResourceDraft, ResourceKind, ResourceModule, Status, dig
from az_toolkit.core.service import AzService, ServiceSubscription
from az_toolkit.services.resources import AzureResources
from az_toolkit.services.service_linker import ServiceLinkerKind

if TYPE_CHECKING:
    from az_toolkit.toolkit import AzureToolkit

__all__ = ["AzureAppService"]

logger = logging.getLogger(__name__)

WEB_API_VERSION = "2023-01-01"
WEB_PROVIDER = "Microsoft.Web"

HTTP_TRIGGER = "httptrigger"

_FUNCTION_APP_DEFAULT_SETTINGS = {
    "FUNCTIONS_EXTENSION_VERSION": "~4",
    "FUNCTIONS_WORKER_RUNTIME": "java",
}


# ---------------------------------------------------------------------------
# Functions deployed in a Function App
# ---------------------------------------------------------------------------


class BindingEntity(BaseModel):
    type: str | None = None
    direction: str | None = None
    name: str | None = None
    properties: dict[str, Any] = Field(default_factory=dict)

    def get_property(self, key: str) -> Any:
        return self.properties.get(key)


class FunctionEntity(BaseModel):
    name: str
    function_app_id: str
    trigger_id: str | None = None
    script_file: str | None = None
    entry_point: str | None = None
    trigger_url: str | None = None
    bindings: list[BindingEntity] = Field(default_factory=list)

    @property
    def trigger(self) -> BindingEntity | None:
        for binding in self.bindings:
            if (binding.direction or "").lower() == "in" and "trigger" in (binding.type or "").lower():
                return binding
        return None

    @property
    def is_http_trigger(self) -> bool:
        trigger = self.trigger
        return trigger is not None and (trigger.get_property("type") or "").lower() == HTTP_TRIGGER


def _to_function_entity(app_id: str, remote: dict) -> FunctionEntity:
    properties = remote.get("properties") or {}
    config = properties.get("config") or {}
    bindings = [
        BindingEntity(
            type=b.get("type"),
            direction=b.get("direction"),
            name=b.get("name"),
            properties=dict(b),
        )
        for b in config.get("bindings") or []
    ]
    return FunctionEntity(
        name=properties.get("name") or remote["name"].split("/")[-1],
        function_app_id=app_id,
        trigger_id=remote.get("id"),
        script_file=config.get("scriptFile") or properties.get("script_href"),
        entry_point=config.get("entryPoint"),
        trigger_url=properties.get("invoke_url_template"),
        bindings=bindings,
    )


# ---------------------------------------------------------------------------
# Kinds
# ---------------------------------------------------------------------------


class AppServicePlanKind(ResourceKind):
    module_name = "plans"
    resource_type = "serverfarms"
    type_name = "App Service plan"
    provider = WEB_PROVIDER
    api_version = WEB_API_VERSION
    fields = {
        "region": "location",
        "pricing_tier": "sku.name",
        "sku_tier": "sku.tier",
        "operating_system": lambda plan: "Linux" if dig(plan.remote, "properties.reserved") else "Windows",
    }
    required_for_create = ("region",)

    def create(self, draft: ResourceDraft) -> dict:
        linux = (draft.get("operating_system") or "Linux").lower() == "linux"
        body = {
            "location": draft.get("region"),
            "kind": "linux" if linux else "app",
            "sku": {"name": draft.get("pricing_tier") or "B1"},
            "properties": {"reserved": linux},
        }
        draft.messager.info(f"Start creating App Service plan ({draft.name})...")
        remote = draft.module.client.put(draft.id, self.api_version, body)
        draft.messager.success(f"App Service plan ({draft.name}) is successfully created.")
        return remote

    def update(self, draft: ResourceDraft, remote: dict) -> dict:
        tier = draft.config.get("pricing_tier")
        if not tier:
            return remote
        return draft.module.client.patch(draft.id, self.api_version, {"sku": {"name": tier}})


def _site_config(site: AzResource) -> dict:
    config = site.arm_client.get(f"{site.id}/config/web", WEB_API_VERSION) or {}
    return config.get("properties") or {}


def _java_version(site: AzResource) -> str | None:
    if not site.exists():
        return None
    config = _site_config(site)
    linux_fx = config.get("linuxFxVersion") or ""
    if linux_fx.upper().startswith("JAVA|"):
        return linux_fx.split("|", 1)[1]
    return config.get("javaVersion")


def list_app_settings(site: AzResource) -> dict[str, str]:
    if not site.exists():
        return {}
    result = site.arm_client.post(f"{site.id}/config/appsettings/list", WEB_API_VERSION)
    return dict(result.get("properties") or {})


class _SiteKind(ResourceKind):
    resource_type = "sites"
    provider = WEB_PROVIDER
    api_version = WEB_API_VERSION
    fields = {
        "region": "location",
        "kind": "kind",
        "app_service_plan_id": "properties.serverFarmId",
        "hostname": "properties.defaultHostName",
        "state": "properties.state",
        "java_version": _java_version,
        "app_settings": list_app_settings,
    }
    required_for_create = ("region", "app_service_plan_id")
    sub_kinds = (ServiceLinkerKind(),)
    default_settings: dict[str, str] = {}
    site_kind = "app"

    def load_status(self, remote: dict) -> str:
        return dig(remote, "properties.state") or Status.ACTIVE

    def _is_linux_plan(self, draft: ResourceDraft) -> bool:
        plan = draft.module.client.get(draft.get("app_service_plan_id"), self.api_version) or {}
        return bool(dig(plan, "properties.reserved"))

    def create(self, draft: ResourceDraft) -> dict:
        linux = self._is_linux_plan(draft)
        settings = {**self.default_settings, **(draft.config.get("app_settings") or {})}
        site_config: dict[str, Any] = {
            "appSettings": [{"name": k, "value": v} for k, v in settings.items()],
        }
        java_version = draft.get("java_version")
        if java_version:
            if linux:
                site_config["linuxFxVersion"] = f"JAVA|{java_version}"
            else:
                site_config["javaVersion"] = java_version
        body = {
            "location": draft.get("region"),
            "kind": f"{self.site_kind},linux" if linux else self.site_kind,
            "properties": {
                "serverFarmId": draft.get("app_service_plan_id"),
                "reserved": linux,
                "siteConfig": site_config,
            },
        }
        draft.messager.info(f"Start creating {self.type_name} ({draft.name})...")
        remote = draft.module.client.put(draft.id, self.api_version, body)
        draft.messager.success(f"{self.type_name} ({draft.name}) is successfully created.")
        return remote

    def update(self, draft: ResourceDraft, remote: dict) -> dict:
        client = draft.module.client
        draft.messager.info(f"Start updating {self.type_name} ({draft.name})...")
        new_settings = draft.config.get("app_settings")
        if new_settings:
            current = client.post(f"{draft.id}/config/appsettings/list", self.api_version)
            merged = {**(current.get("properties") or {}), **new_settings}
            client.put(f"{draft.id}/config/appsettings", self.api_version, {"properties": merged})
        java_version = draft.config.get("java_version")
        if java_version:
            linux = bool(dig(remote, "properties.reserved"))
            key = "linuxFxVersion" if linux else "javaVersion"
            value = f"JAVA|{java_version}" if linux else java_version
            client.patch(f"{draft.id}/config/web", self.api_version, {"properties": {key: value}})
        draft.messager.success(f"{self.type_name} ({draft.name}) is successfully updated.")
        return client.get(draft.id, self.api_version) or remote


class WebAppKind(_SiteKind):
    module_name = "web_apps"
    type_name = "Web App"

    def accept(self, remote: dict) -> bool:
        return "functionapp" not in (remote.get("kind") or "").lower()


class FunctionAppKind(_SiteKind):
    module_name = "function_apps"
    type_name = "Function App"
    default_settings = _FUNCTION_APP_DEFAULT_SETTINGS
    site_kind = "functionapp"

    def accept(self, remote: dict) -> bool:
        return "functionapp" in (remote.get("kind") or "").lower()


def list_functions(app: AzResource) -> list[FunctionEntity]:
    """Functions deployed in a Function App (empty if the app is gone)."""
    if not app.exists():
        return []
    pages = app.arm_client.iter_pages(f"{app.id}/functions", WEB_API_VERSION)
    return [_to_function_entity(app.id, remote) for page in pages for remote in page]


# ---------------------------------------------------------------------------
# Façade
# ---------------------------------------------------------------------------


class AzureAppService(AzService):
    display_name = "App Services"
    kinds = (AppServicePlanKind(), WebAppKind(), FunctionAppKind())

    def plans(self, subscription_id: str) -> ResourceModule:
        return self.module(subscription_id, "plans")

    def web_apps(self, subscription_id: str) -> ResourceModule:
        return self.module(subscription_id, "web_apps")

    def function_apps(self, subscription_id: str) -> ResourceModule:
        return self.module(subscription_id, "function_apps")

    def plan(self, resource_id: str) -> AzResource:
        rid = ResourceId.from_string(resource_id)
        return self.plans(rid.subscription_id).get(rid.name, rid.resource_group_name)

    def list_functions(self, app: AzResource) -> list[FunctionEntity]:
        return list_functions(app)

    def _top_module(self, root: ServiceSubscription, rid: ResourceId) -> ResourceModule | None:
        top_type = rid.segments[0][0].lower()
        if top_type == "serverfarms":
            return root.module("plans")
        if top_type != "sites":
            return None
        generic = self.toolkit.service(AzureResources).get_generic_resource(rid.id)
        if generic is not None and "function" in (generic.get("kind") or "").lower():
            return root.module("function_apps")
        return root.module("web_apps")


@register_preload
def _preload_function_apps(toolkit: AzureToolkit) -> None:
    for root in toolkit.service(AzureAppService).list():
        root.module("function_apps").list()

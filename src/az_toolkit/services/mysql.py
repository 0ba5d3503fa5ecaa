"""Azure Database for MySQL flexible servers and their firewall rules."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import requests

from az_toolkit.core.preload import register_preload
from az_toolkit.core.resource import (
    AzResource,
    ResourceDraft,
    ResourceKind,
    ResourceModule,
    Status,
    dig,
)
from az_toolkit.core.service import AzService
from az_toolkit.exceptions import AzureExecutionError

if TYPE_CHECKING:
    from az_toolkit.toolkit import AzureToolkit

__all__ = ["AzureMySql"]

logger = logging.getLogger(__name__)

MYSQL_API_VERSION = "2021-05-01"
MYSQL_PROVIDER = "Microsoft.DBforMySQL"

AZURE_SERVICE_ACCESS_RULE = "AllowAllWindowsAzureIps"
LOCAL_MACHINE_ACCESS_RULE_PREFIX = "ClientIPAddress_"
_AZURE_SERVICE_IP = "0.0.0.0"

_STORAGE_SIZE_GB = 20


# ---------------------------------------------------------------------------
# Firewall rules
# ---------------------------------------------------------------------------


def get_public_ip(toolkit: AzureToolkit) -> str:
    """Public IP of this machine, as seen by ``settings.public_ip_url``."""

    def _fetch() -> str:
        resp = requests.get(toolkit.settings.public_ip_url, timeout=toolkit.settings.request_timeout)
        resp.raise_for_status()
        return resp.text.strip()

    return toolkit.context.caches.cached("public-ip", "local", _fetch)


def local_machine_rule_name(ip: str) -> str:
    return LOCAL_MACHINE_ACCESS_RULE_PREFIX + ip.replace(".", "-")


class FirewallRuleKind(ResourceKind):
    module_name = "firewall_rules"
    resource_type = "firewallRules"
    type_name = "MySQL firewall rule"
    provider = MYSQL_PROVIDER
    api_version = MYSQL_API_VERSION
    fields = {
        "start_ip": "properties.startIpAddress",
        "end_ip": "properties.endIpAddress",
    }
    required_for_create = ("start_ip", "end_ip")

    def _body(self, draft: ResourceDraft) -> dict:
        return {
            "properties": {
                "startIpAddress": draft.get("start_ip"),
                "endIpAddress": draft.get("end_ip"),
            }
        }

    def create(self, draft: ResourceDraft) -> dict:
        return draft.module.client.put(draft.id, self.api_version, self._body(draft))

    def update(self, draft: ResourceDraft, remote: dict) -> dict:
        return draft.module.client.put(draft.id, self.api_version, self._body(draft))


def _toggle_rule(rules: ResourceModule, name: str, start_ip: str, end_ip: str, allowed: bool) -> None:
    server: AzResource = rules.parent  # type: ignore[assignment]
    rule = rules.get(name, server.resource_group)
    if allowed and not rule.exists():
        rules.create(name, server.resource_group).update_config(start_ip=start_ip, end_ip=end_ip).commit()
    elif not allowed and rule.exists():
        rule.delete()


def toggle_azure_service_access(server: AzResource, allowed: bool) -> None:
    rules = server.sub_module("firewall_rules")
    _toggle_rule(rules, AZURE_SERVICE_ACCESS_RULE, _AZURE_SERVICE_IP, _AZURE_SERVICE_IP, allowed)


def toggle_local_machine_access(server: AzResource, allowed: bool) -> None:
    ip = get_public_ip(server.toolkit)
    rules = server.sub_module("firewall_rules")
    _toggle_rule(rules, local_machine_rule_name(ip), ip, ip, allowed)


def _azure_service_access_allowed(server: AzResource) -> bool:
    if not server.exists():
        return False
    return server.sub_module("firewall_rules").exists(AZURE_SERVICE_ACCESS_RULE, server.resource_group)


def _local_machine_access_allowed(server: AzResource) -> bool:
    if not server.exists():
        return False
    rule = local_machine_rule_name(get_public_ip(server.toolkit))
    return server.sub_module("firewall_rules").exists(rule, server.resource_group)


# ---------------------------------------------------------------------------
# Servers
# ---------------------------------------------------------------------------


class MySqlServerKind(ResourceKind):
    module_name = "servers"
    resource_type = "flexibleServers"
    type_name = "MySQL flexible server"
    provider = MYSQL_PROVIDER
    api_version = MYSQL_API_VERSION
    fields = {
        "region": "location",
        "admin_name": "properties.administratorLogin",
        "version": "properties.version",
        "fully_qualified_domain_name": "properties.fullyQualifiedDomainName",
        "azure_service_access_allowed": _azure_service_access_allowed,
        "local_machine_access_allowed": _local_machine_access_allowed,
    }
    write_only_fields = ("admin_password",)
    required_for_create = ("region",)
    sub_kinds = (FirewallRuleKind(),)

    def load_status(self, remote: dict) -> str:
        return dig(remote, "properties.state") or Status.ACTIVE

    def _select_sku(self, draft: ResourceDraft) -> tuple[str, dict, dict]:
        """Pick ``(zone, edition, sku)`` from the region's capabilities."""
        region = draft.get("region")
        version = draft.get("version") or ""
        path = (
            f"/subscriptions/{draft.subscription_id}/providers/{self.provider}"
            f"/locations/{region}/capabilities"
        )
        capabilities = [c for page in draft.module.client.iter_pages(path, self.api_version) for c in page]
        zones = [c for c in capabilities if (c.get("zone") or "").lower() != "none"]
        if not zones:
            raise AzureExecutionError("No available zones for current subscription.")
        zone = zones[0]
        editions = zone.get("supportedFlexibleServerEditions") or []
        if not editions:
            raise AzureExecutionError("No available MySQL server editions.")
        edition = editions[0]
        skus = [
            sku
            for v in edition.get("supportedServerVersions") or []
            if (v.get("name") or "").lower() == version.lower()
            for sku in v.get("supportedSkus") or []
        ]
        if not skus:
            raise AzureExecutionError(f"Version '{version}' is not supported in region '{region}'.")
        return zone["zone"], edition, skus[0]

    def create(self, draft: ResourceDraft) -> dict:
        zone, edition, sku = self._select_sku(draft)
        body = {
            "location": draft.get("region"),
            "sku": {"name": sku["name"], "tier": edition["name"]},
            "properties": {
                "administratorLogin": draft.get("admin_name"),
                "administratorLoginPassword": draft.get("admin_password"),
                "version": draft.get("version"),
                "availabilityZone": zone,
                "storage": {
                    "storageSizeGB": _STORAGE_SIZE_GB,
                    "iops": sku.get("supportedIops"),
                    "autoGrow": "Enabled",
                },
            },
        }
        draft.messager.info(f"Start creating MySQL server ({draft.name})...")
        remote = draft.module.client.put(draft.id, self.api_version, body)
        draft.messager.success(f"MySQL server({draft.name}) is successfully created.")
        return remote

    def update(self, draft: ResourceDraft, remote: dict) -> dict:
        # only the firewall toggles are updatable, see after_commit
        return remote

    def after_commit(self, draft: ResourceDraft, resource: AzResource) -> None:
        azure_access = draft.config.get("azure_service_access_allowed")
        local_access = draft.config.get("local_machine_access_allowed")
        if azure_access is None and local_access is None:
            return
        draft.messager.info(f"Start updating firewall rules of MySQL server ({draft.name})...")
        if azure_access is not None:
            toggle_azure_service_access(resource, bool(azure_access))
        if local_access is not None:
            toggle_local_machine_access(resource, bool(local_access))
        draft.messager.success(f"Firewall rules of MySQL server({draft.name}) is successfully updated.")


class AzureMySql(AzService):
    display_name = "Azure Database for MySQL flexible server"
    kinds = (MySqlServerKind(),)

    def servers(self, subscription_id: str) -> ResourceModule:
        return self.module(subscription_id, "servers")


@register_preload
def _preload_mysql_servers(toolkit: AzureToolkit) -> None:
    for root in toolkit.service(AzureMySql).list():
        root.module("servers").list()

"""Virtual networks, network security groups and public IP addresses."""

from __future__ import annotations

from typing import TYPE_CHECKING

from az_toolkit.core.preload import register_preload
from az_toolkit.core.resource import AzResource, ResourceDraft, ResourceKind, ResourceModule, dig
from az_toolkit.core.service import AzService

if TYPE_CHECKING:
    from az_toolkit.toolkit import AzureToolkit

__all__ = ["AzureNetwork"]

NETWORK_API_VERSION = "2023-09-01"
NETWORK_PROVIDER = "Microsoft.Network"

DEFAULT_ADDRESS_SPACE = "10.0.0.0/16"
DEFAULT_SUBNET = "default"
DEFAULT_SUBNET_ADDRESS_SPACE = "10.0.0.0/24"


def _first_address_prefix(network: AzResource) -> str | None:
    prefixes = dig(network.remote, "properties.addressSpace.addressPrefixes") or []
    return prefixes[0] if prefixes else None


def _first_subnet(network: AzResource) -> dict:
    subnets = dig(network.remote, "properties.subnets") or []
    return subnets[0] if subnets else {}


class _NetworkKind(ResourceKind):
    provider = NETWORK_PROVIDER
    api_version = NETWORK_API_VERSION
    required_for_create = ("region",)

    def _properties(self, draft: ResourceDraft) -> dict:
        return {}

    def _sku(self, draft: ResourceDraft) -> dict | None:
        return None

    def create(self, draft: ResourceDraft) -> dict:
        body: dict = {"location": draft.get("region"), "properties": self._properties(draft)}
        sku = self._sku(draft)
        if sku:
            body["sku"] = sku
        draft.messager.info(f"Start creating {self.type_name} ({draft.name})...")
        remote = draft.module.client.put(draft.id, self.api_version, body)
        draft.messager.success(f"{self.type_name} ({draft.name}) is successfully created.")
        return remote


class VirtualNetworkKind(_NetworkKind):
    module_name = "virtual_networks"
    resource_type = "virtualNetworks"
    type_name = "Virtual network"
    fields = {
        "region": "location",
        "address_space": _first_address_prefix,
        "subnet": lambda network: _first_subnet(network).get("name"),
        "subnet_address_space": lambda network: dig(_first_subnet(network), "properties.addressPrefix"),
    }

    def _properties(self, draft: ResourceDraft) -> dict:
        return {
            "addressSpace": {"addressPrefixes": [draft.get("address_space") or DEFAULT_ADDRESS_SPACE]},
            "subnets": [
                {
                    "name": draft.get("subnet") or DEFAULT_SUBNET,
                    "properties": {
                        "addressPrefix": draft.get("subnet_address_space") or DEFAULT_SUBNET_ADDRESS_SPACE
                    },
                }
            ],
        }


class NetworkSecurityGroupKind(_NetworkKind):
    module_name = "network_security_groups"
    resource_type = "networkSecurityGroups"
    type_name = "Network security group"
    fields = {
        "region": "location",
        "security_rules": "properties.securityRules",
    }

    def _properties(self, draft: ResourceDraft) -> dict:
        return {"securityRules": draft.get("security_rules") or []}


class PublicIpAddressKind(_NetworkKind):
    module_name = "public_ip_addresses"
    resource_type = "publicIPAddresses"
    type_name = "Public IP address"
    fields = {
        "region": "location",
        "ip_address": "properties.ipAddress",
        "leaf_domain_label": "properties.dnsSettings.domainNameLabel",
        "fqdn": "properties.dnsSettings.fqdn",
    }

    def _sku(self, draft: ResourceDraft) -> dict | None:
        return {"name": "Standard"}

    def _properties(self, draft: ResourceDraft) -> dict:
        properties: dict = {"publicIPAllocationMethod": "Static"}
        label = draft.get("leaf_domain_label")
        if label:
            properties["dnsSettings"] = {"domainNameLabel": label}
        return properties


class AzureNetwork(AzService):
    display_name = "Azure Network"
    kinds = (VirtualNetworkKind(), NetworkSecurityGroupKind(), PublicIpAddressKind())

    def virtual_networks(self, subscription_id: str) -> ResourceModule:
        return self.module(subscription_id, "virtual_networks")

    def network_security_groups(self, subscription_id: str) -> ResourceModule:
        return self.module(subscription_id, "network_security_groups")

    def public_ip_addresses(self, subscription_id: str) -> ResourceModule:
        return self.module(subscription_id, "public_ip_addresses")


@register_preload
def _preload_virtual_networks(toolkit: AzureToolkit) -> None:
    for root in toolkit.service(AzureNetwork).list():
        root.module("virtual_networks").list()

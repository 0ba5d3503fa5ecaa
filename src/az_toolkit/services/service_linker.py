"""Service Linker (Service Connector) connections of a compute resource."""

from __future__ import annotations

import logging

from az_toolkit.azure_api.client import ArmClient
from az_toolkit.core.resource import AzResource, ResourceKind, ResourceModule

logger = logging.getLogger(__name__)

LINKER_API_VERSION = "2022-11-01-preview"
LINKER_PROVIDER = "Microsoft.ServiceLinker"
PROVIDERS_API_VERSION = "2021-04-01"


def ensure_provider_registered(client: ArmClient, namespace: str) -> None:
    """Register *namespace* in the client's subscription unless it already is."""
    path = f"{client.subscription_path}/providers/{namespace}"
    provider = client.get(path, PROVIDERS_API_VERSION) or {}
    if (provider.get("registrationState") or "").lower() == "registered":
        return
    logger.info("Registering resource provider %s in subscription %s", namespace, client.subscription_id)
    client.post(f"{path}/register", PROVIDERS_API_VERSION)


class ServiceLinkerKind(ResourceKind):
    module_name = "service_linkers"
    resource_type = "linkers"
    type_name = "Service Connector"
    provider = LINKER_PROVIDER
    api_version = LINKER_API_VERSION
    fields = {
        "target_service_id": "properties.targetService.id",
        "auth_type": "properties.authInfo.authType",
        "client_type": "properties.clientType",
    }

    def resource_path(self, module: ResourceModule, name: str, resource_group: str | None) -> str:
        return f"{module.parent.id}/providers/{self.provider}/{self.resource_type}/{name}"

    def list_path(self, module: ResourceModule) -> str:
        return f"{module.parent.id}/providers/{self.provider}/{self.resource_type}"

    def identity(self, module: ResourceModule, remote: dict) -> tuple[str, str | None]:
        consumer: AzResource = module.parent  # type: ignore[assignment]
        return remote["name"], consumer.resource_group

    def build_client(self, module: ResourceModule) -> ArmClient:
        client = module.arm_client
        module.context.caches.cached(
            "registered-providers",
            f"{client.subscription_id}/{self.provider}".lower(),
            lambda: ensure_provider_registered(client, self.provider),
        )
        return client

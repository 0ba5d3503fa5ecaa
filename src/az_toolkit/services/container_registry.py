"""Azure Container Registry: registries (ARM) and repositories (data plane)."""

from __future__ import annotations

import logging
from collections.abc import Iterator
from typing import TYPE_CHECKING

import requests
from azure.core.credentials import TokenCredential

from az_toolkit.azure_api._auth import _get_token
from az_toolkit.azure_api.client import raise_for_response
from az_toolkit.config import ToolkitSettings
from az_toolkit.core.preload import register_preload
from az_toolkit.core.resource import (
    AzResource,
    ResourceDraft,
    ResourceKind,
    ResourceModule,
)
from az_toolkit.core.service import AzService

if TYPE_CHECKING:
    from az_toolkit.toolkit import AzureToolkit

__all__ = ["AzureContainerRegistry"]

logger = logging.getLogger(__name__)

REGISTRY_API_VERSION = "2023-07-01"
REGISTRY_PROVIDER = "Microsoft.ContainerRegistry"


class RegistryDataClient:
    """Minimal client for the registry data plane (``/acr/v1``).

    An AAD token for the management audience is exchanged for an ACR
    refresh token, which is then traded for scoped access tokens.
    """

    def __init__(
        self,
        login_server: str,
        settings: ToolkitSettings,
        tenant_id: str | None = None,
        credential: TokenCredential | None = None,
    ) -> None:
        self.login_server = login_server
        self.endpoint = f"https://{login_server}"
        self.settings = settings
        self.tenant_id = tenant_id
        self.credential = credential
        self._refresh_token: str | None = None

    def __repr__(self) -> str:
        return f"RegistryDataClient({self.login_server!r})"

    def _exchange(self) -> str:
        if self._refresh_token is None:
            aad_token = _get_token(
                self.tenant_id,
                scope=f"{self.settings.management_endpoint}/.default",
                cred=self.credential,
            )
            data = {
                "grant_type": "access_token",
                "service": self.login_server,
                "access_token": aad_token,
            }
            if self.tenant_id:
                data["tenant"] = self.tenant_id
            resp = requests.post(
                f"{self.endpoint}/oauth2/exchange", data=data, timeout=self.settings.request_timeout
            )
            raise_for_response(resp)
            self._refresh_token = resp.json()["refresh_token"]
        return self._refresh_token

    def _access_token(self, scope: str) -> str:
        resp = requests.post(
            f"{self.endpoint}/oauth2/token",
            data={
                "grant_type": "refresh_token",
                "service": self.login_server,
                "scope": scope,
                "refresh_token": self._exchange(),
            },
            timeout=self.settings.request_timeout,
        )
        raise_for_response(resp)
        return resp.json()["access_token"]

    def _request(self, method: str, url: str, scope: str) -> requests.Response:
        headers = {
            "Authorization": f"Bearer {self._access_token(scope)}",
            "User-Agent": self.settings.user_agent,
        }
        logger.debug("%s %s", method, url)
        return requests.request(method, url, headers=headers, timeout=self.settings.request_timeout)

    def list_repository_names(self, page_size: int) -> Iterator[list[str]]:
        """Yield pages of repository names, following the ``Link`` header."""
        url: str | None = f"{self.endpoint}/acr/v1/_catalog?n={page_size}"
        while url:
            resp = self._request("GET", url, "registry:catalog:*")
            raise_for_response(resp)
            yield (resp.json() if resp.content else {}).get("repositories") or []
            next_link = resp.links.get("next", {}).get("url")
            url = f"{self.endpoint}{next_link}" if next_link and next_link.startswith("/") else next_link

    def get_repository(self, name: str) -> dict | None:
        resp = self._request("GET", f"{self.endpoint}/acr/v1/{name}", f"repository:{name}:metadata_read")
        if resp.status_code == 404:
            return None
        raise_for_response(resp)
        return resp.json()

    def delete_repository(self, name: str) -> None:
        resp = self._request("DELETE", f"{self.endpoint}/acr/v1/{name}", f"repository:{name}:delete")
        if resp.status_code == 404:
            return
        raise_for_response(resp)


class RepositoryKind(ResourceKind):
    module_name = "repositories"
    resource_type = "repositories"
    type_name = "Repository"
    provider = REGISTRY_PROVIDER
    fields = {
        "created_time": "createdTime",
        "last_update_time": "lastUpdateTime",
        "manifest_count": "manifestCount",
        "tag_count": "tagCount",
    }

    def build_client(self, module: ResourceModule) -> RegistryDataClient | None:
        registry: AzResource = module.parent  # type: ignore[assignment]
        login_server = registry.field("login_server") if registry.exists() else None
        if not login_server:
            return None
        arm = module.arm_client
        return RegistryDataClient(
            login_server, arm.settings, tenant_id=arm.tenant_id, credential=arm.credential
        )

    def identity(self, module: ResourceModule, remote: dict) -> tuple[str, str | None]:
        registry: AzResource = module.parent  # type: ignore[assignment]
        return remote.get("imageName") or remote["name"], registry.resource_group

    def load_pages(self, module: ResourceModule) -> Iterator[list[dict]]:
        client: RegistryDataClient | None = module.client
        if client is None:
            return
        page_size = module.arm_client.settings.page_size
        for names in client.list_repository_names(page_size):
            yield [client.get_repository(n) or {"imageName": n} for n in names]

    def load_one(self, module: ResourceModule, name: str, resource_group: str | None) -> dict | None:
        client: RegistryDataClient | None = module.client
        if client is None:
            return None
        return client.get_repository(name)

    def delete(self, module: ResourceModule, resource: AzResource) -> None:
        client: RegistryDataClient | None = module.client
        if client is not None:
            client.delete_repository(resource.name)

    def load_status(self, remote: dict) -> str:
        return "Active"


class RegistryKind(ResourceKind):
    module_name = "registries"
    resource_type = "registries"
    type_name = "Container Registry"
    provider = REGISTRY_PROVIDER
    api_version = REGISTRY_API_VERSION
    fields = {
        "region": "location",
        "sku": "sku.name",
        "login_server": "properties.loginServer",
        "admin_user_enabled": "properties.adminUserEnabled",
        "public_network_access": "properties.publicNetworkAccess",
    }
    required_for_create = ("region",)
    sub_kinds = (RepositoryKind(),)

    def create(self, draft: ResourceDraft) -> dict:
        body = {
            "location": draft.get("region"),
            "sku": {"name": draft.get("sku") or "Basic"},
            "properties": {"adminUserEnabled": bool(draft.get("admin_user_enabled"))},
        }
        draft.messager.info(f"Start creating Azure Container Registry ({draft.name})...")
        remote = draft.module.client.put(draft.id, self.api_version, body)
        draft.messager.success(f"Azure Container Registry ({draft.name}) is successfully created.")
        return remote

    def update(self, draft: ResourceDraft, remote: dict) -> dict:
        body: dict = {}
        if draft.config.get("sku") is not None:
            body["sku"] = {"name": draft.config["sku"]}
        if draft.config.get("admin_user_enabled") is not None:
            body["properties"] = {"adminUserEnabled": bool(draft.config["admin_user_enabled"])}
        if not body:
            return remote
        return draft.module.client.patch(draft.id, self.api_version, body)


class AzureContainerRegistry(AzService):
    display_name = "Container Registries"
    kinds = (RegistryKind(),)

    def registries(self, subscription_id: str) -> ResourceModule:
        return self.module(subscription_id, "registries")

    def list_credentials(self, registry: AzResource) -> dict:
        """Admin user name and passwords (requires the admin user to be enabled)."""
        return registry.arm_client.post(f"{registry.id}/listCredentials", REGISTRY_API_VERSION)


@register_preload
def _preload_registries(toolkit: AzureToolkit) -> None:
    for root in toolkit.service(AzureContainerRegistry).list():
        root.module("registries").list()

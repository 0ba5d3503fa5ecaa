"""Signed-in account: tenants, subscriptions and subscription selection."""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass

import requests
from azure.core.credentials import TokenCredential
from azure.core.exceptions import ClientAuthenticationError

from az_toolkit.azure_api import _discovery_cache
from az_toolkit.azure_api._auth import _get_credential
from az_toolkit.azure_api._cache import ALL
from az_toolkit.azure_api.client import ArmClient
from az_toolkit.azure_api.discovery import list_locations, list_subscriptions, list_tenants
from az_toolkit.config import ToolkitSettings
from az_toolkit.config import settings as default_settings
from az_toolkit.core.context import ToolkitContext
from az_toolkit.core.region import Region
from az_toolkit.exceptions import AzureApiError, AzureToolkitAuthenticationError, AzureToolkitError

logger = logging.getLogger(__name__)


@dataclass
class Subscription:
    id: str
    name: str
    tenant_id: str
    selected: bool = False


class Account:
    """The signed-in identity and the subscriptions it can see.

    Credentials come from ``azure-identity`` (``DefaultAzureCredential``
    unless one is passed in); tokens are requested per tenant.
    """

    def __init__(
        self,
        settings: ToolkitSettings | None = None,
        credential: TokenCredential | None = None,
        context: ToolkitContext | None = None,
    ) -> None:
        self.settings = settings or default_settings
        self.context = context or ToolkitContext()
        self._credential = credential
        self._signed_in = False
        self._subscriptions: list[Subscription] | None = None
        self._clients: dict[str, ArmClient] = {}
        self._lock = threading.Lock()
        # called with the account once subscriptions have been selected
        self.after_selection: Callable[[Account], None] | None = None

    def __repr__(self) -> str:
        state = "signed-in" if self.is_logged_in else "signed-out"
        return f"<Account {state} subscriptions={len(self._subscriptions or [])}>"

    @property
    def credential(self) -> TokenCredential:
        return _get_credential(self._credential)

    @property
    def portal_url(self) -> str:
        return self.settings.portal_url

    # ------------------------------------------------------------------
    # Sign in / out
    # ------------------------------------------------------------------

    def login(self) -> Account:
        self._signed_in = True
        self.reload_subscriptions()
        logger.info("Signed in, %d subscription(s) available", len(self._subscriptions or []))
        return self

    def logout(self) -> None:
        with self._lock:
            self._signed_in = False
            self._subscriptions = None
            self._clients.clear()
        self.context.caches.evict(ALL)
        _discovery_cache.clear()

    def reload_subscriptions(self) -> list[Subscription]:
        """Reload subscriptions from ARM, keeping the current selection."""
        selected = {s.id.lower() for s in self._subscriptions or [] if s.selected}
        subscriptions = sorted(self._load_subscriptions(), key=lambda s: s.name.lower())
        for subscription in subscriptions:
            subscription.selected = subscription.id.lower() in selected
        self._subscriptions = subscriptions
        return self.get_subscriptions() if subscriptions else []

    def _load_subscriptions(self) -> list[Subscription]:
        if self.settings.tenant_id:
            tenant_ids = [self.settings.tenant_id]
        else:
            tenants = list_tenants(cred=self._credential)["tenants"]
            tenant_ids = []
            for tenant in tenants:
                if tenant["authenticated"]:
                    tenant_ids.append(tenant["id"])
                else:
                    self.context.messager.warning(
                        f"Skipping tenant {tenant['id']} ({tenant['name']}): the current credential cannot "
                        f"get a token for it. Set AZ_TOOLKIT_TENANT_ID to sign in to it explicitly."
                    )

        loaded: dict[str, Subscription] = {}
        for tenant_id in tenant_ids:
            try:
                subs = list_subscriptions(tenant_id, cred=self._credential)
            except (AzureApiError, ClientAuthenticationError, requests.RequestException) as exc:
                self.context.messager.warning(
                    f"Failed to get subscriptions for tenant {tenant_id}, please confirm you have "
                    f"sufficient permissions. Set AZ_TOOLKIT_TENANT_ID to sign in to a tenant "
                    f"that requires Multi-Factor Authentication (MFA). Message: {exc}"
                )
                continue
            for s in subs:
                loaded.setdefault(
                    s["id"].lower(),
                    Subscription(id=s["id"], name=s["name"], tenant_id=s.get("tenantId") or tenant_id),
                )
        return list(loaded.values())

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def is_logged_in(self) -> bool:
        return self._signed_in and bool(self._subscriptions)

    @property
    def is_logged_in_completely(self) -> bool:
        return self.is_logged_in and bool(self.selected_subscriptions)

    def get_subscriptions(self) -> list[Subscription]:
        if not self.is_logged_in:
            raise AzureToolkitAuthenticationError(
                "You are not signed-in or there are no subscriptions in your current Account."
            )
        return list(self._subscriptions or [])

    def get_subscription(self, subscription_id: str) -> Subscription:
        for subscription in self.get_subscriptions():
            if subscription.id.lower() == subscription_id.lower():
                return subscription
        raise AzureToolkitError(f"Cannot find subscription with id '{subscription_id}'")

    def get_selected_subscription(self, subscription_id: str) -> Subscription:
        for subscription in self.selected_subscriptions:
            if subscription.id.lower() == subscription_id.lower():
                return subscription
        raise AzureToolkitError(f"Cannot find a selected subscription with id '{subscription_id}'")

    @property
    def selected_subscriptions(self) -> list[Subscription]:
        return [s for s in self.get_subscriptions() if s.selected]

    @property
    def tenant_ids(self) -> list[str]:
        return list(dict.fromkeys(s.tenant_id for s in self.get_subscriptions()))

    def set_selected_subscriptions(self, subscription_ids: list[str]) -> None:
        if not subscription_ids:
            raise AzureToolkitError(
                "No subscriptions are selected. You must select at least one subscription."
            )
        wanted = {sid.lower() for sid in subscription_ids}
        for subscription in self.get_subscriptions():
            subscription.selected = subscription.id.lower() in wanted
        logger.debug("Selected subscriptions: %s", sorted(wanted))
        if self.after_selection is not None:
            self.after_selection(self)

    # ------------------------------------------------------------------
    # Clients
    # ------------------------------------------------------------------

    def client(self, subscription_id: str) -> ArmClient:
        """Return the (cached) ARM client for *subscription_id*."""
        key = subscription_id.lower()
        with self._lock:
            client = self._clients.get(key)
        if client is not None:
            return client
        subscription = self.get_subscription(subscription_id)
        client = ArmClient(
            subscription.id,
            tenant_id=subscription.tenant_id,
            credential=self._credential,
            settings=self.settings,
        )
        with self._lock:
            return self._clients.setdefault(key, client)

    def list_regions(self, subscription_id: str) -> list[Region]:
        """Physical regions available to *subscription_id*."""
        subscription = self.get_subscription(subscription_id)
        locations = list_locations(subscription.id, subscription.tenant_id, cred=self._credential)
        return [Region.from_name(loc["name"]) for loc in locations]

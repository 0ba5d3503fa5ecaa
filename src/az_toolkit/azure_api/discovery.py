"""Tenant, subscription, and location discovery."""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor

import requests
from azure.core.credentials import TokenCredential

from az_toolkit.azure_api._auth import (
    AZURE_API_VERSION,
    AZURE_MGMT_URL,
    _check_tenant_auth,
    _get_default_tenant_id,
    _get_headers,
    _suppress_stderr,
)
from az_toolkit.azure_api._cache import _cache_set, _cached
from az_toolkit.azure_api._pagination import _paginate
from az_toolkit.azure_api.client import raise_for_response
from az_toolkit.config import settings

logger = logging.getLogger(__name__)


def _fetcher(headers: dict[str, str]):
    def _fetch(url: str) -> dict:
        resp = requests.get(url, headers=headers, timeout=settings.request_timeout)
        raise_for_response(resp)
        return resp.json()

    return _fetch


def list_tenants(tenant_id: str | None = None, cred: TokenCredential | None = None) -> dict:
    """Return tenants with auth status and the default tenant ID.

    Returns ``{"tenants": [...], "defaultTenantId": ...}``.
    Results are cached for ``_DISCOVERY_CACHE_TTL`` seconds.
    """
    cache_key = f"tenants:{tenant_id or ''}"
    cached = _cached(cache_key)
    if cached is not None:
        return cached  # type: ignore[return-value]

    headers = _get_headers(tenant_id, cred=cred)
    url = f"{AZURE_MGMT_URL}/tenants?api-version={AZURE_API_VERSION}"
    all_tenants = _paginate(url, _fetcher(headers))

    tenant_ids = [t["tenantId"] for t in all_tenants]
    auth_results: dict[str, bool] = {}
    if tenant_ids:
        # Suppress AzureCliCredential subprocess stderr noise across all threads.
        with _suppress_stderr(), ThreadPoolExecutor(max_workers=min(len(tenant_ids), 8)) as pool:
            checks = pool.map(lambda tid: _check_tenant_auth(tid, cred=cred), tenant_ids)
            auth_results = dict(zip(tenant_ids, checks, strict=True))

    tenants = [
        {
            "id": t["tenantId"],
            "name": t.get("displayName") or t["tenantId"],
            "authenticated": auth_results.get(t["tenantId"], False),
        }
        for t in all_tenants
    ]
    result = {
        "tenants": sorted(tenants, key=lambda x: x["name"].lower()),
        "defaultTenantId": _get_default_tenant_id(cred=cred),
    }
    _cache_set(cache_key, result)
    return result


def list_subscriptions(
    tenant_id: str | None = None,
    cred: TokenCredential | None = None,
) -> list[dict]:
    """Return enabled subscriptions as ``[{"id", "name", "tenantId"}, ...]``."""
    headers = _get_headers(tenant_id, cred=cred)
    url = f"{AZURE_MGMT_URL}/subscriptions?api-version={AZURE_API_VERSION}"
    all_subs = _paginate(url, _fetcher(headers))

    subs = [
        {
            "id": s["subscriptionId"],
            "name": s["displayName"],
            "tenantId": s.get("tenantId") or tenant_id,
        }
        for s in all_subs
        if s.get("state") == "Enabled"
    ]
    return sorted(subs, key=lambda x: x["name"].lower())


def list_locations(
    subscription_id: str,
    tenant_id: str | None = None,
    cred: TokenCredential | None = None,
) -> list[dict[str, str]]:
    """Return physical ARM locations as ``[{"name": ..., "displayName": ...}, ...]``.

    Results are cached per subscription for ``_DISCOVERY_CACHE_TTL`` seconds.
    """
    cache_key = f"locations:{subscription_id}"
    cached = _cached(cache_key)
    if cached is not None:
        return cached  # type: ignore[return-value]

    headers = _get_headers(tenant_id, cred=cred)
    url = (
        f"{AZURE_MGMT_URL}/subscriptions/{subscription_id}/locations"
        f"?api-version={AZURE_API_VERSION}"
    )
    resp = requests.get(url, headers=headers, timeout=settings.request_timeout)
    raise_for_response(resp)

    locations = resp.json().get("value", [])
    result = sorted(
        [
            {"name": loc["name"], "displayName": loc["displayName"]}
            for loc in locations
            if loc.get("metadata", {}).get("regionType") == "Physical"
        ],
        key=lambda x: x["displayName"],
    )
    _cache_set(cache_key, result)
    return result

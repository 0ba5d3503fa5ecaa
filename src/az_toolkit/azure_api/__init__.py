"""Shared Azure ARM API helpers.

Low-level transport used by every resource façade: credential handling,
the subscription-scoped :class:`ArmClient`, lazy pagination, TTL caches and
tenant / subscription discovery.

This package re-exports its public names so that
``from az_toolkit.azure_api import X`` keeps working whichever submodule
``X`` lives in.
"""

import requests as requests  # noqa: F401  # re-export for mock patching

# -- Auth & constants -------------------------------------------------------
from az_toolkit.azure_api._auth import (  # noqa: F401
    AZURE_API_VERSION,
    AZURE_MGMT_URL,
    _check_tenant_auth,
    _get_default_tenant_id,
    _get_headers,
    _get_token,
    _suppress_stderr,
    credential,
)

# -- Caches (exposed for test fixtures) -------------------------------------
from az_toolkit.azure_api._cache import (  # noqa: F401
    ALL,
    CacheManager,
    TtlCache,
    _cache_set,
    _cached,
    _discovery_cache,
    cached,
)

# -- Pagination --------------------------------------------------------------
from az_toolkit.azure_api._pagination import _paginate, iter_pages  # noqa: F401

# -- Client ------------------------------------------------------------------
from az_toolkit.azure_api.client import ArmClient, raise_for_response  # noqa: F401

# -- Discovery ---------------------------------------------------------------
from az_toolkit.azure_api.discovery import (  # noqa: F401
    list_locations,
    list_subscriptions,
    list_tenants,
)

# -- Resource IDs ------------------------------------------------------------
from az_toolkit.azure_api.resource_id import ResourceId, build_resource_id  # noqa: F401

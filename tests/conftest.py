"""Shared test fixtures for az-toolkit tests."""

from __future__ import annotations

from unittest.mock import MagicMock, patch

import pytest

from az_toolkit.config import ToolkitSettings
from az_toolkit.toolkit import AzureToolkit


@pytest.fixture(autouse=True)
def _mock_credential():
    """Prevent real Azure credential calls in every test."""
    mock_token = MagicMock()
    mock_token.token = "fake-token"
    with patch("az_toolkit.azure_api._auth.credential") as cred:
        cred.get_token.return_value = mock_token
        yield cred


@pytest.fixture(autouse=True)
def _clear_discovery_cache():
    """Clear the discovery cache between tests."""
    from az_toolkit.azure_api import _discovery_cache

    _discovery_cache.clear()
    yield
    _discovery_cache.clear()


@pytest.fixture()
def settings() -> ToolkitSettings:
    return ToolkitSettings(enable_preloading=False, poll_interval=0)


@pytest.fixture()
def arm() -> MagicMock:
    """Stand-in for the subscription-scoped ARM client."""
    client = MagicMock(name="arm_client")
    client.get.return_value = None
    client.iter_pages.return_value = iter([])
    return client


@pytest.fixture()
def toolkit(arm: MagicMock, settings: ToolkitSettings):
    """A toolkit whose account hands out the fake ARM client."""
    account = MagicMock(name="account")
    account.client.return_value = arm
    account.selected_subscriptions = []
    kit = AzureToolkit(account=account, settings=settings)
    yield kit
    kit.close()


SUB = "00000000-0000-0000-0000-000000000001"


def arm_resource(resource_type: str, name: str, rg: str = "rg", **extra: object) -> dict:
    """A minimal ARM JSON snapshot."""
    provider, _, type_name = resource_type.partition("/")
    body: dict = {
        "id": f"/subscriptions/{SUB}/resourceGroups/{rg}/providers/{provider}/{type_name}/{name}",
        "name": name,
        "type": resource_type,
        "location": "eastus",
        "properties": {},
    }
    body.update(extra)
    return body

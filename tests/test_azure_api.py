"""Tests for the ARM transport: client, pagination, caches and resource ids."""

from unittest.mock import MagicMock, patch

import pytest
from conftest import SUB

from az_toolkit.azure_api import (
    ALL,
    ArmClient,
    CacheManager,
    ResourceId,
    TtlCache,
    build_resource_id,
    cached,
    iter_pages,
    raise_for_response,
)
from az_toolkit.azure_api.discovery import list_locations, list_subscriptions
from az_toolkit.config import ToolkitSettings
from az_toolkit.exceptions import AzureApiError


def _resp(status: int = 200, body: object = None, headers: dict | None = None) -> MagicMock:
    resp = MagicMock()
    resp.status_code = status
    resp.ok = status < 400
    resp.reason = "Reason"
    resp.url = "https://management.azure.com/x"
    resp.headers = headers or {}
    resp.content = b"{}" if body is not None else b""
    resp.json.return_value = body if body is not None else {}
    return resp


@pytest.fixture()
def client() -> ArmClient:
    return ArmClient(SUB, settings=ToolkitSettings(poll_interval=0))


class TestRaiseForResponse:
    def test_ok_passes(self) -> None:
        raise_for_response(_resp(200, {}))

    def test_error_body(self) -> None:
        resp = _resp(409, {"error": {"code": "Conflict", "message": "already exists"}})
        with pytest.raises(AzureApiError) as exc_info:
            raise_for_response(resp)
        err = exc_info.value
        assert err.status_code == 409
        assert err.code == "Conflict"
        assert str(err) == "[409] Conflict: already exists"

    def test_non_json_body(self) -> None:
        resp = _resp(500)
        resp.json.side_effect = ValueError("no json")
        with pytest.raises(AzureApiError, match="Reason"):
            raise_for_response(resp)

    def test_not_found_flag(self) -> None:
        assert AzureApiError(404, "gone").is_not_found


class TestArmClient:
    def test_url_with_query(self, client: ArmClient) -> None:
        url = client.url("/subscriptions/x/resources", "2021-04-01", **{"$filter": "name eq 'a'"})
        assert url == (
            "https://management.azure.com/subscriptions/x/resources"
            "?api-version=2021-04-01&$filter=name+eq+'a'"
        )

    def test_url_absolute_passthrough(self, client: ArmClient) -> None:
        assert client.url("https://example.com/next?page=2") == "https://example.com/next?page=2"

    def test_subscription_path(self, client: ArmClient) -> None:
        assert client.subscription_path == f"/subscriptions/{SUB}"

    def test_get_returns_body(self, client: ArmClient) -> None:
        with patch("az_toolkit.azure_api.client.requests.request", return_value=_resp(200, {"name": "a"})) as req:
            assert client.get("/x", "2021-04-01") == {"name": "a"}
        method, url = req.call_args.args
        assert method == "GET"
        assert url.endswith("/x?api-version=2021-04-01")
        assert req.call_args.kwargs["headers"]["Authorization"] == "Bearer fake-token"

    def test_get_not_found_is_none(self, client: ArmClient) -> None:
        with patch("az_toolkit.azure_api.client.requests.request", return_value=_resp(404)):
            assert client.get("/x", "2021-04-01") is None

    def test_get_error_raises(self, client: ArmClient) -> None:
        with patch("az_toolkit.azure_api.client.requests.request", return_value=_resp(403, {})):
            with pytest.raises(AzureApiError):
                client.get("/x", "2021-04-01")

    def test_put_waits_for_async_operation(self, client: ArmClient) -> None:
        responses = [
            _resp(201, {"properties": {"provisioningState": "Creating"}},
                  headers={"Azure-AsyncOperation": "https://management.azure.com/op"}),
            _resp(200, {"status": "InProgress"}),
            _resp(200, {"status": "Succeeded"}),
            _resp(200, {"name": "done"}),
        ]
        with patch("az_toolkit.azure_api.client.requests.request", side_effect=responses) as req:
            assert client.put("/x", "2021-04-01", {"location": "eastus"}) == {"name": "done"}
        assert req.call_count == 4
        assert req.call_args_list[1].args == ("GET", "https://management.azure.com/op")

    def test_put_failed_operation_raises(self, client: ArmClient) -> None:
        responses = [
            _resp(202, {}, headers={"Location": "https://management.azure.com/op"}),
            _resp(200, {"status": "Failed", "error": {"code": "Quota", "message": "quota exceeded"}}),
        ]
        with patch("az_toolkit.azure_api.client.requests.request", side_effect=responses):
            with pytest.raises(AzureApiError, match="quota exceeded"):
                client.put("/x", "2021-04-01", {})

    def test_put_sync_success(self, client: ArmClient) -> None:
        body = {"name": "x", "properties": {"provisioningState": "Succeeded"}}
        with patch("az_toolkit.azure_api.client.requests.request", return_value=_resp(200, body)) as req:
            assert client.put("/x", "2021-04-01", {"a": 1}) == body
        assert req.call_args.kwargs["json"] == {"a": 1}
        req.assert_called_once()

    def test_delete_not_found_is_silent(self, client: ArmClient) -> None:
        with patch("az_toolkit.azure_api.client.requests.request", return_value=_resp(404)):
            client.delete("/x", "2021-04-01")

    def test_iter_pages_is_lazy(self, client: ArmClient) -> None:
        pages = [
            _resp(200, {"value": [{"name": "a"}], "nextLink": "https://management.azure.com/next"}),
            _resp(200, {"value": [{"name": "b"}]}),
        ]
        with patch("az_toolkit.azure_api.client.requests.request", side_effect=pages) as req:
            it = client.iter_pages("/x", "2021-04-01")
            assert next(it) == [{"name": "a"}]
            assert req.call_count == 1
            assert list(it) == [[{"name": "b"}]]
            assert req.call_count == 2

    def test_iter_pages_missing_parent(self, client: ArmClient) -> None:
        with patch("az_toolkit.azure_api.client.requests.request", return_value=_resp(404)):
            assert list(client.iter_pages("/x", "2021-04-01")) == [[]]


class TestIterPages:
    def test_follows_next_link(self) -> None:
        data = {
            "u1": {"value": [1, 2], "nextLink": "u2"},
            "u2": {"value": [3]},
        }
        assert list(iter_pages("u1", data.__getitem__)) == [[1, 2], [3]]


class TestDiscovery:
    @pytest.fixture(autouse=True)
    def _headers(self):
        with patch("az_toolkit.azure_api.discovery._get_headers", return_value={"Authorization": "Bearer x"}):
            yield

    def test_subscriptions_use_configured_timeout(self) -> None:
        body = {"value": [{"subscriptionId": SUB, "displayName": "Main", "state": "Enabled"}]}
        with (
            patch("az_toolkit.azure_api.discovery.settings", ToolkitSettings(request_timeout=7)),
            patch("az_toolkit.azure_api.discovery.requests.get", return_value=_resp(200, body)) as get,
        ):
            subs = list_subscriptions("t1")
        assert subs == [{"id": SUB, "name": "Main", "tenantId": "t1"}]
        assert get.call_args.kwargs["timeout"] == 7

    def test_locations_use_configured_timeout(self) -> None:
        body = {
            "value": [
                {"name": "westus", "displayName": "West US", "metadata": {"regionType": "Physical"}},
                {"name": "global", "displayName": "Global", "metadata": {"regionType": "Logical"}},
            ]
        }
        with (
            patch("az_toolkit.azure_api.discovery.settings", ToolkitSettings(request_timeout=12)),
            patch("az_toolkit.azure_api.discovery.requests.get", return_value=_resp(200, body)) as get,
        ):
            locations = list_locations(SUB)
        assert locations == [{"name": "westus", "displayName": "West US"}]
        assert get.call_args.kwargs["timeout"] == 12


class TestTtlCache:
    def test_none_is_cached(self) -> None:
        cache = TtlCache()
        compute = MagicMock(return_value=None)
        assert cached(cache, "k", compute) is None
        assert cached(cache, "k", compute) is None
        compute.assert_called_once()

    def test_failure_is_not_cached(self) -> None:
        cache = TtlCache()
        compute = MagicMock(side_effect=[RuntimeError("boom"), "ok"])
        with pytest.raises(RuntimeError):
            cached(cache, "k", compute)
        assert cached(cache, "k", compute) == "ok"
        assert compute.call_count == 2

    def test_expired_entry_is_recomputed(self) -> None:
        cache = TtlCache(ttl=0)
        cache.put("k", 1)
        assert "k" not in cache


class TestCacheManager:
    def test_evict_single_entry(self) -> None:
        caches = CacheManager()
        caches.cached("c", "a", lambda: 1)
        caches.cached("c", "b", lambda: 2)
        caches.evict("c", "a")
        assert "a" not in caches.get("c")
        assert "b" in caches.get("c")

    def test_evict_whole_cache(self) -> None:
        caches = CacheManager()
        caches.cached("c", "a", lambda: 1)
        caches.cached("d", "a", lambda: 1)
        caches.evict("c", ALL)
        assert "a" not in caches.get("c")
        assert "a" in caches.get("d")

    def test_evict_everything(self) -> None:
        caches = CacheManager()
        caches.cached("c", "a", lambda: 1)
        caches.cached("d", "a", lambda: 1)
        caches.evict(ALL)
        assert "a" not in caches.get("c")
        assert "a" not in caches.get("d")

    def test_evict_without_name_is_ignored(self) -> None:
        caches = CacheManager()
        caches.cached("c", "a", lambda: 1)
        caches.evict("")
        caches.evict("c", "")
        assert "a" in caches.get("c")


class TestResourceId:
    def test_nested_resource(self) -> None:
        rid = ResourceId.from_string(
            f"/subscriptions/{SUB}/resourceGroups/rg/providers/Microsoft.Web/sites/app/slots/dev"
        )
        assert rid.subscription_id == SUB
        assert rid.resource_group_name == "rg"
        assert rid.provider == "Microsoft.Web"
        assert rid.segments == (("sites", "app"), ("slots", "dev"))
        assert rid.name == "dev"
        assert rid.resource_type == "slots"
        assert rid.full_resource_type == "Microsoft.Web/sites/slots"
        assert rid.parent is not None
        assert rid.parent.name == "app"

    def test_resource_group(self) -> None:
        rid = ResourceId.from_string(f"/subscriptions/{SUB}/resourceGroups/rg")
        assert rid.provider is None
        assert rid.segments == (("resourceGroups", "rg"),)
        assert rid.name == "rg"

    def test_subscription(self) -> None:
        rid = ResourceId.from_string(f"/subscriptions/{SUB}")
        assert rid.name == SUB
        assert rid.resource_type == "subscriptions"

    @pytest.mark.parametrize("bad", ["", "/resourceGroups/rg", f"/subscriptions/{SUB}/resourceGroups/rg/x"])
    def test_invalid(self, bad: str) -> None:
        with pytest.raises(ValueError):
            ResourceId.from_string(bad)

    def test_build(self) -> None:
        assert build_resource_id(SUB, "rg", "Microsoft.Web", "sites", "app") == (
            f"/subscriptions/{SUB}/resourceGroups/rg/providers/Microsoft.Web/sites/app"
        )

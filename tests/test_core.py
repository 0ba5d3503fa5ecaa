"""Tests for the operation context, preloading, regions and façade routing."""

from unittest.mock import MagicMock, patch

from conftest import SUB

from az_toolkit.config import ToolkitSettings
from az_toolkit.core.context import LoggingMessager, ToolkitContext
from az_toolkit.core.preload import register_preload, registered_preloads, run_preloads
from az_toolkit.core.region import Region
from az_toolkit.services.appservice import AzureAppService
from az_toolkit.services.mysql import AzureMySql
from az_toolkit.services.resources import AzureResources
from az_toolkit.toolkit import AzureToolkit, load_services


class TestMessager:
    def test_default_is_logging_messager(self) -> None:
        assert isinstance(ToolkitContext().messager, LoggingMessager)

    def test_default_set_once(self) -> None:
        context = ToolkitContext()
        first, second = MagicMock(), MagicMock()
        context.set_default_messager(first)
        context.set_default_messager(second)
        assert context.messager is first
        first.warning.assert_called_once_with("default messager has already been registered")

    def test_operation_scope(self) -> None:
        context = ToolkitContext()
        default, scoped = MagicMock(), MagicMock()
        context.set_default_messager(default)
        with context.operation(scoped) as m:
            assert m is scoped
            assert context.messager is scoped
        assert context.messager is default


class TestBackground:
    def test_failure_is_swallowed(self) -> None:
        context = ToolkitContext()
        failing = MagicMock(side_effect=RuntimeError("boom"))
        try:
            future = context.run_in_background(failing, 1)
            assert future.result(timeout=5) is None
        finally:
            context.shutdown()
        failing.assert_called_once_with(1)


class TestPreload:
    def test_failures_do_not_stop_others(self) -> None:
        calls: list[str] = []

        def _bad(toolkit: object) -> None:
            raise RuntimeError("boom")

        def _ok(toolkit: object) -> None:
            calls.append("ok")

        with patch.dict("az_toolkit.core.preload._preloads", {}, clear=True):
            register_preload(_bad)
            register_preload(_ok)
            assert len(registered_preloads()) == 2
            assert run_preloads(MagicMock()) == 1
        assert calls == ["ok"]

    def test_register_is_idempotent(self) -> None:
        def _fn(toolkit: object) -> None:
            pass

        with patch.dict("az_toolkit.core.preload._preloads", {}, clear=True):
            assert register_preload(_fn) is _fn
            register_preload(_fn)
            assert registered_preloads() == [_fn]

    def test_selection_triggers_background_preload(self) -> None:
        account = MagicMock()
        toolkit = AzureToolkit(account=account, settings=ToolkitSettings(enable_preloading=True))
        with patch.object(toolkit.context, "run_in_background") as background:
            account.after_selection(account)
        background.assert_called_once_with(run_preloads, toolkit)

    def test_preloading_disabled(self, toolkit: AzureToolkit) -> None:
        with patch.object(toolkit.context, "run_in_background") as background:
            toolkit.account.after_selection(toolkit.account)
        background.assert_not_called()


class TestRegion:
    def test_known_region(self) -> None:
        region = Region.from_name("East US")
        assert region.name == "eastus"
        assert region.abbreviation == "EUS"
        assert str(region) == "eastus"

    def test_unknown_region(self) -> None:
        region = Region.from_name("marsnorth")
        assert region.label == "marsnorth"
        assert region.abbreviation == "MARSNORTH"


class TestToolkit:
    def test_load_services_by_provider(self) -> None:
        services = load_services()
        assert services[""] is AzureResources
        assert services["microsoft.web"] is AzureAppService
        assert services["microsoft.dbformysql"] is AzureMySql

    def test_service_is_shared(self, toolkit: AzureToolkit) -> None:
        assert toolkit.service(AzureMySql) is toolkit.service(AzureMySql)

    def test_invalidate_cache_drops_subscription_roots(self, toolkit: AzureToolkit) -> None:
        service = toolkit.service(AzureResources)
        first = service.subscription(SUB)
        toolkit.invalidate_cache()
        assert service.subscription(SUB) is not first

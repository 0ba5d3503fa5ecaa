"""Tests for the generic resource lifecycle (module cache, entity status, drafts)."""

import threading
from unittest.mock import MagicMock

import pytest
from conftest import SUB, arm_resource

from az_toolkit.core.resource import AzResource, ResourceModule, Status, dig
from az_toolkit.exceptions import AzureApiError, AzureExecutionError
from az_toolkit.services.mysql import AzureMySql
from az_toolkit.services.resources import AzureResources


def _group(name: str, location: str = "eastus", **extra: object) -> dict:
    body = {
        "id": f"/subscriptions/{SUB}/resourceGroups/{name}",
        "name": name,
        "location": location,
        "properties": {"provisioningState": "Succeeded"},
    }
    body.update(extra)
    return body


@pytest.fixture()
def groups(toolkit) -> ResourceModule:
    return toolkit.service(AzureResources).groups(SUB)


class TestDig:
    def test_nested(self) -> None:
        assert dig({"a": {"b": {"c": 1}}}, "a.b.c") == 1

    def test_missing(self) -> None:
        assert dig({"a": {}}, "a.b.c") is None

    def test_non_dict(self) -> None:
        assert dig({"a": "x"}, "a.b") is None
        assert dig(None, "a") is None


class TestModuleGet:
    def test_same_instance_for_repeated_get(self, groups, arm: MagicMock) -> None:
        arm.get.return_value = _group("rg1")
        first = groups.get("rg1")
        second = groups.get("RG1")
        assert first is second
        arm.get.assert_called_once()

    def test_loaded_status_from_provisioning_state(self, groups, arm: MagicMock) -> None:
        arm.get.return_value = _group("rg1")
        assert groups.get("rg1").status == "Succeeded"

    def test_absent_resource_is_deleted_and_cached(self, groups, arm: MagicMock) -> None:
        arm.get.return_value = None
        resource = groups.get("nope")
        assert resource.status == Status.DELETED
        assert not resource.exists()
        assert groups.get("nope") is resource
        arm.get.assert_called_once()

    def test_path_and_api_version(self, groups, arm: MagicMock) -> None:
        arm.get.return_value = _group("rg1")
        groups.get("rg1")
        arm.get.assert_called_once_with(f"/subscriptions/{SUB}/resourcegroups/rg1", "2021-04-01")

    def test_failed_load_propagates(self, groups, arm: MagicMock) -> None:
        arm.get.side_effect = AzureApiError(500, "boom")
        with pytest.raises(AzureApiError):
            groups.get("rg1")

    def test_unloaded_entity_status_unknown(self, groups) -> None:
        assert AzResource("x", "x", groups).status == Status.UNKNOWN


class TestModuleList:
    def test_list_fills_cache(self, groups, arm: MagicMock) -> None:
        arm.iter_pages.return_value = iter([[_group("rg1")], [_group("rg2")]])
        listed = groups.list()
        assert sorted(r.name for r in listed) == ["rg1", "rg2"]
        by_name = {r.name: r for r in listed}
        assert groups.get("rg1") is by_name["rg1"]
        arm.get.assert_not_called()

    def test_list_pages_only_once(self, groups, arm: MagicMock) -> None:
        arm.iter_pages.return_value = iter([[_group("rg1")]])
        groups.list()
        groups.list()
        arm.iter_pages.assert_called_once()

    def test_invalidate_cache_reloads(self, groups, arm: MagicMock) -> None:
        arm.iter_pages.side_effect = [iter([[_group("rg1")]]), iter([[_group("rg2")]])]
        groups.list()
        groups.invalidate_cache()
        assert [r.name for r in groups.list()] == ["rg2"]


class TestDelete:
    def test_delete_marks_deleted_and_evicts(self, groups, arm: MagicMock) -> None:
        arm.get.return_value = _group("rg1")
        resource = groups.get("rg1")
        resource.delete()
        arm.delete.assert_called_once_with(f"/subscriptions/{SUB}/resourceGroups/rg1", "2021-04-01")
        assert resource.status == Status.DELETED

        arm.get.return_value = None
        again = groups.get("rg1")
        assert again is not resource
        assert arm.get.call_count == 2

    def test_failed_delete_restores_status(self, groups, arm: MagicMock) -> None:
        arm.get.return_value = _group("rg1")
        arm.delete.side_effect = AzureApiError(409, "conflict")
        resource = groups.get("rg1")
        with pytest.raises(AzureApiError):
            resource.delete()
        assert resource.status == "Succeeded"


class TestDraft:
    def test_fresh_update_draft_is_not_modified(self, groups, arm: MagicMock) -> None:
        arm.get.return_value = _group("rg1")
        draft = groups.get("rg1").update()
        assert not draft.is_draft_for_creating
        assert not draft.is_modified()

    def test_setting_same_value_is_not_a_modification(self, groups, arm: MagicMock) -> None:
        arm.get.return_value = _group("rg1")
        draft = groups.get("rg1").update()
        draft.set("region", "eastus")
        assert not draft.is_modified()
        draft.set("region", "westus")
        assert draft.is_modified()
        assert draft.get("region") == "westus"
        assert draft.original("region") == "eastus"

    def test_reset(self, groups, arm: MagicMock) -> None:
        arm.get.return_value = _group("rg1")
        draft = groups.get("rg1").update().set("tags", {"a": "b"})
        draft.reset()
        assert not draft.is_modified()

    def test_unknown_field_rejected(self, groups) -> None:
        with pytest.raises(KeyError):
            groups.create("new").set("colour", "blue")

    def test_missing_required_field(self, groups, arm: MagicMock) -> None:
        draft = groups.create("new")
        with pytest.raises(AzureExecutionError, match="'region' is required to create resource group."):
            draft.commit()
        arm.put.assert_not_called()
        assert not draft.committed

    def test_create_commits_once(self, groups, arm: MagicMock) -> None:
        arm.put.return_value = _group("new", location="westus")
        draft = groups.create("new").set("region", "westus")
        created = draft.commit()
        arm.put.assert_called_once_with(
            f"/subscriptions/{SUB}/resourcegroups/new",
            "2021-04-01",
            {"location": "westus", "tags": {}},
        )
        assert created.exists()
        assert created.region == "westus"
        assert groups.get("new") is created
        arm.get.assert_not_called()
        with pytest.raises(AzureExecutionError, match="already committed"):
            draft.commit()

    def test_failed_create_leaves_no_cache_entry(self, groups, arm: MagicMock) -> None:
        arm.put.side_effect = AzureApiError(400, "bad")
        with pytest.raises(AzureApiError):
            groups.create("new").set("region", "westus").commit()
        arm.get.return_value = None
        assert groups.get("new").status == Status.DELETED
        arm.get.assert_called_once()

    def test_update_of_missing_resource(self, groups, arm: MagicMock) -> None:
        arm.get.return_value = None
        missing = groups.get("gone")
        with pytest.raises(AzureExecutionError, match="resource \"gone\" doesn't exist"):
            missing.update().set("tags", {"a": "b"}).commit()
        arm.patch.assert_not_called()

    def test_update_stores_new_snapshot(self, groups, arm: MagicMock) -> None:
        arm.get.return_value = _group("rg1")
        arm.patch.return_value = _group("rg1", tags={"env": "dev"})
        resource = groups.get("rg1")
        updated = resource.update().set("tags", {"env": "dev"}).commit()
        assert updated is resource
        assert resource.field("tags") == {"env": "dev"}
        arm.patch.assert_called_once_with(
            f"/subscriptions/{SUB}/resourcegroups/rg1", "2021-04-01", {"tags": {"env": "dev"}}
        )

    def test_create_if_not_exist_returns_existing(self, groups, arm: MagicMock) -> None:
        arm.get.return_value = _group("rg1")
        existing = groups.create("rg1").set("region", "westus").create_if_not_exist()
        assert existing.region == "eastus"
        arm.put.assert_not_called()


class TestModuleConcurrency:
    def test_list_while_another_thread_gets(self, groups, arm: MagicMock) -> None:
        page = [_group(f"rg{i}") for i in range(500)]
        arm.iter_pages.side_effect = lambda *args, **kwargs: iter([page])
        arm.get.side_effect = lambda path, *args, **kwargs: _group(path.rsplit("/", 1)[-1])
        errors: list[Exception] = []
        done = threading.Event()

        def _getter() -> None:
            i = 0
            while not done.is_set():
                try:
                    groups.get(f"g{i}")
                except Exception as exc:
                    errors.append(exc)
                i += 1

        worker = threading.Thread(target=_getter)
        worker.start()
        try:
            for _ in range(50):
                groups.invalidate_cache()
                assert len(groups.list()) >= len(page)
        finally:
            done.set()
            worker.join()
        assert errors == []

    def test_concurrent_gets_share_one_entity(self, groups, arm: MagicMock) -> None:
        arm.get.return_value = _group("rg1")
        results: list[AzResource] = []
        threads = [threading.Thread(target=lambda: results.append(groups.get("rg1"))) for _ in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()
        assert all(r is results[0] for r in results)
        assert groups.get("rg1") is results[0]


class TestChildModule:
    SERVER = arm_resource("Microsoft.DBforMySQL/flexibleServers", "srv")
    RULE_PATH = f"{SERVER['id']}/firewallRules"

    def test_list_retries_once_parent_appears(self, toolkit, arm: MagicMock) -> None:
        arm.get.return_value = None
        server = toolkit.service(AzureMySql).servers(SUB).get("srv", "rg")
        rules = server.sub_module("firewall_rules")
        assert rules.list() == []
        arm.iter_pages.assert_not_called()

        arm.get.return_value = self.SERVER
        arm.iter_pages.return_value = iter([[{"id": f"{self.RULE_PATH}/allow", "name": "allow"}]])
        server.refresh()
        assert [r.name for r in rules.list()] == ["allow"]
        arm.iter_pages.assert_called_once()

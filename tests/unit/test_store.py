"""Tests for the in-memory resource store."""

import threading

import pytest

from provisioning_controller.exceptions import ConflictError, StoreAccessError
from provisioning_controller.store import InMemoryStore, ResourceKind, object_kind, object_name


def test_get_returns_copies(make_provisioning):
    store = InMemoryStore()
    store.put(make_provisioning())

    obj = store.get(ResourceKind.PROVISIONING, "provisioning-configuration")
    obj["spec"]["provisioningNetwork"] = "Disabled"

    again = store.get(ResourceKind.PROVISIONING, "provisioning-configuration")
    assert again["spec"]["provisioningNetwork"] == "Managed"


def test_get_missing_returns_none():
    assert InMemoryStore().get(ResourceKind.INFRASTRUCTURE, "cluster") is None


def test_put_assigns_resource_versions(make_infrastructure):
    store = InMemoryStore()
    first = store.put(make_infrastructure())
    second = store.put(make_infrastructure())

    assert int(second["metadata"]["resourceVersion"]) > int(first["metadata"]["resourceVersion"])


def test_list_filters_by_kind(make_infrastructure, make_provisioning):
    store = InMemoryStore()
    store.put(make_infrastructure())
    store.put(make_provisioning())
    store.put(make_provisioning(name="extra"))

    names = [o["metadata"]["name"] for o in store.list(ResourceKind.PROVISIONING)]

    assert names == ["extra", "provisioning-configuration"]


def test_update_with_stale_version_conflicts(make_provisioning):
    store = InMemoryStore()
    stale = store.put(make_provisioning())
    store.put(make_provisioning(provisioningNetwork="Unmanaged"))

    with pytest.raises(ConflictError):
        store.update(stale)


def test_update_keeps_status(make_provisioning):
    store = InMemoryStore()
    obj = store.put(make_provisioning())
    obj["status"] = {"conditions": []}
    store.update_status(obj)

    current = store.get(ResourceKind.PROVISIONING, "provisioning-configuration")
    current["spec"]["provisioningNetwork"] = "Disabled"
    current["status"] = {"ignored": True}
    store.update(current)

    result = store.get(ResourceKind.PROVISIONING, "provisioning-configuration")
    assert result["spec"]["provisioningNetwork"] == "Disabled"
    assert result["status"] == {"conditions": []}
    assert store.update_count == 2


def test_update_status_only_touches_status(make_provisioning):
    store = InMemoryStore()
    obj = store.put(make_provisioning())
    obj["spec"] = {}
    obj["status"] = {"conditions": [{"type": "Available"}]}

    store.update_status(obj)

    result = store.get(ResourceKind.PROVISIONING, "provisioning-configuration")
    assert result["spec"]["provisioningNetwork"] == "Managed"
    assert result["status"]["conditions"] == [{"type": "Available"}]


def test_update_missing_object_fails(make_provisioning):
    with pytest.raises(StoreAccessError):
        InMemoryStore().update(make_provisioning())


def test_unknown_kind_is_rejected():
    with pytest.raises(StoreAccessError):
        object_kind({"kind": "ConfigMap"})


def test_injected_failures(make_infrastructure):
    store = InMemoryStore()
    store.put(make_infrastructure())
    store.fail(ResourceKind.INFRASTRUCTURE, StoreAccessError("boom"))

    with pytest.raises(StoreAccessError):
        store.get(ResourceKind.INFRASTRUCTURE, "cluster")

    store.fail(ResourceKind.INFRASTRUCTURE, None)
    assert store.get(ResourceKind.INFRASTRUCTURE, "cluster") is not None


def test_watch_streams_events_for_its_kind(make_infrastructure, make_provisioning):
    store = InMemoryStore()
    stop = threading.Event()
    events = store.watch(ResourceKind.PROVISIONING, stop)

    store.put(make_infrastructure())
    store.put(make_provisioning())
    store.put(make_provisioning())
    store.delete(ResourceKind.PROVISIONING, "provisioning-configuration")

    received = [next(events) for _ in range(3)]
    stop.set()

    assert [e.type for e in received] == ["ADDED", "MODIFIED", "DELETED"]
    assert all(e.kind is ResourceKind.PROVISIONING for e in received)
    assert all(e.name == "provisioning-configuration" for e in received)
    assert list(events) == []


@pytest.mark.parametrize(
    "obj,expected",
    [
        ({"metadata": {"name": "cluster"}}, "cluster"),
        ({"metadata": {}}, ""),
        ({"metadata": None}, ""),
        ({"metadata": "cluster"}, ""),
        ({}, ""),
    ],
)
def test_object_name(obj, expected):
    assert object_name(obj) == expected

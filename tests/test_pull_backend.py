from __future__ import annotations

import pytest

from beanbridge.backend import BackendRegistry
from beanbridge.commands import AddCommand, RegisterCommand
from beanbridge.delegate import ListenerDelegate
from beanbridge.dispatcher import NotificationDispatcher
from beanbridge.pull import PullBackend
from beanbridge.resources import Notification, ResourceRegistry


def _setup(max_entries: int = 3):
    backend = PullBackend("beanbridge:type=NotificationStore", max_entries=max_entries)
    resources = ResourceRegistry()
    resources.add_resource("bean:type=Foo")
    dispatcher = NotificationDispatcher(BackendRegistry([backend]), ListenerDelegate())
    client = dispatcher.dispatch(RegisterCommand(), resources)["id"]
    return dispatcher, resources, backend, client


def test_config_is_advertised_on_register():
    dispatcher, resources, _, _ = _setup()

    result = dispatcher.dispatch(RegisterCommand(), resources)

    assert result["backend"] == {
        "pull": {"store": "beanbridge:type=NotificationStore", "maxEntries": 3}
    }


def test_pull_drains_buffer_with_handback():
    dispatcher, resources, backend, client = _setup()
    handle = dispatcher.dispatch(
        AddCommand(client=client, resource="bean:type=Foo", mode="pull", handback="hb"),
        resources,
    )["handle"]
    resources.emit("bean:type=Foo", "jmx.attribute.change", message="x changed")

    _, state = dispatcher.delegate.subscription(client, handle)
    first = backend.pull(state)
    second = backend.pull(state)

    assert first["handle"] == handle
    assert first["dropped"] == 0
    [entry] = first["notifications"]
    assert entry["type"] == "jmx.attribute.change"
    assert entry["message"] == "x changed"
    assert entry["source"] == "bean:type=Foo"
    assert entry["handback"] == "hb"
    assert second["notifications"] == []


def test_buffer_drops_oldest_when_full():
    dispatcher, resources, backend, client = _setup(max_entries=3)
    handle = dispatcher.dispatch(
        AddCommand(client=client, resource="bean:type=Foo", mode="pull"), resources
    )["handle"]
    for i in range(5):
        resources.emit("bean:type=Foo", "tick", message=str(i))

    _, state = dispatcher.delegate.subscription(client, handle)
    result = backend.pull(state)

    assert result["dropped"] == 2
    assert [n["message"] for n in result["notifications"]] == ["2", "3", "4"]


def test_unsubscribed_state_ignores_deliveries():
    dispatcher, resources, backend, client = _setup()
    handle = dispatcher.dispatch(
        AddCommand(client=client, resource="bean:type=Foo", mode="pull"), resources
    )["handle"]
    _, state = dispatcher.delegate.subscription(client, handle)

    dispatcher.delegate.remove_listener(client, handle)
    backend.deliver(state, Notification(type="late", source="bean:type=Foo", sequence=99))

    assert backend.pull(state)["notifications"] == []


def test_rejects_empty_buffer():
    with pytest.raises(ValueError):
        PullBackend("store", max_entries=0)

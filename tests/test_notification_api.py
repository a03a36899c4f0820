from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from beanbridge.main import app, resources

BEAN = "bean:type=Foo"


@pytest.fixture
def client():
    resources.add_resource(BEAN)
    with TestClient(app) as test_client:
        yield test_client
    resources.remove_resource(BEAN)


def _command(http: TestClient, **payload):
    return http.post("/notification", json=payload)


def _register(http: TestClient) -> str:
    response = _command(http, type="register")
    assert response.status_code == 200
    return response.json()["value"]["id"]


def test_register_advertises_pull_backend(client: TestClient):
    response = _command(client, type="register")

    assert response.status_code == 200
    value = response.json()["value"]
    assert value["id"]
    assert value["backend"]["pull"]["store"] == "beanbridge:type=NotificationStore"
    assert value["backend"]["pull"]["maxEntries"] == 100


def test_add_list_remove_roundtrip(client: TestClient):
    client_id = _register(client)

    added = _command(client, type="add", client=client_id, mbean=BEAN, mode="pull")
    assert added.status_code == 200
    handle = added.json()["value"]["handle"]
    assert added.json()["value"]["freshness"] == 60.0

    listing = _command(client, type="list", client=client_id).json()["value"]
    assert listing == {handle: {"mbean": BEAN, "mode": "pull"}}

    assert _command(client, type="remove", client=client_id, handle=handle).json() == {
        "value": None
    }
    assert _command(client, type="remove", client=client_id, handle=handle).status_code == 200
    assert _command(client, type="list", client=client_id).json() == {"value": {}}


def test_pull_returns_emitted_notifications(client: TestClient):
    client_id = _register(client)
    handle = _command(
        client,
        type="add",
        client=client_id,
        mbean=BEAN,
        mode="pull",
        filter=["jmx.attribute"],
        handback={"widget": 3},
    ).json()["value"]["handle"]

    resources.emit(BEAN, "jmx.attribute.change", message="changed")
    resources.emit(BEAN, "jmx.mbean.registered")

    response = client.get(f"/notification/{client_id}/{handle}")
    assert response.status_code == 200
    [entry] = response.json()["notifications"]
    assert entry["type"] == "jmx.attribute.change"
    assert entry["handback"] == {"widget": 3}


def test_pull_unknown_listener(client: TestClient):
    client_id = _register(client)

    response = client.get(f"/notification/{client_id}/nope")

    assert response.status_code == 404
    assert response.json()["error_type"] == "UnknownListener"


def test_unknown_client_tolerated_except_for_add(client: TestClient):
    for command in ("unregister", "ping"):
        response = _command(client, type=command, client="ghost")
        assert response.status_code == 200
        assert response.json() == {"value": None}
    assert _command(client, type="list", client="ghost").json() == {"value": {}}

    response = _command(client, type="add", client="ghost", mbean=BEAN, mode="pull")
    assert response.status_code == 404
    assert response.json()["error_type"] == "UnknownClient"


def test_add_errors_map_to_statuses(client: TestClient):
    client_id = _register(client)

    unknown_mode = _command(client, type="add", client=client_id, mbean=BEAN, mode="nonexistent")
    missing = _command(client, type="add", client=client_id, mbean="bean:type=Nope", mode="pull")
    malformed = _command(client, type="add", client=client_id, mbean="garbage", mode="pull")

    assert unknown_mode.status_code == 400
    assert unknown_mode.json()["error_type"] == "UnknownBackend"
    assert missing.status_code == 404
    assert missing.json()["error_type"] == "ResourceNotFound"
    assert malformed.status_code == 400
    assert malformed.json()["error_type"] == "MalformedResourceName"
    assert _command(client, type="list", client=client_id).json() == {"value": {}}


@pytest.mark.parametrize(
    "payload",
    [{"type": "teleport"}, {"type": "add", "client": "x"}, {"client": "x"}],
)
def test_malformed_commands_are_rejected(client: TestClient, payload):
    response = client.post("/notification", json=payload)

    assert response.status_code == 400


def test_shutdown_releases_listeners():
    resources.add_resource(BEAN)
    try:
        with TestClient(app) as test_client:
            client_id = _register(test_client)
            _command(test_client, type="add", client=client_id, mbean=BEAN, mode="pull")
            assert resources.listener_count() == 1
        assert resources.listener_count() == 0
    finally:
        resources.remove_resource(BEAN)

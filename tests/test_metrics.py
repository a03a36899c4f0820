from fastapi.testclient import TestClient
from prometheus_client import REGISTRY

from beanbridge.main import app


def _registered() -> float:
    value = REGISTRY.get_sample_value(
        "beanbridge_commands_total", {"type": "register", "outcome": "ok"}
    )
    return value or 0.0


def test_metrics_endpoint():
    before = _registered()
    with TestClient(app) as client:
        client.post("/notification", json={"type": "register"})
        response = client.get("/metrics")

    assert response.status_code == 200
    assert b"beanbridge_requests_total" in response.content
    assert b"beanbridge_clients" in response.content
    assert _registered() == before + 1

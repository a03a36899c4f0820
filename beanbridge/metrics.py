from fastapi import APIRouter
from fastapi.responses import Response
from prometheus_client import CONTENT_TYPE_LATEST, Counter, Gauge, Histogram, generate_latest

REQS = Counter(
    "beanbridge_requests_total",
    "Requests",
    ["method", "path", "status"],
)
LAT = Histogram(
    "beanbridge_latency_seconds",
    "Latency",
    ["method", "path"],
)
COMMANDS = Counter(
    "beanbridge_commands_total",
    "Notification commands dispatched",
    ["type", "outcome"],
)
EVICTIONS = Counter(
    "beanbridge_evictions_total",
    "Clients evicted by the staleness sweep",
)
CLIENTS = Gauge("beanbridge_clients", "Registered notification clients")
LISTENERS = Gauge("beanbridge_listeners", "Active notification listeners")


def router() -> APIRouter:
    r = APIRouter()

    @r.get("/metrics", include_in_schema=False)
    def metrics():
        return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)

    return r

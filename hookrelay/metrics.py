from fastapi import APIRouter
from fastapi.responses import Response
from prometheus_client import CONTENT_TYPE_LATEST, Counter, Histogram, generate_latest

REQS = Counter(
    "hookrelay_requests_total",
    "Requests",
    ["method", "path", "status"],
)
LAT = Histogram(
    "hookrelay_latency_seconds",
    "Latency",
    ["method", "path"],
)
DELIVERIES = Counter(
    "hookrelay_deliveries_total",
    "Webhook deliveries by final result",
    ["result"],
)
DISPATCH_SECONDS = Histogram(
    "hookrelay_dispatch_seconds",
    "Wall time of a full dispatch run",
)


def router() -> APIRouter:
    r = APIRouter()

    @r.get("/metrics", include_in_schema=False)
    def metrics():
        return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)

    return r

from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response
from fastapi import Request
import time

REQUEST_COUNT = Counter(
    "violation_watch_requests_total",
    "Total number of HTTP requests",
    ["method", "endpoint", "status"]
)

REQUEST_LATENCY = Histogram(
    "violation_watch_request_latency_seconds",
    "Latency of HTTP requests in seconds",
    ["method", "endpoint"]
)

CHECK_RUNS = Counter(
    "violation_check_runs_total",
    "Violation check runs by cadence and outcome",
    ["cadence", "outcome"]
)

RECORDS_INGESTED = Counter(
    "violation_records_ingested_total",
    "Violation records written to the store"
)

NOTIFICATIONS = Counter(
    "violation_notifications_total",
    "Notification attempts by channel and outcome",
    ["channel", "outcome"]
)

class PrometheusMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        method = request.method

        start_time = time.perf_counter()
        response = await call_next(request)
        duration = time.perf_counter() - start_time

        # route template keeps /internal/checks/{cadence} to one series
        route = request.scope.get("route")
        path = getattr(route, "path", request.url.path)

        REQUEST_COUNT.labels(method=method, endpoint=path, status=response.status_code).inc()
        REQUEST_LATENCY.labels(method=method, endpoint=path).observe(duration)

        return response

def metrics_response():
    return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)

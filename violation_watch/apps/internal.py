from contextlib import asynccontextmanager
from typing import Optional
from fastapi import FastAPI
import structlog
from violation_watch.core.config import settings
from violation_watch.core.auth import AuthMiddleware
from violation_watch.core.metrics import PrometheusMiddleware, metrics_response
from violation_watch.api.internal import router as internal_router
from violation_watch.services.notifier import NotificationFanout
from violation_watch.services.upstream import UpstreamClient
from violation_watch.services.violation_check import build_fanout

logger = structlog.get_logger()

def create_internal_app(
    fanout: Optional[NotificationFanout] = None,
    upstream: Optional[UpstreamClient] = None,
) -> FastAPI:
    """Create the scheduler-facing API (:8081): check triggers and metrics."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        await app.state.fanout.aclose()
        logger.info("notification_senders_closed")

    app = FastAPI(
        lifespan=lifespan,
        title=f"{settings.PROJECT_NAME} Internal API",
        version=settings.VERSION,
        debug=settings.DEBUG,
    )

    # senders live as long as the app: the APNs token and connections are reused across runs
    app.state.fanout = fanout or build_fanout()
    app.state.upstream = upstream or UpstreamClient()

    app.add_middleware(PrometheusMiddleware)
    app.add_middleware(AuthMiddleware)

    app.include_router(internal_router)

    @app.get("/health")
    async def health_check():
        return {
            "status": "ok",
            "service": "violation-watch",
            "app": "internal",
            "channels": {
                channel: app.state.fanout.available(channel)
                for channel in ("email", "sms", "push")
            },
        }

    @app.get("/metrics")
    async def metrics():
        return metrics_response()

    return app

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from violation_watch.core.config import settings
from violation_watch.core.auth import AuthMiddleware
from violation_watch.core.metrics import PrometheusMiddleware
from violation_watch.api.v1 import router as v1_router

def create_public_app() -> FastAPI:
    """Create the app-facing API (:8080): device registration for push."""
    app = FastAPI(
        title=f"{settings.PROJECT_NAME} Public API",
        version=settings.VERSION,
        debug=settings.DEBUG,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.ALLOWED_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(PrometheusMiddleware)
    app.add_middleware(AuthMiddleware)

    app.include_router(v1_router)

    @app.get("/health")
    async def health_check():
        return {"status": "ok", "service": "violation-watch", "app": "public"}

    return app

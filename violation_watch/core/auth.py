from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import JSONResponse
import secrets
import structlog
import firebase_admin
from firebase_admin import auth as firebase_auth
from firebase_admin import credentials
from violation_watch.core.config import settings
from violation_watch.models.auth import AuthContext, Role

logger = structlog.get_logger()

def init_firebase():
    if not settings.FIREBASE_PROJECT_ID:
        logger.info("firebase_not_configured", message="Running without Firebase validation (Dev Mode)")
        return
    try:
        firebase_admin.get_app()
        return
    except ValueError:
        pass

    try:
        options = {"projectId": settings.FIREBASE_PROJECT_ID}
        if settings.FIREBASE_CREDENTIALS_PATH:
            cred = credentials.Certificate(settings.FIREBASE_CREDENTIALS_PATH)
            firebase_admin.initialize_app(cred, options)
        else:
            firebase_admin.initialize_app(options=options)
        logger.info("firebase_initialized", project_id=settings.FIREBASE_PROJECT_ID)
    except (ValueError, OSError) as e:
        logger.error("firebase_init_failed", error=str(e))

def _unauthorized(message: str) -> JSONResponse:
    return JSONResponse(
        status_code=401,
        content={"error": {"code": "UNAUTHORIZED", "message": message}},
    )

class AuthMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        auth_context = AuthContext()

        # 1. Scheduler / operator token
        internal_token = request.headers.get("X-Internal-Token")
        if internal_token:
            if secrets.compare_digest(internal_token, settings.INTERNAL_API_TOKEN):
                auth_context.role = Role.INTERNAL
                auth_context.caller = request.headers.get("X-Caller", "scheduler")
            else:
                logger.warning("invalid_internal_token", path=request.url.path)
                return _unauthorized("Invalid internal token")

        # 2. Firebase session of an app user
        auth_header = request.headers.get("Authorization")
        if auth_header and auth_header.startswith("Bearer ") and auth_context.role == Role.ANONYMOUS:
            token = auth_header[7:]
            if not settings.FIREBASE_PROJECT_ID:
                auth_context.user_id = "mock-user-123"
                auth_context.role = Role.USER
            else:
                try:
                    decoded_token = firebase_auth.verify_id_token(token)
                except (ValueError, firebase_auth.InvalidIdTokenError,
                        firebase_auth.ExpiredIdTokenError, firebase_auth.RevokedIdTokenError,
                        firebase_auth.CertificateFetchError) as e:
                    logger.warning("invalid_firebase_token", error=str(e))
                    return _unauthorized("Invalid or expired session")
                auth_context.user_id = decoded_token["uid"]
                auth_context.role = Role.USER

        if request.url.path.startswith("/internal") and auth_context.role != Role.INTERNAL:
            logger.warning("unauthorized_internal_access", path=request.url.path)
            return _unauthorized("Internal access required")

        if request.url.path.startswith("/v1") and not auth_context.is_authenticated:
            logger.warning("unauthenticated_request", path=request.url.path)
            return _unauthorized("Authentication required")

        request.state.auth = auth_context
        return await call_next(request)

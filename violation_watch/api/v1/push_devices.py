from fastapi import APIRouter, Depends, HTTPException, Request
import structlog
from violation_watch.api.deps import get_store
from violation_watch.core.logging import mask_token
from violation_watch.models.push import PushRegistration
from violation_watch.services.store import RecordStore

logger = structlog.get_logger()
router = APIRouter()

@router.post("/push-settings")
async def register_push_device(
    request: Request,
    registration: PushRegistration,
    store: RecordStore = Depends(get_store),
):
    """
    Register or refresh the calling user's device for push notifications.
    Re-registering the same token updates permission and environment.
    """
    auth = request.state.auth
    if not registration.device_token or not registration.platform:
        raise HTTPException(status_code=400, detail="device_token and platform are required")

    await store.upsert_push_device(auth.user_id, registration)
    logger.info(
        "push_device_registered",
        user_id=auth.user_id,
        device=mask_token(registration.device_token),
        platform=registration.platform,
        environment=registration.apns_environment or "production",
    )
    return {"success": True}

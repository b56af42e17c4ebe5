from fastapi import APIRouter
from violation_watch.api.v1.push_devices import router as push_devices_router

router = APIRouter(prefix="/v1", tags=["v1"])
router.include_router(push_devices_router)

from fastapi import APIRouter
from violation_watch.api.internal.checks import router as checks_router
from violation_watch.api.internal.push import router as push_router

router = APIRouter(prefix="/internal", tags=["internal"])
router.include_router(checks_router)
router.include_router(push_router)

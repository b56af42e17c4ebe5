from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
import structlog
from violation_watch.api.deps import get_fanout, get_store
from violation_watch.core.errors import NotificationError
from violation_watch.models.push import PushReport
from violation_watch.services.notifier import NotificationFanout
from violation_watch.services.push import compose_test_push
from violation_watch.services.store import RecordStore

logger = structlog.get_logger()
router = APIRouter()

@router.post("/push/test", response_model=PushReport)
async def send_test_push(
    store: RecordStore = Depends(get_store),
    fanout: NotificationFanout = Depends(get_fanout),
):
    """Send a fixed notification to every registered iOS device."""
    if not fanout.available("push"):
        return JSONResponse(status_code=503, content={"error": "Push notifications are not configured"})

    devices = await store.push_devices()
    try:
        report = await fanout.push.send(devices, compose_test_push())
    except NotificationError as e:
        logger.error("test_push_failed", error=str(e))
        return JSONResponse(status_code=500, content={"error": str(e)})

    logger.info("test_push_sent", devices=report.devices, delivered=report.delivered)
    return report

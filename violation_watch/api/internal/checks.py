from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from typing import Optional
import traceback
import uuid
import structlog
from violation_watch.api.deps import get_violation_check
from violation_watch.core.logging import run_context
from violation_watch.models.check import CheckError, CheckOptions, CheckResult, RunCadence
from violation_watch.services.lease import RunLease, get_run_lease
from violation_watch.services.violation_check import ViolationCheck

logger = structlog.get_logger()
router = APIRouter()

@router.post("/checks/{cadence}", response_model=CheckResult)
async def trigger_check(
    cadence: RunCadence,
    options: Optional[CheckOptions] = None,
    check: ViolationCheck = Depends(get_violation_check),
    lease: RunLease = Depends(get_run_lease),
):
    """
    Called by the external scheduler (hourly or daily) or by an operator.
    Fetches new violation records, stores them and sends the reports.
    """
    options = options or CheckOptions()
    run_id = uuid.uuid4().hex

    if not await lease.acquire(run_id):
        return JSONResponse(
            status_code=409,
            content={"error": "A violation check is already in progress"},
        )

    try:
        with run_context(run_id, cadence.value):
            try:
                return await check.run(options, cadence)
            except Exception as e:
                logger.error("violation_check_failed", error=str(e), error_type=type(e).__name__)
                body = CheckError(error=str(e), stack=traceback.format_exc())
                return JSONResponse(status_code=500, content=body.model_dump())
    finally:
        await lease.release(run_id)

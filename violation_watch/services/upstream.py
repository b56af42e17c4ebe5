import time
from datetime import date, timedelta
from typing import Iterable, List, Optional
import httpx
import structlog
from pydantic import ValidationError
from violation_watch.core.config import settings
from violation_watch.core.errors import CircuitOpenError, FetchError, InvalidResponseError
from violation_watch.models.records import ViolationRecord
from violation_watch.services.http_client import ServiceClient

logger = structlog.get_logger()

SEARCH_SQL_PATH = "/api/3/action/datastore_search_sql"

def compute_since(
    latest_known_date: Optional[date],
    full_sync: bool = False,
    default_since: date = settings.DEFAULT_SINCE,
    full_sync_since: date = settings.FULL_SYNC_SINCE,
) -> date:
    """Lower bound for the next fetch.

    The day after the newest stored record, so the boundary day is not fetched
    again. Full syncs ignore the store and go back to ``full_sync_since``.
    """
    if full_sync:
        return full_sync_since
    if latest_known_date is not None:
        return latest_known_date + timedelta(days=1)
    return default_since

def _quote(value: str) -> str:
    return "'" + value.replace("'", "''") + "'"

def build_query(resource_id: str, parcel_ids: Iterable[str], since: date, limit: int) -> str:
    parcel_list = ",".join(_quote(pid) for pid in parcel_ids)
    return (
        f'SELECT * FROM "{resource_id}" '
        f"WHERE parcel_id IN ({parcel_list}) "
        f"AND investigation_date >= '{since.isoformat()}' "
        f"ORDER BY investigation_date DESC "
        f"LIMIT {int(limit)}"
    )

class UpstreamClient:
    def __init__(
        self,
        client: Optional[ServiceClient] = None,
        resource_id: str = settings.UPSTREAM_RESOURCE_ID,
        page_size: int = settings.UPSTREAM_PAGE_SIZE,
    ):
        self.client = client or ServiceClient(
            settings.UPSTREAM_BASE_URL, "wprdc", timeout=settings.UPSTREAM_TIMEOUT
        )
        self.resource_id = resource_id
        self.page_size = page_size

    async def fetch_records(self, parcel_ids: List[str], since: date) -> List[ViolationRecord]:
        if not parcel_ids:
            logger.info("upstream_fetch_skipped", reason="no_watched_parcels")
            return []

        sql = build_query(self.resource_id, parcel_ids, since, self.page_size)
        logger.info("upstream_fetch_started", parcels=len(parcel_ids), since=since.isoformat())

        started = time.monotonic()
        try:
            response = await self.client.request("GET", SEARCH_SQL_PATH, params={"sql": sql})
        except (httpx.HTTPError, CircuitOpenError) as e:
            logger.error("upstream_fetch_failed", error=str(e))
            raise FetchError(f"Upstream request failed: {e}") from e

        duration_ms = int((time.monotonic() - started) * 1000)
        if not response.is_success:
            logger.error("upstream_bad_status", status=response.status_code, duration_ms=duration_ms)
            raise FetchError(f"API request failed with status: {response.status_code}")

        try:
            payload = response.json()
        except ValueError as e:
            raise InvalidResponseError("Upstream response is not JSON") from e

        records = self._extract_records(payload)
        logger.info("upstream_fetch_completed", records=len(records), duration_ms=duration_ms)
        return records

    def _extract_records(self, payload) -> List[ViolationRecord]:
        if not isinstance(payload, dict) or payload.get("success") is not True:
            logger.error("upstream_invalid_response", reason="success_flag")
            raise InvalidResponseError("Invalid API response format")

        result = payload.get("result")
        raw_records = result.get("records") if isinstance(result, dict) else None
        if not isinstance(raw_records, list):
            logger.error("upstream_invalid_response", reason="missing_records")
            raise InvalidResponseError("Invalid API response format")

        try:
            return [ViolationRecord.model_validate(raw) for raw in raw_records]
        except ValidationError as e:
            logger.error("upstream_invalid_record", error=str(e))
            raise InvalidResponseError(f"Malformed violation record: {e}") from e

from datetime import date, datetime, timezone
from typing import Dict, List, Optional, Sequence, Set
import structlog
from sqlalchemy import distinct, func, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from violation_watch.core.config import settings
from violation_watch.core.errors import CheckpointError, PersistenceError
from violation_watch.models.push import PushDevice, PushDeviceInfo, PushRegistration
from violation_watch.models.records import ViolationRecord
from violation_watch.models.settings import SETTINGS_ROW_ID, AppSettings, RunSettings
from violation_watch.models.violation import NotificationLog, Violation, WatchedLocation
from violation_watch.services import sync

logger = structlog.get_logger()

class RecordStore:
    def __init__(self, session: AsyncSession, chunk_size: int = settings.STORE_CHUNK_SIZE):
        self.session = session
        self.chunk_size = chunk_size

    def _insert(self, table):
        dialect = self.session.bind.dialect.name
        if dialect == "postgresql":
            return pg_insert(table)
        if dialect == "sqlite":
            return sqlite_insert(table)
        raise NotImplementedError(f"Unsupported dialect for upserts: {dialect}")

    async def existing_ids(self) -> Set[int]:
        result = await self.session.execute(select(Violation.id))
        return set(result.scalars().all())

    async def existing_casefile_numbers(self) -> Set[str]:
        result = await self.session.execute(
            select(distinct(Violation.casefile_number)).where(Violation.casefile_number.isnot(None))
        )
        return {number for number in result.scalars().all() if number}

    async def latest_investigation_date(self) -> Optional[date]:
        result = await self.session.execute(select(func.max(Violation.investigation_date)))
        return result.scalar_one_or_none()

    async def watched_parcel_ids(self) -> List[str]:
        result = await self.session.execute(
            select(distinct(WatchedLocation.parcel_id))
            .where(WatchedLocation.parcel_id.isnot(None))
            .order_by(WatchedLocation.parcel_id)
        )
        return [pid.strip() for pid in result.scalars().all() if pid and pid.strip()]

    async def insert_new(self, records: Sequence[ViolationRecord]) -> int:
        """Insert records in committed chunks; duplicate ids are skipped, not errors.

        Returns the number of rows written. On a database error the failing
        chunk is rolled back and PersistenceError carries the count of rows
        committed before it.
        """
        if not records:
            return 0

        rows = [record.to_row() for record in records]
        saved = 0
        for start in range(0, len(rows), self.chunk_size):
            chunk = rows[start:start + self.chunk_size]
            stmt = self._insert(Violation.__table__).values(chunk).on_conflict_do_nothing(
                index_elements=["id"]
            )
            try:
                result = await self.session.execute(stmt)
                await self.session.commit()
            except SQLAlchemyError as e:
                await self.session.rollback()
                logger.error("violations_save_failed", saved=saved, attempted=len(rows), error=str(e))
                raise PersistenceError(f"Failed to save violations: {e}", saved_count=saved) from e
            saved += result.rowcount if result.rowcount is not None and result.rowcount >= 0 else len(chunk)

        skipped = len(rows) - saved
        logger.info("violations_saved", saved=saved, skipped_duplicates=skipped)
        return saved

    async def open_case_counts(self) -> Dict[str, int]:
        result = await self.session.execute(
            select(
                Violation.id,
                Violation.casefile_number,
                Violation.status,
                Violation.investigation_date,
            ).where(Violation.casefile_number.isnot(None))
        )
        records = [
            ViolationRecord(
                id=row.id,
                casefile_number=row.casefile_number,
                status=row.status,
                investigation_date=row.investigation_date,
            )
            for row in result.all()
        ]
        return sync.open_case_counts(records)

    async def load_settings(self) -> RunSettings:
        row = await self.session.get(AppSettings, SETTINGS_ROW_ID)
        if row is None:
            logger.warning("app_settings_missing", row_id=SETTINGS_ROW_ID)
            return RunSettings()
        return RunSettings(
            violation_checks_enabled=row.violation_checks_enabled is not False,
            email_reports_enabled=bool(row.email_reports_enabled),
            email_report_address=row.email_report_address,
            sms_reports_enabled=bool(row.sms_reports_enabled),
            sms_report_phone=row.sms_report_phone,
            push_notifications_enabled=bool(row.push_notifications_enabled),
            last_api_check_time=row.last_api_check_time,
            last_api_new_records_count=row.last_api_new_records_count,
        )

    async def update_checkpoint(self, new_records_count: int):
        try:
            row = await self.session.get(AppSettings, SETTINGS_ROW_ID)
            if row is None:
                row = AppSettings(id=SETTINGS_ROW_ID)
                self.session.add(row)
            row.last_api_check_time = datetime.now(timezone.utc)
            row.last_api_new_records_count = new_records_count
            await self.session.commit()
        except SQLAlchemyError as e:
            await self.session.rollback()
            raise CheckpointError(f"Failed to update last API check time: {e}") from e
        logger.info("checkpoint_updated", new_records_count=new_records_count)

    async def push_devices(self) -> List[PushDeviceInfo]:
        result = await self.session.execute(
            select(PushDevice).where(PushDevice.permission_granted.is_(True))
        )
        return [PushDeviceInfo.model_validate(device) for device in result.scalars().all()]

    async def upsert_push_device(self, user_id: str, registration: PushRegistration):
        values = {
            "user_id": user_id,
            "device_token": registration.device_token,
            "platform": registration.platform,
            "permission_granted": registration.permission_granted,
            "apns_environment": registration.apns_environment,
            "app_version": registration.app_version,
            "device_model": registration.device_model,
            "os_version": registration.os_version,
            "updated_at": datetime.utcnow(),
        }
        stmt = self._insert(PushDevice.__table__).values(**values)
        stmt = stmt.on_conflict_do_update(
            index_elements=["user_id", "device_token"],
            set_={
                key: stmt.excluded[key]
                for key in values
                if key not in ("user_id", "device_token")
            },
        )
        try:
            await self.session.execute(stmt)
            await self.session.commit()
        except SQLAlchemyError as e:
            await self.session.rollback()
            logger.error("push_device_upsert_failed", user_id=user_id, error=str(e))
            raise

    async def log_notification(self, channel: str, destination: Optional[str], new_records_count: int, status: str) -> bool:
        self.session.add(NotificationLog(
            channel=channel,
            destination=destination,
            new_records_count=new_records_count,
            status=status,
        ))
        try:
            await self.session.commit()
            return True
        except SQLAlchemyError as e:
            await self.session.rollback()
            logger.warning("notification_log_failed", channel=channel, error=str(e))
            return False

from datetime import date
import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import OperationalError
from unittest.mock import AsyncMock
from violation_watch.core.errors import CheckpointError, PersistenceError
from violation_watch.models.push import PushDevice, PushRegistration
from violation_watch.models.settings import AppSettings
from violation_watch.models.violation import NotificationLog, Violation, WatchedLocation
from violation_watch.services.store import RecordStore
from conftest import make_record

async def count(session, model) -> int:
    result = await session.execute(select(func.count()).select_from(model))
    return result.scalar_one()

@pytest.mark.asyncio
async def test_insert_and_lookups(session):
    store = RecordStore(session)
    records = [
        make_record(1, "C1", "2025-03-01"),
        make_record(2, "C2", "2025-03-05"),
        make_record(3, None, None),
    ]

    inserted = await store.insert_new(records)

    assert inserted == 3
    assert await store.existing_ids() == {1, 2, 3}
    assert await store.existing_casefile_numbers() == {"C1", "C2"}
    assert await store.latest_investigation_date() == date(2025, 3, 5)

@pytest.mark.asyncio
async def test_latest_date_on_empty_store(session):
    assert await RecordStore(session).latest_investigation_date() is None

@pytest.mark.asyncio
async def test_duplicate_ids_are_skipped(session):
    store = RecordStore(session, chunk_size=2)
    await store.insert_new([make_record(1, "C1", "2025-03-01"), make_record(2, "C2", "2025-03-02")])

    await store.insert_new([
        make_record(2, "C2", "2025-03-02"),
        make_record(3, "C3", "2025-03-03"),
        make_record(1, "C1", "2025-03-01"),
    ])

    assert await count(session, Violation) == 3

@pytest.mark.asyncio
async def test_insert_failure_reports_committed_rows(session):
    store = RecordStore(session, chunk_size=2)
    real_execute = session.execute
    calls = {"n": 0}

    async def flaky_execute(stmt, *args, **kwargs):
        calls["n"] += 1
        if calls["n"] == 2:
            raise OperationalError("INSERT", {}, Exception("disk I/O error"))
        return await real_execute(stmt, *args, **kwargs)

    session.execute = flaky_execute
    with pytest.raises(PersistenceError) as exc_info:
        await store.insert_new([make_record(i, f"C{i}", "2025-03-01") for i in range(1, 6)])
    session.execute = real_execute

    assert exc_info.value.saved_count == 2
    assert await count(session, Violation) == 2

@pytest.mark.asyncio
async def test_watched_parcel_ids_distinct_and_non_null(session):
    session.add_all([
        WatchedLocation(address="1 A St", parcel_id="P2"),
        WatchedLocation(address="2 A St", parcel_id="P1"),
        WatchedLocation(address="3 A St", parcel_id="P2"),
        WatchedLocation(address="4 A St", parcel_id=None),
    ])
    await session.commit()

    assert await RecordStore(session).watched_parcel_ids() == ["P1", "P2"]

@pytest.mark.asyncio
async def test_settings_defaults_when_row_missing(session):
    run_settings = await RecordStore(session).load_settings()

    assert run_settings.violation_checks_enabled is True
    assert run_settings.email_recipient is None
    assert run_settings.sms_recipient is None
    assert run_settings.push_notifications_enabled is False

@pytest.mark.asyncio
async def test_settings_recipients_require_enabled_flag(session):
    session.add(AppSettings(
        id=1,
        email_reports_enabled=True,
        email_report_address="ops@example.org",
        sms_reports_enabled=False,
        sms_report_phone="+14125550100",
    ))
    await session.commit()

    run_settings = await RecordStore(session).load_settings()

    assert run_settings.email_recipient == "ops@example.org"
    assert run_settings.sms_recipient is None

@pytest.mark.asyncio
async def test_update_checkpoint_creates_and_updates_row(session):
    store = RecordStore(session)

    await store.update_checkpoint(4)
    first = await store.load_settings()
    await store.update_checkpoint(0)
    second = await store.load_settings()

    assert first.last_api_new_records_count == 4
    assert first.last_api_check_time is not None
    assert second.last_api_new_records_count == 0

@pytest.mark.asyncio
async def test_update_checkpoint_failure_raises_checkpoint_error(session):
    store = RecordStore(session)
    session.commit = AsyncMock(side_effect=OperationalError("UPDATE", {}, Exception("locked")))

    with pytest.raises(CheckpointError):
        await store.update_checkpoint(1)

@pytest.mark.asyncio
async def test_open_case_counts_from_store(session):
    store = RecordStore(session)
    await store.insert_new([
        make_record(1, "C1", "2025-01-01", status="IN VIOLATION"),
        make_record(2, "C1", "2025-02-01", status="Closed"),
        make_record(3, "C2", "2025-02-01", status="IN COURT"),
        make_record(4, None, "2025-02-01", status="IN COURT"),
    ])

    assert await store.open_case_counts() == {"IN COURT": 1}

@pytest.mark.asyncio
async def test_upsert_push_device_updates_existing_registration(session):
    store = RecordStore(session)

    await store.upsert_push_device("user-1", PushRegistration(
        device_token="tok-1", platform="ios", apns_environment="sandbox",
    ))
    await store.upsert_push_device("user-1", PushRegistration(
        device_token="tok-1", platform="ios", apns_environment="production", permission_granted=False,
    ))
    await store.upsert_push_device("user-2", PushRegistration(device_token="tok-2", platform="ios"))

    assert await count(session, PushDevice) == 2
    devices = await store.push_devices()
    assert [d.device_token for d in devices] == ["tok-2"]
    assert devices[0].is_production

@pytest.mark.asyncio
async def test_log_notification(session):
    store = RecordStore(session)

    assert await store.log_notification("email", "ops@example.org", 3, "sent") is True
    assert await count(session, NotificationLog) == 1

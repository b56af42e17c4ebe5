import os

os.environ["DATABASE_URL"] = "sqlite+aiosqlite://"
os.environ["INTERNAL_API_TOKEN"] = "test-internal-token"
os.environ.pop("FIREBASE_PROJECT_ID", None)

import pytest
import pytest_asyncio
from sqlalchemy.pool import StaticPool
from violation_watch.core.db import DatabaseManager
from violation_watch.models import push, settings, violation  # noqa: F401  registers tables
from violation_watch.models.records import ViolationRecord
from violation_watch.services.http_client import ServiceClient

@pytest.fixture(autouse=True)
def reset_breakers():
    ServiceClient.reset_breakers()
    yield
    ServiceClient.reset_breakers()

@pytest_asyncio.fixture
async def db():
    manager = DatabaseManager(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    await manager.create_all()
    yield manager
    await manager.disconnect()

@pytest_asyncio.fixture
async def session(db):
    async with db.async_session_maker() as s:
        yield s

def make_record(
    record_id: int,
    casefile: str = None,
    investigation_date: str = None,
    status: str = "IN VIOLATION",
    address: str = "123 Main St, Pittsburgh, PA 15213",
    parcel_id: str = "0001-A-00001",
) -> ViolationRecord:
    return ViolationRecord.model_validate({
        "_id": record_id,
        "casefile_number": casefile,
        "investigation_date": investigation_date,
        "status": status,
        "address": address,
        "parcel_id": parcel_id,
        "violation_description": "Exterior maintenance",
    })

@pytest.fixture
def record():
    return make_record

import pytest
from pymongo.errors import AutoReconnect, DuplicateKeyError, ServerSelectionTimeoutError, WriteError

from attendance_sync.errors import (
    RemoteTransientError,
    RemoteValidationError,
    UniqueConstraintViolation,
)
from attendance_sync.models.attendance import AttendanceStatus
from attendance_sync.services import remote_store
from attendance_sync.services.remote_store import BeanieAttendanceStore

from conftest import TODAY


class FakeRecord:
    """Stands in for the Beanie document so no database is needed."""
    student_id = "student_id"
    subject_id = "subject_id"
    date = "date"

    insert_error = None
    find_error = None
    found = None
    created = []

    def __init__(self, **fields):
        self.fields = fields

    async def insert(self):
        if FakeRecord.insert_error is not None:
            raise FakeRecord.insert_error
        FakeRecord.created.append(self.fields)

    @classmethod
    async def find_one(cls, *args):
        if cls.find_error is not None:
            raise cls.find_error
        return cls.found


@pytest.fixture
def beanie_store(monkeypatch):
    async def ready():
        return None

    FakeRecord.insert_error = None
    FakeRecord.find_error = None
    FakeRecord.found = None
    FakeRecord.created = []
    monkeypatch.setattr(remote_store, "init_db", ready)
    monkeypatch.setattr(remote_store, "AttendanceRecord", FakeRecord)
    return BeanieAttendanceStore()


async def _insert(store):
    await store.insert_record(
        student_id="s1",
        subject_id="sub1",
        date=TODAY,
        status=AttendanceStatus.PRESENT,
        marked_by="f1",
        notes=None,
    )


@pytest.mark.asyncio
async def test_insert_success(beanie_store):
    await _insert(beanie_store)
    assert FakeRecord.created[0]["student_id"] == "s1"


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "error, expected",
    [
        (DuplicateKeyError("E11000 duplicate key", 11000), UniqueConstraintViolation),
        (WriteError("Document failed validation", 121), RemoteValidationError),
        (WriteError("interrupted", 11601), RemoteTransientError),
        (AutoReconnect("connection reset"), RemoteTransientError),
    ],
)
async def test_insert_error_mapping(beanie_store, error, expected):
    FakeRecord.insert_error = error
    with pytest.raises(expected):
        await _insert(beanie_store)


@pytest.mark.asyncio
async def test_lookup_failure_is_transient(beanie_store):
    FakeRecord.find_error = AutoReconnect("connection reset")
    with pytest.raises(RemoteTransientError):
        await beanie_store.find_record("s1", "sub1", TODAY)


@pytest.mark.asyncio
async def test_lookup_returns_existing_record(beanie_store):
    FakeRecord.found = object()
    assert await beanie_store.find_record("s1", "sub1", TODAY) is FakeRecord.found


@pytest.mark.asyncio
async def test_unreachable_database_is_transient_and_retried(monkeypatch):
    attempts = []

    async def unreachable():
        attempts.append(1)
        raise ServerSelectionTimeoutError("no servers")

    monkeypatch.setattr(remote_store, "init_db", unreachable)
    store = BeanieAttendanceStore()

    for _ in range(2):
        with pytest.raises(RemoteTransientError):
            await store.find_record("s1", "sub1", TODAY)
    assert len(attempts) == 2

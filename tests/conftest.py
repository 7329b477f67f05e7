"""Shared fixtures: in-memory remote store, push network source, wired context."""
import asyncio
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from typing import Optional

import pytest

from attendance_sync.config import Settings
from attendance_sync.errors import UniqueConstraintViolation
from attendance_sync.models.attendance import AttendanceMarkData, AttendanceStatus
from attendance_sync.models.sync import NetworkState
from attendance_sync.services.connectivity import PushNetworkSource
from attendance_sync.services.offline import OfflineContext
from attendance_sync.services.queue_store import QueueStore

ONLINE = NetworkState(connected=True, internet_reachable=True)
OFFLINE = NetworkState(connected=False, internet_reachable=False)
TODAY = datetime.now().date()


@dataclass
class StoredRecord:
    student_id: str
    subject_id: str
    date: date
    status: AttendanceStatus
    marked_by: str
    notes: Optional[str] = None


class FakeRemoteStore:
    """Attendance table with the (student, subject, date) uniqueness rule."""

    def __init__(self):
        self.records: dict[tuple, StoredRecord] = {}
        self.find_calls: list[tuple] = []
        self.insert_calls: list[tuple] = []
        self.insert_error: Optional[Exception] = None
        self.gate: Optional[asyncio.Event] = None

    def seed(self, student_id, subject_id, d, status=AttendanceStatus.PRESENT, marked_by="fac-0"):
        self.records[(student_id, subject_id, d)] = StoredRecord(student_id, subject_id, d, status, marked_by)

    async def find_record(self, student_id, subject_id, date):
        key = (student_id, subject_id, date)
        self.find_calls.append(key)
        if self.gate is not None:
            await self.gate.wait()
        await asyncio.sleep(0)
        return self.records.get(key)

    async def insert_record(self, *, student_id, subject_id, date, status, marked_by, notes=None):
        key = (student_id, subject_id, date)
        self.insert_calls.append(key)
        await asyncio.sleep(0)
        if self.insert_error is not None:
            raise self.insert_error
        if key in self.records:
            raise UniqueConstraintViolation(f"duplicate {key}")
        self.records[key] = StoredRecord(student_id, subject_id, date, status, marked_by, notes)


def make_mark(student_id="stu-1", subject_id="sub-1", d=None, status=AttendanceStatus.PRESENT, **kw):
    return AttendanceMarkData(
        student_id=student_id,
        subject_id=subject_id,
        date=d or TODAY,
        status=status,
        marked_by=kw.pop("marked_by", "fac-1"),
        **kw,
    )


@pytest.fixture
def test_settings(tmp_path):
    return Settings(
        storage_dir=tmp_path / "offline",
        network_source="push",
        _env_file=None,
    )


@pytest.fixture
def store(test_settings):
    return QueueStore(test_settings.storage_dir, test_settings.sync_queue_key)


@pytest.fixture
def remote():
    return FakeRemoteStore()


@pytest.fixture
def source():
    return PushNetworkSource()


@pytest.fixture
def build_context(store, remote, source, test_settings):
    def build(**changes):
        config = test_settings.model_copy(update=changes) if changes else test_settings
        return OfflineContext(store=store, remote=remote, source=source, config=config)

    return build


@pytest.fixture
async def context(build_context):
    ctx = build_context()
    await ctx.start()
    yield ctx
    await ctx.stop()


def days_ago(n: int) -> datetime:
    return datetime.now(timezone.utc) - timedelta(days=n)

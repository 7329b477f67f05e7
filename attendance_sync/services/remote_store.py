"""Remote attendance store: lookup and insert against the backend's attendance_records."""
import logging
from datetime import date
from typing import Optional, Protocol

from pydantic import ValidationError
from pymongo.errors import DuplicateKeyError, PyMongoError, WriteError

from attendance_sync.db import init_db
from attendance_sync.errors import (
    RemoteTransientError,
    RemoteValidationError,
    UniqueConstraintViolation,
)
from attendance_sync.models.attendance import AttendanceRecord, AttendanceStatus

logger = logging.getLogger(__name__)

# MongoDB "DocumentValidationFailure"
_DOCUMENT_VALIDATION_FAILURE = 121


class RemoteAttendanceStore(Protocol):
    async def find_record(
        self, student_id: str, subject_id: str, date: date
    ) -> Optional[AttendanceRecord]: ...

    async def insert_record(
        self,
        *,
        student_id: str,
        subject_id: str,
        date: date,
        status: AttendanceStatus,
        marked_by: str,
        notes: Optional[str] = None,
    ) -> None: ...


class BeanieAttendanceStore:
    """MongoDB-backed store. Beanie is initialized on first use so an offline
    device can start without reaching the database."""

    def __init__(self):
        self._ready = False

    async def _ensure_ready(self) -> None:
        if self._ready:
            return
        try:
            await init_db()
        except PyMongoError as e:
            raise RemoteTransientError(f"Attendance store unavailable: {e}") from e
        self._ready = True

    async def find_record(self, student_id: str, subject_id: str, date: date) -> Optional[AttendanceRecord]:
        await self._ensure_ready()
        try:
            return await AttendanceRecord.find_one(
                AttendanceRecord.student_id == student_id,
                AttendanceRecord.subject_id == subject_id,
                AttendanceRecord.date == date,
            )
        except PyMongoError as e:
            raise RemoteTransientError(f"Attendance lookup failed: {e}") from e

    async def insert_record(
        self,
        *,
        student_id: str,
        subject_id: str,
        date: date,
        status: AttendanceStatus,
        marked_by: str,
        notes: Optional[str] = None,
    ) -> None:
        await self._ensure_ready()
        try:
            record = AttendanceRecord(
                student_id=student_id,
                subject_id=subject_id,
                date=date,
                status=status,
                marked_by=marked_by,
                notes=notes,
            )
        except ValidationError as e:
            raise RemoteValidationError(f"Attendance record rejected: {e}") from e

        try:
            await record.insert()
        except DuplicateKeyError as e:
            raise UniqueConstraintViolation(
                f"Attendance already recorded for {student_id}/{subject_id}/{date}"
            ) from e
        except WriteError as e:
            if e.code == _DOCUMENT_VALIDATION_FAILURE:
                raise RemoteValidationError(f"Attendance record rejected: {e}") from e
            raise RemoteTransientError(f"Attendance insert failed: {e}") from e
        except PyMongoError as e:
            raise RemoteTransientError(f"Attendance insert failed: {e}") from e

from datetime import date, datetime, timezone
from enum import Enum
from typing import Optional

import pymongo
from beanie import Document
from pydantic import BaseModel, ConfigDict, Field
from pymongo import IndexModel


class AttendanceStatus(str, Enum):
    PRESENT = "present"
    ABSENT = "absent"
    LATE = "late"
    EXCUSED = "excused"


class AttendanceMarkData(BaseModel):
    """One attendance mark intent for a student, subject and calendar day."""
    model_config = ConfigDict(frozen=True, extra="ignore")

    student_id: str = Field(min_length=1)
    subject_id: str = Field(min_length=1)
    date: date
    status: AttendanceStatus
    marked_by: str = Field(min_length=1)  # faculty user_id
    notes: Optional[str] = None

    def key(self) -> tuple[str, str, date]:
        return (self.student_id, self.subject_id, self.date)


class AttendanceRecord(Document):
    """Server-side attendance row; one per (student, subject, date)."""
    student_id: str
    subject_id: str
    date: date
    status: AttendanceStatus
    marked_by: str
    notes: Optional[str] = None
    marked_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    class Settings:
        name = "attendance_records"
        indexes = [
            IndexModel(
                [
                    ("student_id", pymongo.ASCENDING),
                    ("subject_id", pymongo.ASCENDING),
                    ("date", pymongo.ASCENDING),
                ],
                unique=True,
                name="uniq_student_subject_date",
            ),
        ]

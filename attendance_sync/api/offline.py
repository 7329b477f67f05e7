from datetime import date
from typing import List, Optional

from fastapi import APIRouter, HTTPException, status
from pydantic import BaseModel, Field

from attendance_sync.api.deps import Offline
from attendance_sync.errors import AttendanceValidationError
from attendance_sync.models.attendance import AttendanceMarkData, AttendanceStatus
from attendance_sync.models.queue import QueueItem
from attendance_sync.models.sync import NetworkState, OfflineStatus

router = APIRouter()


class StudentMark(BaseModel):
    student_id: str = Field(min_length=1)
    status: AttendanceStatus
    notes: Optional[str] = None


class AttendanceBulkMarkRequest(BaseModel):
    subject_id: str = Field(min_length=1)
    date: date
    marked_by: str = Field(min_length=1)
    attendance: List[StudentMark]


@router.get("/status", response_model=OfflineStatus)
async def get_status(offline: Offline):
    """Reachability, sync activity and pending upload count."""
    return offline.status()


@router.get("/queue", response_model=List[QueueItem])
async def list_queue(offline: Offline, pending_only: bool = False):
    """Persisted queue items, oldest first."""
    queue = await offline.queue_snapshot()
    return queue.pending() if pending_only else queue.queue


@router.post("/mark", status_code=status.HTTP_202_ACCEPTED)
async def mark_attendance(data: AttendanceMarkData, offline: Offline):
    """Queue one attendance mark; it is uploaded when the device is online."""
    try:
        item = await offline.enqueue_attendance_mark(data)
    except AttendanceValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {"status": "queued", "id": item.id, "queue_count": offline.queue_count}


@router.post("/mark-bulk", status_code=status.HTTP_202_ACCEPTED)
async def mark_attendance_bulk(data: AttendanceBulkMarkRequest, offline: Offline):
    """Queue marks for a whole class for one subject and date."""
    records = [
        AttendanceMarkData(
            student_id=att.student_id,
            subject_id=data.subject_id,
            date=data.date,
            status=att.status,
            marked_by=data.marked_by,
            notes=att.notes,
        )
        for att in data.attendance
    ]
    try:
        items = await offline.enqueue_attendance_batch(records)
    except AttendanceValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {
        "status": "queued",
        "ids": [item.id for item in items],
        "message": f"Attendance queued for {len(items)} students",
        "queue_count": offline.queue_count,
    }


@router.post("/sync")
async def force_sync(offline: Offline):
    """Drain the queue now. Skipped when offline or a drain is already running."""
    report = await offline.force_sync_now()
    if report is None:
        return {
            "status": "skipped",
            "reason": "offline" if not offline.is_online else "sync already in progress",
        }
    return {"status": "completed", "report": report.model_dump(mode="json")}


@router.post("/network", response_model=OfflineStatus)
async def push_network_state(state: NetworkState, offline: Offline):
    """Network change reported by the device's platform service."""
    try:
        offline.push_network_state(state)
    except RuntimeError as e:
        raise HTTPException(status_code=409, detail=str(e))
    return offline.status()

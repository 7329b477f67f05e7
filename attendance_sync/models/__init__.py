"""Beanie document models and Pydantic schemas."""
from attendance_sync.models.attendance import AttendanceStatus, AttendanceMarkData, AttendanceRecord
from attendance_sync.models.queue import (
    QUEUE_SCHEMA_VERSION,
    QueueItemType,
    QueueItem,
    OfflineSyncQueue,
    encode_queue,
    decode_queue,
)
from attendance_sync.models.sync import NetworkState, OfflineStatus, SyncReport

__all__ = [
    "AttendanceStatus",
    "AttendanceMarkData",
    "AttendanceRecord",
    "QUEUE_SCHEMA_VERSION",
    "QueueItemType",
    "QueueItem",
    "OfflineSyncQueue",
    "encode_queue",
    "decode_queue",
    "NetworkState",
    "OfflineStatus",
    "SyncReport",
]

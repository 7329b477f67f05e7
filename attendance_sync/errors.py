"""Error taxonomy for the offline queue and the remote attendance store."""


class OfflineSyncError(Exception):
    """Base class for offline sync failures."""


class StorageCorruptError(OfflineSyncError):
    """Persisted queue could not be decoded."""


class AttendanceValidationError(OfflineSyncError):
    """Attendance mark rejected locally before it reaches the queue."""


class RemoteError(OfflineSyncError):
    """Base class for failures reported by the remote attendance store."""


class RemoteTransientError(RemoteError):
    """Network failure or timeout. The item stays pending and is retried."""


class RemoteValidationError(RemoteError):
    """The remote store rejected the payload. Retrying will not help."""


class UniqueConstraintViolation(RemoteError):
    """A record for the same (student, subject, date) already exists remotely."""

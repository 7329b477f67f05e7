from datetime import datetime
from typing import Optional

from pydantic import BaseModel


class NetworkState(BaseModel):
    """Reachability report from the platform network service."""
    connected: bool
    internet_reachable: Optional[bool] = None  # None = not determined yet

    @property
    def is_online(self) -> bool:
        # Link-up without a route to the internet counts as offline
        return self.connected is True and self.internet_reachable is True


class OfflineStatus(BaseModel):
    is_online: bool = True
    is_syncing: bool = False
    queue_count: int = 0
    failed_count: int = 0


class SyncReport(BaseModel):
    """Outcome of one drain cycle."""
    started_at: datetime
    finished_at: Optional[datetime] = None
    uploaded: int = 0
    conflicts: int = 0
    retried: int = 0
    failed: int = 0
    pruned: int = 0
    superseded: int = 0

    @property
    def processed(self) -> int:
        return self.uploaded + self.conflicts + self.retried + self.failed

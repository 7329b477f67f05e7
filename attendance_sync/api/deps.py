"""Shared dependencies: the per-app offline context."""
from typing import Annotated

from fastapi import Depends, HTTPException, Request, status

from attendance_sync.services.offline import OfflineContext


def get_offline_context(request: Request) -> OfflineContext:
    context = getattr(request.app.state, "offline", None)
    if context is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Offline queue is not initialized",
        )
    return context


Offline = Annotated[OfflineContext, Depends(get_offline_context)]

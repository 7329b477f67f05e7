"""Attendance Offline Sync - FastAPI entrypoint for the on-device agent."""
import logging
from contextlib import asynccontextmanager
from typing import Callable, Optional

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from attendance_sync.config import settings
from attendance_sync.db import db_shutdown
from attendance_sync.errors import StorageCorruptError
from attendance_sync.services.offline import OfflineContext, create_offline_context
from attendance_sync.api import offline

logger = logging.getLogger(__name__)


def create_app(context_factory: Optional[Callable[[], OfflineContext]] = None) -> FastAPI:
    factory = context_factory or create_offline_context

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        context = factory()
        app.state.offline = context
        try:
            await context.start()
        except StorageCorruptError:
            logger.error(
                "Offline queue file is corrupt and CORRUPT_QUEUE_POLICY=fail. "
                f"Repair or remove {context.store.path} to continue."
            )
            raise
        yield
        await context.stop()
        app.state.offline = None
        await db_shutdown()

    app = FastAPI(
        title=settings.app_name,
        description="Offline-first attendance queue: local durability, sync on reconnect",
        version="0.1.0",
        lifespan=lifespan,
    )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        errors = exc.errors()
        return JSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content={"detail": errors},
        )

    @app.exception_handler(StorageCorruptError)
    async def storage_corrupt_handler(request: Request, exc: StorageCorruptError):
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"detail": f"Offline queue storage is corrupt: {exc}"},
        )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=[o.strip() for o in settings.cors_origins.split(",") if o.strip()],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(offline.router, prefix="/api/offline", tags=["Offline Sync"])

    @app.get("/health")
    def health():
        return {"status": "ok", "app": settings.app_name}

    return app


logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

app = create_app()

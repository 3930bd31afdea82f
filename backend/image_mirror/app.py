"""
Application factory.

Builds the FastAPI app, wires the mirror service from settings and installs
the error handling shared by every route.
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from .config import MirrorSettings
from .errors import MirrorError
from .fetcher import FetchStrategist
from .routes_fastapi import mirror_error_handler, router
from .service import MirrorService
from .storage import CacheStoreGateway, build_object_store

logger = logging.getLogger(__name__)


def build_service(settings: MirrorSettings) -> MirrorService:
    """Create a MirrorService with the configured storage backend."""
    return MirrorService(
        settings=settings,
        strategist=FetchStrategist(settings),
        gateway=CacheStoreGateway(build_object_store(settings), cache_control=settings.cache_control),
    )


def create_app(
    settings: Optional[MirrorSettings] = None,
    service: Optional[MirrorService] = None,
) -> FastAPI:
    """
    Create the image mirror app.

    Args:
        settings: Configuration (defaults to MirrorSettings.from_env())
        service: Pre-built service, e.g. with mocked collaborators in tests
    """
    settings = settings or (service.settings if service else MirrorSettings.from_env())
    service = service or build_service(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        await service.close()

    app = FastAPI(title="Image Mirror", lifespan=lifespan)
    app.state.mirror_service = service

    app.add_exception_handler(MirrorError, mirror_error_handler)

    @app.middleware("http")
    async def catch_unhandled_errors(request: Request, call_next):
        try:
            return await call_next(request)
        except Exception as e:
            logger.exception(f"[App] Unhandled error on {request.method} {request.url.path}")
            return JSONResponse(
                status_code=500,
                content={"status": "error", "message": str(e) or "Unknown error"},
            )

    app.include_router(router)
    logger.info(f"[App] Image mirror ready (storage: {settings.storage_backend})")
    return app

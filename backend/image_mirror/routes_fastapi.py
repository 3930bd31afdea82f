"""
Image Mirror API Routes

Provides endpoints for:
- POST /cache    - Mirror a source image, returns its stable URL
- GET  /{path}   - Serve a mirrored image
Anything else answers 404 "Not found".
"""

import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse, PlainTextResponse, Response
from pydantic import BaseModel, Field, ValidationError

from .errors import ErrorKind, MirrorError, input_error
from .service import MirrorService
from .storage import DEFAULT_CONTENT_TYPE

logger = logging.getLogger(__name__)


# ============================================
# Request/Response Models
# ============================================

class CacheRequest(BaseModel):
    """Request model for mirroring an image."""
    url: str = Field(..., min_length=1, description="Source CDN image URL")


class CacheResponse(BaseModel):
    """Response model for a successful mirror."""
    status: str = "success"
    cached_url: str
    original_url: str
    final_url: str
    hash: str
    path: str


# ============================================
# Error rendering
# ============================================

def status_code_for(error: MirrorError) -> int:
    """Map an error kind to an HTTP status."""
    if error.kind in (ErrorKind.INPUT, ErrorKind.VALIDATION):
        return 400
    if error.kind == ErrorKind.FETCH and error.upstream_status:
        return error.upstream_status
    return 500


async def mirror_error_handler(request: Request, exc: MirrorError) -> JSONResponse:
    """Render a MirrorError as the structured JSON error body."""
    status_code = status_code_for(exc)
    logger.info(f"[Routes] {request.method} {request.url.path} -> {status_code} ({exc.kind.value}: {exc.message})")
    return JSONResponse(status_code=status_code, content=exc.to_payload())


def get_service(request: Request) -> MirrorService:
    return request.app.state.mirror_service


# ============================================
# Router
# ============================================

router = APIRouter(tags=["Image Mirror"])


@router.post("/cache", response_model=CacheResponse)
async def cache_image(request: Request, service: MirrorService = Depends(get_service)):
    """
    Mirror a source CDN image into storage.

    Example:
        POST /cache
        {"url": "https://cdn.discordapp.com/attachments/1/2/photo.png?ex=...&hm=..."}
    """
    try:
        body = await request.json()
    except ValueError:
        raise input_error("Invalid JSON in request body")

    try:
        payload = CacheRequest.model_validate(body)
    except ValidationError:
        raise input_error("URL is required in request body")

    result = await service.cache(payload.url)
    return CacheResponse(**result.to_dict())


@router.get("/cache")
async def cache_not_readable():
    """/cache only accepts POST."""
    return PlainTextResponse("Not found", status_code=404)


@router.get("/{path:path}")
async def serve_image(path: str, service: MirrorService = Depends(get_service)):
    """Serve a mirrored image by its storage path."""
    stored = await service.lookup(path)
    if stored is None:
        return PlainTextResponse("File not found", status_code=404)

    return Response(
        content=stored.body,
        media_type=stored.content_type or DEFAULT_CONTENT_TYPE,
        headers={"Cache-Control": service.settings.cache_control},
    )


@router.api_route("/{path:path}", methods=["POST", "PUT", "PATCH", "DELETE", "HEAD", "OPTIONS"])
async def not_found(path: str):
    return PlainTextResponse("Not found", status_code=404)

"""Binary asset upload endpoint."""

from __future__ import annotations

from typing import Optional
from urllib.parse import unquote

from fastapi import APIRouter, Header, Request

from .assets import DEFAULT_CONTENT_TYPE, format_size
from .errors import PayloadTooLarge
from .services import services

router = APIRouter(tags=["upload"])


@router.post("/upload")
async def upload_asset(
    request: Request,
    x_filename: Optional[str] = Header(default=None),
    x_content_type: Optional[str] = Header(default=None),
):
    """Store the raw request body and return its public URL.

    The original filename and content type travel in the ``X-Filename``
    (URI-encoded) and ``X-Content-Type`` headers.
    """
    assets = services.assets

    declared = request.headers.get("content-length")
    if declared and declared.isdigit() and int(declared) > assets.max_bytes:
        raise PayloadTooLarge(
            f"File is {format_size(int(declared))}, above the {format_size(assets.max_bytes)} upload limit.",
            limit=assets.max_bytes,
            hint="Try a smaller file, or host it elsewhere and paste a direct URL instead.",
        )

    data = await request.body()
    filename = unquote(x_filename) if x_filename else "unnamed-file"
    content_type = x_content_type or request.headers.get("content-type") or DEFAULT_CONTENT_TYPE

    url = await assets.upload(data, filename, content_type)
    return {"success": True, "url": url}

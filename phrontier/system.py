"""
System API routes for Phrontier.

Health, collaborator configuration status and the category catalog.
"""

from typing import Any, Dict

from fastapi import APIRouter

from .catalog import CATEGORIES
from .errors import PhrontierError
from .services import services

router = APIRouter()


@router.get("/health")
async def health_check():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "message": "Phrontier is running",
    }


@router.get("/system/status")
async def system_status():
    """Report which external collaborators are configured and reachable."""
    settings = services.settings
    configured = settings.configuration_status()

    kv: Dict[str, Any] = {"configured": configured["kv_store"], "reachable": False}
    if configured["kv_store"]:
        try:
            kv["reachable"] = services.store.backend.ping()
        except PhrontierError as e:
            kv["error"] = e.message

    return {
        "status": "ok" if all(configured.values()) and kv["reachable"] else "degraded",
        "kv_store": kv,
        "asset_store": {"configured": configured["asset_store"]},
        "ai_provider": {"configured": configured["ai_provider"]},
        "limits": {
            "max_resources": settings.max_resources,
            "thumbnail_max_chars": settings.thumbnail_max_chars,
            "upload_max_bytes": settings.upload_max_bytes,
        },
    }


@router.get("/categories")
async def list_categories():
    """The fixed physics category catalog."""
    return [c.model_dump(by_alias=True) for c in CATEGORIES]

"""Resource collection API endpoints."""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Query
from fastapi.responses import ORJSONResponse

from broadcast import notify_resource_created, notify_resource_deleted, notify_resource_updated

from .catalog import matches
from .errors import MissingField
from .models import ResourceDraft
from .services import services

router = APIRouter(prefix="/resources", tags=["resources"])

# The collection changes under many clients; nothing in between may cache it.
NO_CACHE_HEADERS = {
    "Cache-Control": "no-store, no-cache, must-revalidate, max-age=0",
    "Pragma": "no-cache",
    "Expires": "0",
}


@router.get("")
async def list_resources(q: str = "", category: Optional[str] = None):
    """List all resources, newest first, optionally filtered."""
    resources = services.store.list()
    if q or category:
        resources = [r for r in resources if matches(r, q, category)]
    return ORJSONResponse(
        content=[r.to_json_dict() for r in resources],
        headers=NO_CACHE_HEADERS,
    )


@router.post("")
async def create_resource(body: ResourceDraft):
    """Publish a new resource; the server assigns ``id`` when absent."""
    resource = await services.store.create(body)
    payload = resource.to_json_dict()
    await notify_resource_created(payload)
    return {"success": True, "id": resource.id, "resource": payload}


@router.patch("")
async def update_resource(body: ResourceDraft):
    """Replace an existing resource. Unknown ids are a no-op."""
    resource = services.store.update(body)
    if resource is None:
        return {"success": True, "updated": False, "id": body.id}
    payload = resource.to_json_dict()
    await notify_resource_updated(payload)
    return {"success": True, "updated": True, "id": resource.id, "resource": payload}


@router.delete("")
async def delete_resource(id: Optional[str] = Query(default=None)):
    """Delete a resource. Deleting an absent id still succeeds."""
    if not id:
        raise MissingField("id")
    deleted = services.store.delete(id)
    if deleted:
        await notify_resource_deleted(id)
    return {"success": True, "deleted": deleted, "id": id}

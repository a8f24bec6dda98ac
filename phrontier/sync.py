"""
Client-side synchronization for the Phrontier catalog.

``PhrontierClient`` is a thin async HTTP client for the API. It turns every
failure into one of the ``phrontier.errors`` classes, so nothing above it
ever sees a raw transport exception.

``ResourceSyncController`` owns the resource list a client session shows:

    UNINITIALIZED --start_session--> LOADING --list ok/failed--> READY

In READY, each mutation issues its remote call and, only once the server
accepted it, applies the same change to the local list (prepend, replace or
remove). A failed call leaves the local list untouched and records a
user-readable error. Local changes are applied in the order the mutations
were issued even when their responses arrive out of order. There is no
polling: other clients' writes show up on the next ``load()``.
"""

from __future__ import annotations

import asyncio
import base64
import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, List, Optional, Set
from urllib.parse import quote

import httpx
from pydantic import ValidationError as SchemaError

from .catalog import matches
from .enrichment import fallback_outcomes
from .errors import (
    PhrontierError,
    UploadTimeout,
    UpstreamTimeout,
    UpstreamUnavailable,
    ValidationError,
    error_from_response,
)
from .models import Resource, ResourceDraft, User, UserRole
from .shared.logger import get_logger

logger = get_logger(__name__)

DEFAULT_BASE_URL = "http://127.0.0.1:8000/api"
DEFAULT_TIMEOUT = 30.0
UPLOAD_TIMEOUT = 180.0
THUMBNAIL_TIMEOUT = 20.0


class PhrontierClient:
    """Async client for the Phrontier HTTP API."""

    def __init__(
        self,
        base_url: str = DEFAULT_BASE_URL,
        http: Optional[httpx.AsyncClient] = None,
        upload_timeout: float = UPLOAD_TIMEOUT,
        thumbnail_timeout: float = THUMBNAIL_TIMEOUT,
    ):
        self.base_url = base_url.rstrip("/")
        self._http = http or httpx.AsyncClient(timeout=DEFAULT_TIMEOUT)
        self.upload_timeout = upload_timeout
        self.thumbnail_timeout = thumbnail_timeout

    async def aclose(self) -> None:
        await self._http.aclose()

    async def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        url = f"{self.base_url}{path}"
        try:
            response = await self._http.request(method, url, **kwargs)
        except httpx.TimeoutException as e:
            raise UpstreamTimeout("The server took too long to answer.", hint="Try again.") from e
        except httpx.HTTPError as e:
            raise UpstreamUnavailable(
                "Cannot reach the Phrontier server.",
                hint="Check your connection and try again.",
            ) from e

        try:
            body = response.json()
        except ValueError:
            body = None

        if response.status_code >= 400:
            raise error_from_response(response.status_code, body)
        return body

    async def list_resources(self) -> List[Resource]:
        body = await self._request("GET", "/resources", headers={"Cache-Control": "no-cache"})
        return [_resource(item) for item in body or []]

    async def create_resource(self, draft: ResourceDraft) -> Resource:
        body = await self._request("POST", "/resources", json=draft.to_json_dict())
        return _resource(body.get("resource"))

    async def update_resource(self, resource: ResourceDraft) -> Optional[Resource]:
        """Returns the stored record, or None when the server had no such id."""
        body = await self._request("PATCH", "/resources", json=resource.to_json_dict())
        if not body.get("updated"):
            return None
        return _resource(body.get("resource"))

    async def delete_resource(self, resource_id: str) -> bool:
        body = await self._request("DELETE", "/resources", params={"id": resource_id})
        return bool(body.get("success"))

    async def upload(self, data: bytes, filename: str, content_type: str) -> str:
        try:
            body = await self._request(
                "POST",
                "/upload",
                content=data,
                headers={
                    "Content-Type": "application/octet-stream",
                    "X-Filename": quote(filename, safe=""),
                    "X-Content-Type": content_type,
                },
                timeout=self.upload_timeout,
            )
        except UpstreamTimeout as e:
            raise UploadTimeout("Upload timed out.", hint="Check your connection and try again.") from e
        return body["url"]

    async def generate_learning_outcomes(self, title: str, category: str, description: str) -> List[str]:
        """Never raises: any failure yields the canned outcomes."""
        try:
            body = await self._request(
                "POST",
                "/generate",
                json={"task": "outcomes", "title": title, "category": category, "description": description},
            )
        except PhrontierError as e:
            logger.warning("Outcome suggestion failed, using fallback: %s", e.message)
            return fallback_outcomes(title)
        if not isinstance(body, list) or not body:
            return fallback_outcomes(title)
        return [str(item) for item in body]

    async def generate_thumbnail(self, title: str, description: str) -> Optional[bytes]:
        """Image bytes, or None on any failure or after ``thumbnail_timeout``."""
        try:
            body = await asyncio.wait_for(
                self._request(
                    "POST",
                    "/generate",
                    json={"task": "thumbnail", "title": title, "description": description},
                    timeout=self.thumbnail_timeout,
                ),
                timeout=self.thumbnail_timeout,
            )
        except asyncio.TimeoutError:
            logger.warning("Thumbnail generation exceeded %.0fs", self.thumbnail_timeout)
            return None
        except PhrontierError as e:
            logger.warning("Thumbnail generation failed: %s", e.message)
            return None
        data = body.get("data") if isinstance(body, dict) else None
        return base64.b64decode(data) if data else None


def _resource(data: Any) -> Resource:
    try:
        return Resource.model_validate(data)
    except SchemaError as e:
        raise UpstreamUnavailable(f"Unexpected response from server: {e}") from e


class SyncState(str, Enum):
    UNINITIALIZED = "uninitialized"
    LOADING = "loading"
    READY = "ready"


class View(str, Enum):
    BROWSE = "browse"
    PUBLISH = "publish"
    EDIT = "edit"


@dataclass
class AssetFile:
    """A file picked in the publish form."""

    data: bytes
    filename: str
    content_type: str = "application/octet-stream"


def describe_error(error: PhrontierError) -> str:
    """Message plus recommended action, ready to show to the user."""
    return f"{error.message} {error.hint}" if error.hint else error.message


def _slug(text: str) -> str:
    return re.sub(r"[^a-z0-9]+", "-", text.lower()).strip("-")[:40] or "resource"


class ResourceSyncController:
    """Owns one session's view of the shared resource collection."""

    def __init__(self, client: PhrontierClient, max_resources: Optional[int] = None):
        self.client = client
        self.max_resources = max_resources
        self.state = SyncState.UNINITIALIZED
        self.user: Optional[User] = None
        self.resources: List[Resource] = []
        self.view = View.BROWSE
        self.sync_error: Optional[str] = None
        self.error: Optional[str] = None
        self.last_exception: Optional[PhrontierError] = None
        self.pending_draft: Optional[ResourceDraft] = None
        self._busy: Set[str] = set()
        self._issued = 0
        self._applied = 0
        self._finished: Set[int] = set()
        self._progress = asyncio.Event()

    # ------------------------------------------------------------- session

    @property
    def can_publish(self) -> bool:
        return self.user is not None and self.user.is_admin

    def is_busy(self, action: str) -> bool:
        return action in self._busy

    async def start_session(self, role: UserRole) -> User:
        """Log in with a role and load the authoritative list."""
        name = "Admin User" if role == UserRole.ADMIN else "Student Explorer"
        self.user = User(id="1", name=name, role=role)
        await self.load()
        return self.user

    def end_session(self) -> None:
        self.user = None
        self.resources = []
        self.state = SyncState.UNINITIALIZED
        self.view = View.BROWSE
        self.sync_error = None
        self.error = None

    async def load(self) -> List[Resource]:
        """Replace the local list with the server's.

        On failure the list is emptied and ``sync_error`` is set; the session
        still becomes READY so mutations can be attempted.
        """
        self.state = SyncState.LOADING
        try:
            self.resources = await self.client.list_resources()
            self.sync_error = None
        except PhrontierError as e:
            logger.warning("Initial sync failed: %s", e.message)
            self.resources = []
            self.sync_error = describe_error(e)
        self.state = SyncState.READY
        return self.resources

    def filtered(self, query: str = "", category: Optional[str] = None) -> List[Resource]:
        return [r for r in self.resources if matches(r, query, category)]

    def open_editor(self, resource_id: Optional[str] = None) -> None:
        self.view = View.EDIT if resource_id else View.PUBLISH
        self.error = None

    # ----------------------------------------------------------- mutations

    async def _run(
        self,
        action: str,
        call: Callable[[], Awaitable[Any]],
        apply: Callable[[Any], None],
        draft: Optional[ResourceDraft] = None,
    ) -> Any:
        """Issue ``call`` and apply its result locally in issuance order.

        Returns the call's result, or None when the action was already in
        flight or failed. A cancelled call changes nothing locally but still
        gives up its turn, so later mutations are not held back.
        """
        if action in self._busy:
            logger.debug("Ignoring duplicate %s while one is in flight", action)
            return None
        self._busy.add(action)
        self._issued += 1
        ticket = self._issued
        try:
            try:
                result = await call()
                failure: Optional[PhrontierError] = None
            except PhrontierError as e:
                result, failure = None, e
            except Exception as e:
                logger.exception("Unexpected error during %s", action)
                result, failure = None, PhrontierError(f"Unexpected error: {e}")

            await self._wait_turn(ticket)
            if failure is None:
                apply(result)
                self.error = None
                self.last_exception = None
                self.pending_draft = None
                self.view = View.BROWSE
            else:
                logger.warning("%s failed: %s", action, failure.message)
                self.error = describe_error(failure)
                self.last_exception = failure
                self.pending_draft = draft
            return result
        finally:
            self._finish(ticket)
            self._busy.discard(action)

    async def _wait_turn(self, ticket: int) -> None:
        while self._applied < ticket - 1:
            await self._progress.wait()

    def _finish(self, ticket: int) -> None:
        """Retire ``ticket`` and wake waiters once every earlier ticket is done."""
        self._finished.add(ticket)
        while self._applied + 1 in self._finished:
            self._applied += 1
            self._finished.discard(self._applied)
        progress, self._progress = self._progress, asyncio.Event()
        progress.set()

    def _prepend(self, resource: Resource) -> None:
        self.resources = [resource] + [r for r in self.resources if r.id != resource.id]
        if self.max_resources:
            del self.resources[self.max_resources:]

    def _replace(self, resource: Resource) -> None:
        self.resources = [resource if r.id == resource.id else r for r in self.resources]

    def _remove(self, resource_id: str) -> None:
        self.resources = [r for r in self.resources if r.id != resource_id]

    async def create(self, draft: ResourceDraft) -> Optional[Resource]:
        return await self._run(
            "create",
            lambda: self.client.create_resource(draft),
            self._prepend,
            draft,
        )

    async def update(self, resource: ResourceDraft) -> Optional[Resource]:
        """Save an edited record. A record the server no longer has is dropped locally."""
        async def call():
            updated = await self.client.update_resource(resource)
            return updated if updated is not None else False

        def apply(result):
            if result is False:
                self._remove(resource.id)
            else:
                self._replace(result)

        result = await self._run(f"update:{resource.id}", call, apply, resource)
        return result or None

    async def delete(self, resource_id: str) -> bool:
        result = await self._run(
            f"delete:{resource_id}",
            lambda: self.client.delete_resource(resource_id),
            lambda _: self._remove(resource_id),
        )
        return bool(result)

    async def suggest_outcomes(self, draft: ResourceDraft) -> List[str]:
        """Ask the server for learning outcomes for a draft being edited."""
        if not draft.title.strip() or not draft.description.strip():
            self.error = "Please provide a title and description first."
            return []
        return await self.client.generate_learning_outcomes(draft.title, draft.category, draft.description)

    async def publish(
        self,
        draft: ResourceDraft,
        asset: Optional[AssetFile] = None,
        thumbnail: Optional[AssetFile] = None,
        auto_thumbnail: bool = False,
    ) -> Optional[Resource]:
        """Full publishing flow: uploads, optional AI thumbnail, then create.

        Uploaded files replace ``contentUrl`` / ``thumbnailUrl``. Any failure
        keeps ``pending_draft`` so the form can be shown again unchanged.
        """
        original = draft
        draft = draft.model_copy(deep=True)

        try:
            _check_before_upload(draft, content_from_asset=asset is not None)
        except ValidationError as e:
            self.error = describe_error(e)
            self.last_exception = e
            self.pending_draft = original
            return None

        async def call() -> Resource:
            if asset is not None:
                draft.content_url = await self.client.upload(asset.data, asset.filename, asset.content_type)
            if thumbnail is not None:
                draft.thumbnail_url = await self.client.upload(
                    thumbnail.data, thumbnail.filename, thumbnail.content_type
                )
            elif auto_thumbnail and not draft.thumbnail_url:
                draft.thumbnail_url = await self._generated_thumbnail(draft)
            return await self.client.create_resource(draft)

        return await self._run("create", call, self._prepend, original)

    async def _generated_thumbnail(self, draft: ResourceDraft) -> Optional[str]:
        image = await self.client.generate_thumbnail(draft.title, draft.description)
        if image is None:
            return None
        try:
            return await self.client.upload(image, f"{_slug(draft.title)}-thumbnail.png", "image/png")
        except PhrontierError as e:
            logger.warning("Could not store generated thumbnail: %s", e.message)
            return None


def _check_before_upload(draft: ResourceDraft, content_from_asset: bool) -> None:
    """Run the required-field rules that do not depend on pending uploads."""
    if content_from_asset:
        probe = draft.model_copy(update={"content_url": "https://upload.pending/"})
        probe.check_required()
    else:
        draft.check_required()


__all__ = [
    "AssetFile",
    "PhrontierClient",
    "ResourceSyncController",
    "SyncState",
    "View",
    "describe_error",
]

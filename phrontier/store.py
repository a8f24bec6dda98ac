"""
Resource store: the shared, capped, newest-first resource collection.

The store validates and normalizes records at its boundary, fills empty
learning outcomes through the enrichment gateway on create, and delegates
persistence to a ``ListBackend``:

- create prepends and trims the oldest records beyond ``max_resources``;
- update replaces the whole record but keeps the stored ``createdAt``;
  updating an unknown id is a no-op;
- delete is idempotent.
"""

import json
import uuid
from datetime import datetime, timezone
from typing import Iterable, List, Optional

from pydantic import ValidationError as SchemaError

from .enrichment import EnrichmentGateway
from .errors import DuplicateResource, MissingField, PayloadTooLarge
from .kv import ListBackend, create_backend
from .models import Resource, ResourceDraft
from .settings import DEFAULT_KV_KEY, Settings
from .shared.logger import get_logger

logger = get_logger(__name__)


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def serialize(resource: Resource) -> str:
    return json.dumps(resource.to_json_dict(), ensure_ascii=False, separators=(",", ":"))


class ResourceStore:
    """List/create/update/delete over one key of a list backend."""

    def __init__(
        self,
        backend: Optional[ListBackend] = None,
        kv_url: Optional[str] = None,
        key: str = DEFAULT_KV_KEY,
        max_resources: int = 20,
        thumbnail_max_chars: int = 5000,
        max_record_bytes: int = 256 * 1024,
        enrichment: Optional[EnrichmentGateway] = None,
        enrich_on_create: bool = True,
    ):
        self._backend = backend
        self._kv_url = kv_url
        self.key = key
        self.max_resources = max_resources
        self.thumbnail_max_chars = thumbnail_max_chars
        self.max_record_bytes = max_record_bytes
        self.enrichment = enrichment
        self.enrich_on_create = enrich_on_create

    @classmethod
    def from_settings(
        cls, settings: Settings, enrichment: Optional[EnrichmentGateway] = None
    ) -> "ResourceStore":
        return cls(
            kv_url=settings.kv_url,
            key=settings.kv_key,
            max_resources=settings.max_resources,
            thumbnail_max_chars=settings.thumbnail_max_chars,
            max_record_bytes=settings.max_record_bytes,
            enrichment=enrichment,
            enrich_on_create=settings.enrich_on_create,
        )

    @property
    def backend(self) -> ListBackend:
        """The list backend, built on first use.

        Raises ConfigurationError while no connection URL is configured.
        """
        if self._backend is None:
            self._backend = create_backend(self._kv_url)
        return self._backend

    # ----------------------------------------------------------------- reads

    def list(self) -> List[Resource]:
        """All resources, newest first. Unreadable entries are skipped."""
        resources = []
        for raw in self.backend.items(self.key):
            try:
                resources.append(Resource.model_validate_json(raw))
            except SchemaError as e:
                logger.warning("Skipping unreadable record in %s: %s", self.key, e)
        return resources

    def get(self, resource_id: str) -> Optional[Resource]:
        for resource in self.list():
            if resource.id == resource_id:
                return resource
        return None

    # ------------------------------------------------------------ validation

    def _strip_thumbnail(self, draft: ResourceDraft) -> None:
        thumb = draft.thumbnail_url
        if thumb and len(thumb) > self.thumbnail_max_chars:
            logger.info(
                "Stripping %d-char thumbnail from %r (limit %d)",
                len(thumb), draft.title, self.thumbnail_max_chars,
            )
            draft.thumbnail_url = ""

    def _encode(self, resource: Resource) -> str:
        raw = serialize(resource)
        size = len(raw.encode("utf-8"))
        if self.max_record_bytes and size > self.max_record_bytes:
            raise PayloadTooLarge(
                f"Resource is {size // 1024} KB, above the {self.max_record_bytes // 1024} KB record limit.",
                limit=self.max_record_bytes,
                hint="Upload large files and images separately and reference them by URL.",
            )
        return raw

    def prepare(self, draft: ResourceDraft) -> Resource:
        """Validate a draft and turn it into a storable record.

        Assigns ``id`` and ``createdAt`` when absent and strips oversized
        inline thumbnails.
        """
        draft = draft.model_copy(deep=True)
        draft.check_required()
        self._strip_thumbnail(draft)
        data = draft.model_dump()
        data["id"] = draft.id or uuid.uuid4().hex
        data["created_at"] = draft.created_at or utc_now_iso()
        data["learning_outcomes"] = [o.strip() for o in draft.learning_outcomes if o and o.strip()]
        return Resource(**data)

    # ------------------------------------------------------------- mutations

    async def create(self, draft: ResourceDraft) -> Resource:
        """Validate, enrich and prepend a new record."""
        resource = self.prepare(draft)
        if not resource.learning_outcomes and self.enrich_on_create and self.enrichment is not None:
            resource.learning_outcomes = await self.enrichment.generate_learning_outcomes(
                resource.title, resource.category, resource.description
            )

        raw = self._encode(resource)
        if not self.backend.prepend(self.key, resource.id, raw, self.max_resources):
            raise DuplicateResource(f"A resource with id {resource.id!r} already exists.")
        logger.info("Created resource %s (%s)", resource.id, resource.title)
        return resource

    def update(self, draft: ResourceDraft) -> Optional[Resource]:
        """Replace an existing record wholesale, keeping its ``createdAt``.

        Returns the stored record, or None if no record has that id.
        """
        if not draft.id:
            raise MissingField("id")
        draft = draft.model_copy(deep=True)
        draft.check_required()
        self._strip_thumbnail(draft)

        existing = self.get(draft.id)
        if existing is None:
            logger.info("Update of unknown resource %s ignored", draft.id)
            return None

        data = draft.model_dump()
        data["created_at"] = existing.created_at
        data["learning_outcomes"] = [o.strip() for o in draft.learning_outcomes if o and o.strip()]
        resource = Resource(**data)

        if not self.backend.replace(self.key, resource.id, self._encode(resource)):
            logger.info("Resource %s disappeared before update", resource.id)
            return None
        logger.info("Updated resource %s", resource.id)
        return resource

    def delete(self, resource_id: str) -> bool:
        """Remove a record; True if something was removed. Never fails on absence."""
        removed = self.backend.remove(self.key, resource_id)
        if removed:
            logger.info("Deleted resource %s", resource_id)
        return removed > 0

    def seed(self, resources: Iterable[Resource]) -> int:
        """Fill an empty store with ``resources`` (given newest first)."""
        if self.backend.items(self.key):
            return 0
        count = 0
        for resource in reversed(list(resources)):
            if self.backend.prepend(self.key, resource.id, serialize(resource), self.max_resources):
                count += 1
        logger.info("Seeded %d demo resources", count)
        return count

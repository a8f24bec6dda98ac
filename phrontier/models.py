"""
Data models for the Phrontier catalog.

Records travel as camelCase JSON (``subCategory``, ``contentUrl``...) and are
exposed to Python code under snake_case attribute names.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, List, Optional
from urllib.parse import urlparse

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from .errors import MissingField, ValidationError

REQUIRED_FIELDS = ("title", "category", "author", "description", "content_url")


class ResourceType(str, Enum):
    """Kinds of catalog entries."""

    SIMULATION = "Simulation"
    WORKSHEET = "Worksheet"
    CHEATSHEET = "Cheatsheet"


class UserRole(str, Enum):
    ADMIN = "ADMIN"
    STUDENT = "STUDENT"


class _CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )

    def to_json_dict(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json")


class ResourceDraft(_CamelModel):
    """A resource as submitted by a client.

    Nothing is enforced at parse time beyond types; ``check_required`` runs
    the field rules so callers get ``MissingField`` instead of a schema error.
    """

    id: Optional[str] = None
    title: str = ""
    category: str = ""
    sub_category: str = ""
    type: ResourceType = ResourceType.SIMULATION
    author: str = ""
    description: str = ""
    user_guide: str = ""
    content_url: str = ""
    thumbnail_url: Optional[str] = None
    learning_outcomes: List[str] = Field(default_factory=list)
    created_at: Optional[str] = None

    def check_required(self) -> None:
        """Raise ``MissingField`` for the first empty required field."""
        for name in REQUIRED_FIELDS:
            value = getattr(self, name)
            if not isinstance(value, str) or not value.strip():
                raise MissingField(to_camel(name))
        if not is_http_url(self.content_url):
            raise ValidationError(
                f"Malformed content URL: {self.content_url!r}",
                hint="Use an http(s) link to the simulation or uploaded file.",
            )


class Resource(ResourceDraft):
    """A persisted catalog entry: ``id`` and ``createdAt`` are always set."""

    id: str
    created_at: str


class User(BaseModel):
    """Ephemeral session user; only gates which UI actions are offered."""

    id: str
    name: str
    role: UserRole

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN


class Category(BaseModel):
    id: str
    name: str
    icon: str
    sub_categories: List[str] = Field(default_factory=list, alias="subCategories")

    model_config = ConfigDict(populate_by_name=True)


def is_http_url(value: str) -> bool:
    parsed = urlparse(value.strip())
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)

"""
Phrontier: catalog backend for interactive physics learning resources.

This package provides:
- Resource collection endpoints (resources.py) over the resource store (store.py)
- Binary asset uploads to object storage (upload.py, assets.py)
- AI learning outcomes and thumbnails (generate.py, enrichment.py)
- Health, configuration status and categories (system.py)
- The client-side synchronization controller (sync.py)
"""

from .models import Resource, ResourceDraft, ResourceType, User, UserRole
from .services import services
from .settings import Settings

__version__ = "1.0.0"

__all__ = [
    "Resource",
    "ResourceDraft",
    "ResourceType",
    "Settings",
    "User",
    "UserRole",
    "services",
]

"""
Runtime configuration for the Phrontier backend.

Every external collaborator (key-value store, object store, generative AI)
is configured through environment variables. A missing value is not an
error at import time: the component that needs it raises
``ConfigurationError`` when it is first used, so the API can answer with a
distinct configuration error instead of a generic 500.

Variables are resolved in order of priority, e.g. for the KV store:
1. PHRONTIER_KV_URL
2. KV_URL
3. REDIS_URL
"""

import os
from dataclasses import dataclass, field
from typing import Dict, Mapping, Optional

DEFAULT_KV_KEY = "phrontier_global_v2"
DEFAULT_MAX_RESOURCES = 20
DEFAULT_THUMBNAIL_MAX_CHARS = 5000
DEFAULT_MAX_RECORD_BYTES = 256 * 1024
DEFAULT_UPLOAD_MAX_BYTES = 25 * 1024 * 1024
DEFAULT_UPLOAD_TIMEOUT = 180.0
DEFAULT_OUTCOMES_TIMEOUT = 15.0
DEFAULT_THUMBNAIL_TIMEOUT = 20.0
DEFAULT_TEXT_MODEL = "gemini-2.5-flash"
DEFAULT_IMAGE_MODEL = "gemini-2.5-flash-image"

_TRUE_VALUES = {"1", "true", "yes", "on"}


def _first(env: Mapping[str, str], *names: str) -> Optional[str]:
    for name in names:
        value = env.get(name)
        if value is not None and value.strip():
            return value.strip()
    return None


def _int(env: Mapping[str, str], name: str, default: int) -> int:
    raw = env.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}")


def _float(env: Mapping[str, str], name: str, default: float) -> float:
    raw = env.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {raw!r}")


def _bool(env: Mapping[str, str], name: str, default: bool) -> bool:
    raw = env.get(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip().lower() in _TRUE_VALUES


@dataclass
class Settings:
    """Resolved configuration for one service registry."""

    # Resource store
    kv_url: Optional[str] = None
    kv_key: str = DEFAULT_KV_KEY
    max_resources: int = DEFAULT_MAX_RESOURCES
    thumbnail_max_chars: int = DEFAULT_THUMBNAIL_MAX_CHARS
    max_record_bytes: int = DEFAULT_MAX_RECORD_BYTES
    enrich_on_create: bool = True
    seed_demo: bool = False

    # Asset store
    blob_bucket: Optional[str] = None
    blob_region: str = "us-east-1"
    blob_endpoint_url: Optional[str] = None
    blob_public_url: Optional[str] = None
    upload_max_bytes: int = DEFAULT_UPLOAD_MAX_BYTES
    upload_timeout: float = DEFAULT_UPLOAD_TIMEOUT

    # Generative AI
    ai_api_key: Optional[str] = field(default=None, repr=False)
    text_model: str = DEFAULT_TEXT_MODEL
    image_model: str = DEFAULT_IMAGE_MODEL
    outcomes_timeout: float = DEFAULT_OUTCOMES_TIMEOUT
    thumbnail_timeout: float = DEFAULT_THUMBNAIL_TIMEOUT

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "Settings":
        """Build settings from ``os.environ`` (or the given mapping)."""
        env = os.environ if env is None else env
        return cls(
            kv_url=_first(env, "PHRONTIER_KV_URL", "KV_URL", "REDIS_URL"),
            kv_key=_first(env, "PHRONTIER_KV_KEY") or DEFAULT_KV_KEY,
            max_resources=_int(env, "PHRONTIER_MAX_RESOURCES", DEFAULT_MAX_RESOURCES),
            thumbnail_max_chars=_int(env, "PHRONTIER_THUMBNAIL_MAX_CHARS", DEFAULT_THUMBNAIL_MAX_CHARS),
            max_record_bytes=_int(env, "PHRONTIER_MAX_RECORD_BYTES", DEFAULT_MAX_RECORD_BYTES),
            enrich_on_create=_bool(env, "PHRONTIER_ENRICH_ON_CREATE", True),
            seed_demo=_bool(env, "PHRONTIER_SEED_DEMO", False),
            blob_bucket=_first(env, "PHRONTIER_BLOB_BUCKET"),
            blob_region=_first(env, "PHRONTIER_BLOB_REGION", "AWS_DEFAULT_REGION") or "us-east-1",
            blob_endpoint_url=_first(env, "PHRONTIER_BLOB_ENDPOINT_URL"),
            blob_public_url=_first(env, "PHRONTIER_BLOB_PUBLIC_URL"),
            upload_max_bytes=_int(env, "PHRONTIER_UPLOAD_MAX_BYTES", DEFAULT_UPLOAD_MAX_BYTES),
            upload_timeout=_float(env, "PHRONTIER_UPLOAD_TIMEOUT", DEFAULT_UPLOAD_TIMEOUT),
            ai_api_key=_first(env, "GEMINI_API_KEY", "GOOGLE_API_KEY", "API_KEY"),
            text_model=_first(env, "PHRONTIER_TEXT_MODEL") or DEFAULT_TEXT_MODEL,
            image_model=_first(env, "PHRONTIER_IMAGE_MODEL") or DEFAULT_IMAGE_MODEL,
            outcomes_timeout=_float(env, "PHRONTIER_OUTCOMES_TIMEOUT", DEFAULT_OUTCOMES_TIMEOUT),
            thumbnail_timeout=_float(env, "PHRONTIER_THUMBNAIL_TIMEOUT", DEFAULT_THUMBNAIL_TIMEOUT),
        )

    def configuration_status(self) -> Dict[str, bool]:
        """Which external collaborators have the configuration they need."""
        return {
            "kv_store": self.kv_url is not None,
            "asset_store": self.blob_bucket is not None,
            "ai_provider": self.ai_api_key is not None,
        }

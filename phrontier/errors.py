"""
Error taxonomy shared by the gateways, the resource store and the client.

Every error carries an HTTP status, a stable machine-readable ``code`` and a
user-readable message. ``hint`` is an optional recommended action shown next
to the message (e.g. "use a direct URL instead").
"""

from typing import Any, Dict, Optional


class PhrontierError(Exception):
    """Base class for all errors surfaced to API callers."""

    status_code = 500
    code = "internal_error"

    def __init__(self, message: str, hint: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.hint = hint

    def to_dict(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"error": self.message, "code": self.code}
        if self.hint:
            body["hint"] = self.hint
        return body


class ValidationError(PhrontierError):
    """Malformed input, rejected before any remote call."""

    status_code = 400
    code = "validation_error"


class MissingField(ValidationError):
    code = "missing_field"

    def __init__(self, field: str, hint: Optional[str] = None):
        super().__init__(f"Missing required field: {field}", hint=hint)
        self.field = field

    def to_dict(self) -> Dict[str, Any]:
        body = super().to_dict()
        body["field"] = self.field
        return body


class DuplicateResource(ValidationError):
    status_code = 409
    code = "duplicate_id"


class EmptyPayload(ValidationError):
    code = "empty_payload"


class PayloadTooLarge(PhrontierError):
    status_code = 413
    code = "payload_too_large"

    def __init__(self, message: str, limit: int, hint: Optional[str] = None):
        super().__init__(message, hint=hint)
        self.limit = limit

    def to_dict(self) -> Dict[str, Any]:
        body = super().to_dict()
        body["limit"] = self.limit
        return body


class UpstreamUnavailable(PhrontierError):
    """An external service is unreachable or rejected our credentials."""

    status_code = 502
    code = "upstream_unavailable"


class StoreUnavailable(UpstreamUnavailable):
    code = "store_unavailable"


class StorageUnavailable(UpstreamUnavailable):
    code = "storage_unavailable"


class AIUnavailable(UpstreamUnavailable):
    code = "ai_unavailable"


class ConfigurationError(UpstreamUnavailable):
    """Required credentials or connection info are missing."""

    status_code = 503
    code = "configuration_error"


class UpstreamTimeout(PhrontierError):
    """Transient: safe to retry manually."""

    status_code = 504
    code = "upstream_timeout"


class UploadTimeout(UpstreamTimeout):
    code = "upload_timeout"


class NotFound(PhrontierError):
    status_code = 404
    code = "not_found"


_BY_CODE = {
    cls.code: cls
    for cls in (
        PhrontierError,
        ValidationError,
        DuplicateResource,
        EmptyPayload,
        UpstreamUnavailable,
        StoreUnavailable,
        StorageUnavailable,
        AIUnavailable,
        ConfigurationError,
        UpstreamTimeout,
        UploadTimeout,
        NotFound,
    )
}


def error_from_response(status_code: int, body: Any) -> PhrontierError:
    """Rebuild a typed error from an API error body.

    Used by the client so callers see the same taxonomy as the server.
    Unknown or non-JSON bodies fall back on the HTTP status.
    """
    message = f"Request failed with status {status_code}"
    code = None
    hint = None
    if isinstance(body, dict):
        message = str(body.get("error") or body.get("detail") or message)
        code = body.get("code")
        hint = body.get("hint")

    if code == "missing_field" and isinstance(body, dict):
        return MissingField(str(body.get("field", "")), hint=hint)
    if code == "payload_too_large" or status_code == 413:
        limit = body.get("limit", 0) if isinstance(body, dict) else 0
        return PayloadTooLarge(message, limit=int(limit or 0), hint=hint)

    cls = _BY_CODE.get(code)
    if cls is None:
        if status_code == 404:
            cls = NotFound
        elif status_code == 409:
            cls = DuplicateResource
        elif 400 <= status_code < 500:
            cls = ValidationError
        elif status_code == 503:
            cls = ConfigurationError
        elif status_code == 504:
            cls = UpstreamTimeout
        elif status_code >= 500:
            cls = UpstreamUnavailable
        else:
            cls = PhrontierError
    return cls(message, hint=hint)

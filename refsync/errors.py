"""Error taxonomy for the reference engine.

Every error carries a stable machine-readable code, an HTTP-style status and a
human-readable message. Messages never echo data owned by another tenant.
"""

from __future__ import annotations

from typing import Any, Dict


class ReferenceEngineError(ValueError):
    """Base class for errors surfaced to callers."""

    code: str = "INTERNAL_ERROR"
    http_status: int = 500
    retryable: bool = False

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_response(self) -> Dict[str, Any]:
        return {
            "success": False,
            "error": {"code": self.code, "message": self.message},
        }


class NotFoundError(ReferenceEngineError):
    """Entity is absent, or owned by another tenant."""

    code = "NOT_FOUND"
    http_status = 404


class InvalidRequestError(ReferenceEngineError):
    """Malformed operation parameters."""

    code = "INVALID_REQUEST"
    http_status = 400


class InvalidPositionError(InvalidRequestError):
    """Move target outside 1..N."""

    code = "INVALID_POSITION"


class InvalidDocumentError(ReferenceEngineError):
    """Entity exists but belongs to a different parent document."""

    code = "INVALID_DOCUMENT"
    http_status = 400


class TransientStorageError(ReferenceEngineError):
    """Commit-time storage failure; safe to retry against a fresh snapshot."""

    code = "STORAGE_UNAVAILABLE"
    http_status = 503
    retryable = True


class StaleSnapshotError(TransientStorageError):
    """The document changed between snapshot and commit."""

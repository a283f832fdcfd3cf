"""
errors.py — Failure Taxonomy
==============================
Every failure a sync operation can report.  Components raise these;
``SyncService`` and ``SyncOrchestrator`` turn them into ``{"ok": False}``
outcomes so no caller ever sees a raw traceback.
"""

from __future__ import annotations

from typing import Any, Dict


class SyncError(Exception):
    """Base class. ``code`` is the stable name reported to callers."""

    code = "SyncError"

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.code, "message": str(self)}


class _HTTPFailure(SyncError):
    """A failure that carries the upstream status and (truncated) body."""

    def __init__(self, message: str, status: int | None = None, body: str = "") -> None:
        super().__init__(message)
        self.status = status
        self.body = body

    def to_dict(self) -> Dict[str, Any]:
        out = super().to_dict()
        out["status"] = self.status
        if self.body:
            out["body"] = self.body
        return out


class AuthError(_HTTPFailure):
    """Raised when token exchange fails or returns no token."""

    code = "AuthError"


class UpstreamError(_HTTPFailure):
    """Raised on non-success responses from an authenticated call."""

    code = "UpstreamError"


class UpstreamTimeoutError(SyncError, TimeoutError):
    """Raised when an outbound call exceeds its deadline."""

    code = "TimeoutError"


class NotFoundError(SyncError):
    """No matching upstream artist, or the internal artist id is unknown."""

    code = "NotFoundError"


class LinkageError(SyncError):
    """The internal artist has not been resolved to an upstream id yet."""

    code = "LinkageError"


class StoreError(SyncError):
    """The persistence layer rejected a read or write."""

    code = "StoreError"

"""
rankboard.errors — Error Taxonomy
==================================

Every failure the service reports carries a stable ``code`` and the HTTP
status the API layer maps it to.  ``CacheError`` never reaches a caller;
the cache wrapper downgrades it to a miss.
"""

from __future__ import annotations

from typing import Any


class RankboardError(Exception):
    """Base class for all service errors."""

    code = "INTERNAL_ERROR"
    status_code = 500

    def __init__(self, message: str, *, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict[str, Any]:
        body: dict[str, Any] = {"code": self.code, "message": self.message}
        if self.details:
            body["details"] = self.details
        return body


class ValidationError(RankboardError):
    """Malformed or out-of-range input. Not retryable."""

    code = "VALIDATION_ERROR"
    status_code = 400

    @classmethod
    def for_field(cls, field: str, message: str) -> ValidationError:
        return cls(message, details={field: message})


class UnauthorizedError(RankboardError):
    code = "UNAUTHORIZED"
    status_code = 401


class ForbiddenError(RankboardError):
    code = "FORBIDDEN"
    status_code = 403


class NotFoundError(RankboardError):
    code = "NOT_FOUND"
    status_code = 404


class ConflictError(RankboardError):
    code = "DUPLICATE_ENTRY"
    status_code = 409


class DatabaseError(RankboardError):
    """Storage layer failure. Safe for the caller to retry."""

    code = "DATABASE_ERROR"
    status_code = 503

    def __init__(self, message: str = "Database operation failed", **kwargs: Any) -> None:
        super().__init__(message, **kwargs)


class CacheError(RankboardError):
    """Cache backend failure. Internal only."""

    code = "CACHE_ERROR"

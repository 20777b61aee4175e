"""
Exception hierarchy for linkvault.

Each error carries a stable client-facing ``error_code`` and the HTTP status
the API layer answers with, so callers can tell "try again later"
(``COST_LIMIT_REACHED``) apart from "broken" (``MODEL_UNAVAILABLE``).
"""

from __future__ import annotations

from typing import Any


class LinkVaultError(Exception):
    """Base class for all linkvault errors.

    Example:
        try:
            client.models.embed_content(...)
        except Exception as exc:
            raise ModelUnavailableError(
                "Embedding call failed", cause=exc, context={"model": model}
            ) from exc
    """

    error_code: str = "INTERNAL_ERROR"
    status_code: int = 500

    def __init__(
        self,
        message: str,
        *,
        cause: Exception | None = None,
        context: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.cause = cause
        self.context = context or {}

    def to_dict(self) -> dict[str, Any]:
        """Serialize to the ``{"error", "code", "details"?}`` response shape."""
        result: dict[str, Any] = {"error": self.message, "code": self.error_code}
        details: dict[str, Any] = dict(self.context)
        if self.cause is not None:
            details["cause"] = f"{type(self.cause).__name__}: {self.cause}"
        if details:
            result["details"] = details
        return result


class ValidationError(LinkVaultError):
    """Request rejected before any external call."""

    error_code = "INVALID_REQUEST"
    status_code = 400


class MissingQueryError(ValidationError):
    """Search query missing or blank."""

    error_code = "MISSING_QUERY"


class DocumentNotFoundError(LinkVaultError):
    """No stored document with the requested id."""

    error_code = "DOCUMENT_NOT_FOUND"
    status_code = 404


class CostLimitReachedError(LinkVaultError):
    """Daily or monthly spend cap reached; retry after the window rolls over."""

    error_code = "COST_LIMIT_REACHED"
    status_code = 429


class ModelUnavailableError(LinkVaultError):
    """External model call failed or returned a malformed payload."""

    error_code = "MODEL_UNAVAILABLE"
    status_code = 502


class SearchUnavailableError(LinkVaultError):
    """Every retrieval branch of a hybrid query failed."""

    error_code = "SEARCH_UNAVAILABLE"
    status_code = 503

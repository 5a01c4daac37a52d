"""Error taxonomy shared by the core pipeline and the HTTP layer.

Every error carries a stable code and an HTTP status. The API layer renders them
into the response envelope; internal detail stays in the logs.
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class ProductAgentError(Exception):
    """Base error with a stable code, HTTP status, and optional details."""

    status_code = 500
    code = "INTERNAL_ERROR"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> Dict[str, Any]:
        """Purpose: Serialize the error for the API envelope.
        Inputs/Outputs: No inputs; returns a dict with code, message, optional details.
        Side Effects / State: None.
        Dependencies: Used by the FastAPI exception handlers.
        Failure Modes: None.
        If Removed: Callers receive unstructured error bodies.
        Testing Notes: Details key is omitted when no details were given.
        """
        # Keep the payload stable and free of internal detail.
        payload: Dict[str, Any] = {"code": self.code, "message": self.message}
        if self.details:
            payload["details"] = self.details
        return payload


class InvalidRequestError(ProductAgentError):
    status_code = 400
    code = "INVALID_REQUEST"


class UnauthorizedError(ProductAgentError):
    status_code = 401
    code = "UNAUTHORIZED"


class CatalogUnavailableError(ProductAgentError):
    """Raised when the catalog cache has never been populated."""

    status_code = 503
    code = "CATALOG_UNAVAILABLE"


class CatalogRefreshError(ProductAgentError):
    """Raised when a refresh fails; the previous snapshot stays in place."""

    status_code = 502
    code = "CATALOG_REFRESH_FAILED"


class IngestionError(ProductAgentError):
    status_code = 502
    code = "INGESTION_FAILED"


class ExtractionError(ProductAgentError):
    """Language-model extraction failed or returned an unusable shape."""

    status_code = 502
    code = "EXTRACTION_FAILED"

"""
Typed application errors.

Services raise these instead of returning error values; the DRF exception
handler at the bottom turns them into responses of the form

    {"error": "...", "error_code": "ORDER_NOT_FOUND", "details": {...}}

with the status code fixed by the class:

    BaseApplicationError         400
    ├── ValidationError          400
    ├── NotFoundError            404
    ├── ForbiddenError           403
    ├── ConflictError            409  stale version, lock contention
    ├── ExternalServiceError     502  payment provider failures
    └── InternalConsistencyError 500  ledger no longer adds up
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from typing import Any

    from rest_framework.response import Response

logger = logging.getLogger(__name__)


class BaseApplicationError(Exception):
    """
    Root of the hierarchy.

    ``error_code`` is stable and meant for clients to branch on; ``message``
    is for humans. ``log_level`` decides how loudly the API layer reports it.
    """

    default_error_code: str = "APPLICATION_ERROR"
    http_status: int = 400
    log_level: int = logging.WARNING

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        self.message = message
        self.error_code = error_code or self.default_error_code
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        body: dict[str, Any] = {"error": self.message, "error_code": self.error_code}
        if self.details:
            body["details"] = self.details
        return body

    def __str__(self) -> str:
        return f"[{self.error_code}] {self.message}"

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}({self.message!r}, "
            f"error_code={self.error_code!r}, details={self.details!r})"
        )


class ValidationError(BaseApplicationError):
    """Bad input or a broken business rule detected in a service."""

    default_error_code: str = "VALIDATION_ERROR"


class NotFoundError(BaseApplicationError):
    default_error_code: str = "NOT_FOUND"
    http_status: int = 404


class ForbiddenError(BaseApplicationError):
    """
    Authenticated caller may not perform the operation, e.g. a buyer
    confirming their own order. Missing credentials stay a DRF 401.
    """

    default_error_code: str = "FORBIDDEN"
    http_status: int = 403


class ConflictError(BaseApplicationError):
    """Lost a race: stale row version or a lock held by someone else."""

    default_error_code: str = "CONFLICT"
    http_status: int = 409


class ExternalServiceError(BaseApplicationError):
    default_error_code: str = "EXTERNAL_SERVICE_ERROR"
    http_status: int = 502
    log_level: int = logging.ERROR


class InternalConsistencyError(BaseApplicationError):
    """
    Stored data breaks an invariant the code depends on.

    Never repaired automatically; logged CRITICAL for an operator.
    """

    default_error_code: str = "INTERNAL_CONSISTENCY_ERROR"
    http_status: int = 500
    log_level: int = logging.CRITICAL


def api_exception_handler(exc: Exception, context: dict[str, Any]) -> Response | None:
    """
    REST_FRAMEWORK["EXCEPTION_HANDLER"].

    Renders BaseApplicationError subclasses with their own status and logs
    them at their level; defers everything else to DRF.
    """
    # core is imported while the app registry populates
    from rest_framework.response import Response
    from rest_framework.views import exception_handler

    if not isinstance(exc, BaseApplicationError):
        return exception_handler(exc, context)

    view = context.get("view")
    logger.log(
        exc.log_level,
        f"{type(exc).__name__}: {exc.message}",
        extra={
            "error_code": exc.error_code,
            "details": exc.details,
            "view": type(view).__name__ if view else None,
        },
    )
    return Response(exc.to_dict(), status=exc.http_status)

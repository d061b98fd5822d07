"""
Shared building blocks with no settlement knowledge.

- core.models / core.model_mixins: abstract timestamps, UUID keys, version
  counters, immutable and append-only rows (import these directly, they
  need the app registry)
- core.services: BaseService
- core.exceptions: typed application errors and the DRF exception handler
- core.views: health check
"""

from .exceptions import (
    BaseApplicationError,
    ConflictError,
    ExternalServiceError,
    ForbiddenError,
    InternalConsistencyError,
    NotFoundError,
    ValidationError,
)
from .services import BaseService

__all__ = [
    "BaseApplicationError",
    "BaseService",
    "ConflictError",
    "ExternalServiceError",
    "ForbiddenError",
    "InternalConsistencyError",
    "NotFoundError",
    "ValidationError",
]

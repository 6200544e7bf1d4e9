from __future__ import annotations

from typing import Any, Dict, Optional


class ConstraintViolation(Exception):
    """Raised when a storage-layer uniqueness or FK constraint is violated."""

    def __init__(self, message: str, detail: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.detail = detail or {}


class DataIntegrityError(Exception):
    """Stored data violates a domain invariant, e.g. an unknown role string."""


class BackendUnavailable(Exception):
    """A backing service failed or could not be reached."""


class StoreUnavailable(BackendUnavailable):
    """The relational store raised a driver or connection error."""


class CacheUnavailable(BackendUnavailable):
    """The key-value cache raised a driver or connection error."""


__all__ = [
    "ConstraintViolation",
    "DataIntegrityError",
    "BackendUnavailable",
    "StoreUnavailable",
    "CacheUnavailable",
]

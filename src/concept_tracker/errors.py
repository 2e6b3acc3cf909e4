"""Typed errors raised by the concept store.

Every error carries a stable code so the command line (or any other caller)
can map it to a transport-level failure without parsing messages.
"""

from __future__ import annotations

import json
from enum import StrEnum
from typing import Any


class ErrorCode(StrEnum):
    CONCEPT_NOT_FOUND = "CONCEPT_NOT_FOUND"
    PARENT_NOT_FOUND = "PARENT_NOT_FOUND"
    CONCEPT_EXISTS = "CONCEPT_EXISTS"
    INVALID_OPERATION = "INVALID_OPERATION"
    CYCLE_DETECTED = "CYCLE_DETECTED"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    STORAGE_ERROR = "STORAGE_ERROR"
    SCAN_ROOT_ERROR = "SCAN_ROOT_ERROR"
    EXTRACTION_FAILED = "EXTRACTION_FAILED"


def format_error_json(code: str, message: str, details: dict | None = None) -> str:
    """Format an error as JSON for --json-errors output."""
    error: dict[str, dict[str, object]] = {"error": {"code": str(code), "message": message}}
    if details:
        error["error"]["details"] = details
    return json.dumps(error)


class ConceptTrackerError(Exception):
    """Base class for all concept store errors."""

    default_code = ErrorCode.INVALID_OPERATION

    def __init__(
        self,
        message: str,
        code: ErrorCode | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"code": str(self.code), "message": self.message}
        if self.details:
            payload["details"] = self.details
        return payload

    def to_json(self) -> str:
        return format_error_json(self.code, self.message, self.details or None)


class NotFoundError(ConceptTrackerError):
    """An operation targeted an id or name that does not exist."""

    default_code = ErrorCode.CONCEPT_NOT_FOUND

    @classmethod
    def concept(cls, concept_id: str) -> NotFoundError:
        return cls(f"Concept not found: {concept_id}", details={"id": concept_id})

    @classmethod
    def parent(cls, name: str) -> NotFoundError:
        return cls(
            f"Parent concept not found: {name}",
            code=ErrorCode.PARENT_NOT_FOUND,
            details={"parent": name},
        )


class ConflictError(ConceptTrackerError):
    """A concept with the same name already exists."""

    default_code = ErrorCode.CONCEPT_EXISTS

    @classmethod
    def duplicate_name(cls, name: str, existing_id: str) -> ConflictError:
        return cls(
            f"Concept already exists: {name}",
            details={"name": name, "existing_id": existing_id},
        )


class InvalidOperationError(ConceptTrackerError):
    """The operation would break a store invariant (cycle, empty name, ...)."""

    default_code = ErrorCode.INVALID_OPERATION

    @classmethod
    def cycle(cls, name: str, parent: str) -> InvalidOperationError:
        return cls(
            f"Cannot create circular reference: '{parent}' is '{name}' or one of its descendants",
            code=ErrorCode.CYCLE_DETECTED,
            details={"name": name, "parent": parent},
        )

    @classmethod
    def validation(cls, message: str) -> InvalidOperationError:
        return cls(message, code=ErrorCode.VALIDATION_ERROR)


class StorageError(ConceptTrackerError):
    """The store document could not be written."""

    default_code = ErrorCode.STORAGE_ERROR


class ScanError(ConceptTrackerError):
    """The scan root itself could not be read."""

    default_code = ErrorCode.SCAN_ROOT_ERROR


class ExtractionError(ConceptTrackerError):
    """The extraction collaborator failed; nothing was stored."""

    default_code = ErrorCode.EXTRACTION_FAILED

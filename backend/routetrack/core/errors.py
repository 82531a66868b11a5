"""Error taxonomy for the process tracking engine.

Every failure carries a machine-readable ``kind`` plus a human-readable
``detail``. The API layer turns any :class:`TrackingError` into a JSON body
of the same shape, so callers never have to parse messages.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from fastapi import Request, status
from fastapi.responses import JSONResponse


class ErrorKind(str, Enum):
    NOT_FOUND = "not_found"
    VALIDATION_FAILED = "validation_failed"
    CONFLICT_INVARIANT_VIOLATION = "conflict_invariant_violation"
    CONCURRENCY_CONFLICT = "concurrency_conflict"
    PERSISTENCE_FAILURE = "persistence_failure"


@dataclass(frozen=True)
class FieldError:
    """A single field-level validation problem."""

    field_id: str | None
    reason: str
    message: str
    field_name: str | None = None

    def as_dict(self) -> dict[str, Any]:
        return {
            "field_id": self.field_id,
            "field_name": self.field_name,
            "reason": self.reason,
            "message": self.message,
        }


class TrackingError(Exception):
    """Base class for all engine errors."""

    kind: ErrorKind = ErrorKind.PERSISTENCE_FAILURE
    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    retryable: bool = False

    def __init__(self, detail: str, *, code: str | None = None) -> None:
        super().__init__(detail)
        self.detail = detail
        self.code = code

    def to_dict(self) -> dict[str, Any]:
        body: dict[str, Any] = {
            "kind": self.kind.value,
            "detail": self.detail,
            "retryable": self.retryable,
        }
        if self.code:
            body["code"] = self.code
        return body


class NotFoundError(TrackingError):
    """Unknown product, route, station, field or history entry id."""

    kind = ErrorKind.NOT_FOUND
    status_code = status.HTTP_404_NOT_FOUND

    def __init__(self, resource: str, resource_id: object) -> None:
        super().__init__(f"{resource} {resource_id} not found")
        self.resource = resource
        self.resource_id = resource_id


class ValidationFailedError(TrackingError):
    """Structurally invalid definitions or submissions."""

    kind = ErrorKind.VALIDATION_FAILED
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY

    def __init__(self, detail: str, errors: list[FieldError] | None = None) -> None:
        super().__init__(detail)
        self.errors = errors or []

    def to_dict(self) -> dict[str, Any]:
        body = super().to_dict()
        body["errors"] = [e.as_dict() for e in self.errors]
        return body


class ConflictInvariantViolation(TrackingError):
    """The operation would break a ledger or lifecycle invariant."""

    kind = ErrorKind.CONFLICT_INVARIANT_VIOLATION
    status_code = status.HTTP_409_CONFLICT


class ConcurrencyConflict(TrackingError):
    """Lost the per-product lock or version race. Safe to retry."""

    kind = ErrorKind.CONCURRENCY_CONFLICT
    status_code = status.HTTP_409_CONFLICT
    retryable = True


class PersistenceFailure(TrackingError):
    """Storage-layer fault or timeout. The transaction was rolled back."""

    kind = ErrorKind.PERSISTENCE_FAILURE
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    retryable = True


@dataclass
class ItemError:
    """Per-item failure inside a bulk operation."""

    product_id: str
    kind: str
    detail: str
    errors: list[dict[str, Any]] = field(default_factory=list)

    @classmethod
    def from_exception(cls, product_id: object, exc: TrackingError) -> "ItemError":
        errors = [e.as_dict() for e in getattr(exc, "errors", [])]
        return cls(product_id=str(product_id), kind=exc.kind.value, detail=exc.detail, errors=errors)


async def tracking_error_handler(request: Request, exc: Exception) -> JSONResponse:
    """FastAPI exception handler rendering a TrackingError as structured JSON."""
    assert isinstance(exc, TrackingError)
    headers = {"Retry-After": "1"} if exc.retryable else None
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict(), headers=headers)

"""Domain exceptions raised by the payroll core."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any
from uuid import UUID

if TYPE_CHECKING:
    from workforce_payroll.services.time_entry_service import BulkTransitionResult


class PayrollError(Exception):
    """Base class for all payroll core errors."""

    code = "PAYROLL_ERROR"


class ValidationError(PayrollError):
    """Raised for malformed input (missing column, zero-value movement, ...)."""

    code = "VALIDATION_ERROR"

    def __init__(self, message: str, field: str | None = None):
        self.field = field
        super().__init__(message)


class NotFoundError(PayrollError):
    """Raised when a lookup or update target does not exist."""

    code = "NOT_FOUND"

    def __init__(self, entity_type: str, entity_id: UUID | str | None = None):
        self.entity_type = entity_type
        self.entity_id = entity_id
        msg = f"{entity_type} not found"
        if entity_id is not None:
            msg = f"{entity_type} {entity_id} not found"
        super().__init__(msg)


class PeriodLockedError(PayrollError):
    """Raised when a write targets a period that is not open."""

    code = "PERIOD_LOCKED"

    def __init__(self, period_id: UUID, status: str):
        self.period_id = period_id
        self.status = status
        super().__init__(f"Pay period {period_id} is {status}; only open periods accept changes")


class InvalidTransitionError(PayrollError):
    """Raised when the lifecycle never allows the requested transition."""

    code = "INVALID_TRANSITION"

    def __init__(self, from_status: str, to_status: str, reason: str | None = None):
        self.from_status = from_status
        self.to_status = to_status
        self.reason = reason
        msg = f"Invalid transition from '{from_status}' to '{to_status}'"
        if reason:
            msg += f": {reason}"
        super().__init__(msg)


class SequenceViolationError(PayrollError):
    """Raised when a period would be opened out of turn."""

    code = "SEQUENCE_VIOLATION"

    def __init__(self, period_id: UUID | None, reason: str):
        self.period_id = period_id
        self.reason = reason
        super().__init__(reason)


class PermissionDeniedError(PayrollError):
    """Raised when the external capability check refuses an action."""

    code = "PERMISSION_DENIED"

    def __init__(self, capability: str, actor_id: UUID | None = None):
        self.capability = capability
        self.actor_id = actor_id
        super().__init__(f"Actor {actor_id} lacks capability '{capability}'")


class PartialBatchFailure(PayrollError):
    """Raised when at least one item or batch of a bulk operation failed.

    Carries the full result so callers can report every failed item.
    """

    code = "PARTIAL_BATCH_FAILURE"

    def __init__(self, result: BulkTransitionResult | Any, message: str | None = None):
        self.result = result
        super().__init__(message or "Bulk operation completed with failures")

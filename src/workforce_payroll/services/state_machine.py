"""Pay period state machine with transition validation."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from uuid import UUID

from workforce_payroll.errors import InvalidTransitionError, SequenceViolationError


def _value(status: str) -> str:
    # Enum members hash by name, so dict lookups need the plain value
    return status.value if isinstance(status, Enum) else str(status)


class PeriodStatus(str, Enum):
    """Pay period status values."""

    OPEN = "open"
    CLOSED = "closed"
    PUBLISHED = "published"
    PAID = "paid"


class DenialKind(str, Enum):
    """Why a transition was refused."""

    INVALID = "invalid"
    SEQUENCE = "sequence"


@dataclass(frozen=True)
class TransitionDecision:
    """Outcome of a transition check: allow, or deny with a reason."""

    allowed: bool
    reason: str | None = None
    privileged: bool = False
    noop: bool = False
    denial: DenialKind | None = None

    def __bool__(self) -> bool:
        return self.allowed

    @classmethod
    def allow(cls, *, privileged: bool = False, noop: bool = False, reason: str | None = None) -> TransitionDecision:
        return cls(allowed=True, privileged=privileged, noop=noop, reason=reason)

    @classmethod
    def deny(cls, reason: str, denial: DenialKind = DenialKind.INVALID) -> TransitionDecision:
        return cls(allowed=False, reason=reason, denial=denial)


class PeriodStateMachine:
    """State machine for pay period status transitions.

    Allowed transitions:
    - open → closed
    - closed → open (sequential open, or privileged reopen)
    - closed → published
    - published → closed (unpublish)
    - closed → paid
    - published → paid
    - paid → paid (idempotent no-op)

    Paid is terminal. There is no unpay and no unpublish once paid.
    """

    VALID_TRANSITIONS: dict[str, list[str]] = {
        PeriodStatus.OPEN.value: [PeriodStatus.CLOSED.value],
        PeriodStatus.CLOSED.value: [PeriodStatus.OPEN.value, PeriodStatus.PUBLISHED.value, PeriodStatus.PAID.value],
        PeriodStatus.PUBLISHED.value: [PeriodStatus.CLOSED.value, PeriodStatus.PAID.value],
        PeriodStatus.PAID.value: [],  # Terminal state
    }

    # A predecessor in one of these states counts as closed for sequencing
    SETTLED = {
        PeriodStatus.CLOSED.value,
        PeriodStatus.PUBLISHED.value,
        PeriodStatus.PAID.value,
    }

    # Statuses where movements and time entries can be modified
    INPUTS_MUTABLE = {
        PeriodStatus.OPEN.value,
    }

    @classmethod
    def can_transition(
        cls,
        current: str,
        target: str,
        predecessor_status: str | None = None,
        has_privilege: bool = False,
        *,
        other_open: bool = False,
    ) -> TransitionDecision:
        """Decide whether a period may move from current to target.

        Pure function of its inputs. predecessor_status is None when the
        period is the company's first. other_open means some other period
        of the company is currently open.
        """
        current, target = _value(current), _value(target)
        if predecessor_status is not None:
            predecessor_status = _value(predecessor_status)

        if current == PeriodStatus.PAID and target == PeriodStatus.PAID:
            return TransitionDecision.allow(noop=True, reason="Period is already paid")

        if target not in cls.VALID_TRANSITIONS.get(current, []):
            return TransitionDecision.deny(
                f"Cannot transition from '{current}' to '{target}'"
            )

        if target != PeriodStatus.OPEN:
            return TransitionDecision.allow()

        # Single in-flight period per company, privileged or not
        if other_open:
            return TransitionDecision.deny(
                "Another period is already open; close it first",
                DenialKind.SEQUENCE,
            )

        predecessor_settled = predecessor_status is None or predecessor_status in cls.SETTLED
        if predecessor_settled:
            return TransitionDecision.allow()

        if has_privilege:
            return TransitionDecision.allow(
                privileged=True,
                reason="Out-of-sequence reopen",
            )

        return TransitionDecision.deny(
            f"Previous period is '{predecessor_status}'; it must be closed first",
            DenialKind.SEQUENCE,
        )

    @classmethod
    def validate_transition(
        cls,
        current: str,
        target: str,
        predecessor_status: str | None = None,
        has_privilege: bool = False,
        *,
        other_open: bool = False,
        period_id: UUID | None = None,
    ) -> TransitionDecision:
        """Validate a transition, raising the matching error if denied."""
        decision = cls.can_transition(
            current,
            target,
            predecessor_status,
            has_privilege,
            other_open=other_open,
        )
        if decision.allowed:
            return decision
        if decision.denial == DenialKind.SEQUENCE:
            raise SequenceViolationError(period_id, decision.reason or "Out of sequence")
        raise InvalidTransitionError(current, target, decision.reason)

    @classmethod
    def can_modify_inputs(cls, status: str) -> bool:
        """Check if movements and time entries can be modified."""
        return _value(status) in cls.INPUTS_MUTABLE

    @classmethod
    def is_settled(cls, status: str) -> bool:
        """Check if the status is closed, published or paid."""
        return _value(status) in cls.SETTLED

    @classmethod
    def get_next_statuses(cls, current_status: str) -> list[str]:
        """Get list of valid next statuses from current status."""
        return list(cls.VALID_TRANSITIONS.get(_value(current_status), []))

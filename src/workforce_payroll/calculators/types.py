"""Type definitions for the consolidation pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from enum import Enum
from uuid import UUID

ZERO = Decimal("0.00")


class ConceptCategory(str, Enum):
    """Adjustment direction."""

    EXTRA = "extra"
    DEDUCTION = "deduction"


class CalcMode(str, Enum):
    """How a movement's total is obtained."""

    QUANTITY_X_RATE = "quantity_x_rate"
    MANUAL_VALUE = "manual_value"


class TimeEntryStatus(str, Enum):
    """Clock entry review status."""

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


# ===== Financial rollup =====


@dataclass(frozen=True)
class MovementLine:
    """The slice of a movement the rollup needs."""

    employee_id: UUID
    category: str
    total_value: Decimal


@dataclass
class RollupRow:
    """Consolidated pay for one employee in one period."""

    employee_id: UUID
    first_name: str = ""
    last_name: str = ""
    base_pay: Decimal = ZERO
    extras_total: Decimal = ZERO
    deductions_total: Decimal = ZERO
    has_base_pay: bool = False
    extras_count: int = 0
    deductions_count: int = 0

    @property
    def final_pay(self) -> Decimal:
        return self.base_pay + self.extras_total - self.deductions_total

    @property
    def display_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()


@dataclass(frozen=True)
class RollupTotals:
    """Grand totals over a set of rollup rows."""

    employee_count: int = 0
    base_pay: Decimal = ZERO
    extras_total: Decimal = ZERO
    deductions_total: Decimal = ZERO
    final_pay: Decimal = ZERO


# ===== Time aggregation =====


@dataclass
class StatusCounts:
    """Entry counts by review state. Running entries count as open only."""

    pending: int = 0
    approved: int = 0
    rejected: int = 0
    open: int = 0

    @property
    def total(self) -> int:
        return self.pending + self.approved + self.rejected + self.open


@dataclass
class DayBucket:
    """Net and break minutes for one calendar day of clock-ins."""

    day: date
    net_minutes: int = 0
    break_minutes: int = 0
    entry_count: int = 0
    open_count: int = 0


@dataclass
class EmployeeTimeSummary:
    """One employee's clock activity over a date range."""

    employee_id: UUID
    days: dict[date, DayBucket] = field(default_factory=dict)
    net_minutes: int = 0
    break_minutes: int = 0
    approved_minutes: int = 0
    counts: StatusCounts = field(default_factory=StatusCounts)
    entry_ids: list[UUID] = field(default_factory=list)

    @property
    def has_issues(self) -> bool:
        """True if any entry is rejected or still running."""
        return self.counts.rejected > 0 or self.counts.open > 0

    @property
    def net_hours(self) -> Decimal:
        return (Decimal(self.net_minutes) / Decimal(60)).quantize(Decimal("0.01"))


@dataclass(frozen=True)
class TimeKpis:
    """Headline figures for a set of clock entries."""

    regular_hours: Decimal
    break_hours: Decimal
    pending: int
    approved: int
    total: int

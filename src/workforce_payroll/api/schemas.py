"""Pydantic schemas for API request/response models."""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from workforce_payroll.calculators.rollup import PeriodRollup
from workforce_payroll.calculators.types import EmployeeTimeSummary, TimeKpis
from workforce_payroll.reconciliation.change_set import (
    FieldChange,
    ImportKind,
    ImportPolicy,
    ImportRow,
    PendingChangeSet,
    RowAction,
)
from workforce_payroll.reconciliation.orchestrator import ApplyResult
from workforce_payroll.services.time_entry_service import BulkTransitionResult


# ============================================================================
# Errors
# ============================================================================


class ErrorResponse(BaseModel):
    """Schema for error response."""

    detail: str
    code: str | None = None
    field: str | None = None
    context: dict[str, Any] | None = None


# ============================================================================
# Pay periods
# ============================================================================


class PeriodCreate(BaseModel):
    """Schema for scheduling a new pay period."""

    start_date: date


class PeriodResponse(BaseModel):
    """Schema for pay period response."""

    model_config = ConfigDict(from_attributes=True)

    pay_period_id: UUID
    company_id: UUID
    start_date: date
    end_date: date
    status: str
    opened_at: datetime | None = None
    closed_at: datetime | None = None
    published_at: datetime | None = None
    paid_at: datetime | None = None
    reopen_count: int = 0


class SuggestedStartResponse(BaseModel):
    start_date: date


# ============================================================================
# Movements and rollup
# ============================================================================


class MovementCreate(BaseModel):
    """Schema for creating a movement."""

    pay_period_id: UUID
    employee_id: UUID
    concept_id: UUID
    quantity: Decimal | None = None
    rate: Decimal | None = None
    total_value: Decimal | None = None
    note: str | None = None


class MovementUpdate(BaseModel):
    """Only fields present in the request body are changed."""

    quantity: Decimal | None = None
    rate: Decimal | None = None
    total_value: Decimal | None = None
    note: str | None = None


class ConceptResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    concept_id: UUID
    name: str
    category: str
    calc_mode: str
    default_rate: Decimal | None = None
    unit_label: str | None = None
    is_active: bool


class MovementResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    movement_id: UUID
    pay_period_id: UUID
    employee_id: UUID
    concept_id: UUID
    quantity: Decimal | None = None
    rate: Decimal | None = None
    total_value: Decimal
    note: str | None = None
    created_by: UUID | None = None


class BasePayCreate(BaseModel):
    employee_id: UUID
    base_total_pay: Decimal
    total_work_hours: Decimal | None = None
    total_paid_hours: Decimal | None = None
    total_regular: Decimal | None = None
    total_overtime: Decimal | None = None


class RollupRowResponse(BaseModel):
    employee_id: UUID
    name: str
    base_pay: Decimal
    extras_total: Decimal
    deductions_total: Decimal
    final_pay: Decimal
    extras_count: int
    deductions_count: int
    has_base_pay: bool


class RollupTotalsResponse(BaseModel):
    employee_count: int
    base_pay: Decimal
    extras_total: Decimal
    deductions_total: Decimal
    final_pay: Decimal


class RollupResponse(BaseModel):
    """Schema for a period's consolidated pay."""

    pay_period_id: UUID
    rows: list[RollupRowResponse]
    totals: RollupTotalsResponse

    @classmethod
    def from_rollup(cls, rollup: PeriodRollup) -> RollupResponse:
        totals = rollup.totals
        return cls(
            pay_period_id=rollup.pay_period_id,
            rows=[
                RollupRowResponse(
                    employee_id=row.employee_id,
                    name=row.display_name,
                    base_pay=row.base_pay,
                    extras_total=row.extras_total,
                    deductions_total=row.deductions_total,
                    final_pay=row.final_pay,
                    extras_count=row.extras_count,
                    deductions_count=row.deductions_count,
                    has_base_pay=row.has_base_pay,
                )
                for row in rollup.rows
            ],
            totals=RollupTotalsResponse(
                employee_count=totals.employee_count,
                base_pay=totals.base_pay,
                extras_total=totals.extras_total,
                deductions_total=totals.deductions_total,
                final_pay=totals.final_pay,
            ),
        )


class ExportResponse(BaseModel):
    """Primitive rows for spreadsheet or CSV rendering. The first row is the header."""

    rows: list[list[Any]]


# ============================================================================
# Time entries
# ============================================================================


class TimeEntryCreate(BaseModel):
    employee_id: UUID
    clock_in: datetime
    clock_out: datetime | None = None
    break_minutes: int = Field(default=0, ge=0)
    notes: str | None = None


class TimeEntryUpdate(BaseModel):
    """Only fields present in the request body are changed."""

    clock_in: datetime | None = None
    clock_out: datetime | None = None
    break_minutes: int | None = Field(default=None, ge=0)
    notes: str | None = None


class TimeEntryResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    time_entry_id: UUID
    employee_id: UUID
    clock_in: datetime
    clock_out: datetime | None = None
    break_minutes: int
    status: str
    approved_at: datetime | None = None
    notes: str | None = None


class BulkTransitionRequest(BaseModel):
    time_entry_ids: list[UUID] = Field(min_length=1)
    batch_size: int | None = Field(default=None, ge=1)


class SkippedEntryResponse(BaseModel):
    time_entry_id: UUID
    reason: str


class BatchFailureResponse(BaseModel):
    batch_index: int
    time_entry_ids: list[UUID]
    error: str


class BulkTransitionResponse(BaseModel):
    """Per-entry summary of a bulk approve/reject."""

    target_status: str
    requested: int
    batch_size: int
    transitioned: list[UUID]
    skipped: list[SkippedEntryResponse]
    failed_batches: list[BatchFailureResponse]

    @classmethod
    def from_result(cls, result: BulkTransitionResult) -> BulkTransitionResponse:
        return cls(
            target_status=result.target_status,
            requested=result.requested,
            batch_size=result.batch_size,
            transitioned=list(result.transitioned),
            skipped=[
                SkippedEntryResponse(time_entry_id=s.time_entry_id, reason=s.reason)
                for s in result.skipped
            ],
            failed_batches=[
                BatchFailureResponse(
                    batch_index=b.batch_index,
                    time_entry_ids=list(b.time_entry_ids),
                    error=b.error,
                )
                for b in result.failed_batches
            ],
        )


class DayResponse(BaseModel):
    day: date
    net_minutes: int
    break_minutes: int
    entry_count: int
    open_count: int


class EmployeeTimeSummaryResponse(BaseModel):
    employee_id: UUID
    days: list[DayResponse]
    net_minutes: int
    net_hours: Decimal
    break_minutes: int
    approved_minutes: int
    pending: int
    approved: int
    rejected: int
    open: int
    has_issues: bool

    @classmethod
    def from_summary(cls, summary: EmployeeTimeSummary) -> EmployeeTimeSummaryResponse:
        return cls(
            employee_id=summary.employee_id,
            days=[
                DayResponse(
                    day=bucket.day,
                    net_minutes=bucket.net_minutes,
                    break_minutes=bucket.break_minutes,
                    entry_count=bucket.entry_count,
                    open_count=bucket.open_count,
                )
                for bucket in sorted(summary.days.values(), key=lambda b: b.day)
            ],
            net_minutes=summary.net_minutes,
            net_hours=summary.net_hours,
            break_minutes=summary.break_minutes,
            approved_minutes=summary.approved_minutes,
            pending=summary.counts.pending,
            approved=summary.counts.approved,
            rejected=summary.counts.rejected,
            open=summary.counts.open,
            has_issues=summary.has_issues,
        )


class TimeKpisResponse(BaseModel):
    regular_hours: Decimal
    break_hours: Decimal
    pending: int
    approved: int
    total: int

    @classmethod
    def from_kpis(cls, kpis: TimeKpis) -> TimeKpisResponse:
        return cls(
            regular_hours=kpis.regular_hours,
            break_hours=kpis.break_hours,
            pending=kpis.pending,
            approved=kpis.approved,
            total=kpis.total,
        )


# ============================================================================
# Imports
# ============================================================================


class FieldChangeSchema(BaseModel):
    field: str
    old: Any = None
    new: Any = None


class ImportRowContext(BaseModel):
    employee_id: UUID | None = None
    concept_id: UUID | None = None
    concept_name: str | None = None
    category: str | None = None


class ImportRowSchema(BaseModel):
    """One reviewable proposal. Toggle ``included`` and send the set back to apply."""

    key: str
    row_number: int
    label: str
    action: RowAction
    changes: list[FieldChangeSchema] = []
    target_id: UUID | None = None
    strategy: str | None = None
    included: bool = True
    errors: list[str] = []
    context: ImportRowContext = ImportRowContext()

    @classmethod
    def from_row(cls, row: ImportRow) -> ImportRowSchema:
        return cls(
            key=row.key,
            row_number=row.row_number,
            label=row.label,
            action=row.action,
            changes=[FieldChangeSchema(field=c.field, old=c.old, new=c.new) for c in row.changes],
            target_id=row.target_id,
            strategy=row.strategy,
            included=row.included,
            errors=list(row.errors),
            context=ImportRowContext(**dict(row.context)),
        )

    def to_row(self) -> ImportRow:
        return ImportRow(
            key=self.key,
            row_number=self.row_number,
            label=self.label,
            action=self.action,
            changes=tuple(FieldChange(c.field, c.old, c.new) for c in self.changes),
            target_id=self.target_id,
            strategy=self.strategy,
            included=self.included,
            errors=tuple(self.errors),
            context=self.context.model_dump(exclude_none=True),
        )


class ChangeSetSummaryResponse(BaseModel):
    creates: int
    updates: int
    noops: int
    errors: int
    selected: int


class ChangeSetSchema(BaseModel):
    """A pending change-set, as returned by upload and accepted by apply."""

    kind: ImportKind
    policy: ImportPolicy
    pay_period_id: UUID | None = None
    rows: list[ImportRowSchema]
    unmapped_columns: list[str] = []
    summary: ChangeSetSummaryResponse | None = None

    @classmethod
    def from_change_set(cls, change_set: PendingChangeSet) -> ChangeSetSchema:
        summary = change_set.summary
        return cls(
            kind=change_set.kind,
            policy=change_set.policy,
            pay_period_id=change_set.pay_period_id,
            rows=[ImportRowSchema.from_row(r) for r in change_set.rows],
            unmapped_columns=list(change_set.unmapped_columns),
            summary=ChangeSetSummaryResponse(
                creates=summary.creates,
                updates=summary.updates,
                noops=summary.noops,
                errors=summary.errors,
                selected=summary.selected,
            ),
        )

    def to_change_set(self, company_id: UUID) -> PendingChangeSet:
        return PendingChangeSet(
            kind=self.kind,
            policy=self.policy,
            company_id=company_id,
            rows=tuple(r.to_row() for r in self.rows),
            pay_period_id=self.pay_period_id,
            unmapped_columns=tuple(self.unmapped_columns),
        )


class RowOutcomeResponse(BaseModel):
    key: str
    row_number: int
    status: str
    target_id: UUID | None = None
    reason: str | None = None


class ApplyResponse(BaseModel):
    kind: ImportKind
    created: int
    updated: int
    skipped: int
    failed: int
    outcomes: list[RowOutcomeResponse]

    @classmethod
    def from_result(cls, result: ApplyResult) -> ApplyResponse:
        return cls(
            kind=result.kind,
            created=result.created,
            updated=result.updated,
            skipped=result.skipped,
            failed=result.failed,
            outcomes=[
                RowOutcomeResponse(
                    key=o.key,
                    row_number=o.row_number,
                    status=o.status.value,
                    target_id=o.target_id,
                    reason=o.reason,
                )
                for o in result.outcomes
            ],
        )

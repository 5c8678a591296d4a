"""Time entry service - clock records, bulk review and period summaries."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone
from typing import Any
from uuid import UUID

from sqlalchemy import func, literal, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from workforce_payroll.calculators import TimeAggregator, TimeEntryStatus
from workforce_payroll.calculators.types import EmployeeTimeSummary, TimeKpis
from workforce_payroll.config import Settings, get_settings
from workforce_payroll.errors import (
    NotFoundError,
    PartialBatchFailure,
    PeriodLockedError,
    ValidationError,
)
from workforce_payroll.models import Employee, PayPeriod, TimeEntry
from workforce_payroll.services.audit_service import AuditLog
from workforce_payroll.services.authorization import Authorizer, Capability, require
from workforce_payroll.services.period_service import PeriodService
from workforce_payroll.services.state_machine import PeriodStateMachine

logger = logging.getLogger(__name__)

BULK_REJECT_NOTE = "[Rejected] bulk rejection"

_UNSET: Any = object()


# ===== Bulk results =====


@dataclass(frozen=True)
class SkippedEntry:
    """An entry left untouched by a bulk operation, with the reason."""

    time_entry_id: UUID
    reason: str


@dataclass(frozen=True)
class BatchFailure:
    """A batch rolled back as a whole."""

    batch_index: int
    time_entry_ids: tuple[UUID, ...]
    error: str


@dataclass
class BulkTransitionResult:
    """Outcome of a bulk approve/reject, one line per requested entry."""

    target_status: str
    requested: int = 0
    batch_size: int = 0
    transitioned: list[UUID] = field(default_factory=list)
    skipped: list[SkippedEntry] = field(default_factory=list)
    failed_batches: list[BatchFailure] = field(default_factory=list)

    @property
    def failed_count(self) -> int:
        return sum(len(b.time_entry_ids) for b in self.failed_batches)

    @property
    def ok(self) -> bool:
        return not self.failed_batches

    def raise_for_failures(self) -> None:
        """Raise PartialBatchFailure naming every failed batch."""
        if self.failed_batches:
            batches = ", ".join(str(b.batch_index) for b in self.failed_batches)
            raise PartialBatchFailure(
                self,
                f"{len(self.failed_batches)} batch(es) failed and were rolled back: {batches}",
            )


class _BatchConflict(Exception):
    """Rows changed between the batch's read and its update."""


def _chunks(items: Sequence[UUID], size: int) -> Iterable[tuple[int, list[UUID]]]:
    for index, start in enumerate(range(0, len(items), size)):
        yield index, list(items[start:start + size])


def entry_snapshot(entry: TimeEntry) -> dict[str, Any]:
    return {
        "employee_id": entry.employee_id,
        "clock_in": entry.clock_in,
        "clock_out": entry.clock_out,
        "break_minutes": entry.break_minutes,
        "status": entry.status,
        "notes": entry.notes,
    }


class TimeEntryService:
    """Service for clock entries.

    Writes are refused when the entry's clock-in day falls inside a period
    that is not open. Days not covered by any period are writable.
    """

    def __init__(
        self,
        session: AsyncSession,
        authorizer: Authorizer,
        settings: Settings | None = None,
    ):
        self.session = session
        self.authorizer = authorizer
        self.settings = settings or get_settings()
        self.periods = PeriodService(session, authorizer, self.settings)
        self.audit = AuditLog(session)

    # ===== Single entries =====

    async def get_time_entry(self, company_id: UUID, time_entry_id: UUID) -> TimeEntry:
        result = await self.session.execute(
            select(TimeEntry).where(
                TimeEntry.time_entry_id == time_entry_id,
                TimeEntry.company_id == company_id,
            )
        )
        entry = result.scalar_one_or_none()
        if entry is None:
            raise NotFoundError("time_entry", time_entry_id)
        return entry

    async def list_time_entries(
        self,
        company_id: UUID,
        start: date,
        end: date,
        employee_id: UUID | None = None,
        status: str | None = None,
    ) -> list[TimeEntry]:
        """Entries whose clock-in day falls within [start, end]."""
        stmt = (
            select(TimeEntry)
            .where(
                TimeEntry.company_id == company_id,
                TimeEntry.clock_in >= datetime.combine(start, datetime.min.time()),
                TimeEntry.clock_in < datetime.combine(end + timedelta(days=1), datetime.min.time()),
            )
            .order_by(TimeEntry.clock_in, TimeEntry.time_entry_id)
        )
        if employee_id is not None:
            stmt = stmt.where(TimeEntry.employee_id == employee_id)
        if status is not None:
            stmt = stmt.where(TimeEntry.status == TimeEntryStatus(status).value)
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def _ensure_day_writable(self, company_id: UUID, day: date) -> None:
        period = await self.periods.period_for_day(company_id, day, for_update=True)
        if period is not None and not PeriodStateMachine.can_modify_inputs(period.status):
            raise PeriodLockedError(period.pay_period_id, period.status)

    @staticmethod
    def _validate_times(clock_in: datetime, clock_out: datetime | None, break_minutes: int) -> None:
        if break_minutes is None or break_minutes < 0:
            raise ValidationError("Break minutes must be zero or more", field="break_minutes")
        if clock_out is not None and clock_out < clock_in:
            raise ValidationError("Clock out must not precede clock in", field="clock_out")

    async def create_time_entry(
        self,
        company_id: UUID,
        employee_id: UUID,
        clock_in: datetime,
        clock_out: datetime | None = None,
        break_minutes: int = 0,
        notes: str | None = None,
        actor_id: UUID | None = None,
    ) -> TimeEntry:
        self._validate_times(clock_in, clock_out, break_minutes)
        employee = await self.session.execute(
            select(Employee.employee_id).where(
                Employee.employee_id == employee_id,
                Employee.company_id == company_id,
            )
        )
        if employee.first() is None:
            raise NotFoundError("employee", employee_id)
        await self._ensure_day_writable(company_id, clock_in.date())

        entry = TimeEntry(
            company_id=company_id,
            employee_id=employee_id,
            clock_in=clock_in,
            clock_out=clock_out,
            break_minutes=break_minutes,
            status=TimeEntryStatus.PENDING.value,
            notes=notes,
        )
        self.session.add(entry)
        await self.session.flush()
        await self.audit.record(
            company_id=company_id,
            entity_type="time_entry",
            entity_id=entry.time_entry_id,
            action="create",
            actor_id=actor_id,
            after=entry_snapshot(entry),
        )
        return entry

    async def update_time_entry(
        self,
        company_id: UUID,
        time_entry_id: UUID,
        clock_in: Any = _UNSET,
        clock_out: Any = _UNSET,
        break_minutes: Any = _UNSET,
        notes: Any = _UNSET,
        actor_id: UUID | None = None,
    ) -> TimeEntry:
        """Edit an entry. Both the old and the new clock-in day must be writable."""
        entry = await self.get_time_entry(company_id, time_entry_id)
        before = entry_snapshot(entry)
        new_in = entry.clock_in if clock_in is _UNSET else clock_in
        new_out = entry.clock_out if clock_out is _UNSET else clock_out
        new_break = entry.break_minutes if break_minutes is _UNSET else break_minutes
        self._validate_times(new_in, new_out, new_break)

        await self._ensure_day_writable(company_id, entry.clock_in.date())
        if new_in.date() != entry.clock_in.date():
            await self._ensure_day_writable(company_id, new_in.date())

        entry.clock_in = new_in
        entry.clock_out = new_out
        entry.break_minutes = new_break
        if notes is not _UNSET:
            entry.notes = notes
        await self.session.flush()
        await self.audit.record(
            company_id=company_id,
            entity_type="time_entry",
            entity_id=time_entry_id,
            action="update",
            actor_id=actor_id,
            before=before,
            after=entry_snapshot(entry),
        )
        return entry

    async def delete_time_entry(
        self,
        company_id: UUID,
        time_entry_id: UUID,
        actor_id: UUID | None = None,
    ) -> None:
        entry = await self.get_time_entry(company_id, time_entry_id)
        await self._ensure_day_writable(company_id, entry.clock_in.date())
        before = entry_snapshot(entry)
        await self.session.delete(entry)
        await self.session.flush()
        await self.audit.record(
            company_id=company_id,
            entity_type="time_entry",
            entity_id=time_entry_id,
            action="delete",
            actor_id=actor_id,
            before=before,
        )

    # ===== Bulk review =====

    async def bulk_approve(
        self,
        company_id: UUID,
        time_entry_ids: Iterable[UUID],
        actor_id: UUID | None = None,
        batch_size: int | None = None,
    ) -> BulkTransitionResult:
        return await self._bulk_transition(
            company_id, time_entry_ids, TimeEntryStatus.APPROVED.value, actor_id, batch_size
        )

    async def bulk_reject(
        self,
        company_id: UUID,
        time_entry_ids: Iterable[UUID],
        actor_id: UUID | None = None,
        batch_size: int | None = None,
    ) -> BulkTransitionResult:
        return await self._bulk_transition(
            company_id, time_entry_ids, TimeEntryStatus.REJECTED.value, actor_id, batch_size
        )

    async def _bulk_transition(
        self,
        company_id: UUID,
        time_entry_ids: Iterable[UUID],
        target_status: str,
        actor_id: UUID | None,
        batch_size: int | None,
    ) -> BulkTransitionResult:
        """Move pending entries to target_status in fixed-size batches.

        Each batch runs in its own savepoint and is all-or-nothing. Entries
        that are not pending, or whose period is locked, are skipped with a
        reason and never touched. The UPDATE is conditioned on status =
        pending, so retrying a batch is a no-op for rows already moved.
        """
        require(self.authorizer, actor_id, company_id, Capability.APPROVE_TIME_ENTRIES)
        size = batch_size or self.settings.time_entry_batch_size
        if size < 1:
            raise ValidationError("Batch size must be at least 1", field="batch_size")

        # De-duplicate, keeping request order
        ids = list(dict.fromkeys(time_entry_ids))
        result = BulkTransitionResult(
            target_status=target_status,
            requested=len(ids),
            batch_size=size,
        )

        for index, chunk in _chunks(ids, size):
            try:
                async with self.session.begin_nested():
                    moved, skipped = await self._transition_batch(
                        company_id, chunk, target_status
                    )
            except (_BatchConflict, SQLAlchemyError) as e:
                logger.exception("Batch %d of bulk %s failed; rolled back", index, target_status)
                result.failed_batches.append(
                    BatchFailure(batch_index=index, time_entry_ids=tuple(chunk), error=str(e))
                )
                continue
            result.transitioned.extend(moved)
            result.skipped.extend(skipped)

        await self.audit.record(
            company_id=company_id,
            entity_type="time_entry",
            entity_id=None,
            action=f"bulk_{'approve' if target_status == TimeEntryStatus.APPROVED.value else 'reject'}",
            actor_id=actor_id,
            after={
                "requested": result.requested,
                "transitioned": len(result.transitioned),
                "skipped": [{"id": s.time_entry_id, "reason": s.reason} for s in result.skipped],
                "failed_batches": [b.batch_index for b in result.failed_batches],
            },
        )
        logger.info(
            "Bulk %s: %d requested, %d moved, %d skipped, %d batch(es) failed",
            target_status, result.requested, len(result.transitioned),
            len(result.skipped), len(result.failed_batches),
        )
        return result

    async def _transition_batch(
        self,
        company_id: UUID,
        chunk: list[UUID],
        target_status: str,
    ) -> tuple[list[UUID], list[SkippedEntry]]:
        rows = await self.session.execute(
            select(TimeEntry.time_entry_id, TimeEntry.status, TimeEntry.clock_in).where(
                TimeEntry.company_id == company_id,
                TimeEntry.time_entry_id.in_(chunk),
            )
        )
        found = {entry_id: (status, clock_in) for entry_id, status, clock_in in rows.all()}
        locked_days = await self._locked_days(company_id, [c for _, c in found.values()])

        eligible: list[UUID] = []
        skipped: list[SkippedEntry] = []
        for entry_id in chunk:
            if entry_id not in found:
                skipped.append(SkippedEntry(entry_id, "not found"))
                continue
            status, clock_in = found[entry_id]
            if status != TimeEntryStatus.PENDING.value:
                skipped.append(SkippedEntry(entry_id, f"status is '{status}', not pending"))
            elif clock_in.date() in locked_days:
                skipped.append(SkippedEntry(entry_id, f"period is {locked_days[clock_in.date()]}"))
            else:
                eligible.append(entry_id)

        if not eligible:
            return [], skipped

        values: dict[str, Any] = {"status": target_status}
        if target_status == TimeEntryStatus.APPROVED.value:
            values["approved_at"] = datetime.now(timezone.utc)
        else:
            values["notes"] = func.coalesce(TimeEntry.notes + literal("\n"), "") + BULK_REJECT_NOTE

        updated = await self.session.execute(
            update(TimeEntry)
            .where(
                TimeEntry.time_entry_id.in_(eligible),
                TimeEntry.status == TimeEntryStatus.PENDING.value,
            )
            .values(**values)
            # Entries already loaded in the session see the new status
            .execution_options(synchronize_session="fetch")
        )
        if updated.rowcount != len(eligible):
            raise _BatchConflict(
                f"expected {len(eligible)} pending entries, updated {updated.rowcount}"
            )
        return eligible, skipped

    async def _locked_days(self, company_id: UUID, clock_ins: list[datetime]) -> dict[date, str]:
        """Clock-in day -> status for days inside non-open periods."""
        if not clock_ins:
            return {}
        days = {c.date() for c in clock_ins}
        result = await self.session.execute(
            select(PayPeriod).where(
                PayPeriod.company_id == company_id,
                PayPeriod.start_date <= max(days),
                PayPeriod.end_date >= min(days),
            )
        )
        locked: dict[date, str] = {}
        for period in result.scalars().all():
            if PeriodStateMachine.can_modify_inputs(period.status):
                continue
            for day in days:
                if period.contains(day):
                    locked[day] = period.status
        return locked

    # ===== Summaries =====

    async def period_summary(
        self,
        company_id: UUID,
        pay_period_id: UUID,
        employee_id: UUID | None = None,
    ) -> dict[UUID, EmployeeTimeSummary]:
        """Per-employee daily buckets and totals for one period."""
        period = await self.periods.get_period(company_id, pay_period_id)
        entries = await self.list_time_entries(
            company_id, period.start_date, period.end_date, employee_id=employee_id
        )
        return TimeAggregator.summarize(entries, start=period.start_date, end=period.end_date)

    async def kpis(
        self,
        company_id: UUID,
        start: date,
        end: date,
        employee_id: UUID | None = None,
    ) -> TimeKpis:
        entries = await self.list_time_entries(company_id, start, end, employee_id=employee_id)
        return TimeAggregator.kpis(entries)

    async def employee_names(self, company_id: UUID, employee_ids: list[UUID]) -> dict[UUID, str]:
        """Display names for export rows."""
        if not employee_ids:
            return {}
        result = await self.session.execute(
            select(Employee.employee_id, Employee.first_name, Employee.last_name).where(
                Employee.company_id == company_id,
                Employee.employee_id.in_(employee_ids),
            )
        )
        return {eid: f"{first} {last}".strip() for eid, first, last in result.all()}

"""Clock entry aggregation into daily and period totals."""

from __future__ import annotations

from collections.abc import Iterable
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Protocol
from uuid import UUID

from workforce_payroll.calculators.types import (
    DayBucket,
    EmployeeTimeSummary,
    TimeEntryStatus,
    TimeKpis,
)


class ClockEntry(Protocol):
    """What the aggregator reads from a time entry."""

    time_entry_id: UUID
    employee_id: UUID
    clock_in: datetime
    clock_out: datetime | None
    break_minutes: int
    status: str


def net_minutes(entry: ClockEntry) -> int:
    """Worked minutes net of break; 0 for a running entry, never negative."""
    if entry.clock_out is None:
        return 0
    elapsed = int((entry.clock_out - entry.clock_in).total_seconds() // 60)
    return max(0, elapsed - (entry.break_minutes or 0))


def _hours(minutes: int) -> Decimal:
    return (Decimal(minutes) / Decimal(60)).quantize(Decimal("0.1"))


class TimeAggregator:
    """Reduces clock entries into per-employee summaries.

    Entries are bucketed by the calendar date of clock_in. A running entry
    (no clock_out) counts toward the open tally only and adds no minutes,
    unless it was already rejected, in which case it counts as rejected.
    """

    @staticmethod
    def summarize(
        entries: Iterable[ClockEntry],
        *,
        start: date | None = None,
        end: date | None = None,
    ) -> dict[UUID, EmployeeTimeSummary]:
        """Summaries keyed by employee, restricted to clock-ins within [start, end]."""
        summaries: dict[UUID, EmployeeTimeSummary] = {}

        for entry in sorted(entries, key=lambda e: (e.clock_in, str(e.time_entry_id))):
            day = entry.clock_in.date()
            if start is not None and day < start:
                continue
            if end is not None and day > end:
                continue

            summary = summaries.get(entry.employee_id)
            if summary is None:
                summary = EmployeeTimeSummary(employee_id=entry.employee_id)
                summaries[entry.employee_id] = summary

            bucket = summary.days.get(day)
            if bucket is None:
                bucket = DayBucket(day=day)
                summary.days[day] = bucket

            summary.entry_ids.append(entry.time_entry_id)
            bucket.entry_count += 1

            if entry.status == TimeEntryStatus.REJECTED:
                summary.counts.rejected += 1
            elif entry.clock_out is None:
                summary.counts.open += 1
            elif entry.status == TimeEntryStatus.APPROVED:
                summary.counts.approved += 1
            else:
                summary.counts.pending += 1

            if entry.clock_out is None:
                bucket.open_count += 1
                continue

            minutes = net_minutes(entry)
            breaks = entry.break_minutes or 0
            bucket.net_minutes += minutes
            bucket.break_minutes += breaks
            summary.net_minutes += minutes
            summary.break_minutes += breaks
            if entry.status == TimeEntryStatus.APPROVED:
                summary.approved_minutes += minutes

        return summaries

    @staticmethod
    def kpis(entries: Iterable[ClockEntry]) -> TimeKpis:
        """Headline hours and counts for a filtered list of entries."""
        worked = breaks = pending = approved = total = 0
        for entry in entries:
            total += 1
            if entry.clock_out is not None:
                worked += net_minutes(entry)
                breaks += entry.break_minutes or 0
                if entry.status == TimeEntryStatus.PENDING:
                    pending += 1
            if entry.status == TimeEntryStatus.APPROVED:
                approved += 1
        return TimeKpis(
            regular_hours=_hours(worked),
            break_hours=_hours(breaks),
            pending=pending,
            approved=approved,
            total=total,
        )

    @staticmethod
    def to_export_rows(
        summaries: dict[UUID, EmployeeTimeSummary],
        days: list[date],
        names: dict[UUID, str] | None = None,
    ) -> list[list[Any]]:
        """Timesheet grid: employee, one hours column per day, total, issues flag."""
        names = names or {}
        out: list[list[Any]] = [
            ["Employee", *[d.isoformat() for d in days], "Total", "Issues"]
        ]
        ordered = sorted(
            summaries.values(),
            key=lambda s: (names.get(s.employee_id, "").casefold(), str(s.employee_id)),
        )
        for summary in ordered:
            daily = [
                str(_hours(summary.days[d].net_minutes)) if d in summary.days else ""
                for d in days
            ]
            out.append([
                names.get(summary.employee_id, str(summary.employee_id)),
                *daily,
                str(_hours(summary.net_minutes)),
                summary.has_issues,
            ])
        return out

"""Clock entries, bulk review and period locks against the database."""

from datetime import datetime, timedelta
from uuid import uuid4

import pytest
from sqlalchemy import select

from workforce_payroll.errors import (
    PartialBatchFailure,
    PeriodLockedError,
    PermissionDeniedError,
    ValidationError,
)
from workforce_payroll.models import TimeEntry
from workforce_payroll.services import time_entry_service
from workforce_payroll.services.authorization import StaticAuthorizer
from workforce_payroll.services.time_entry_service import BULK_REJECT_NOTE, TimeEntryService

pytestmark = pytest.mark.asyncio


async def _add_entries(session, company, employee, count, status="pending", day=datetime(2025, 1, 2, 9, 0)):
    entries = []
    for i in range(count):
        clock_in = day + timedelta(minutes=i)
        entries.append(TimeEntry(
            company_id=company.company_id,
            employee_id=employee.employee_id,
            clock_in=clock_in,
            clock_out=clock_in + timedelta(hours=8),
            break_minutes=30,
            status=status,
        ))
    session.add_all(entries)
    await session.flush()
    return entries


async def _statuses(session, ids) -> dict:
    # Column rows come straight from the database, not the identity map
    result = await session.execute(
        select(TimeEntry.time_entry_id, TimeEntry.status).where(TimeEntry.time_entry_id.in_(ids))
    )
    return dict(result.all())


class TestTimeEntryWrites:
    """Test single entry writes and period locks."""

    async def test_create_in_open_period(self, session, company, authorizer, settings, employees, open_period):
        service = TimeEntryService(session, authorizer, settings)
        entry = await service.create_time_entry(
            company.company_id,
            employees["ana"].employee_id,
            datetime(2025, 1, 2, 9, 0),
            datetime(2025, 1, 2, 17, 30),
            break_minutes=30,
        )
        assert entry.status == "pending"

        summary = await service.period_summary(company.company_id, open_period.pay_period_id)
        assert summary[employees["ana"].employee_id].net_minutes == 480

    async def test_closed_period_day_is_locked(self, session, company, authorizer, settings, employees, periods):
        """Entries whose day falls in a non-open period are refused."""
        service = TimeEntryService(session, authorizer, settings)
        with pytest.raises(PeriodLockedError):
            await service.create_time_entry(
                company.company_id, employees["ana"].employee_id, datetime(2025, 1, 9, 9, 0)
            )

    async def test_day_outside_any_period_is_writable(self, session, company, authorizer, settings, employees, periods):
        service = TimeEntryService(session, authorizer, settings)
        entry = await service.create_time_entry(
            company.company_id, employees["ana"].employee_id, datetime(2025, 3, 5, 9, 0)
        )
        assert entry.time_entry_id is not None

    async def test_update_cannot_move_into_locked_day(
        self, session, company, authorizer, settings, employees, open_period
    ):
        """Both the old and the new day must be writable."""
        service = TimeEntryService(session, authorizer, settings)
        entry = await service.create_time_entry(
            company.company_id, employees["ana"].employee_id, datetime(2025, 1, 2, 9, 0)
        )
        with pytest.raises(PeriodLockedError):
            await service.update_time_entry(
                company.company_id, entry.time_entry_id, clock_in=datetime(2025, 1, 9, 9, 0)
            )

        updated = await service.update_time_entry(
            company.company_id, entry.time_entry_id, clock_out=datetime(2025, 1, 2, 12, 0)
        )
        assert updated.clock_out == datetime(2025, 1, 2, 12, 0)

    async def test_clock_out_before_clock_in(self, session, company, authorizer, settings, employees, open_period):
        service = TimeEntryService(session, authorizer, settings)
        with pytest.raises(ValidationError):
            await service.create_time_entry(
                company.company_id,
                employees["ana"].employee_id,
                datetime(2025, 1, 2, 9, 0),
                datetime(2025, 1, 2, 8, 0),
            )

    async def test_list_and_kpis(self, session, company, authorizer, settings, employees, open_period):
        service = TimeEntryService(session, authorizer, settings)
        await _add_entries(session, company, employees["ana"], 2)
        await _add_entries(session, company, employees["jorge"], 1, status="approved")
        # Late evening of the last day is still inside the range
        await _add_entries(session, company, employees["jorge"], 1, day=datetime(2025, 1, 7, 23, 0))

        entries = await service.list_time_entries(company.company_id, open_period.start_date, open_period.end_date)
        assert len(entries) == 4

        pending = await service.list_time_entries(
            company.company_id, open_period.start_date, open_period.end_date, status="pending"
        )
        assert len(pending) == 3

        kpis = await service.kpis(company.company_id, open_period.start_date, open_period.end_date)
        assert kpis.total == 4
        assert kpis.approved == 1


class TestBulkTransitions:
    """Test batched approve and reject."""

    async def test_bulk_approve_in_batches(self, session, company, authorizer, settings, employees, open_period):
        """120 pending entries approve in three batches; others stay untouched."""
        pending = await _add_entries(session, company, employees["ana"], 120)
        approved = await _add_entries(session, company, employees["jorge"], 3, status="approved")
        rejected = await _add_entries(session, company, employees["maria"], 2, status="rejected")
        pending_ids = [e.time_entry_id for e in pending]
        approved_ids = [e.time_entry_id for e in approved]
        rejected_ids = [e.time_entry_id for e in rejected]
        ids = pending_ids + approved_ids + rejected_ids

        service = TimeEntryService(session, authorizer, settings)
        result = await service.bulk_approve(company.company_id, ids, batch_size=50)

        assert result.ok
        assert result.requested == 125
        assert len(result.transitioned) == 120
        assert len(result.skipped) == 5

        statuses = await _statuses(session, ids)
        assert all(statuses[i] == "approved" for i in pending_ids + approved_ids)
        assert all(statuses[i] == "rejected" for i in rejected_ids)

    async def test_rerun_is_noop(self, session, company, authorizer, settings, employees, open_period):
        """Approving the same ids twice moves nothing the second time."""
        entries = await _add_entries(session, company, employees["ana"], 5)
        ids = [e.time_entry_id for e in entries]
        service = TimeEntryService(session, authorizer, settings)

        await service.bulk_approve(company.company_id, ids)
        again = await service.bulk_approve(company.company_id, ids + ids)

        assert again.requested == 5
        assert again.transitioned == []
        assert {s.reason for s in again.skipped} == {"status is 'approved', not pending"}

    async def test_locked_and_missing_entries_skipped(
        self, session, company, authorizer, settings, employees, open_period
    ):
        open_entries = await _add_entries(session, company, employees["ana"], 2)
        locked = await _add_entries(session, company, employees["ana"], 2, day=datetime(2025, 1, 9, 9, 0))
        ghost = uuid4()

        service = TimeEntryService(session, authorizer, settings)
        ids = [e.time_entry_id for e in open_entries + locked]
        result = await service.bulk_approve(company.company_id, ids + [ghost])

        assert len(result.transitioned) == 2
        reasons = {s.time_entry_id: s.reason for s in result.skipped}
        assert reasons[ghost] == "not found"
        assert reasons[locked[0].time_entry_id] == "period is closed"
        assert reasons[locked[1].time_entry_id] == "period is closed"

    async def test_bulk_reject_appends_note(self, session, company, authorizer, settings, employees, open_period):
        entries = await _add_entries(session, company, employees["ana"], 2)
        entries[0].notes = "forgot to clock out"
        await session.flush()
        noted, plain = [e.time_entry_id for e in entries]

        service = TimeEntryService(session, authorizer, settings)
        result = await service.bulk_reject(company.company_id, [noted, plain])
        assert len(result.transitioned) == 2

        rows = await session.execute(
            select(TimeEntry.time_entry_id, TimeEntry.notes).where(TimeEntry.time_entry_id.in_([noted, plain]))
        )
        notes = dict(rows.all())
        assert notes[noted] == f"forgot to clock out\n{BULK_REJECT_NOTE}"
        assert notes[plain] == BULK_REJECT_NOTE

    async def test_failed_batch_rolls_back_alone(
        self, session, company, authorizer, settings, employees, open_period, monkeypatch
    ):
        """A failing batch is rolled back; the other batches stay applied."""
        entries = await _add_entries(session, company, employees["ana"], 120)
        ids = [e.time_entry_id for e in entries]
        service = TimeEntryService(session, authorizer, settings)

        original = service._transition_batch
        calls = []

        async def flaky_batch(company_id, chunk, target_status):
            calls.append(chunk)
            moved, skipped = await original(company_id, chunk, target_status)
            if len(calls) == 2:
                raise time_entry_service._BatchConflict("simulated conflict")
            return moved, skipped

        monkeypatch.setattr(service, "_transition_batch", flaky_batch)
        result = await service.bulk_approve(company.company_id, ids, batch_size=50)

        assert not result.ok
        assert [b.batch_index for b in result.failed_batches] == [1]
        assert result.failed_count == 50
        assert len(result.transitioned) == 70

        statuses = await _statuses(session, ids)
        assert [statuses[i] for i in ids[50:100]] == ["pending"] * 50
        assert all(statuses[i] == "approved" for i in ids[:50] + ids[100:])

        with pytest.raises(PartialBatchFailure) as exc_info:
            result.raise_for_failures()
        assert exc_info.value.result is result

    async def test_requires_capability(self, session, company, settings, employees, open_period):
        entries = await _add_entries(session, company, employees["ana"], 1)
        service = TimeEntryService(session, StaticAuthorizer(), settings)
        with pytest.raises(PermissionDeniedError):
            await service.bulk_approve(company.company_id, [entries[0].time_entry_id])

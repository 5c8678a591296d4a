"""Tests for clock entry aggregation."""

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from uuid import UUID, uuid4

from workforce_payroll.calculators import TimeAggregator, net_minutes


@dataclass
class Entry:
    employee_id: UUID
    clock_in: datetime
    clock_out: datetime | None = None
    break_minutes: int = 0
    status: str = "pending"
    time_entry_id: UUID = field(default_factory=uuid4)


class TestNetMinutes:
    """Test single entry durations."""

    def test_break_subtracted(self):
        """Test 09:00-17:30 with a 30 minute break is 480 minutes."""
        entry = Entry(uuid4(), datetime(2025, 1, 1, 9, 0), datetime(2025, 1, 1, 17, 30), 30)
        assert net_minutes(entry) == 480

    def test_running_entry_is_zero(self):
        assert net_minutes(Entry(uuid4(), datetime(2025, 1, 1, 9, 0))) == 0

    def test_never_negative(self):
        """Test a break longer than the shift clamps to zero."""
        entry = Entry(uuid4(), datetime(2025, 1, 1, 9, 0), datetime(2025, 1, 1, 9, 20), 30)
        assert net_minutes(entry) == 0

    def test_overnight_shift(self):
        entry = Entry(uuid4(), datetime(2025, 1, 1, 22, 0), datetime(2025, 1, 2, 6, 0))
        assert net_minutes(entry) == 480


class TestTimeAggregator:
    """Test per-employee summaries and KPIs."""

    def test_summarize_by_clock_in_day(self):
        """Test entries bucket by the calendar day of clock-in."""
        ana = uuid4()
        entries = [
            Entry(ana, datetime(2025, 1, 1, 9, 0), datetime(2025, 1, 1, 17, 30), 30),
            Entry(ana, datetime(2025, 1, 1, 18, 0), datetime(2025, 1, 1, 20, 0)),
            Entry(ana, datetime(2025, 1, 2, 22, 0), datetime(2025, 1, 3, 2, 0), status="approved"),
        ]
        summary = TimeAggregator.summarize(entries)[ana]

        assert summary.days[date(2025, 1, 1)].net_minutes == 600
        assert summary.days[date(2025, 1, 1)].entry_count == 2
        assert summary.days[date(2025, 1, 2)].net_minutes == 240
        assert date(2025, 1, 3) not in summary.days
        assert summary.net_minutes == 840
        assert summary.break_minutes == 30
        assert summary.approved_minutes == 240
        assert summary.net_hours == Decimal("14.00")
        assert summary.counts.pending == 2
        assert summary.counts.approved == 1
        assert not summary.has_issues

    def test_running_and_rejected_entries_flag_issues(self):
        """Test running entries count as open and add no minutes."""
        ana, bruno = uuid4(), uuid4()
        entries = [
            Entry(ana, datetime(2025, 1, 1, 9, 0)),
            Entry(bruno, datetime(2025, 1, 1, 9, 0), datetime(2025, 1, 1, 10, 0), status="rejected"),
            Entry(bruno, datetime(2025, 1, 2, 9, 0), status="rejected"),
        ]
        summaries = TimeAggregator.summarize(entries)

        assert summaries[ana].counts.open == 1
        assert summaries[ana].net_minutes == 0
        assert summaries[ana].days[date(2025, 1, 1)].open_count == 1
        assert summaries[ana].has_issues

        # A rejected running entry counts as rejected, not open
        assert summaries[bruno].counts.rejected == 2
        assert summaries[bruno].counts.open == 0
        assert summaries[bruno].has_issues

    def test_range_restriction(self):
        ana = uuid4()
        entries = [
            Entry(ana, datetime(2024, 12, 31, 9, 0), datetime(2024, 12, 31, 10, 0)),
            Entry(ana, datetime(2025, 1, 1, 9, 0), datetime(2025, 1, 1, 10, 0)),
        ]
        summary = TimeAggregator.summarize(entries, start=date(2025, 1, 1), end=date(2025, 1, 7))[ana]
        assert summary.net_minutes == 60
        assert len(summary.entry_ids) == 1

    def test_kpis(self):
        """Test headline hours and counts."""
        ana = uuid4()
        entries = [
            Entry(ana, datetime(2025, 1, 1, 9, 0), datetime(2025, 1, 1, 17, 30), 30),
            Entry(ana, datetime(2025, 1, 2, 9, 0), datetime(2025, 1, 2, 13, 0), status="approved"),
            Entry(ana, datetime(2025, 1, 3, 9, 0)),
        ]
        kpis = TimeAggregator.kpis(entries)
        assert kpis.regular_hours == Decimal("12.0")
        assert kpis.break_hours == Decimal("0.5")
        assert kpis.pending == 1
        assert kpis.approved == 1
        assert kpis.total == 3

    def test_export_rows(self):
        """Test the timesheet grid has one column per day."""
        ana = uuid4()
        days = [date(2025, 1, 1), date(2025, 1, 2)]
        summaries = TimeAggregator.summarize([
            Entry(ana, datetime(2025, 1, 1, 9, 0), datetime(2025, 1, 1, 17, 30), 30),
        ])
        rows = TimeAggregator.to_export_rows(summaries, days, {ana: "Ana Ruiz"})
        assert rows[0] == ["Employee", "2025-01-01", "2025-01-02", "Total", "Issues"]
        assert rows[1] == ["Ana Ruiz", "8.0", "", "8.0", False]

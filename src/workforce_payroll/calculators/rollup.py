"""Period consolidation: base pay plus extras minus deductions."""

from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Any, Union
from uuid import UUID

from workforce_payroll.calculators.types import (
    ZERO,
    ConceptCategory,
    MovementLine,
    RollupRow,
    RollupTotals,
)


class RollupFilter(str, Enum):
    """Post-aggregation row filters."""

    WITH_EXTRAS = "with_extras"
    WITH_DEDUCTIONS = "with_deductions"
    ZERO_BASE = "zero_base"
    WITH_BASE = "with_base"
    NEGATIVE_FINAL = "negative_final"


_FILTER_PREDICATES: dict[str, Callable[[RollupRow], bool]] = {
    RollupFilter.WITH_EXTRAS.value: lambda r: r.extras_count > 0,
    RollupFilter.WITH_DEDUCTIONS.value: lambda r: r.deductions_count > 0,
    RollupFilter.ZERO_BASE.value: lambda r: r.base_pay == 0,
    RollupFilter.WITH_BASE.value: lambda r: r.base_pay != 0,
    RollupFilter.NEGATIVE_FINAL.value: lambda r: r.final_pay < 0,
}

RowPredicate = Union[RollupFilter, str, Callable[[RollupRow], bool]]

EXPORT_HEADER = ["Employee", "Base", "Extras", "Deductions", "Total Final"]


@dataclass
class PeriodRollup:
    """Per-employee consolidation for one period.

    Filtering returns a new rollup; totals always describe the rows
    currently held, so they match whatever filter is applied.
    """

    pay_period_id: UUID | None
    rows: list[RollupRow] = field(default_factory=list)

    @property
    def totals(self) -> RollupTotals:
        base = extras = deductions = ZERO
        for row in self.rows:
            base += row.base_pay
            extras += row.extras_total
            deductions += row.deductions_total
        return RollupTotals(
            employee_count=len(self.rows),
            base_pay=base,
            extras_total=extras,
            deductions_total=deductions,
            final_pay=base + extras - deductions,
        )

    def row_for(self, employee_id: UUID) -> RollupRow | None:
        for row in self.rows:
            if row.employee_id == employee_id:
                return row
        return None

    def filter(self, *predicates: RowPredicate) -> PeriodRollup:
        """Keep rows matching every predicate."""
        checks = [_resolve_predicate(p) for p in predicates]
        kept = [row for row in self.rows if all(check(row) for check in checks)]
        return PeriodRollup(pay_period_id=self.pay_period_id, rows=kept)

    def to_export_rows(self, include_totals: bool = True) -> list[list[Any]]:
        """Header plus one primitive row per employee, for CSV/XLSX rendering."""
        out: list[list[Any]] = [list(EXPORT_HEADER)]
        for row in self.rows:
            out.append([
                row.display_name,
                str(row.base_pay),
                str(row.extras_total),
                str(row.deductions_total),
                str(row.final_pay),
            ])
        if include_totals:
            totals = self.totals
            out.append([
                "TOTAL",
                str(totals.base_pay),
                str(totals.extras_total),
                str(totals.deductions_total),
                str(totals.final_pay),
            ])
        return out


def _resolve_predicate(predicate: RowPredicate) -> Callable[[RollupRow], bool]:
    if callable(predicate):
        return predicate
    key = predicate.value if isinstance(predicate, RollupFilter) else str(predicate)
    try:
        return _FILTER_PREDICATES[key]
    except KeyError:
        raise ValueError(f"Unknown rollup filter '{predicate}'") from None


class RollupCalculator:
    """Builds a PeriodRollup from base pay and movement lines."""

    @staticmethod
    def build(
        pay_period_id: UUID | None,
        base_pays: Mapping[UUID, Decimal],
        movements: Iterable[MovementLine],
        names: Mapping[UUID, tuple[str, str]] | None = None,
    ) -> PeriodRollup:
        """Consolidate one period.

        Employees that only have movements get a row with zero base pay.
        Amounts are summed as persisted; no rounding happens here.
        """
        names = names or {}
        rows: dict[UUID, RollupRow] = {}

        def row_for(employee_id: UUID) -> RollupRow:
            row = rows.get(employee_id)
            if row is None:
                first, last = names.get(employee_id, ("", ""))
                row = RollupRow(employee_id=employee_id, first_name=first, last_name=last)
                rows[employee_id] = row
            return row

        for employee_id, amount in base_pays.items():
            row = row_for(employee_id)
            row.base_pay = Decimal(amount)
            row.has_base_pay = True

        for line in movements:
            row = row_for(line.employee_id)
            if line.category == ConceptCategory.EXTRA:
                row.extras_total += line.total_value
                row.extras_count += 1
            elif line.category == ConceptCategory.DEDUCTION:
                row.deductions_total += line.total_value
                row.deductions_count += 1
            else:
                raise ValueError(f"Unknown concept category '{line.category}'")

        ordered = sorted(
            rows.values(),
            key=lambda r: (r.first_name.casefold(), r.last_name.casefold(), str(r.employee_id)),
        )
        return PeriodRollup(pay_period_id=pay_period_id, rows=ordered)

"""Pure consolidation calculators: movement amounts, rollup, time aggregation."""

from workforce_payroll.calculators.movement_builder import MovementAmounts, MovementBuilder
from workforce_payroll.calculators.rollup import PeriodRollup, RollupCalculator, RollupFilter
from workforce_payroll.calculators.time_aggregator import TimeAggregator, net_minutes
from workforce_payroll.calculators.types import (
    CalcMode,
    ConceptCategory,
    EmployeeTimeSummary,
    MovementLine,
    RollupRow,
    TimeEntryStatus,
)

__all__ = [
    "CalcMode",
    "ConceptCategory",
    "EmployeeTimeSummary",
    "MovementAmounts",
    "MovementBuilder",
    "MovementLine",
    "PeriodRollup",
    "RollupCalculator",
    "RollupFilter",
    "RollupRow",
    "TimeAggregator",
    "TimeEntryStatus",
    "net_minutes",
]

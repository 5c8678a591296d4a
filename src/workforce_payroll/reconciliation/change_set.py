"""Pending change-sets: proposed mutations awaiting review.

A PendingChangeSet is immutable. Review toggles return a new set, and apply
receives the reviewed set by value, so nothing about the selection lives
in shared state between the three phases.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, field, replace
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

from workforce_payroll.errors import NotFoundError
from workforce_payroll.reconciliation.matcher import MatchResult
from workforce_payroll.reconciliation.normalize import (
    clean_text,
    format_person_name,
    normalize_name,
    normalize_phone,
    normalize_value,
)


class ImportPolicy(str, Enum):
    """Which external fields become proposed changes."""

    DIFF_ONLY = "diff_only"
    FULL_REPLACE = "full_replace"


class ImportKind(str, Enum):
    EMPLOYEES = "employees"
    MOVEMENTS = "movements"


class RowAction(str, Enum):
    CREATE = "create"
    UPDATE = "update"
    NOOP = "noop"


EMPLOYEE_FIELDS: tuple[str, ...] = (
    "first_name",
    "last_name",
    "phone_number",
    "external_id",
    "email",
    "address",
    "employee_role",
    "direct_manager",
    "recommended_by",
)

MOVEMENT_FIELDS: tuple[str, ...] = ("total_value", "note")

# Title-cased on write whatever the policy
NAME_FIELDS = frozenset({"first_name", "last_name", "direct_manager", "recommended_by"})

_COMPARATORS: dict[str, Callable[[Any], str]] = {
    "first_name": normalize_name,
    "last_name": normalize_name,
    "direct_manager": normalize_name,
    "recommended_by": normalize_name,
    "phone_number": normalize_phone,
}


def comparison_key(field_name: str, value: Any) -> str:
    """Normalized form two values of a field are compared by."""
    if value is None:
        return ""
    if isinstance(value, Decimal):
        return str(value.normalize())
    return _COMPARATORS.get(field_name, normalize_value)(value)


def write_value(field_name: str, value: str) -> str:
    """The value that gets stored for an incoming field."""
    if field_name in NAME_FIELDS:
        return format_person_name(value)
    return clean_text(value)


@dataclass(frozen=True)
class FieldChange:
    """One field-level proposal, labelled for review."""

    field: str
    old: Any
    new: Any

    @property
    def differs(self) -> bool:
        return comparison_key(self.field, self.old) != comparison_key(self.field, self.new)


@dataclass(frozen=True)
class ImportRow:
    """One proposed mutation, with its review flag.

    ``key`` identifies the row for review toggles; a spreadsheet row that
    feeds several concepts yields one ImportRow per concept.
    """

    key: str
    row_number: int
    label: str
    action: RowAction
    changes: tuple[FieldChange, ...] = ()
    target_id: UUID | None = None
    strategy: str | None = None
    included: bool = True
    errors: tuple[str, ...] = ()
    context: Mapping[str, Any] = field(default_factory=dict)

    @property
    def is_actionable(self) -> bool:
        return self.action != RowAction.NOOP and not self.errors

    @property
    def is_selected(self) -> bool:
        return self.included and self.is_actionable

    def values(self) -> dict[str, Any]:
        """Field -> new value for every proposed change."""
        return {change.field: change.new for change in self.changes}


@dataclass(frozen=True)
class ChangeSetSummary:
    creates: int = 0
    updates: int = 0
    noops: int = 0
    errors: int = 0
    selected: int = 0


@dataclass(frozen=True)
class PendingChangeSet:
    """Reviewable list of proposed mutations for one upload."""

    kind: ImportKind
    policy: ImportPolicy
    company_id: UUID
    rows: tuple[ImportRow, ...] = ()
    pay_period_id: UUID | None = None
    unmapped_columns: tuple[str, ...] = ()

    def _toggle(self, keys: Iterable[str], included: bool) -> PendingChangeSet:
        wanted = {str(k) for k in keys}
        known = {row.key for row in self.rows}
        missing = sorted(wanted - known)
        if missing:
            raise NotFoundError("import_row", missing[0])
        rows = tuple(
            replace(row, included=included) if row.key in wanted else row
            for row in self.rows
        )
        return replace(self, rows=rows)

    def include(self, *keys: str) -> PendingChangeSet:
        return self._toggle(keys, True)

    def exclude(self, *keys: str) -> PendingChangeSet:
        return self._toggle(keys, False)

    def only(self, keys: Iterable[str]) -> PendingChangeSet:
        """Select exactly the given rows and nothing else."""
        wanted = {str(k) for k in keys}
        return self.exclude(*[r.key for r in self.rows if r.key not in wanted]).include(*wanted)

    def row(self, key: str) -> ImportRow:
        for candidate in self.rows:
            if candidate.key == key:
                return candidate
        raise NotFoundError("import_row", key)

    @property
    def selected(self) -> list[ImportRow]:
        return [row for row in self.rows if row.is_selected]

    @property
    def errored(self) -> list[ImportRow]:
        return [row for row in self.rows if row.errors]

    @property
    def is_empty_diff(self) -> bool:
        """True when no row proposes any mutation."""
        return not any(row.is_actionable for row in self.rows)

    @property
    def summary(self) -> ChangeSetSummary:
        creates = updates = noops = errors = 0
        for row in self.rows:
            if row.errors:
                errors += 1
            elif row.action == RowAction.CREATE:
                creates += 1
            elif row.action == RowAction.UPDATE:
                updates += 1
            else:
                noops += 1
        return ChangeSetSummary(
            creates=creates,
            updates=updates,
            noops=noops,
            errors=errors,
            selected=len(self.selected),
        )


class ChangeSetBuilder:
    """Turns matched external rows into ImportRows under a policy."""

    def __init__(self, policy: ImportPolicy = ImportPolicy.DIFF_ONLY):
        self.policy = ImportPolicy(policy)

    def employee_row(
        self,
        row_number: int,
        values: Mapping[str, str],
        match: MatchResult,
    ) -> ImportRow:
        incoming = {
            name: write_value(name, values[name])
            for name in EMPLOYEE_FIELDS
            if clean_text(values.get(name))
        }
        label = f"{incoming.get('first_name', '')} {incoming.get('last_name', '')}".strip()

        if not match.matched:
            errors = tuple(
                f"{name} is required to create an employee"
                for name in ("first_name", "last_name")
                if name not in incoming
            )
            changes = tuple(FieldChange(name, None, value) for name, value in incoming.items())
            return ImportRow(
                key=str(row_number),
                row_number=row_number,
                label=label or f"Row {row_number}",
                action=RowAction.CREATE,
                changes=changes,
                included=not errors,
                errors=errors,
            )

        employee = match.employee
        changes = []
        for name, new in incoming.items():
            old = getattr(employee, name, None)
            change = FieldChange(name, old, new)
            if self.policy == ImportPolicy.FULL_REPLACE or change.differs:
                changes.append(change)

        action = RowAction.UPDATE if changes else RowAction.NOOP
        return ImportRow(
            key=str(row_number),
            row_number=row_number,
            label=f"{employee.first_name} {employee.last_name}".strip(),
            action=action,
            changes=tuple(changes),
            target_id=employee.employee_id,
            strategy=match.strategy,
            included=action != RowAction.NOOP,
        )

    def movement_row(
        self,
        row_number: int,
        match: MatchResult,
        concept: Any,
        amount: Decimal,
        note: str | None = None,
        existing: Any | None = None,
    ) -> ImportRow:
        """Propose one movement for (employee, concept, period).

        ``existing`` is the movement already held for that triple, if any.
        """
        employee = match.employee
        context = {
            "employee_id": employee.employee_id,
            "concept_id": concept.concept_id,
            "concept_name": concept.name,
            "category": concept.category,
        }
        label = f"{employee.first_name} {employee.last_name}".strip()
        key = f"{row_number}:{concept.name}"
        proposed = {"total_value": amount}
        if note:
            proposed["note"] = note

        if existing is None:
            return ImportRow(
                key=key,
                row_number=row_number,
                label=label,
                action=RowAction.CREATE,
                changes=tuple(FieldChange(n, None, v) for n, v in proposed.items()),
                strategy=match.strategy,
                context=context,
            )

        changes = []
        for name, new in proposed.items():
            change = FieldChange(name, getattr(existing, name, None), new)
            if self.policy == ImportPolicy.FULL_REPLACE or change.differs:
                changes.append(change)
        action = RowAction.UPDATE if changes else RowAction.NOOP
        return ImportRow(
            key=key,
            row_number=row_number,
            label=label,
            action=action,
            changes=tuple(changes),
            target_id=existing.movement_id,
            strategy=match.strategy,
            included=action != RowAction.NOOP,
            context=context,
        )

    @staticmethod
    def error_row(
        row_number: int,
        label: str,
        *errors: str,
        key: str | None = None,
    ) -> ImportRow:
        """A row that cannot be applied, kept so the caller sees why."""
        return ImportRow(
            key=key or str(row_number),
            row_number=row_number,
            label=label or f"Row {row_number}",
            action=RowAction.NOOP,
            included=False,
            errors=tuple(errors),
        )

"""Identity matching: external spreadsheet rows -> existing employees.

Strategies run in a fixed precedence and the first one that resolves to
exactly one employee wins:

1. external id (non-empty on both sides)
2. phone, digits only
3. full name, "first last" or "last first"
4. a single name field on its own

A strategy that finds several candidates is treated as unresolved and the
next strategy is tried. Nothing here touches the database; matching is a
pure function of the row and the candidate set, so re-running an import on
unchanged data proposes the same changes.
"""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
from typing import Generic, Protocol, TypeVar
from uuid import UUID

from workforce_payroll.reconciliation.normalize import (
    clean_text,
    normalize_name,
    normalize_phone,
)


class Identifiable(Protocol):
    """The employee fields matching reads."""

    employee_id: UUID
    external_id: str | None
    phone_number: str | None
    first_name: str
    last_name: str


E = TypeVar("E", bound=Identifiable)


@dataclass(frozen=True)
class ExternalIdentity:
    """Identity columns of one external row. Missing values are empty strings."""

    external_id: str = ""
    phone_number: str = ""
    first_name: str = ""
    last_name: str = ""

    @classmethod
    def from_values(cls, values: Mapping[str, str]) -> ExternalIdentity:
        return cls(
            external_id=clean_text(values.get("external_id")),
            phone_number=clean_text(values.get("phone_number")),
            first_name=clean_text(values.get("first_name")),
            last_name=clean_text(values.get("last_name")),
        )

    @property
    def display_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    @property
    def is_empty(self) -> bool:
        return not (self.external_id or self.phone_number or self.first_name or self.last_name)


def _full_name_key(first: str | None, last: str | None) -> str:
    return normalize_name(f"{first or ''} {last or ''}")


class CandidateIndex(Generic[E]):
    """Lookup tables over the current employee set, built once per import."""

    def __init__(self, employees: Iterable[E]):
        self.employees: list[E] = sorted(employees, key=lambda e: str(e.employee_id))
        self.by_external_id: dict[str, list[E]] = defaultdict(list)
        self.by_phone: dict[str, list[E]] = defaultdict(list)
        self.by_full_name: dict[str, list[E]] = defaultdict(list)
        self.by_first_name: dict[str, list[E]] = defaultdict(list)
        self.by_last_name: dict[str, list[E]] = defaultdict(list)

        for employee in self.employees:
            external_id = clean_text(employee.external_id)
            if external_id:
                self.by_external_id[external_id].append(employee)
            phone = normalize_phone(employee.phone_number)
            if phone:
                self.by_phone[phone].append(employee)
            full = _full_name_key(employee.first_name, employee.last_name)
            if full:
                self.by_full_name[full].append(employee)
            first = normalize_name(employee.first_name)
            if first:
                self.by_first_name[first].append(employee)
            last = normalize_name(employee.last_name)
            if last:
                self.by_last_name[last].append(employee)


def _unique(found: Sequence[E]) -> E | None:
    # Several employees sharing a key resolve nothing
    distinct = {e.employee_id: e for e in found}
    if len(distinct) == 1:
        return next(iter(distinct.values()))
    return None


class MatchStrategy(Protocol):
    name: str

    def match(self, row: ExternalIdentity, index: CandidateIndex) -> Identifiable | None:
        ...


class ExternalIdStrategy:
    name = "external_id"

    def match(self, row: ExternalIdentity, index: CandidateIndex) -> Identifiable | None:
        if not row.external_id:
            return None
        return _unique(index.by_external_id.get(row.external_id, ()))


class PhoneStrategy:
    name = "phone"

    def match(self, row: ExternalIdentity, index: CandidateIndex) -> Identifiable | None:
        phone = normalize_phone(row.phone_number)
        if not phone:
            return None
        return _unique(index.by_phone.get(phone, ()))


class FullNameStrategy:
    """Both orders of the external name against "first last"."""

    name = "full_name"

    def match(self, row: ExternalIdentity, index: CandidateIndex) -> Identifiable | None:
        forward = _full_name_key(row.first_name, row.last_name)
        if not forward:
            return None
        found = _unique(index.by_full_name.get(forward, ()))
        if found is not None:
            return found
        reverse = _full_name_key(row.last_name, row.first_name)
        if reverse != forward:
            return _unique(index.by_full_name.get(reverse, ()))
        return None


class SingleNameStrategy:
    """Each supplied name field alone against either stored name field.

    Runs after the full name failed, so "Ana" / "Ruiz Lopez" still finds
    the only Ana on file. When the two fields resolve to different
    employees, nothing is returned.
    """

    name = "single_name"

    def match(self, row: ExternalIdentity, index: CandidateIndex) -> Identifiable | None:
        hits = []
        for value in (row.first_name, row.last_name):
            key = normalize_name(value)
            if not key:
                continue
            found = _unique([
                *index.by_first_name.get(key, ()),
                *index.by_last_name.get(key, ()),
            ])
            if found is not None:
                hits.append(found)
        return _unique(hits)


DEFAULT_STRATEGIES: tuple[MatchStrategy, ...] = (
    ExternalIdStrategy(),
    PhoneStrategy(),
    FullNameStrategy(),
    SingleNameStrategy(),
)


@dataclass(frozen=True)
class MatchResult:
    """Outcome of matching one row. employee is None for a new person."""

    employee: Identifiable | None = None
    strategy: str | None = None

    @property
    def matched(self) -> bool:
        return self.employee is not None


class IdentityMatcher:
    """First-match-wins composition of matching strategies."""

    def __init__(
        self,
        employees: Iterable[Identifiable],
        strategies: Sequence[MatchStrategy] = DEFAULT_STRATEGIES,
    ):
        self.index = CandidateIndex(employees)
        self.strategies = tuple(strategies)

    def match(self, row: ExternalIdentity) -> MatchResult:
        if row.is_empty:
            return MatchResult()
        for strategy in self.strategies:
            employee = strategy.match(row, self.index)
            if employee is not None:
                return MatchResult(employee=employee, strategy=strategy.name)
        return MatchResult()

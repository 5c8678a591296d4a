"""Reconciliation workflow: upload -> review -> apply.

prepare_* runs the matcher and change-set builder over uploaded rows and
returns a PendingChangeSet without writing anything. The caller reviews it
(include/exclude) and hands the reviewed set to apply(), which commits only
the selected rows. Apply is partial-failure tolerant: each row runs in its
own savepoint, a failing row is recorded and the run carries on.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from enum import Enum
from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from workforce_payroll.calculators import CalcMode, MovementBuilder
from workforce_payroll.config import Settings, get_settings
from workforce_payroll.errors import NotFoundError, PayrollError, ValidationError
from workforce_payroll.models import Concept, Employee, Movement
from workforce_payroll.reconciliation.change_set import (
    EMPLOYEE_FIELDS,
    MOVEMENT_FIELDS,
    ChangeSetBuilder,
    ImportKind,
    ImportPolicy,
    ImportRow,
    PendingChangeSet,
    RowAction,
)
from workforce_payroll.reconciliation.columns import (
    DEFAULT_CONCEPT_COLUMNS,
    EMPLOYEE_COLUMNS,
    MOVEMENT_IDENTITY_COLUMNS,
    ConceptColumn,
    resolve_concept_columns,
)
from workforce_payroll.reconciliation.matcher import (
    ExternalIdentity,
    IdentityMatcher,
    MatchResult,
)
from workforce_payroll.reconciliation.normalize import (
    normalize_name,
    normalize_phone,
    parse_currency,
)
from workforce_payroll.services.audit_service import AuditLog
from workforce_payroll.services.authorization import Authorizer, Capability, require
from workforce_payroll.services.period_service import PeriodService

logger = logging.getLogger(__name__)

# Spreadsheet rows exported for system users, never real employees
_SYSTEM_ROW = "system"


class RowOutcomeStatus(str, Enum):
    CREATED = "created"
    UPDATED = "updated"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass(frozen=True)
class RowOutcome:
    key: str
    row_number: int
    status: RowOutcomeStatus
    target_id: UUID | None = None
    reason: str | None = None


@dataclass
class ApplyResult:
    """Counts and per-row outcomes of one apply run."""

    kind: ImportKind
    created: int = 0
    updated: int = 0
    skipped: int = 0
    failed: int = 0
    outcomes: list[RowOutcome] = field(default_factory=list)

    def add(self, outcome: RowOutcome) -> None:
        self.outcomes.append(outcome)
        if outcome.status == RowOutcomeStatus.CREATED:
            self.created += 1
        elif outcome.status == RowOutcomeStatus.UPDATED:
            self.updated += 1
        elif outcome.status == RowOutcomeStatus.SKIPPED:
            self.skipped += 1
        else:
            self.failed += 1

    @property
    def failures(self) -> list[RowOutcome]:
        return [o for o in self.outcomes if o.status == RowOutcomeStatus.FAILED]


def _check_fields(values: Mapping[str, Any], allowed: Iterable[str]) -> None:
    unknown = sorted(set(values) - set(allowed))
    if unknown:
        raise ValidationError(f"Field '{unknown[0]}' cannot be imported", field=unknown[0])


def _headers(rows: Sequence[Mapping[str, Any]]) -> list[str]:
    headers: list[str] = []
    for row in rows:
        for key in row:
            if key not in headers:
                headers.append(key)
    return headers


class ReconciliationService:
    """Drives spreadsheet imports of employees and pay adjustments."""

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

    async def _employees(self, company_id: UUID) -> list[Employee]:
        # Inactive employees still match, so a returning worker is not duplicated
        result = await self.session.execute(
            select(Employee).where(Employee.company_id == company_id)
        )
        return list(result.scalars().all())

    # ===== Upload: employees =====

    async def prepare_employee_import(
        self,
        company_id: UUID,
        rows: Sequence[Mapping[str, Any]],
        policy: ImportPolicy | str = ImportPolicy.DIFF_ONLY,
    ) -> PendingChangeSet:
        """Propose employee creates and updates for an uploaded roster."""
        if not rows:
            raise ValidationError("Uploaded file has no data rows")
        policy = ImportPolicy(policy)
        columns = EMPLOYEE_COLUMNS.resolve(_headers(rows))
        matcher = IdentityMatcher(await self._employees(company_id))
        builder = ChangeSetBuilder(policy)

        proposed: list[ImportRow] = []
        claimed: dict[UUID, int] = {}
        new_keys: dict[str, int] = {}
        for offset, raw in enumerate(rows):
            # Row 1 is the header row
            row_number = offset + 2
            values = columns.extract(raw)
            identity = ExternalIdentity.from_values(values)
            if identity.is_empty:
                continue

            match = matcher.match(identity)
            if match.matched:
                employee_id = match.employee.employee_id
                if employee_id in claimed:
                    proposed.append(builder.error_row(
                        row_number,
                        identity.display_name,
                        f"Same employee as row {claimed[employee_id]}",
                    ))
                    continue
                claimed[employee_id] = row_number
            else:
                duplicate = self._duplicate_new_row(identity, new_keys, row_number)
                if duplicate is not None:
                    proposed.append(builder.error_row(
                        row_number, identity.display_name, f"Same person as row {duplicate}"
                    ))
                    continue

            proposed.append(builder.employee_row(row_number, values, match))

        change_set = PendingChangeSet(
            kind=ImportKind.EMPLOYEES,
            policy=policy,
            company_id=company_id,
            rows=tuple(proposed),
            unmapped_columns=tuple(columns.unmapped),
        )
        summary = change_set.summary
        logger.info(
            "Prepared employee import for %s: %d create, %d update, %d unchanged, %d error",
            company_id, summary.creates, summary.updates, summary.noops, summary.errors,
        )
        return change_set

    @staticmethod
    def _duplicate_new_row(
        identity: ExternalIdentity,
        seen: dict[str, int],
        row_number: int,
    ) -> int | None:
        keys = []
        if identity.external_id:
            keys.append(f"id:{identity.external_id}")
        phone = normalize_phone(identity.phone_number)
        if phone:
            keys.append(f"phone:{phone}")
        name = normalize_name(identity.display_name)
        if name:
            keys.append(f"name:{name}")
        for key in keys:
            if key in seen:
                return seen[key]
        for key in keys:
            seen[key] = row_number
        return None

    # ===== Upload: movements =====

    async def prepare_movement_import(
        self,
        company_id: UUID,
        pay_period_id: UUID,
        rows: Sequence[Mapping[str, Any]],
        policy: ImportPolicy | str = ImportPolicy.DIFF_ONLY,
        concept_columns: Iterable[ConceptColumn] = DEFAULT_CONCEPT_COLUMNS,
    ) -> PendingChangeSet:
        """Propose movements for a pay-adjustment sheet.

        One movement per (employee, concept column). The last row for an
        employee wins, SYSTEM rows and zero cells are skipped, amounts are
        imported as absolute values. Rows whose employee or concept cannot
        be resolved are kept as error rows.
        """
        if not rows:
            raise ValidationError("Uploaded file has no data rows")
        policy = ImportPolicy(policy)
        period = await self.periods.get_period(company_id, pay_period_id)
        headers = _headers(rows)
        identity_columns = MOVEMENT_IDENTITY_COLUMNS.resolve(headers)
        concept_by_header = resolve_concept_columns(headers, concept_columns)

        concepts_result = await self.session.execute(
            select(Concept).where(Concept.company_id == company_id)
        )
        concepts = {normalize_name(c.name): c for c in concepts_result.scalars().all()}

        matcher = IdentityMatcher(await self._employees(company_id))
        builder = ChangeSetBuilder(policy)
        proposed: list[ImportRow] = []

        # Last row per person wins (sheets end each person with a summary row)
        latest: dict[str, tuple[int, dict[str, str], Mapping[str, Any]]] = {}
        for offset, raw in enumerate(rows):
            row_number = offset + 2
            values = identity_columns.extract(raw)
            identity = ExternalIdentity.from_values(values)
            if identity.is_empty or normalize_name(identity.first_name) == _SYSTEM_ROW:
                continue
            person_key = "|".join([
                identity.external_id,
                normalize_phone(identity.phone_number),
                normalize_name(identity.first_name),
                normalize_name(identity.last_name),
            ])
            latest[person_key] = (row_number, values, raw)

        existing = await self._existing_movements(company_id, period.pay_period_id)
        claimed: dict[UUID, int] = {}

        for row_number, values, raw in sorted(latest.values(), key=lambda item: item[0]):
            identity = ExternalIdentity.from_values(values)
            match = matcher.match(identity)
            if not match.matched:
                proposed.append(builder.error_row(
                    row_number,
                    identity.display_name,
                    f"No employee matches '{identity.display_name or identity.phone_number or identity.external_id}'",
                ))
                continue
            employee_id = match.employee.employee_id
            if employee_id in claimed:
                proposed.append(builder.error_row(
                    row_number, identity.display_name, f"Same employee as row {claimed[employee_id]}"
                ))
                continue
            claimed[employee_id] = row_number

            proposed.extend(self._movement_rows(
                builder, row_number, values, raw, match, concept_by_header, concepts, existing,
            ))

        change_set = PendingChangeSet(
            kind=ImportKind.MOVEMENTS,
            policy=policy,
            company_id=company_id,
            pay_period_id=period.pay_period_id,
            rows=tuple(proposed),
            unmapped_columns=tuple(
                h for h in identity_columns.unmapped if h not in concept_by_header
            ),
        )
        summary = change_set.summary
        logger.info(
            "Prepared movement import for period %s: %d create, %d update, %d unchanged, %d error",
            pay_period_id, summary.creates, summary.updates, summary.noops, summary.errors,
        )
        return change_set

    def _movement_rows(
        self,
        builder: ChangeSetBuilder,
        row_number: int,
        values: Mapping[str, str],
        raw: Mapping[str, Any],
        match: MatchResult,
        concept_by_header: Mapping[str, ConceptColumn],
        concepts: Mapping[str, Concept],
        existing: Mapping[tuple[UUID, UUID], Movement],
    ) -> list[ImportRow]:
        label = match.employee.full_name
        note = values.get("notes")
        out: list[ImportRow] = []
        for header, column in concept_by_header.items():
            key = f"{row_number}:{column.concept_name}"
            try:
                amount = parse_currency(raw.get(header))
            except ValidationError as e:
                out.append(builder.error_row(row_number, label, f"{header}: {e}", key=key))
                continue
            if amount is None or amount == 0:
                continue
            amount = MovementBuilder.round_to_cents(abs(amount))

            concept = concepts.get(normalize_name(column.concept_name))
            if concept is None:
                out.append(builder.error_row(
                    row_number, label, f"Concept '{column.concept_name}' not found", key=key
                ))
                continue
            if concept.category != column.category:
                out.append(builder.error_row(
                    row_number,
                    label,
                    f"Concept '{concept.name}' is a {concept.category}, column expects {column.category}",
                    key=key,
                ))
                continue

            out.append(builder.movement_row(
                row_number,
                match,
                concept,
                amount,
                note=note,
                existing=existing.get((match.employee.employee_id, concept.concept_id)),
            ))
        return out

    async def _existing_movements(
        self,
        company_id: UUID,
        pay_period_id: UUID,
    ) -> dict[tuple[UUID, UUID], Movement]:
        """(employee, concept) -> earliest movement in the period."""
        result = await self.session.execute(
            select(Movement)
            .where(Movement.company_id == company_id, Movement.pay_period_id == pay_period_id)
            .order_by(Movement.created_at, Movement.movement_id)
        )
        existing: dict[tuple[UUID, UUID], Movement] = {}
        for movement in result.unique().scalars().all():
            existing.setdefault((movement.employee_id, movement.concept_id), movement)
        return existing

    # ===== Apply =====

    async def apply(
        self,
        change_set: PendingChangeSet,
        actor_id: UUID | None = None,
    ) -> ApplyResult:
        """Commit the selected rows of a reviewed change-set.

        Rows with errors, unchanged rows and rows excluded during review are
        reported as skipped. Movement imports re-check that the period is
        still open before writing and fail fast with PeriodLockedError.
        """
        company_id = change_set.company_id
        require(self.authorizer, actor_id, company_id, Capability.IMPORT_DATA)
        if change_set.kind == ImportKind.MOVEMENTS:
            require(self.authorizer, actor_id, company_id, Capability.MANAGE_MOVEMENTS)
            await self.periods.ensure_open(company_id, change_set.pay_period_id)

        result = ApplyResult(kind=change_set.kind)
        selected: list[ImportRow] = []
        for row in change_set.rows:
            if row.is_selected:
                selected.append(row)
                continue
            if row.errors:
                reason = "; ".join(row.errors)
            elif row.action == RowAction.NOOP:
                reason = "unchanged"
            else:
                reason = "excluded during review"
            result.add(RowOutcome(row.key, row.row_number, RowOutcomeStatus.SKIPPED, row.target_id, reason))

        chunk_size = max(1, self.settings.import_chunk_size)
        for start in range(0, len(selected), chunk_size):
            for row in selected[start:start + chunk_size]:
                result.add(await self._apply_row(change_set, row, actor_id))
            await self.session.flush()

        await self.audit.record(
            company_id=company_id,
            entity_type=f"{change_set.kind.value}_import",
            entity_id=change_set.pay_period_id,
            action="apply",
            actor_id=actor_id,
            after={
                "policy": change_set.policy.value,
                "created": result.created,
                "updated": result.updated,
                "skipped": result.skipped,
                "failed": result.failed,
                "failures": [
                    {"row": o.row_number, "key": o.key, "reason": o.reason} for o in result.failures
                ],
            },
        )
        logger.info(
            "Applied %s import for %s: %d created, %d updated, %d skipped, %d failed",
            change_set.kind.value, company_id,
            result.created, result.updated, result.skipped, result.failed,
        )
        return result

    async def _apply_row(
        self,
        change_set: PendingChangeSet,
        row: ImportRow,
        actor_id: UUID | None,
    ) -> RowOutcome:
        try:
            async with self.session.begin_nested():
                if change_set.kind == ImportKind.EMPLOYEES:
                    target_id = await self._apply_employee(change_set.company_id, row)
                else:
                    target_id = await self._apply_movement(change_set, row, actor_id)
        except (PayrollError, SQLAlchemyError) as e:
            logger.exception("Import row %s (%s) failed", row.row_number, row.key)
            return RowOutcome(row.key, row.row_number, RowOutcomeStatus.FAILED, row.target_id, str(e))

        status = RowOutcomeStatus.CREATED if row.action == RowAction.CREATE else RowOutcomeStatus.UPDATED
        return RowOutcome(row.key, row.row_number, status, target_id)

    async def _apply_employee(self, company_id: UUID, row: ImportRow) -> UUID:
        values = row.values()
        _check_fields(values, EMPLOYEE_FIELDS)
        if row.action == RowAction.CREATE:
            employee = Employee(company_id=company_id, **values)
            self.session.add(employee)
            await self.session.flush()
            return employee.employee_id

        result = await self.session.execute(
            select(Employee).where(
                Employee.employee_id == row.target_id,
                Employee.company_id == company_id,
            )
        )
        employee = result.scalar_one_or_none()
        if employee is None:
            raise NotFoundError("employee", row.target_id)
        for name, value in values.items():
            setattr(employee, name, value)
        await self.session.flush()
        return employee.employee_id

    async def _apply_movement(
        self,
        change_set: PendingChangeSet,
        row: ImportRow,
        actor_id: UUID | None,
    ) -> UUID:
        values = row.values()
        _check_fields(values, MOVEMENT_FIELDS)
        total = values.get("total_value")
        if row.action == RowAction.CREATE:
            if total is None:
                raise ValidationError("Amount is missing", field="total_value")
            await self._check_owned(change_set.company_id, row.context)
            amounts = MovementBuilder.compute(CalcMode.MANUAL_VALUE.value, total_value=total)
            movement = Movement(
                company_id=change_set.company_id,
                employee_id=row.context["employee_id"],
                pay_period_id=change_set.pay_period_id,
                concept_id=row.context["concept_id"],
                total_value=amounts.total_value,
                note=values.get("note"),
                created_by=actor_id,
            )
            self.session.add(movement)
            await self.session.flush()
            return movement.movement_id

        result = await self.session.execute(
            select(Movement).where(
                Movement.movement_id == row.target_id,
                Movement.company_id == change_set.company_id,
            )
        )
        movement = result.unique().scalar_one_or_none()
        if movement is None:
            raise NotFoundError("movement", row.target_id)
        if total is not None:
            amounts = MovementBuilder.compute(CalcMode.MANUAL_VALUE.value, total_value=total)
            movement.total_value = amounts.total_value
            # Imported amounts are final values, not quantity x rate
            movement.quantity = None
            movement.rate = None
        if "note" in values:
            movement.note = values["note"]
        await self.session.flush()
        return movement.movement_id

    async def _check_owned(self, company_id: UUID, context: Mapping[str, Any]) -> None:
        """Employee and concept named by a movement row must belong to the company."""
        employee = await self.session.execute(
            select(Employee.employee_id).where(
                Employee.employee_id == context.get("employee_id"),
                Employee.company_id == company_id,
            )
        )
        if employee.first() is None:
            raise ValidationError("Employee does not belong to this company", field="employee_id")
        concept = await self.session.execute(
            select(Concept.concept_id).where(
                Concept.concept_id == context.get("concept_id"),
                Concept.company_id == company_id,
            )
        )
        if concept.first() is None:
            raise ValidationError("Concept does not belong to this company", field="concept_id")

"""Movement service - pay adjustments and period consolidation."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from workforce_payroll.calculators import (
    MovementBuilder,
    MovementLine,
    PeriodRollup,
    RollupCalculator,
)
from workforce_payroll.calculators.rollup import RowPredicate
from workforce_payroll.config import Settings
from workforce_payroll.errors import NotFoundError, ValidationError
from workforce_payroll.models import BasePayRecord, Concept, Employee, Movement
from workforce_payroll.services.audit_service import AuditLog
from workforce_payroll.services.authorization import Authorizer, Capability, require
from workforce_payroll.services.period_service import PeriodService

logger = logging.getLogger(__name__)

_UNSET: Any = object()


def movement_snapshot(movement: Movement) -> dict[str, Any]:
    return {
        "employee_id": movement.employee_id,
        "concept_id": movement.concept_id,
        "quantity": movement.quantity,
        "rate": movement.rate,
        "total_value": movement.total_value,
        "note": movement.note,
    }


class MovementService:
    """Service for movements (extras and deductions).

    Every write re-reads the movement's period at write time and refuses
    unless it is open, so a period closed after a client last looked at
    it cannot be modified.
    """

    def __init__(
        self,
        session: AsyncSession,
        authorizer: Authorizer,
        settings: Settings | None = None,
    ):
        self.session = session
        self.authorizer = authorizer
        self.periods = PeriodService(session, authorizer, settings)
        self.audit = AuditLog(session)

    # ===== Lookups =====

    async def get_concept(self, company_id: UUID, concept_id: UUID) -> Concept:
        result = await self.session.execute(
            select(Concept).where(Concept.concept_id == concept_id, Concept.company_id == company_id)
        )
        concept = result.scalar_one_or_none()
        if concept is None:
            raise NotFoundError("concept", concept_id)
        return concept

    async def list_concepts(self, company_id: UUID, active_only: bool = True) -> list[Concept]:
        stmt = select(Concept).where(Concept.company_id == company_id).order_by(Concept.name)
        if active_only:
            stmt = stmt.where(Concept.is_active.is_(True))
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def get_employee(self, company_id: UUID, employee_id: UUID) -> Employee:
        result = await self.session.execute(
            select(Employee).where(Employee.employee_id == employee_id, Employee.company_id == company_id)
        )
        employee = result.scalar_one_or_none()
        if employee is None:
            raise NotFoundError("employee", employee_id)
        return employee

    async def get_movement(self, company_id: UUID, movement_id: UUID) -> Movement:
        result = await self.session.execute(
            select(Movement).where(Movement.movement_id == movement_id, Movement.company_id == company_id)
        )
        movement = result.unique().scalar_one_or_none()
        if movement is None:
            raise NotFoundError("movement", movement_id)
        return movement

    async def list_movements(
        self,
        company_id: UUID,
        pay_period_id: UUID,
        employee_id: UUID | None = None,
    ) -> list[Movement]:
        stmt = (
            select(Movement)
            .where(Movement.company_id == company_id, Movement.pay_period_id == pay_period_id)
            .order_by(Movement.created_at, Movement.movement_id)
        )
        if employee_id is not None:
            stmt = stmt.where(Movement.employee_id == employee_id)
        result = await self.session.execute(stmt)
        return list(result.unique().scalars().all())

    # ===== Writes =====

    async def create_movement(
        self,
        company_id: UUID,
        pay_period_id: UUID,
        employee_id: UUID,
        concept_id: UUID,
        quantity: Any = None,
        rate: Any = None,
        total_value: Any = None,
        note: str | None = None,
        actor_id: UUID | None = None,
    ) -> Movement:
        """Create a movement in an open period.

        Raises PeriodLockedError if the period is not open and
        ValidationError if the computed total is zero.
        """
        require(self.authorizer, actor_id, company_id, Capability.MANAGE_MOVEMENTS)
        await self.periods.ensure_open(company_id, pay_period_id)
        employee = await self.get_employee(company_id, employee_id)
        concept = await self.get_concept(company_id, concept_id)
        if not concept.is_active:
            raise ValidationError(f"Concept '{concept.name}' is inactive", field="concept_id")

        amounts = MovementBuilder.compute(
            concept.calc_mode,
            quantity=quantity,
            rate=rate,
            total_value=total_value,
            default_rate=concept.default_rate,
        )
        movement = Movement(
            company_id=company_id,
            employee_id=employee.employee_id,
            pay_period_id=pay_period_id,
            concept_id=concept.concept_id,
            quantity=amounts.quantity,
            rate=amounts.rate,
            total_value=amounts.total_value,
            note=note,
            created_by=actor_id,
        )
        movement.concept = concept
        self.session.add(movement)
        await self.session.flush()

        await self.audit.record(
            company_id=company_id,
            entity_type="movement",
            entity_id=movement.movement_id,
            action="create",
            actor_id=actor_id,
            after=movement_snapshot(movement),
        )
        logger.info(
            "Created movement %s (%s %s) for employee %s",
            movement.movement_id, concept.name, amounts.total_value, employee_id,
        )
        return movement

    async def update_movement(
        self,
        company_id: UUID,
        movement_id: UUID,
        quantity: Any = _UNSET,
        rate: Any = _UNSET,
        total_value: Any = _UNSET,
        note: Any = _UNSET,
        actor_id: UUID | None = None,
    ) -> Movement:
        """Update amounts or note; omitted arguments keep their current value."""
        require(self.authorizer, actor_id, company_id, Capability.MANAGE_MOVEMENTS)
        movement = await self.get_movement(company_id, movement_id)
        await self.periods.ensure_open(company_id, movement.pay_period_id)
        concept = movement.concept
        before = movement_snapshot(movement)

        amounts = MovementBuilder.compute(
            concept.calc_mode,
            quantity=movement.quantity if quantity is _UNSET else quantity,
            rate=movement.rate if rate is _UNSET else rate,
            total_value=movement.total_value if total_value is _UNSET else total_value,
            default_rate=concept.default_rate,
        )
        movement.quantity = amounts.quantity
        movement.rate = amounts.rate
        movement.total_value = amounts.total_value
        if note is not _UNSET:
            movement.note = note
        await self.session.flush()

        await self.audit.record(
            company_id=company_id,
            entity_type="movement",
            entity_id=movement.movement_id,
            action="update",
            actor_id=actor_id,
            before=before,
            after=movement_snapshot(movement),
        )
        return movement

    async def delete_movement(
        self,
        company_id: UUID,
        movement_id: UUID,
        actor_id: UUID | None = None,
    ) -> None:
        require(self.authorizer, actor_id, company_id, Capability.MANAGE_MOVEMENTS)
        movement = await self.get_movement(company_id, movement_id)
        await self.periods.ensure_open(company_id, movement.pay_period_id)
        before = movement_snapshot(movement)

        await self.session.delete(movement)
        await self.session.flush()

        await self.audit.record(
            company_id=company_id,
            entity_type="movement",
            entity_id=movement_id,
            action="delete",
            actor_id=actor_id,
            before=before,
        )
        logger.info("Deleted movement %s", movement_id)

    # ===== Base pay =====

    async def record_base_pay(
        self,
        company_id: UUID,
        pay_period_id: UUID,
        employee_id: UUID,
        base_total_pay: Any,
        total_work_hours: Any = None,
        total_paid_hours: Any = None,
        total_regular: Any = None,
        total_overtime: Any = None,
    ) -> BasePayRecord:
        """Store the externally computed base pay (one record per employee and period)."""
        await self.periods.get_period(company_id, pay_period_id)
        await self.get_employee(company_id, employee_id)
        amount = MovementBuilder.to_decimal(base_total_pay, "base_total_pay")
        if amount is None:
            raise ValidationError("Base pay is required", field="base_total_pay")

        result = await self.session.execute(
            select(BasePayRecord).where(
                BasePayRecord.pay_period_id == pay_period_id,
                BasePayRecord.employee_id == employee_id,
            )
        )
        record = result.scalar_one_or_none()
        if record is None:
            record = BasePayRecord(
                company_id=company_id,
                pay_period_id=pay_period_id,
                employee_id=employee_id,
                base_total_pay=amount,
            )
            self.session.add(record)
        record.base_total_pay = MovementBuilder.round_to_cents(amount)
        record.total_work_hours = MovementBuilder.to_decimal(total_work_hours, "total_work_hours")
        record.total_paid_hours = MovementBuilder.to_decimal(total_paid_hours, "total_paid_hours")
        record.total_regular = MovementBuilder.to_decimal(total_regular, "total_regular")
        record.total_overtime = MovementBuilder.to_decimal(total_overtime, "total_overtime")
        await self.session.flush()
        return record

    # ===== Consolidation =====

    async def get_period_rollup(
        self,
        company_id: UUID,
        pay_period_id: UUID,
        filters: Iterable[RowPredicate] = (),
    ) -> PeriodRollup:
        """Per-employee base + extras - deductions for one period."""
        await self.periods.get_period(company_id, pay_period_id)

        base_result = await self.session.execute(
            select(BasePayRecord.employee_id, BasePayRecord.base_total_pay).where(
                BasePayRecord.company_id == company_id,
                BasePayRecord.pay_period_id == pay_period_id,
            )
        )
        base_pays: dict[UUID, Decimal] = {
            employee_id: amount for employee_id, amount in base_result.all()
        }

        movement_result = await self.session.execute(
            select(Movement.employee_id, Concept.category, Movement.total_value)
            .join(Concept, Concept.concept_id == Movement.concept_id)
            .where(
                Movement.company_id == company_id,
                Movement.pay_period_id == pay_period_id,
            )
        )
        lines = [
            MovementLine(employee_id=employee_id, category=category, total_value=total)
            for employee_id, category, total in movement_result.all()
        ]

        employee_ids = set(base_pays) | {line.employee_id for line in lines}
        names: dict[UUID, tuple[str, str]] = {}
        if employee_ids:
            name_result = await self.session.execute(
                select(Employee.employee_id, Employee.first_name, Employee.last_name).where(
                    Employee.employee_id.in_(employee_ids)
                )
            )
            names = {eid: (first, last) for eid, first, last in name_result.all()}

        rollup = RollupCalculator.build(pay_period_id, base_pays, lines, names)
        filters = list(filters)
        return rollup.filter(*filters) if filters else rollup

"""Movement writes, period locks and rollup against the database."""

from decimal import Decimal

import pytest

from workforce_payroll.errors import (
    NotFoundError,
    PeriodLockedError,
    PermissionDeniedError,
    ValidationError,
)
from workforce_payroll.models import Employee
from workforce_payroll.services.authorization import Capability, StaticAuthorizer
from workforce_payroll.services.movement_service import MovementService
from workforce_payroll.services.period_service import PeriodService

pytestmark = pytest.mark.asyncio


class TestMovementWrites:
    """Test movements are only writable while their period is open."""

    async def test_create_quantity_x_rate(self, session, company, authorizer, employees, concepts, open_period):
        """Five weekend days at the 12.50 default rate make 62.50."""
        service = MovementService(session, authorizer)
        movement = await service.create_movement(
            company.company_id,
            open_period.pay_period_id,
            employees["ana"].employee_id,
            concepts["Weekend Job"].concept_id,
            quantity=5,
        )
        assert movement.total_value == Decimal("62.50")
        assert movement.rate == Decimal("12.50")

    async def test_update_and_delete(self, session, company, authorizer, employees, concepts, open_period):
        service = MovementService(session, authorizer)
        movement = await service.create_movement(
            company.company_id,
            open_period.pay_period_id,
            employees["ana"].employee_id,
            concepts["Weekend Job"].concept_id,
            quantity=2,
        )
        updated = await service.update_movement(company.company_id, movement.movement_id, quantity=3)
        assert updated.total_value == Decimal("37.50")

        await service.delete_movement(company.company_id, movement.movement_id)
        with pytest.raises(NotFoundError):
            await service.get_movement(company.company_id, movement.movement_id)

    async def test_closed_period_is_locked(
        self, session, company, authorizer, settings, employees, concepts, open_period
    ):
        """Create, update and delete all fail once the period closes."""
        service = MovementService(session, authorizer, settings)
        company_id = company.company_id
        movement = await service.create_movement(
            company_id,
            open_period.pay_period_id,
            employees["ana"].employee_id,
            concepts["Propinas"].concept_id,
            total_value="20.00",
        )
        await PeriodService(session, authorizer, settings).close_period(company_id, open_period.pay_period_id)

        with pytest.raises(PeriodLockedError):
            await service.create_movement(
                company_id,
                open_period.pay_period_id,
                employees["ana"].employee_id,
                concepts["Propinas"].concept_id,
                total_value="5.00",
            )
        with pytest.raises(PeriodLockedError):
            await service.update_movement(company_id, movement.movement_id, total_value="25.00")
        with pytest.raises(PeriodLockedError):
            await service.delete_movement(company_id, movement.movement_id)

        assert (await service.get_movement(company_id, movement.movement_id)).total_value == Decimal("20.00")

    async def test_never_opened_period_is_locked(self, session, company, authorizer, employees, concepts, periods):
        service = MovementService(session, authorizer)
        with pytest.raises(PeriodLockedError):
            await service.create_movement(
                company.company_id,
                periods[1].pay_period_id,
                employees["ana"].employee_id,
                concepts["Propinas"].concept_id,
                total_value="5.00",
            )

    async def test_zero_and_inactive_rejected(self, session, company, authorizer, employees, concepts, open_period):
        service = MovementService(session, authorizer)
        with pytest.raises(ValidationError):
            await service.create_movement(
                company.company_id,
                open_period.pay_period_id,
                employees["ana"].employee_id,
                concepts["Propinas"].concept_id,
                total_value="0",
            )
        with pytest.raises(ValidationError):
            await service.create_movement(
                company.company_id,
                open_period.pay_period_id,
                employees["ana"].employee_id,
                concepts["Bono antiguo"].concept_id,
                total_value="10",
            )

    async def test_requires_capability(self, session, company, employees, concepts, open_period):
        service = MovementService(session, StaticAuthorizer([Capability.IMPORT_DATA]))
        with pytest.raises(PermissionDeniedError):
            await service.create_movement(
                company.company_id,
                open_period.pay_period_id,
                employees["ana"].employee_id,
                concepts["Propinas"].concept_id,
                total_value="10",
            )

    async def test_other_company_employee_not_found(
        self, session, company, other_company, authorizer, concepts, open_period
    ):
        """Writes never reach across tenants."""
        stranger = Employee(company_id=other_company.company_id, first_name="Eve", last_name="Other")
        session.add(stranger)
        await session.flush()

        service = MovementService(session, authorizer)
        with pytest.raises(NotFoundError):
            await service.create_movement(
                company.company_id,
                open_period.pay_period_id,
                stranger.employee_id,
                concepts["Propinas"].concept_id,
                total_value="10",
            )


class TestPeriodRollup:
    """Test consolidation of base pay and movements."""

    async def test_rollup(self, session, company, authorizer, employees, concepts, open_period):
        """Base 500 + 62.50 extra - 20 deduction = 542.50."""
        service = MovementService(session, authorizer)
        company_id = company.company_id
        period_id = open_period.pay_period_id
        ana = employees["ana"].employee_id
        jorge = employees["jorge"].employee_id

        await service.record_base_pay(company_id, period_id, ana, "500.00", total_work_hours="40")
        await service.create_movement(company_id, period_id, ana, concepts["Weekend Job"].concept_id, quantity=5)
        await service.create_movement(
            company_id, period_id, ana, concepts["Descuentos"].concept_id, total_value="20"
        )
        await service.create_movement(
            company_id, period_id, jorge, concepts["Propinas"].concept_id, total_value="15.00"
        )

        rollup = await service.get_period_rollup(company_id, period_id)
        ana_row = rollup.row_for(ana)
        assert ana_row.final_pay == Decimal("542.50")
        assert ana_row.display_name == "Ana Ruiz"

        jorge_row = rollup.row_for(jorge)
        assert jorge_row.base_pay == Decimal("0")
        assert not jorge_row.has_base_pay
        assert jorge_row.final_pay == Decimal("15.00")

        assert rollup.totals.final_pay == Decimal("557.50")

        with_base = await service.get_period_rollup(company_id, period_id, ["with_base"])
        assert [r.employee_id for r in with_base.rows] == [ana]

    async def test_base_pay_upsert(self, session, company, authorizer, employees, periods):
        """Recording base pay twice keeps one record with the latest amount."""
        service = MovementService(session, authorizer)
        ana = employees["ana"].employee_id
        first = await service.record_base_pay(company.company_id, periods[0].pay_period_id, ana, "400")
        second = await service.record_base_pay(company.company_id, periods[0].pay_period_id, ana, "450.505")

        assert first.base_pay_id == second.base_pay_id
        assert second.base_total_pay == Decimal("450.51")

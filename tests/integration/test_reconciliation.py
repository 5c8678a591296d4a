"""Spreadsheet reconciliation: upload -> review -> apply against the database."""

from decimal import Decimal

import pytest
from sqlalchemy import delete, select

from workforce_payroll.errors import PeriodLockedError, PermissionDeniedError
from workforce_payroll.models import Employee, Movement
from workforce_payroll.reconciliation import ReconciliationService
from workforce_payroll.reconciliation.change_set import RowAction
from workforce_payroll.services.authorization import Capability, StaticAuthorizer
from workforce_payroll.services.period_service import PeriodService

pytestmark = pytest.mark.asyncio


ROSTER = [
    {"First name": "ANA", "Last name": "RUIZ", "Mobile phone": "(555) 010-2020", "Email": "ana@example.com"},
    {"First name": "Pedro", "Last name": "Gomez", "Mobile phone": "555-010-9999", "Email": ""},
    {"First name": "Jorge", "Last name": "Cortes", "Mobile phone": "", "Email": ""},
    {"First name": "Solo", "Last name": "", "Mobile phone": "", "Email": ""},
]


def _adjustments(**ana_cells):
    cells = {"Tips": "$25.00", "Discount": "(10.00)", "Payper Day": "0", "Ryde": "", "Reimbursements": ""}
    cells.update(ana_cells)
    blank = {name: "" for name in cells}
    return [
        {"First name": "Ana", "Last name": "Ruiz", **cells},
        {"First name": "SYSTEM", "Last name": "", **blank},
        {"First name": "Nobody", "Last name": "Here", **blank, "Tips": "5"},
    ]


async def _period_movements(session, period_id) -> list[Movement]:
    result = await session.execute(
        select(Movement)
        .where(Movement.pay_period_id == period_id)
        .order_by(Movement.created_at)
        .execution_options(populate_existing=True)
    )
    return list(result.unique().scalars().all())


class TestEmployeeImport:
    """Test roster uploads."""

    async def test_prepare_proposes_diff(self, session, company, authorizer, settings, employees):
        service = ReconciliationService(session, authorizer, settings)
        change_set = await service.prepare_employee_import(company.company_id, ROSTER)

        ana = change_set.row("2")
        assert ana.action == RowAction.UPDATE
        assert ana.strategy == "phone"
        assert [c.field for c in ana.changes] == ["email"]

        pedro = change_set.row("3")
        assert pedro.action == RowAction.CREATE
        assert pedro.values()["phone_number"] == "555-010-9999"

        assert change_set.row("4").action == RowAction.NOOP
        assert change_set.row("5").errors == ("last_name is required to create an employee",)

        summary = change_set.summary
        assert (summary.creates, summary.updates, summary.noops, summary.errors) == (1, 1, 1, 1)

    async def test_prepare_writes_nothing(self, session, company, authorizer, settings, employees):
        service = ReconciliationService(session, authorizer, settings)
        await service.prepare_employee_import(company.company_id, ROSTER)

        result = await session.execute(select(Employee).where(Employee.company_id == company.company_id))
        assert len(result.scalars().all()) == 3
        assert employees["ana"].email is None

    async def test_apply_then_rerun_is_empty(self, session, company, authorizer, settings, employees):
        """Applying the reviewed set once leaves nothing to do on a second upload."""
        ana_id = employees["ana"].employee_id
        service = ReconciliationService(session, authorizer, settings)
        change_set = await service.prepare_employee_import(company.company_id, ROSTER)

        result = await service.apply(change_set)
        assert (result.created, result.updated, result.skipped, result.failed) == (1, 1, 2, 0)

        pedro = (
            await session.execute(select(Employee).where(Employee.last_name == "Gomez"))
        ).scalar_one()
        assert pedro.first_name == "Pedro"
        ana = await session.get(Employee, ana_id, populate_existing=True)
        assert ana.email == "ana@example.com"
        assert ana.first_name == "Ana"

        again = await service.prepare_employee_import(company.company_id, ROSTER)
        assert again.is_empty_diff

    async def test_excluded_rows_not_applied(self, session, company, authorizer, settings, employees):
        service = ReconciliationService(session, authorizer, settings)
        change_set = await service.prepare_employee_import(company.company_id, ROSTER)

        result = await service.apply(change_set.exclude("3"))

        assert result.created == 0
        outcome = next(o for o in result.outcomes if o.key == "3")
        assert outcome.reason == "excluded during review"

    async def test_duplicate_rows_for_one_employee(self, session, company, authorizer, settings, employees):
        """Two rows resolving to the same employee: the second is an error."""
        rows = [
            {"First name": "Ana", "Last name": "Ruiz", "Email": "one@example.com"},
            {"First name": "Ana", "Last name": "Ruiz", "Email": "two@example.com"},
        ]
        service = ReconciliationService(session, authorizer, settings)
        change_set = await service.prepare_employee_import(company.company_id, rows)

        assert change_set.row("2").action == RowAction.UPDATE
        assert change_set.row("3").errors == ("Same employee as row 2",)

    async def test_update_target_deleted_before_apply(self, session, company, authorizer, settings, employees):
        """A row whose employee vanished after review fails on its own."""
        ana_id = employees["ana"].employee_id
        service = ReconciliationService(session, authorizer, settings)
        change_set = await service.prepare_employee_import(company.company_id, ROSTER)
        await session.execute(delete(Employee).where(Employee.employee_id == ana_id))

        result = await service.apply(change_set)

        assert (result.created, result.updated, result.failed) == (1, 0, 1)
        failure = result.failures[0]
        assert failure.key == "2"
        assert failure.reason == f"employee {ana_id} not found"

    async def test_apply_requires_capability(self, session, company, authorizer, settings, employees):
        prepared = await ReconciliationService(session, authorizer, settings).prepare_employee_import(
            company.company_id, ROSTER
        )
        limited = ReconciliationService(session, StaticAuthorizer([Capability.MANAGE_MOVEMENTS]), settings)
        with pytest.raises(PermissionDeniedError):
            await limited.apply(prepared)


class TestMovementImport:
    """Test pay-adjustment uploads into a period."""

    async def test_prepare(self, session, company, authorizer, settings, employees, concepts, open_period):
        service = ReconciliationService(session, authorizer, settings)
        change_set = await service.prepare_movement_import(
            company.company_id, open_period.pay_period_id, _adjustments()
        )

        assert [r.key for r in change_set.selected] == ["2:Propinas", "2:Descuentos"]
        assert change_set.row("2:Propinas").values()["total_value"] == Decimal("25.00")
        # Accounting negatives import as absolute amounts
        assert change_set.row("2:Descuentos").values()["total_value"] == Decimal("10.00")
        assert change_set.row("4").errors == ("No employee matches 'Nobody Here'",)
        assert all(r.label != "SYSTEM" for r in change_set.rows)

    async def test_apply_and_rerun(self, session, company, authorizer, settings, employees, concepts, open_period):
        """First run creates, a re-run is empty, a changed cell updates in place."""
        service = ReconciliationService(session, authorizer, settings)
        company_id = company.company_id
        period_id = open_period.pay_period_id

        change_set = await service.prepare_movement_import(company_id, period_id, _adjustments())
        result = await service.apply(change_set)
        assert result.created == 2
        assert result.failed == 0

        again = await service.prepare_movement_import(company_id, period_id, _adjustments())
        assert again.is_empty_diff

        changed = await service.prepare_movement_import(company_id, period_id, _adjustments(Tips="30"))
        assert [r.key for r in changed.selected] == ["2:Propinas"]
        assert changed.row("2:Propinas").action == RowAction.UPDATE

        result = await service.apply(changed)
        assert result.updated == 1

        movements = await _period_movements(session, period_id)
        assert len(movements) == 2
        tips = next(m for m in movements if m.concept_id == concepts["Propinas"].concept_id)
        assert tips.total_value == Decimal("30.00")
        assert tips.quantity is None

    async def test_updated_movement_deleted_before_apply(
        self, session, company, authorizer, settings, employees, concepts, open_period
    ):
        service = ReconciliationService(session, authorizer, settings)
        company_id = company.company_id
        period_id = open_period.pay_period_id
        await service.apply(await service.prepare_movement_import(company_id, period_id, _adjustments()))

        changed = await service.prepare_movement_import(company_id, period_id, _adjustments(Tips="30"))
        tips_id = changed.row("2:Propinas").target_id
        await session.execute(delete(Movement).where(Movement.movement_id == tips_id))

        result = await service.apply(changed)
        assert result.failed == 1
        assert result.failures[0].reason == f"movement {tips_id} not found"

    async def test_unknown_concept_is_error_row(
        self, session, company, authorizer, settings, employees, concepts, open_period
    ):
        """A column whose concept the company does not have is reported per cell."""
        service = ReconciliationService(session, authorizer, settings)
        change_set = await service.prepare_movement_import(
            company.company_id, open_period.pay_period_id, _adjustments(Reimbursements="7")
        )
        assert change_set.row("2:Reintegros").errors == ("Concept 'Reintegros' not found",)
        assert len(change_set.selected) == 2

    async def test_last_row_per_person_wins(
        self, session, company, authorizer, settings, employees, concepts, open_period
    ):
        rows = _adjustments()
        rows.append({"First name": "ana", "Last name": "ruiz", "Tips": "40", "Discount": ""})
        service = ReconciliationService(session, authorizer, settings)
        change_set = await service.prepare_movement_import(company.company_id, open_period.pay_period_id, rows)

        assert [r.key for r in change_set.selected] == ["5:Propinas"]
        assert change_set.row("5:Propinas").values()["total_value"] == Decimal("40.00")

    async def test_apply_to_closed_period_is_locked(
        self, session, company, authorizer, settings, employees, concepts, open_period
    ):
        """The period is re-checked at apply time."""
        service = ReconciliationService(session, authorizer, settings)
        change_set = await service.prepare_movement_import(
            company.company_id, open_period.pay_period_id, _adjustments()
        )
        await PeriodService(session, authorizer, settings).close_period(
            company.company_id, open_period.pay_period_id
        )

        with pytest.raises(PeriodLockedError):
            await service.apply(change_set)
        assert await _period_movements(session, open_period.pay_period_id) == []

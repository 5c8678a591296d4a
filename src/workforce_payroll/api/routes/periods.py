"""Pay period API endpoints."""

from datetime import date
from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Path, Query, status

from workforce_payroll.api.dependencies import ActorId, AppSettings, AuthorizerDep, CompanyId, DbSession
from workforce_payroll.api.schemas import (
    BasePayCreate,
    EmployeeTimeSummaryResponse,
    ErrorResponse,
    ExportResponse,
    MovementResponse,
    PeriodCreate,
    PeriodResponse,
    RollupResponse,
    SuggestedStartResponse,
)
from workforce_payroll.calculators import TimeAggregator
from workforce_payroll.calculators.rollup import RollupFilter
from workforce_payroll.services.movement_service import MovementService
from workforce_payroll.services.period_service import PeriodService
from workforce_payroll.services.time_entry_service import TimeEntryService

router = APIRouter(prefix="/periods", tags=["periods"])

PeriodId = Annotated[UUID, Path()]

_TRANSITION_RESPONSES = {
    403: {"model": ErrorResponse},
    404: {"model": ErrorResponse},
    409: {"model": ErrorResponse},
}


# ============================================================================
# Periods
# ============================================================================


@router.get("", response_model=list[PeriodResponse])
async def list_periods(
    db: DbSession,
    company_id: CompanyId,
    authorizer: AuthorizerDep,
    settings: AppSettings,
) -> list[PeriodResponse]:
    """List the company's periods, newest first."""
    periods = await PeriodService(db, authorizer, settings).list_periods(company_id)
    return [PeriodResponse.model_validate(p) for p in periods]


@router.get("/suggest-start", response_model=SuggestedStartResponse)
async def suggest_start(
    db: DbSession,
    company_id: CompanyId,
    authorizer: AuthorizerDep,
    settings: AppSettings,
    today: date | None = None,
) -> SuggestedStartResponse:
    """Start date for the next period to schedule."""
    start = await PeriodService(db, authorizer, settings).suggest_start(company_id, today)
    return SuggestedStartResponse(start_date=start)


@router.post(
    "",
    response_model=PeriodResponse,
    status_code=status.HTTP_201_CREATED,
    responses={422: {"model": ErrorResponse}},
)
async def create_period(
    db: DbSession,
    company_id: CompanyId,
    actor_id: ActorId,
    authorizer: AuthorizerDep,
    settings: AppSettings,
    payload: PeriodCreate,
) -> PeriodResponse:
    """Schedule a new period. It starts closed and must be opened explicitly."""
    period = await PeriodService(db, authorizer, settings).create_period(
        company_id, payload.start_date, actor_id
    )
    await db.commit()
    return PeriodResponse.model_validate(period)


@router.get(
    "/{pay_period_id}",
    response_model=PeriodResponse,
    responses={404: {"model": ErrorResponse}},
)
async def get_period(
    db: DbSession,
    company_id: CompanyId,
    authorizer: AuthorizerDep,
    settings: AppSettings,
    pay_period_id: PeriodId,
) -> PeriodResponse:
    period = await PeriodService(db, authorizer, settings).get_period(company_id, pay_period_id)
    return PeriodResponse.model_validate(period)


async def _transition(
    db, company_id, actor_id, authorizer, settings, pay_period_id, action: str
) -> PeriodResponse:
    service = PeriodService(db, authorizer, settings)
    period = await getattr(service, action)(company_id, pay_period_id, actor_id)
    await db.commit()
    return PeriodResponse.model_validate(period)


@router.post("/{pay_period_id}/open", response_model=PeriodResponse, responses=_TRANSITION_RESPONSES)
async def open_period(
    db: DbSession,
    company_id: CompanyId,
    actor_id: ActorId,
    authorizer: AuthorizerDep,
    settings: AppSettings,
    pay_period_id: PeriodId,
) -> PeriodResponse:
    """Open a period. Out-of-sequence opens need the reopen_period capability."""
    return await _transition(db, company_id, actor_id, authorizer, settings, pay_period_id, "open_period")


@router.post("/{pay_period_id}/close", response_model=PeriodResponse, responses=_TRANSITION_RESPONSES)
async def close_period(
    db: DbSession,
    company_id: CompanyId,
    actor_id: ActorId,
    authorizer: AuthorizerDep,
    settings: AppSettings,
    pay_period_id: PeriodId,
) -> PeriodResponse:
    return await _transition(db, company_id, actor_id, authorizer, settings, pay_period_id, "close_period")


@router.post("/{pay_period_id}/publish", response_model=PeriodResponse, responses=_TRANSITION_RESPONSES)
async def publish_period(
    db: DbSession,
    company_id: CompanyId,
    actor_id: ActorId,
    authorizer: AuthorizerDep,
    settings: AppSettings,
    pay_period_id: PeriodId,
) -> PeriodResponse:
    return await _transition(db, company_id, actor_id, authorizer, settings, pay_period_id, "publish_period")


@router.post("/{pay_period_id}/unpublish", response_model=PeriodResponse, responses=_TRANSITION_RESPONSES)
async def unpublish_period(
    db: DbSession,
    company_id: CompanyId,
    actor_id: ActorId,
    authorizer: AuthorizerDep,
    settings: AppSettings,
    pay_period_id: PeriodId,
) -> PeriodResponse:
    return await _transition(db, company_id, actor_id, authorizer, settings, pay_period_id, "unpublish_period")


@router.post("/{pay_period_id}/mark-paid", response_model=PeriodResponse, responses=_TRANSITION_RESPONSES)
async def mark_paid(
    db: DbSession,
    company_id: CompanyId,
    actor_id: ActorId,
    authorizer: AuthorizerDep,
    settings: AppSettings,
    pay_period_id: PeriodId,
) -> PeriodResponse:
    """Mark a period paid. Paid is terminal; repeating the call changes nothing."""
    return await _transition(db, company_id, actor_id, authorizer, settings, pay_period_id, "mark_paid")


# ============================================================================
# Period contents
# ============================================================================


@router.get("/{pay_period_id}/movements", response_model=list[MovementResponse])
async def list_period_movements(
    db: DbSession,
    company_id: CompanyId,
    authorizer: AuthorizerDep,
    pay_period_id: PeriodId,
    employee_id: UUID | None = None,
) -> list[MovementResponse]:
    movements = await MovementService(db, authorizer).list_movements(
        company_id, pay_period_id, employee_id
    )
    return [MovementResponse.model_validate(m) for m in movements]


@router.put(
    "/{pay_period_id}/base-pay",
    status_code=status.HTTP_204_NO_CONTENT,
    responses={404: {"model": ErrorResponse}, 422: {"model": ErrorResponse}},
)
async def record_base_pay(
    db: DbSession,
    company_id: CompanyId,
    authorizer: AuthorizerDep,
    pay_period_id: PeriodId,
    payload: BasePayCreate,
) -> None:
    """Store the externally computed base pay for one employee."""
    await MovementService(db, authorizer).record_base_pay(
        company_id,
        pay_period_id,
        payload.employee_id,
        payload.base_total_pay,
        total_work_hours=payload.total_work_hours,
        total_paid_hours=payload.total_paid_hours,
        total_regular=payload.total_regular,
        total_overtime=payload.total_overtime,
    )
    await db.commit()


@router.get(
    "/{pay_period_id}/rollup",
    response_model=RollupResponse,
    responses={404: {"model": ErrorResponse}},
)
async def get_rollup(
    db: DbSession,
    company_id: CompanyId,
    authorizer: AuthorizerDep,
    pay_period_id: PeriodId,
    filters: Annotated[list[RollupFilter], Query(alias="filter")] = [],
) -> RollupResponse:
    """Base + extras - deductions per employee, optionally filtered."""
    rollup = await MovementService(db, authorizer).get_period_rollup(
        company_id, pay_period_id, filters
    )
    return RollupResponse.from_rollup(rollup)


@router.get(
    "/{pay_period_id}/rollup/export",
    response_model=ExportResponse,
    responses={404: {"model": ErrorResponse}},
)
async def export_rollup(
    db: DbSession,
    company_id: CompanyId,
    authorizer: AuthorizerDep,
    pay_period_id: PeriodId,
    filters: Annotated[list[RollupFilter], Query(alias="filter")] = [],
    include_totals: bool = True,
) -> ExportResponse:
    rollup = await MovementService(db, authorizer).get_period_rollup(
        company_id, pay_period_id, filters
    )
    return ExportResponse(rows=rollup.to_export_rows(include_totals=include_totals))


@router.get(
    "/{pay_period_id}/time-summary",
    response_model=list[EmployeeTimeSummaryResponse],
    responses={404: {"model": ErrorResponse}},
)
async def get_time_summary(
    db: DbSession,
    company_id: CompanyId,
    authorizer: AuthorizerDep,
    settings: AppSettings,
    pay_period_id: PeriodId,
    employee_id: UUID | None = None,
) -> list[EmployeeTimeSummaryResponse]:
    """Daily buckets and status counts per employee for the period."""
    summaries = await TimeEntryService(db, authorizer, settings).period_summary(
        company_id, pay_period_id, employee_id
    )
    ordered = sorted(summaries.values(), key=lambda s: str(s.employee_id))
    return [EmployeeTimeSummaryResponse.from_summary(s) for s in ordered]


@router.get(
    "/{pay_period_id}/time-summary/export",
    response_model=ExportResponse,
    responses={404: {"model": ErrorResponse}},
)
async def export_time_summary(
    db: DbSession,
    company_id: CompanyId,
    authorizer: AuthorizerDep,
    settings: AppSettings,
    pay_period_id: PeriodId,
) -> ExportResponse:
    """Timesheet grid: one hours column per day of the period."""
    service = TimeEntryService(db, authorizer, settings)
    period = await service.periods.get_period(company_id, pay_period_id)
    summaries = await service.period_summary(company_id, pay_period_id)
    names = await service.employee_names(company_id, list(summaries))
    days = _days(period.start_date, period.end_date)
    return ExportResponse(rows=TimeAggregator.to_export_rows(summaries, days, names))


def _days(start: date, end: date) -> list[date]:
    return [date.fromordinal(n) for n in range(start.toordinal(), end.toordinal() + 1)]

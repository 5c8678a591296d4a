"""Time entry API endpoints."""

from datetime import date
from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Path, Query, status

from workforce_payroll.api.dependencies import ActorId, AppSettings, AuthorizerDep, CompanyId, DbSession
from workforce_payroll.api.schemas import (
    BulkTransitionRequest,
    BulkTransitionResponse,
    ErrorResponse,
    TimeEntryCreate,
    TimeEntryResponse,
    TimeEntryUpdate,
    TimeKpisResponse,
)
from workforce_payroll.calculators import TimeEntryStatus
from workforce_payroll.services.time_entry_service import TimeEntryService

router = APIRouter(prefix="/time-entries", tags=["time-entries"])

TimeEntryId = Annotated[UUID, Path()]

_WRITE_RESPONSES = {
    404: {"model": ErrorResponse},
    409: {"model": ErrorResponse},
    422: {"model": ErrorResponse},
}


@router.get("", response_model=list[TimeEntryResponse])
async def list_time_entries(
    db: DbSession,
    company_id: CompanyId,
    authorizer: AuthorizerDep,
    settings: AppSettings,
    start: date,
    end: date,
    employee_id: UUID | None = None,
    status_filter: Annotated[TimeEntryStatus | None, Query(alias="status")] = None,
) -> list[TimeEntryResponse]:
    """Entries clocked in between start and end, inclusive."""
    entries = await TimeEntryService(db, authorizer, settings).list_time_entries(
        company_id, start, end, employee_id=employee_id, status=status_filter
    )
    return [TimeEntryResponse.model_validate(e) for e in entries]


@router.get("/kpis", response_model=TimeKpisResponse)
async def time_kpis(
    db: DbSession,
    company_id: CompanyId,
    authorizer: AuthorizerDep,
    settings: AppSettings,
    start: date,
    end: date,
    employee_id: UUID | None = None,
) -> TimeKpisResponse:
    kpis = await TimeEntryService(db, authorizer, settings).kpis(company_id, start, end, employee_id)
    return TimeKpisResponse.from_kpis(kpis)


@router.post(
    "",
    response_model=TimeEntryResponse,
    status_code=status.HTTP_201_CREATED,
    responses=_WRITE_RESPONSES,
)
async def create_time_entry(
    db: DbSession,
    company_id: CompanyId,
    actor_id: ActorId,
    authorizer: AuthorizerDep,
    settings: AppSettings,
    payload: TimeEntryCreate,
) -> TimeEntryResponse:
    entry = await TimeEntryService(db, authorizer, settings).create_time_entry(
        company_id,
        payload.employee_id,
        payload.clock_in,
        clock_out=payload.clock_out,
        break_minutes=payload.break_minutes,
        notes=payload.notes,
        actor_id=actor_id,
    )
    await db.commit()
    return TimeEntryResponse.model_validate(entry)


@router.patch("/{time_entry_id}", response_model=TimeEntryResponse, responses=_WRITE_RESPONSES)
async def update_time_entry(
    db: DbSession,
    company_id: CompanyId,
    actor_id: ActorId,
    authorizer: AuthorizerDep,
    settings: AppSettings,
    time_entry_id: TimeEntryId,
    payload: TimeEntryUpdate,
) -> TimeEntryResponse:
    entry = await TimeEntryService(db, authorizer, settings).update_time_entry(
        company_id,
        time_entry_id,
        actor_id=actor_id,
        **payload.model_dump(exclude_unset=True),
    )
    await db.commit()
    return TimeEntryResponse.model_validate(entry)


@router.delete(
    "/{time_entry_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    responses=_WRITE_RESPONSES,
)
async def delete_time_entry(
    db: DbSession,
    company_id: CompanyId,
    actor_id: ActorId,
    authorizer: AuthorizerDep,
    settings: AppSettings,
    time_entry_id: TimeEntryId,
) -> None:
    await TimeEntryService(db, authorizer, settings).delete_time_entry(
        company_id, time_entry_id, actor_id
    )
    await db.commit()


@router.post(
    "/bulk-approve",
    response_model=BulkTransitionResponse,
    responses={207: {"model": BulkTransitionResponse}, 403: {"model": ErrorResponse}},
)
async def bulk_approve(
    db: DbSession,
    company_id: CompanyId,
    actor_id: ActorId,
    authorizer: AuthorizerDep,
    settings: AppSettings,
    payload: BulkTransitionRequest,
) -> BulkTransitionResponse:
    """Approve pending entries in batches.

    Batches that succeeded stay committed; if any batch failed the
    response is 207 with the full per-entry summary.
    """
    result = await TimeEntryService(db, authorizer, settings).bulk_approve(
        company_id, payload.time_entry_ids, actor_id, payload.batch_size
    )
    await db.commit()
    result.raise_for_failures()
    return BulkTransitionResponse.from_result(result)


@router.post(
    "/bulk-reject",
    response_model=BulkTransitionResponse,
    responses={207: {"model": BulkTransitionResponse}, 403: {"model": ErrorResponse}},
)
async def bulk_reject(
    db: DbSession,
    company_id: CompanyId,
    actor_id: ActorId,
    authorizer: AuthorizerDep,
    settings: AppSettings,
    payload: BulkTransitionRequest,
) -> BulkTransitionResponse:
    result = await TimeEntryService(db, authorizer, settings).bulk_reject(
        company_id, payload.time_entry_ids, actor_id, payload.batch_size
    )
    await db.commit()
    result.raise_for_failures()
    return BulkTransitionResponse.from_result(result)

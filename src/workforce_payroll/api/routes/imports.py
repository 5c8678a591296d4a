"""Spreadsheet import endpoints: upload, then apply a reviewed change-set.

Uploads take the raw file as the request body: CSV, or an .xlsx workbook when
the Content-Type says so. The response is the pending change-set; the client
flips ``included`` on the rows it wants and posts the whole set back to
/imports/apply. Nothing is written until apply.
"""

from uuid import UUID

from fastapi import APIRouter, Request

from workforce_payroll.api.dependencies import ActorId, AppSettings, AuthorizerDep, CompanyId, DbSession
from workforce_payroll.api.schemas import ApplyResponse, ChangeSetSchema, ErrorResponse
from workforce_payroll.reconciliation import (
    CsvReader,
    ImportPolicy,
    ReconciliationService,
    TabularReader,
    XlsxReader,
)
from workforce_payroll.services.authorization import Capability, require

router = APIRouter(prefix="/imports", tags=["imports"])

_UPLOAD_RESPONSES = {
    403: {"model": ErrorResponse},
    404: {"model": ErrorResponse},
    422: {"model": ErrorResponse},
}

XLSX_CONTENT_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


def _reader_for(request: Request) -> TabularReader:
    content_type = request.headers.get("content-type", "").split(";")[0].strip().lower()
    if content_type == XLSX_CONTENT_TYPE:
        return XlsxReader()
    return CsvReader()


@router.post("/employees", response_model=ChangeSetSchema, responses=_UPLOAD_RESPONSES)
async def upload_employees(
    request: Request,
    db: DbSession,
    company_id: CompanyId,
    actor_id: ActorId,
    authorizer: AuthorizerDep,
    settings: AppSettings,
    policy: ImportPolicy = ImportPolicy.DIFF_ONLY,
) -> ChangeSetSchema:
    """Match an employee roster against existing employees and propose changes."""
    require(authorizer, actor_id, company_id, Capability.IMPORT_DATA)
    rows = _reader_for(request).read(await request.body())
    change_set = await ReconciliationService(db, authorizer, settings).prepare_employee_import(
        company_id, rows, policy
    )
    return ChangeSetSchema.from_change_set(change_set)


@router.post("/movements", response_model=ChangeSetSchema, responses=_UPLOAD_RESPONSES)
async def upload_movements(
    request: Request,
    db: DbSession,
    company_id: CompanyId,
    actor_id: ActorId,
    authorizer: AuthorizerDep,
    settings: AppSettings,
    pay_period_id: UUID,
    policy: ImportPolicy = ImportPolicy.DIFF_ONLY,
) -> ChangeSetSchema:
    """Propose extras and deductions for a period from a pay-adjustment sheet."""
    require(authorizer, actor_id, company_id, Capability.IMPORT_DATA)
    rows = _reader_for(request).read(await request.body())
    change_set = await ReconciliationService(db, authorizer, settings).prepare_movement_import(
        company_id, pay_period_id, rows, policy
    )
    return ChangeSetSchema.from_change_set(change_set)


@router.post(
    "/apply",
    response_model=ApplyResponse,
    responses={403: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
async def apply_change_set(
    db: DbSession,
    company_id: CompanyId,
    actor_id: ActorId,
    authorizer: AuthorizerDep,
    settings: AppSettings,
    payload: ChangeSetSchema,
) -> ApplyResponse:
    """Commit the included rows. Row failures are reported, not raised."""
    result = await ReconciliationService(db, authorizer, settings).apply(
        payload.to_change_set(company_id), actor_id
    )
    await db.commit()
    return ApplyResponse.from_result(result)

"""Movement API endpoints."""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Path, status

from workforce_payroll.api.dependencies import ActorId, AuthorizerDep, CompanyId, DbSession
from workforce_payroll.api.schemas import (
    ConceptResponse,
    ErrorResponse,
    MovementCreate,
    MovementResponse,
    MovementUpdate,
)
from workforce_payroll.services.movement_service import MovementService

router = APIRouter(prefix="/movements", tags=["movements"])

_WRITE_RESPONSES = {
    403: {"model": ErrorResponse},
    404: {"model": ErrorResponse},
    409: {"model": ErrorResponse},
    422: {"model": ErrorResponse},
}


@router.get("/concepts", response_model=list[ConceptResponse])
async def list_concepts(
    db: DbSession,
    company_id: CompanyId,
    authorizer: AuthorizerDep,
    include_inactive: bool = False,
) -> list[ConceptResponse]:
    """Extras and deductions the company can record."""
    concepts = await MovementService(db, authorizer).list_concepts(
        company_id, active_only=not include_inactive
    )
    return [ConceptResponse.model_validate(c) for c in concepts]


@router.post(
    "",
    response_model=MovementResponse,
    status_code=status.HTTP_201_CREATED,
    responses=_WRITE_RESPONSES,
)
async def create_movement(
    db: DbSession,
    company_id: CompanyId,
    actor_id: ActorId,
    authorizer: AuthorizerDep,
    payload: MovementCreate,
) -> MovementResponse:
    """Add an extra or deduction to an open period."""
    movement = await MovementService(db, authorizer).create_movement(
        company_id,
        payload.pay_period_id,
        payload.employee_id,
        payload.concept_id,
        quantity=payload.quantity,
        rate=payload.rate,
        total_value=payload.total_value,
        note=payload.note,
        actor_id=actor_id,
    )
    await db.commit()
    return MovementResponse.model_validate(movement)


@router.patch(
    "/{movement_id}",
    response_model=MovementResponse,
    responses=_WRITE_RESPONSES,
)
async def update_movement(
    db: DbSession,
    company_id: CompanyId,
    actor_id: ActorId,
    authorizer: AuthorizerDep,
    movement_id: Annotated[UUID, Path()],
    payload: MovementUpdate,
) -> MovementResponse:
    movement = await MovementService(db, authorizer).update_movement(
        company_id,
        movement_id,
        actor_id=actor_id,
        **payload.model_dump(exclude_unset=True),
    )
    await db.commit()
    return MovementResponse.model_validate(movement)


@router.delete(
    "/{movement_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    responses=_WRITE_RESPONSES,
)
async def delete_movement(
    db: DbSession,
    company_id: CompanyId,
    actor_id: ActorId,
    authorizer: AuthorizerDep,
    movement_id: Annotated[UUID, Path()],
) -> None:
    await MovementService(db, authorizer).delete_movement(company_id, movement_id, actor_id)
    await db.commit()

"""FastAPI dependencies for dependency injection."""

from collections.abc import AsyncGenerator
from typing import Annotated
from uuid import UUID

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from workforce_payroll.config import Settings, get_settings
from workforce_payroll.database import get_session
from workforce_payroll.services.authorization import Authorizer, StaticAuthorizer


async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """One session per request, rolled back if the route raises."""
    async with get_session() as session:
        yield session


def _parse_uuid(value: str, header: str) -> UUID:
    try:
        return UUID(value)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Invalid {header} format",
        ) from None


async def get_company_id(
    x_company_id: Annotated[str | None, Header()] = None
) -> UUID:
    """Extract the tenant (company) ID from header."""
    if not x_company_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="X-Company-ID header is required",
        )
    return _parse_uuid(x_company_id, "X-Company-ID")


async def get_actor_id(
    x_actor_id: Annotated[str | None, Header()] = None
) -> UUID | None:
    """Extract the acting user's ID, if the gateway supplied one."""
    if not x_actor_id:
        return None
    return _parse_uuid(x_actor_id, "X-Actor-ID")


async def get_authorizer(
    x_capabilities: Annotated[str | None, Header()] = None
) -> Authorizer:
    """Capabilities resolved upstream by the gateway, comma separated."""
    capabilities = [c.strip() for c in (x_capabilities or "").split(",") if c.strip()]
    return StaticAuthorizer(capabilities)


# Type aliases for cleaner dependency injection
DbSession = Annotated[AsyncSession, Depends(get_db_session)]
CompanyId = Annotated[UUID, Depends(get_company_id)]
ActorId = Annotated[UUID | None, Depends(get_actor_id)]
AuthorizerDep = Annotated[Authorizer, Depends(get_authorizer)]
AppSettings = Annotated[Settings, Depends(get_settings)]

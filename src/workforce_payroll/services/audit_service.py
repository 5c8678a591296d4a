"""Append-only audit trail for state-changing operations."""

from __future__ import annotations

import json
import logging
from typing import Any
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from workforce_payroll.models import AuditEvent

logger = logging.getLogger(__name__)


def _json_safe(value: dict[str, Any] | None) -> dict[str, Any] | None:
    # UUIDs, Decimals and datetimes become strings
    if value is None:
        return None
    return json.loads(json.dumps(value, default=str))


class AuditLog:
    """Writes AuditEvent rows in the caller's transaction."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def record(
        self,
        company_id: UUID,
        entity_type: str,
        entity_id: UUID | None,
        action: str,
        actor_id: UUID | None = None,
        before: dict[str, Any] | None = None,
        after: dict[str, Any] | None = None,
        privileged: bool = False,
    ) -> AuditEvent:
        """Record one event. It commits or rolls back with the operation."""
        event = AuditEvent(
            company_id=company_id,
            actor_id=actor_id,
            entity_type=entity_type,
            entity_id=entity_id,
            action=action,
            privileged=privileged,
            before_json=_json_safe(before),
            after_json=_json_safe(after),
        )
        self.session.add(event)
        await self.session.flush()
        logger.debug(
            "audit %s %s %s by %s%s",
            entity_type, entity_id, action, actor_id, " (privileged)" if privileged else "",
        )
        return event

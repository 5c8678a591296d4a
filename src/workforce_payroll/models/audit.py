"""Append-only audit trail model."""

from __future__ import annotations

from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import Index, String
from sqlalchemy.orm import Mapped, mapped_column

from workforce_payroll.models.base import Base, CompanyScopedMixin, JSONDocument, TimestampMixin


class AuditEvent(Base, CompanyScopedMixin, TimestampMixin):
    """Audit trail entry."""

    __tablename__ = "audit_event"

    audit_event_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    actor_id: Mapped[UUID | None] = mapped_column(nullable=True)
    entity_type: Mapped[str] = mapped_column(String, nullable=False)
    entity_id: Mapped[UUID | None] = mapped_column(nullable=True)
    action: Mapped[str] = mapped_column(String, nullable=False)
    privileged: Mapped[bool] = mapped_column(nullable=False, default=False)
    before_json: Mapped[dict[str, Any] | None] = mapped_column(JSONDocument, nullable=True)
    after_json: Mapped[dict[str, Any] | None] = mapped_column(JSONDocument, nullable=True)

    __table_args__ = (
        Index("audit_event_company_entity_idx", "company_id", "entity_type", "entity_id"),
    )

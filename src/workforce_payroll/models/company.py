"""Company (tenant) model."""

from __future__ import annotations

from typing import TYPE_CHECKING
from uuid import UUID, uuid4

from sqlalchemy import CheckConstraint, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from workforce_payroll.models.base import Base, TimestampMixin

if TYPE_CHECKING:
    from workforce_payroll.models.employee import Employee
    from workforce_payroll.models.payroll import PayPeriod


class Company(Base, TimestampMixin):
    """Multi-tenant container. Every other record is scoped to a company."""

    __tablename__ = "company"

    company_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    name: Mapped[str] = mapped_column(String, nullable=False)
    status: Mapped[str] = mapped_column(String, nullable=False, default="active")

    __table_args__ = (
        CheckConstraint("status IN ('active', 'suspended', 'closed')", name="company_status_check"),
    )

    # Relationships
    employees: Mapped[list[Employee]] = relationship(back_populates="company")
    pay_periods: Mapped[list[PayPeriod]] = relationship(back_populates="company")

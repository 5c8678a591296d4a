"""Employee model."""

from __future__ import annotations

from typing import TYPE_CHECKING
from uuid import UUID, uuid4

from sqlalchemy import Boolean, Index, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from workforce_payroll.models.base import Base, CompanyScopedMixin, TimestampMixin

if TYPE_CHECKING:
    from workforce_payroll.models.company import Company
    from workforce_payroll.models.time_entry import TimeEntry


class Employee(Base, CompanyScopedMixin, TimestampMixin):
    """Employee record.

    Employees referenced by movements or base pay are deactivated, never deleted.
    """

    __tablename__ = "employee"

    employee_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    first_name: Mapped[str] = mapped_column(String, nullable=False)
    last_name: Mapped[str] = mapped_column(String, nullable=False, default="")
    phone_number: Mapped[str | None] = mapped_column(String, nullable=True)
    external_id: Mapped[str | None] = mapped_column(String, nullable=True)
    email: Mapped[str | None] = mapped_column(String, nullable=True)
    address: Mapped[str | None] = mapped_column(String, nullable=True)
    employee_role: Mapped[str | None] = mapped_column(String, nullable=True)
    direct_manager: Mapped[str | None] = mapped_column(String, nullable=True)
    recommended_by: Mapped[str | None] = mapped_column(String, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    __table_args__ = (
        Index("employee_company_external_id_idx", "company_id", "external_id"),
    )

    # Relationships
    company: Mapped[Company] = relationship(back_populates="employees")
    time_entries: Mapped[list[TimeEntry]] = relationship(back_populates="employee")

    @property
    def full_name(self) -> str:
        """Get full name."""
        return f"{self.first_name} {self.last_name}".strip()

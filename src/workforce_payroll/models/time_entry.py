"""Clock entry model."""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING
from uuid import UUID, uuid4

from sqlalchemy import CheckConstraint, DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from workforce_payroll.models.base import Base, CompanyScopedMixin, TimestampMixin

if TYPE_CHECKING:
    from workforce_payroll.models.employee import Employee


class TimeEntry(Base, CompanyScopedMixin, TimestampMixin):
    """Raw clock-in/clock-out record. Duration is derived, never stored."""

    __tablename__ = "time_entry"

    time_entry_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    employee_id: Mapped[UUID] = mapped_column(
        ForeignKey("employee.employee_id", ondelete="RESTRICT"),
        nullable=False,
    )
    clock_in: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    clock_out: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    break_minutes: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    status: Mapped[str] = mapped_column(String, nullable=False, default="pending")
    approved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'approved', 'rejected')",
            name="time_entry_status_check",
        ),
        CheckConstraint("break_minutes >= 0", name="time_entry_break_nonnegative"),
        CheckConstraint(
            "clock_out IS NULL OR clock_out >= clock_in",
            name="time_entry_clock_order_check",
        ),
        Index("time_entry_company_clock_in_idx", "company_id", "clock_in"),
    )

    # Relationships
    employee: Mapped[Employee] = relationship(back_populates="time_entries")

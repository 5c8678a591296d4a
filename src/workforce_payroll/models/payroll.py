"""Pay period, concept, movement and base pay models."""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import TYPE_CHECKING
from uuid import UUID, uuid4

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from workforce_payroll.models.base import Base, CompanyScopedMixin, TimestampMixin

if TYPE_CHECKING:
    from workforce_payroll.models.company import Company
    from workforce_payroll.models.employee import Employee


# ===== Pay Periods =====


class PayPeriod(Base, CompanyScopedMixin, TimestampMixin):
    """Weekly pay period.

    start_date/end_date never change after creation. Status moves forward
    open -> closed -> published -> paid, with a gated closed -> open reopen.
    """

    __tablename__ = "pay_period"

    pay_period_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date] = mapped_column(Date, nullable=False)
    status: Mapped[str] = mapped_column(String, nullable=False, default="closed")
    opened_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    closed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    published_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    paid_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    reopen_count: Mapped[int] = mapped_column(nullable=False, default=0)

    __table_args__ = (
        UniqueConstraint("company_id", "start_date", name="pay_period_company_start_unique"),
        CheckConstraint(
            "status IN ('open', 'closed', 'published', 'paid')",
            name="pay_period_status_check",
        ),
        CheckConstraint("end_date >= start_date", name="pay_period_dates_check"),
        # At most one open period per company, even under concurrent opens
        Index(
            "pay_period_one_open_per_company",
            "company_id",
            unique=True,
            postgresql_where=text("status = 'open'"),
            sqlite_where=text("status = 'open'"),
        ),
    )

    # Relationships
    company: Mapped[Company] = relationship(back_populates="pay_periods")
    movements: Mapped[list[Movement]] = relationship(back_populates="pay_period")
    base_pays: Mapped[list[BasePayRecord]] = relationship(back_populates="pay_period")

    def contains(self, day: date) -> bool:
        """Check if a calendar day falls inside the period."""
        return self.start_date <= day <= self.end_date


# ===== Concepts & Movements =====


class Concept(Base, CompanyScopedMixin, TimestampMixin):
    """Named pay adjustment type (an extra or a deduction)."""

    __tablename__ = "concept"

    concept_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    name: Mapped[str] = mapped_column(String, nullable=False)
    category: Mapped[str] = mapped_column(String, nullable=False)
    calc_mode: Mapped[str] = mapped_column(String, nullable=False, default="manual_value")
    default_rate: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)
    unit_label: Mapped[str | None] = mapped_column(String, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    __table_args__ = (
        UniqueConstraint("company_id", "name", name="concept_company_name_unique"),
        CheckConstraint("category IN ('extra', 'deduction')", name="concept_category_check"),
        CheckConstraint(
            "calc_mode IN ('quantity_x_rate', 'manual_value')",
            name="concept_calc_mode_check",
        ),
    )


class Movement(Base, CompanyScopedMixin, TimestampMixin):
    """One pay adjustment for an employee in a period."""

    __tablename__ = "movement"

    movement_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    employee_id: Mapped[UUID] = mapped_column(
        ForeignKey("employee.employee_id", ondelete="RESTRICT"),
        nullable=False,
    )
    pay_period_id: Mapped[UUID] = mapped_column(
        ForeignKey("pay_period.pay_period_id", ondelete="RESTRICT"),
        nullable=False,
    )
    concept_id: Mapped[UUID] = mapped_column(
        ForeignKey("concept.concept_id", ondelete="RESTRICT"),
        nullable=False,
    )
    quantity: Mapped[Decimal | None] = mapped_column(Numeric(12, 4), nullable=True)
    rate: Mapped[Decimal | None] = mapped_column(Numeric(12, 4), nullable=True)
    total_value: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    note: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_by: Mapped[UUID | None] = mapped_column(nullable=True)

    __table_args__ = (
        CheckConstraint("total_value <> 0", name="movement_nonzero_value"),
        Index("movement_period_employee_idx", "pay_period_id", "employee_id"),
    )

    # Relationships
    employee: Mapped[Employee] = relationship()
    pay_period: Mapped[PayPeriod] = relationship(back_populates="movements")
    concept: Mapped[Concept] = relationship(lazy="joined")


# ===== Base Pay =====


class BasePayRecord(Base, CompanyScopedMixin, TimestampMixin):
    """Pre-computed regular pay for an employee in a period."""

    __tablename__ = "period_base_pay"

    base_pay_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    employee_id: Mapped[UUID] = mapped_column(
        ForeignKey("employee.employee_id", ondelete="RESTRICT"),
        nullable=False,
    )
    pay_period_id: Mapped[UUID] = mapped_column(
        ForeignKey("pay_period.pay_period_id", ondelete="RESTRICT"),
        nullable=False,
    )
    base_total_pay: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    total_work_hours: Mapped[Decimal | None] = mapped_column(Numeric(8, 2), nullable=True)
    total_paid_hours: Mapped[Decimal | None] = mapped_column(Numeric(8, 2), nullable=True)
    total_regular: Mapped[Decimal | None] = mapped_column(Numeric(8, 2), nullable=True)
    total_overtime: Mapped[Decimal | None] = mapped_column(Numeric(8, 2), nullable=True)

    __table_args__ = (
        UniqueConstraint("employee_id", "pay_period_id", name="base_pay_employee_period_unique"),
    )

    # Relationships
    employee: Mapped[Employee] = relationship()
    pay_period: Mapped[PayPeriod] = relationship(back_populates="base_pays")

"""ORM models."""

from workforce_payroll.models.audit import AuditEvent
from workforce_payroll.models.base import Base, CompanyScopedMixin, TimestampMixin
from workforce_payroll.models.company import Company
from workforce_payroll.models.employee import Employee
from workforce_payroll.models.payroll import BasePayRecord, Concept, Movement, PayPeriod
from workforce_payroll.models.time_entry import TimeEntry

__all__ = [
    "AuditEvent",
    "Base",
    "BasePayRecord",
    "Company",
    "CompanyScopedMixin",
    "Concept",
    "Employee",
    "Movement",
    "PayPeriod",
    "TimeEntry",
    "TimestampMixin",
]

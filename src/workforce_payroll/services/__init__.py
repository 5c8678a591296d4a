"""Workforce payroll services."""

from workforce_payroll.services.state_machine import PeriodStateMachine, PeriodStatus, TransitionDecision
from workforce_payroll.services.authorization import Authorizer, Capability, StaticAuthorizer
from workforce_payroll.services.period_service import PeriodService
from workforce_payroll.services.movement_service import MovementService
from workforce_payroll.services.time_entry_service import BulkTransitionResult, TimeEntryService

__all__ = [
    "PeriodStateMachine",
    "PeriodStatus",
    "TransitionDecision",
    "Authorizer",
    "Capability",
    "StaticAuthorizer",
    "PeriodService",
    "MovementService",
    "BulkTransitionResult",
    "TimeEntryService",
]

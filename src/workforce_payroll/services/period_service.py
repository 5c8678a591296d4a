"""Pay period service - creation and lifecycle transitions."""

from __future__ import annotations

import logging
from datetime import date, datetime, timedelta, timezone
from typing import Any
from uuid import UUID

from sqlalchemy import and_, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from workforce_payroll.config import Settings, get_settings
from workforce_payroll.errors import (
    NotFoundError,
    PeriodLockedError,
    SequenceViolationError,
    ValidationError,
)
from workforce_payroll.models import PayPeriod
from workforce_payroll.services.audit_service import AuditLog
from workforce_payroll.services.authorization import Authorizer, Capability, require
from workforce_payroll.services.state_machine import (
    PeriodStateMachine,
    PeriodStatus,
    TransitionDecision,
)

logger = logging.getLogger(__name__)

# Capability checked before each target status
_TARGET_CAPABILITY = {
    PeriodStatus.OPEN.value: Capability.OPEN_PERIOD,
    PeriodStatus.CLOSED.value: Capability.CLOSE_PERIOD,
    PeriodStatus.PUBLISHED.value: Capability.PUBLISH_PERIOD,
    PeriodStatus.PAID.value: Capability.MARK_PAID,
}

# Timestamp column stamped when a period enters each status
_TARGET_TIMESTAMP = {
    PeriodStatus.OPEN.value: "opened_at",
    PeriodStatus.CLOSED.value: "closed_at",
    PeriodStatus.PUBLISHED.value: "published_at",
    PeriodStatus.PAID.value: "paid_at",
}


def suggest_next_start(today: date, weekday: int = 2) -> date:
    """The next day falling on ``weekday`` (Monday == 0), today included."""
    return today + timedelta(days=(weekday - today.weekday()) % 7)


def period_snapshot(period: PayPeriod) -> dict[str, Any]:
    return {
        "status": period.status,
        "start_date": period.start_date,
        "end_date": period.end_date,
        "reopen_count": period.reopen_count,
    }


class PeriodService:
    """Service for pay period lifecycle.

    Operations:
    - create_period: schedule a weekly period (created closed, never opened)
    - open_period: sequential open, or privileged out-of-sequence reopen
    - close_period / publish_period / unpublish_period / mark_paid

    Every transition is a conditional UPDATE on the status read, so two
    racing requests cannot both move the same period. The partial unique
    index on open periods backs up the single-open rule across periods.
    """

    def __init__(
        self,
        session: AsyncSession,
        authorizer: Authorizer,
        settings: Settings | None = None,
    ):
        self.session = session
        self.authorizer = authorizer
        self.settings = settings or get_settings()
        self.audit = AuditLog(session)

    # ===== Queries =====

    async def list_periods(self, company_id: UUID) -> list[PayPeriod]:
        result = await self.session.execute(
            select(PayPeriod)
            .where(PayPeriod.company_id == company_id)
            .order_by(PayPeriod.start_date.desc())
        )
        return list(result.scalars().all())

    async def get_period(
        self,
        company_id: UUID,
        pay_period_id: UUID,
        for_update: bool = False,
    ) -> PayPeriod:
        stmt = select(PayPeriod).where(
            PayPeriod.pay_period_id == pay_period_id,
            PayPeriod.company_id == company_id,
        )
        if for_update:
            stmt = stmt.with_for_update()
        result = await self.session.execute(stmt)
        period = result.scalar_one_or_none()
        if period is None:
            raise NotFoundError("pay_period", pay_period_id)
        return period

    async def get_open_period(self, company_id: UUID) -> PayPeriod | None:
        result = await self.session.execute(
            select(PayPeriod).where(
                PayPeriod.company_id == company_id,
                PayPeriod.status == PeriodStatus.OPEN.value,
            )
        )
        return result.scalar_one_or_none()

    async def period_for_day(
        self,
        company_id: UUID,
        day: date,
        for_update: bool = False,
    ) -> PayPeriod | None:
        """The period whose date range covers ``day``, if any."""
        stmt = select(PayPeriod).where(
            PayPeriod.company_id == company_id,
            PayPeriod.start_date <= day,
            PayPeriod.end_date >= day,
        )
        if for_update:
            stmt = stmt.with_for_update()
        result = await self.session.execute(stmt)
        return result.scalars().first()

    async def ensure_open(self, company_id: UUID, pay_period_id: UUID) -> PayPeriod:
        """Re-read the period under a row lock and refuse writes unless open."""
        period = await self.get_period(company_id, pay_period_id, for_update=True)
        if not PeriodStateMachine.can_modify_inputs(period.status):
            raise PeriodLockedError(period.pay_period_id, period.status)
        return period

    async def suggest_start(self, company_id: UUID, today: date | None = None) -> date:
        """Day after the latest period, or the next start weekday if none exist."""
        result = await self.session.execute(
            select(func.max(PayPeriod.end_date)).where(PayPeriod.company_id == company_id)
        )
        latest_end = result.scalar_one_or_none()
        if latest_end is not None:
            return latest_end + timedelta(days=1)
        today = today or datetime.now(timezone.utc).date()
        return suggest_next_start(today, self.settings.period_start_weekday)

    # ===== Creation =====

    async def create_period(
        self,
        company_id: UUID,
        start_date: date,
        actor_id: UUID | None = None,
    ) -> PayPeriod:
        """Schedule a period covering ``period_length_days`` from start_date.

        New periods are closed and have never been opened.
        """
        if start_date.weekday() != self.settings.period_start_weekday:
            expected = suggest_next_start(start_date, self.settings.period_start_weekday)
            raise ValidationError(
                f"Periods start on weekday {self.settings.period_start_weekday}; "
                f"next valid start is {expected.isoformat()}",
                field="start_date",
            )
        end_date = start_date + timedelta(days=self.settings.period_length_days - 1)

        overlap = await self.session.execute(
            select(PayPeriod.pay_period_id).where(
                PayPeriod.company_id == company_id,
                and_(PayPeriod.start_date <= end_date, PayPeriod.end_date >= start_date),
            )
        )
        if overlap.first() is not None:
            raise ValidationError(
                f"Period {start_date.isoformat()} - {end_date.isoformat()} overlaps an existing period",
                field="start_date",
            )

        period = PayPeriod(
            company_id=company_id,
            start_date=start_date,
            end_date=end_date,
            status=PeriodStatus.CLOSED.value,
            reopen_count=0,
        )
        self.session.add(period)
        await self.session.flush()

        await self.audit.record(
            company_id=company_id,
            entity_type="pay_period",
            entity_id=period.pay_period_id,
            action="create",
            actor_id=actor_id,
            after=period_snapshot(period),
        )
        logger.info("Created pay period %s (%s - %s)", period.pay_period_id, start_date, end_date)
        return period

    # ===== Transitions =====

    async def open_period(self, company_id: UUID, pay_period_id: UUID, actor_id: UUID | None = None) -> PayPeriod:
        return await self.transition(company_id, pay_period_id, PeriodStatus.OPEN, actor_id)

    async def close_period(self, company_id: UUID, pay_period_id: UUID, actor_id: UUID | None = None) -> PayPeriod:
        return await self.transition(company_id, pay_period_id, PeriodStatus.CLOSED, actor_id)

    async def publish_period(self, company_id: UUID, pay_period_id: UUID, actor_id: UUID | None = None) -> PayPeriod:
        return await self.transition(company_id, pay_period_id, PeriodStatus.PUBLISHED, actor_id)

    async def unpublish_period(self, company_id: UUID, pay_period_id: UUID, actor_id: UUID | None = None) -> PayPeriod:
        period = await self.get_period(company_id, pay_period_id)
        if period.status != PeriodStatus.PUBLISHED.value:
            raise ValidationError(
                f"Only published periods can be unpublished (period is '{period.status}')",
                field="status",
            )
        return await self.transition(company_id, pay_period_id, PeriodStatus.CLOSED, actor_id)

    async def mark_paid(self, company_id: UUID, pay_period_id: UUID, actor_id: UUID | None = None) -> PayPeriod:
        return await self.transition(company_id, pay_period_id, PeriodStatus.PAID, actor_id)

    async def transition(
        self,
        company_id: UUID,
        pay_period_id: UUID,
        target: PeriodStatus | str,
        actor_id: UUID | None = None,
    ) -> PayPeriod:
        """Move a period to ``target``.

        Raises PermissionDeniedError, InvalidTransitionError or
        SequenceViolationError; the period is untouched in every case.
        """
        target = PeriodStatus(target).value
        period = await self.get_period(company_id, pay_period_id)
        current = period.status

        capability = _TARGET_CAPABILITY[target]
        if current == PeriodStatus.PUBLISHED.value and target == PeriodStatus.CLOSED.value:
            capability = Capability.PUBLISH_PERIOD
        require(self.authorizer, actor_id, company_id, capability)

        decision = await self._decide(period, target, actor_id)
        if decision.noop:
            logger.debug("Period %s already %s; nothing to do", pay_period_id, current)
            return period

        before = period_snapshot(period)
        now = datetime.now(timezone.utc)
        values: dict[str, Any] = {"status": target, _TARGET_TIMESTAMP[target]: now}
        if target == PeriodStatus.OPEN.value and period.opened_at is not None:
            values["reopen_count"] = PayPeriod.reopen_count + 1

        try:
            async with self.session.begin_nested():
                result = await self.session.execute(
                    update(PayPeriod)
                    .where(
                        PayPeriod.pay_period_id == pay_period_id,
                        PayPeriod.status == current,
                    )
                    .values(**values)
                    .execution_options(synchronize_session=False)
                )
        except IntegrityError:
            # Another period of this company was opened concurrently
            raise SequenceViolationError(
                pay_period_id, "Another period is already open; close it first"
            ) from None

        if result.rowcount == 0:
            raise SequenceViolationError(
                pay_period_id,
                f"Period status changed from '{current}' concurrently; reload and retry",
            )

        await self.session.refresh(period)

        await self.audit.record(
            company_id=company_id,
            entity_type="pay_period",
            entity_id=pay_period_id,
            action=f"status_change:{current}:{target}",
            actor_id=actor_id,
            before=before,
            after=period_snapshot(period),
            privileged=decision.privileged,
        )
        if decision.privileged:
            logger.warning(
                "Privileged out-of-sequence reopen of period %s by %s (reopen #%d)",
                pay_period_id, actor_id, period.reopen_count,
            )
        else:
            logger.info("Period %s: %s -> %s", pay_period_id, current, target)
        return period

    async def _decide(
        self,
        period: PayPeriod,
        target: str,
        actor_id: UUID | None,
    ) -> TransitionDecision:
        predecessor_status = None
        other_open = False
        has_privilege = False

        if target == PeriodStatus.OPEN.value:
            predecessor = await self._predecessor(period)
            predecessor_status = predecessor.status if predecessor else None
            other_open = await self._other_open(period)
            has_privilege = self.authorizer.has_capability(
                actor_id, period.company_id, Capability.REOPEN_PERIOD.value
            )

        return PeriodStateMachine.validate_transition(
            period.status,
            target,
            predecessor_status,
            has_privilege,
            other_open=other_open,
            period_id=period.pay_period_id,
        )

    async def _predecessor(self, period: PayPeriod) -> PayPeriod | None:
        result = await self.session.execute(
            select(PayPeriod)
            .where(
                PayPeriod.company_id == period.company_id,
                PayPeriod.start_date < period.start_date,
            )
            .order_by(PayPeriod.start_date.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def _other_open(self, period: PayPeriod) -> bool:
        result = await self.session.execute(
            select(PayPeriod.pay_period_id).where(
                PayPeriod.company_id == period.company_id,
                PayPeriod.status == PeriodStatus.OPEN.value,
                PayPeriod.pay_period_id != period.pay_period_id,
            )
        )
        return result.first() is not None


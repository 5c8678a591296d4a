"""Capability checks delegated to an external authority.

The core never stores roles. It asks an Authorizer whether an actor holds a
capability for a company, and raises PermissionDeniedError when not.
"""

from __future__ import annotations

from collections.abc import Iterable
from enum import Enum
from typing import Protocol
from uuid import UUID

from workforce_payroll.errors import PermissionDeniedError


class Capability(str, Enum):
    """Actions the core checks before acting."""

    OPEN_PERIOD = "open_period"
    CLOSE_PERIOD = "close_period"
    REOPEN_PERIOD = "reopen_period"
    PUBLISH_PERIOD = "publish_period"
    MARK_PAID = "mark_paid"
    MANAGE_MOVEMENTS = "manage_movements"
    APPROVE_TIME_ENTRIES = "approve_time_entries"
    IMPORT_DATA = "import_data"


class Authorizer(Protocol):
    def has_capability(self, actor_id: UUID | None, company_id: UUID, capability: str) -> bool:
        ...


class StaticAuthorizer:
    """Grants a fixed set of capabilities to every actor.

    Used where the capability list has already been resolved upstream,
    e.g. from a gateway header, and in tests.
    """

    def __init__(self, capabilities: Iterable[str] = ()):
        self.capabilities = frozenset(
            c.value if isinstance(c, Capability) else str(c) for c in capabilities
        )

    @classmethod
    def allow_all(cls) -> StaticAuthorizer:
        return cls(Capability)

    def has_capability(self, actor_id: UUID | None, company_id: UUID, capability: str) -> bool:
        key = capability.value if isinstance(capability, Capability) else str(capability)
        return key in self.capabilities


def require(
    authorizer: Authorizer,
    actor_id: UUID | None,
    company_id: UUID,
    capability: Capability,
) -> None:
    """Raise PermissionDeniedError unless the actor holds the capability."""
    if not authorizer.has_capability(actor_id, company_id, capability.value):
        raise PermissionDeniedError(capability.value, actor_id)

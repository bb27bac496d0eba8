"""Role capability checks for booking actions.

Each role has its own policy object answering `can_act(actor, action,
resource)`; the gate resolves residency ownership through the directory and
raises before any state is touched.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Protocol

from residence_booking.domain.errors import AuthorizationError
from residence_booking.domain.models import (
    ROLE_ADMIN,
    ROLE_SERVICE,
    ROLE_STUDENT,
    Actor,
    BookingRequest,
)
from residence_booking.repository.data_repository import DataRepository
from residence_booking.utils.logger import get_logger


logger = get_logger(__name__)


CREATE = "create"
READ = "read"
UPDATE = "update"
CANCEL = "cancel"
LIST = "list"
APPROVE = "approve"
REJECT = "reject"
MARK_PAID = "mark_paid"

STUDENT_ACTIONS = frozenset({CREATE, READ, UPDATE, CANCEL})
MANAGER_ACTIONS = frozenset({LIST, READ, APPROVE, REJECT, MARK_PAID})


@dataclass(frozen=True)
class ResourceContext:
    """What a policy needs to know about the target of an action."""

    student_id: Optional[str] = None
    residency_owner_id: Optional[str] = None


class RolePolicy(Protocol):
    def can_act(self, actor: Actor, action: str, resource: ResourceContext) -> bool:
        ...


class StudentPolicy:
    def can_act(self, actor: Actor, action: str, resource: ResourceContext) -> bool:
        if action not in STUDENT_ACTIONS:
            return False
        return resource.student_id == actor.actor_id


class ServicePolicy:
    def can_act(self, actor: Actor, action: str, resource: ResourceContext) -> bool:
        if action not in MANAGER_ACTIONS:
            return False
        return resource.residency_owner_id == actor.actor_id


class AdminPolicy:
    def can_act(self, actor: Actor, action: str, resource: ResourceContext) -> bool:
        return True


POLICIES: dict[str, RolePolicy] = {
    ROLE_STUDENT: StudentPolicy(),
    ROLE_SERVICE: ServicePolicy(),
    ROLE_ADMIN: AdminPolicy(),
}


def can_act(actor: Actor, action: str, resource: ResourceContext) -> bool:
    policy = POLICIES.get(actor.role)
    if policy is None:
        return False
    return policy.can_act(actor, action, resource)


class AuthorizationGate:
    """Applies role policies to ledger records."""

    def __init__(self, repository: DataRepository) -> None:
        self._repository = repository

    def resource_for(self, booking: BookingRequest) -> ResourceContext:
        residency = self._repository.get_residency(booking.residency_id)
        return ResourceContext(
            student_id=booking.student_id,
            residency_owner_id=residency.owner_id if residency is not None else None,
        )

    def authorize(self, actor: Actor, action: str, booking: BookingRequest) -> None:
        resource = self.resource_for(booking)
        if not can_act(actor, action, resource):
            logger.warning(
                "Denied %s on request %s for %s actor %s",
                action,
                booking.request_id,
                actor.role,
                actor.actor_id,
            )
            raise AuthorizationError("User not authorized to act on this request")

    def authorize_create(self, actor: Actor, student_id: str) -> None:
        if not can_act(actor, CREATE, ResourceContext(student_id=student_id)):
            raise AuthorizationError("Only students may apply for a room for themselves")

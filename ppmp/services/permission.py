"""
Role-Permission Matrix.

Answers "may this actor perform this action on this plan?" as a pure
function of (role, department, ownership, plan status). Nothing here touches
the database or the request; callers pass an explicit ``Actor`` and a
``PlanContext`` snapshot of the plan.

Usage:
    from ppmp.services.permission import Action, check, can

    # Raises PermissionDeniedError if not allowed
    check(actor, Action.SUBMIT, PlanContext.of(plan))

    # Boolean check
    if can(actor, Action.EDIT, PlanContext.of(plan)):
        ...
"""

import logging
from dataclasses import dataclass, replace
from enum import Enum

from ppmp.core.exceptions import PermissionDeniedError
from ppmp.models.auth import APPROVER_ROLES, Role
from ppmp.models.plan import PlanStatus

logger = logging.getLogger(__name__)


class Action(str, Enum):
    VIEW = "VIEW"
    CREATE = "CREATE"
    EDIT = "EDIT"
    DELETE = "DELETE"
    ADD_CHILD = "ADD_CHILD"
    SUBMIT = "SUBMIT"
    APPROVE = "APPROVE"
    REJECT = "REJECT"
    LINK_DISBURSEMENT = "LINK_DISBURSEMENT"
    VIEW_REPORTS = "VIEW_REPORTS"


@dataclass(frozen=True)
class Actor:
    """The authenticated caller, passed explicitly into every service call."""

    user_id: int
    role: Role | None
    department_id: int | None = None

    @classmethod
    def from_user(cls, user) -> "Actor":
        return cls(user_id=user.id, role=user.role_enum, department_id=user.department_id)

    @property
    def is_approver(self) -> bool:
        return self.role in APPROVER_ROLES


@dataclass(frozen=True)
class PlanContext:
    """The plan attributes that permission decisions depend on."""

    status: PlanStatus
    department_id: int
    prepared_by_id: int

    @classmethod
    def of(cls, plan) -> "PlanContext":
        return cls(
            status=PlanStatus(plan.status),
            department_id=plan.department_id,
            prepared_by_id=plan.prepared_by_id,
        )

    def at_status(self, status: PlanStatus) -> "PlanContext":
        """The same plan as if it were in *status* (for transition source checks)."""
        return replace(self, status=status)


_EVERYTHING = frozenset(Action)


def _admin(actor: Actor, plan: PlanContext) -> frozenset:
    return _EVERYTHING


def _preparer(actor: Actor, plan: PlanContext) -> frozenset:
    if actor.department_id is None or plan.department_id != actor.department_id:
        return frozenset()
    granted = {Action.VIEW, Action.CREATE, Action.VIEW_REPORTS}
    if plan.status == PlanStatus.DRAFT:
        granted |= {Action.EDIT, Action.DELETE, Action.ADD_CHILD}
        if plan.prepared_by_id == actor.user_id:
            granted.add(Action.SUBMIT)
    if plan.status == PlanStatus.APPROVED and plan.prepared_by_id == actor.user_id:
        granted.add(Action.LINK_DISBURSEMENT)
    return frozenset(granted)


def _approver(actor: Actor, plan: PlanContext) -> frozenset:
    granted = {Action.VIEW, Action.VIEW_REPORTS}
    if plan.status == PlanStatus.SUBMITTED:
        granted |= {Action.APPROVE, Action.REJECT}
    if plan.status == PlanStatus.APPROVED:
        granted.add(Action.LINK_DISBURSEMENT)
    return frozenset(granted)


def _viewer(actor: Actor, plan: PlanContext) -> frozenset:
    return frozenset({Action.VIEW, Action.VIEW_REPORTS})


_ROLE_RULES = {
    Role.ADMIN: _admin,
    Role.PPMP_PREPARER: _preparer,
    Role.PPMP_APPROVER: _approver,
    Role.FINANCE_HEAD: _approver,
    Role.MAYOR: _approver,
    Role.VIEWER: _viewer,
}


def allowed_actions(actor: Actor, plan: PlanContext) -> frozenset:
    """Every action *actor* may perform on *plan*. Unknown roles get none."""
    rule = _ROLE_RULES.get(actor.role)
    if rule is None:
        return frozenset()
    return rule(actor, plan)


def can(actor: Actor, action: Action, plan: PlanContext) -> bool:
    return action in allowed_actions(actor, plan)


def check(actor: Actor, action: Action, plan: PlanContext) -> None:
    """Raise PermissionDeniedError unless *actor* may perform *action*."""
    if can(actor, action, plan):
        return
    logger.warning(
        "Permission denied: %s on plan (status=%s, dept=%s)",
        action.value, plan.status.value, plan.department_id,
        extra={"user_id": actor.user_id, "role": getattr(actor.role, "value", None)},
    )
    raise PermissionDeniedError(
        action.value.lower(),
        reason=f"Role {getattr(actor.role, 'value', 'UNKNOWN')} may not {action.value} this plan",
    )


def can_create_plan(actor: Actor, department_id: int) -> bool:
    if actor.role == Role.ADMIN:
        return True
    return (
        actor.role == Role.PPMP_PREPARER
        and actor.department_id is not None
        and actor.department_id == department_id
    )


def can_view_reports(actor: Actor) -> bool:
    return actor.role in _ROLE_RULES


def visible_department_scope(actor: Actor) -> int | None:
    """Department id list queries must be restricted to, or None for all.

    Callers must combine this with ``can_list_plans``; an unknown role has
    no scope because it has no access at all.
    """
    if actor.role == Role.PPMP_PREPARER:
        # -1 matches no department when a preparer has none assigned
        return actor.department_id if actor.department_id is not None else -1
    return None


def can_list_plans(actor: Actor) -> bool:
    return actor.role in _ROLE_RULES

"""
PPMP State Machine - lifecycle transitions.

    DRAFT ──submit──▶ SUBMITTED ──approve──▶ APPROVED
                          └──────reject───▶ REJECTED

Each transition:
    1. loads the plan row under ``FOR UPDATE``
    2. asks the permission matrix as of the transition's source state, so an
       actor who could act on the plan but finds it in the wrong state gets
       a validation error ("wrong status") rather than a permission error
    3. checks the status guard and transition-specific guards
    4. writes status, actor and timestamp fields together, creates any
       notification, and queues the audit entry, all in one unit of work

No guard failure leaves a partial write behind.
"""

import logging
from datetime import datetime, timezone

from ppmp.core.exceptions import ValidationError
from ppmp.models import db
from ppmp.models.plan import BudgetAllocation, LineItem, Plan, PlanStatus, validate_plan_transition
from ppmp.services.audit_service import snapshot
from ppmp.services.helpers.unit_of_work import queue_audit, unit_of_work
from ppmp.services.notification import NotificationService
from ppmp.services.permission import Action, PlanContext, check
from ppmp.services.plan_service import lock_plan_or_404

logger = logging.getLogger(__name__)

_DELETE_AUDIT_FIELDS = (
    "title", "description", "fiscal_year", "status", "department_id", "prepared_by_id",
    "total_estimated_budget", "total_allocated_budget",
)


def _authorize(actor, action: Action, plan: Plan, source_status: PlanStatus) -> None:
    check(actor, action, PlanContext.of(plan).at_status(source_status))


def _require_transition(plan: Plan, new_status: PlanStatus) -> None:
    if not validate_plan_transition(plan.status, new_status):
        raise ValidationError(
            f"wrong status: cannot move plan from {plan.status} to {new_status.value}",
            details={"status": plan.status},
        )


def _log_transition(plan: Plan, old_status: str, actor) -> None:
    logger.info(
        "Plan %s: %s → %s", plan.id, old_status, plan.status,
        extra={"plan_id": plan.id, "user_id": actor.user_id, "status": plan.status},
    )


def submit_plan(plan_id: int, actor) -> Plan:
    """DRAFT → SUBMITTED. Requires at least one line item and one allocation."""
    with unit_of_work():
        plan = lock_plan_or_404(plan_id)
        _authorize(actor, Action.SUBMIT, plan, PlanStatus.DRAFT)
        _require_transition(plan, PlanStatus.SUBMITTED)

        if LineItem.query.filter_by(plan_id=plan.id).count() == 0:
            raise ValidationError("no items: add at least one line item before submitting")
        if BudgetAllocation.query.filter_by(plan_id=plan.id).count() == 0:
            raise ValidationError(
                "no budget allocations: add at least one allocation before submitting",
            )

        old_status = plan.status
        plan.status = PlanStatus.SUBMITTED.value
        plan.submitted_at = datetime.now(timezone.utc)
        queue_audit(
            entity_type="plan", entity_id=plan.id, action="SUBMIT",
            actor_user_id=actor.user_id,
            old_values={"status": old_status}, new_values={"status": plan.status},
        )

    _log_transition(plan, old_status, actor)
    return plan


def approve_plan(plan_id: int, actor, remarks: str | None = None) -> Plan:
    """SUBMITTED → APPROVED. Approver, status and timestamp are written together."""
    with unit_of_work():
        plan = lock_plan_or_404(plan_id)
        _authorize(actor, Action.APPROVE, plan, PlanStatus.SUBMITTED)
        _require_transition(plan, PlanStatus.APPROVED)

        old_status = plan.status
        plan.status = PlanStatus.APPROVED.value
        plan.approved_by_id = actor.user_id
        plan.approved_at = datetime.now(timezone.utc)
        plan.approval_remarks = (remarks or "").strip() or None
        NotificationService.notify_plan_approved(plan)
        queue_audit(
            entity_type="plan", entity_id=plan.id, action="APPROVE",
            actor_user_id=actor.user_id,
            old_values={"status": old_status},
            new_values={
                "status": plan.status,
                "approved_by_id": actor.user_id,
                "approval_remarks": plan.approval_remarks,
            },
        )

    _log_transition(plan, old_status, actor)
    return plan


def reject_plan(plan_id: int, actor, reason: str | None) -> Plan:
    """SUBMITTED → REJECTED. A non-empty reason is mandatory."""
    with unit_of_work():
        plan = lock_plan_or_404(plan_id)
        _authorize(actor, Action.REJECT, plan, PlanStatus.SUBMITTED)
        reason = (reason or "").strip()
        if not reason:
            raise ValidationError("A rejection reason is required", details={"reason": "required"})
        _require_transition(plan, PlanStatus.REJECTED)

        old_status = plan.status
        plan.status = PlanStatus.REJECTED.value
        plan.rejected_at = datetime.now(timezone.utc)
        plan.rejection_reason = reason
        NotificationService.notify_plan_rejected(plan)
        queue_audit(
            entity_type="plan", entity_id=plan.id, action="REJECT",
            actor_user_id=actor.user_id,
            old_values={"status": old_status},
            new_values={"status": plan.status, "rejection_reason": reason},
        )

    _log_transition(plan, old_status, actor)
    return plan


def delete_plan(plan_id: int, actor) -> None:
    """Delete a DRAFT plan and all its children."""
    with unit_of_work():
        plan = lock_plan_or_404(plan_id)
        _authorize(actor, Action.DELETE, plan, PlanStatus.DRAFT)
        if plan.status != PlanStatus.DRAFT.value:
            raise ValidationError(
                f"wrong status: only DRAFT plans can be deleted (plan is {plan.status})",
                details={"status": plan.status},
            )
        old_values = snapshot(plan, _DELETE_AUDIT_FIELDS)
        db.session.delete(plan)
        queue_audit(
            entity_type="plan", entity_id=plan_id, action="DELETE",
            actor_user_id=actor.user_id, old_values=old_values,
        )

    logger.info("Plan %s deleted", plan_id, extra={"plan_id": plan_id, "user_id": actor.user_id})

"""
Disbursement Linking Module.

Associates line items of APPROVED plans with released disbursement
vouchers. A (plan, line item, voucher) triple links at most once: the
service rejects duplicates with ConflictError and the unique constraint on
``disbursement_links`` backs that check under concurrency.

Linking never changes plan totals.
"""

import logging

from flask import current_app
from sqlalchemy import String, cast, or_

from ppmp.core.exceptions import ConflictError, NotFoundError, ValidationError
from ppmp.models import db
from ppmp.models.disbursement import DisbursementLink, DisbursementVoucher
from ppmp.models.plan import LineItem, PlanStatus
from ppmp.services.helpers.unit_of_work import queue_audit, unit_of_work
from ppmp.services.permission import Action, PlanContext, check
from ppmp.services.plan_service import get_plan_or_404, load_plan
from ppmp.utils.helpers import parse_int

logger = logging.getLogger(__name__)

DEFAULT_SEARCH_LIMIT = 20


def _link_values(link: DisbursementLink) -> dict:
    return {
        "plan_id": link.plan_id,
        "line_item_id": link.line_item_id,
        "disbursement_id": link.disbursement_id,
    }


def link_disbursement(plan_id: int, line_item_id, disbursement_id, actor) -> DisbursementLink:
    """Link a line item of an APPROVED plan to a voucher."""
    plan = get_plan_or_404(plan_id)
    check(actor, Action.LINK_DISBURSEMENT, PlanContext.of(plan).at_status(PlanStatus.APPROVED))
    if plan.status != PlanStatus.APPROVED.value:
        raise ValidationError(
            f"Disbursements can only be linked to APPROVED plans (plan is {plan.status})",
            details={"status": plan.status},
        )

    line_item_id = parse_int(line_item_id, "line_item_id")
    disbursement_id = parse_int(disbursement_id, "disbursement_id")

    item = db.session.get(LineItem, line_item_id)
    if item is None or item.plan_id != plan.id:
        raise NotFoundError("LineItem", line_item_id)
    voucher = db.session.get(DisbursementVoucher, disbursement_id)
    if voucher is None:
        raise NotFoundError("DisbursementVoucher", disbursement_id)

    existing = DisbursementLink.query.filter_by(
        plan_id=plan.id, line_item_id=item.id, disbursement_id=voucher.id,
    ).first()
    if existing is not None:
        raise ConflictError(
            "DisbursementLink", "(plan_id, line_item_id, disbursement_id)",
            f"{plan.id}/{item.id}/{voucher.id}",
        )

    with unit_of_work("DisbursementLink", "(plan_id, line_item_id, disbursement_id)"):
        link = DisbursementLink(
            plan_id=plan.id,
            line_item_id=item.id,
            disbursement_id=voucher.id,
            linked_by_id=actor.user_id,
        )
        db.session.add(link)
        db.session.flush()
        queue_audit(
            entity_type="disbursement_link", entity_id=link.id, action="LINK_DISBURSEMENT",
            actor_user_id=actor.user_id,
            new_values={**_link_values(link), "dv_number": voucher.dv_number},
        )

    logger.info(
        "Voucher %s linked to item %s", voucher.dv_number, item.item_no,
        extra={"plan_id": plan.id, "item_id": item.id, "user_id": actor.user_id},
    )
    return link


def unlink_disbursement(plan_id: int, link_id: int, actor) -> None:
    """Remove a link. A link of another plan is reported as not found."""
    plan = get_plan_or_404(plan_id)
    check(actor, Action.LINK_DISBURSEMENT, PlanContext.of(plan).at_status(PlanStatus.APPROVED))
    link = db.session.get(DisbursementLink, link_id)
    if link is None or link.plan_id != plan.id:
        raise NotFoundError("DisbursementLink", link_id)

    with unit_of_work():
        old_values = _link_values(link)
        db.session.delete(link)
        queue_audit(
            entity_type="disbursement_link", entity_id=link_id, action="UNLINK_DISBURSEMENT",
            actor_user_id=actor.user_id, old_values=old_values,
        )

    logger.info(
        "Disbursement link %s removed", link_id,
        extra={"plan_id": plan.id, "user_id": actor.user_id},
    )


def list_links(plan_id: int, actor) -> list[DisbursementLink]:
    plan = load_plan(actor, plan_id, Action.VIEW)
    return (
        DisbursementLink.query.filter_by(plan_id=plan.id)
        .order_by(DisbursementLink.created_at.desc(), DisbursementLink.id.desc())
        .all()
    )


def search_disbursements(query: str | None = None, limit=None) -> list[DisbursementVoucher]:
    """Case-insensitive voucher search over payee, particulars and number."""
    cap = current_app.config.get("DISBURSEMENT_SEARCH_MAX", 50)
    try:
        limit = int(limit) if limit not in (None, "") else DEFAULT_SEARCH_LIMIT
    except (TypeError, ValueError):
        limit = DEFAULT_SEARCH_LIMIT
    limit = max(1, min(limit, cap))

    q = DisbursementVoucher.query
    if query and query.strip():
        term = f"%{query.strip()}%"
        q = q.filter(or_(
            DisbursementVoucher.payee.ilike(term),
            DisbursementVoucher.particulars.ilike(term),
            DisbursementVoucher.dv_number.ilike(term),
            cast(DisbursementVoucher.id, String).ilike(term),
        ))
    return (
        q.order_by(DisbursementVoucher.created_at.desc(), DisbursementVoucher.id.desc())
        .limit(limit)
        .all()
    )

"""
Purchase Request Service.

Offices raise purchase requests against the line items of their APPROVED
plans. A request is editable by its requester while DRAFT; ADMIN may edit it
in any status. Preparers work inside their own department; approvers and
viewers read everything.

Transaction policy: each write runs in one ``unit_of_work()`` with the
request row locked before the edit permission is evaluated.
"""

import logging

from sqlalchemy import or_

from ppmp.core.exceptions import (
    ConflictError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from ppmp.models import db
from ppmp.models.auth import Department, Role
from ppmp.models.plan import LineItem, PlanStatus
from ppmp.models.purchase_request import (
    PurchaseRequest,
    PurchaseRequestLine,
    PurchaseRequestStatus,
)
from ppmp.services.audit_service import changed_values, snapshot
from ppmp.services.helpers.unit_of_work import queue_audit, unit_of_work
from ppmp.services.permission import can_create_plan, can_list_plans, visible_department_scope
from ppmp.utils.helpers import parse_choice, parse_decimal, parse_int, require_text

logger = logging.getLogger(__name__)

REQUEST_AUDIT_FIELDS = ("pr_no", "purpose", "remarks", "ppmp_aligned", "status", "department_id")
LINE_AUDIT_FIELDS = ("purchase_request_id", "line_item_id", "unit", "quantity")

_TRUE = {"true", "1", "yes"}
_FALSE = {"false", "0", "no"}


def _parse_flag(value, field: str) -> bool:
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in _TRUE:
        return True
    if text in _FALSE:
        return False
    raise ValidationError(f"{field} must be true or false", details={field: "not a boolean"})


def _can_edit(actor, pr: PurchaseRequest) -> bool:
    if actor.role == Role.ADMIN:
        return True
    return (
        pr.status == PurchaseRequestStatus.DRAFT.value
        and pr.requested_by_id == actor.user_id
    )


def _check_visible(actor, pr: PurchaseRequest) -> None:
    if not can_list_plans(actor):
        raise PermissionDeniedError("view purchase request")
    scope = visible_department_scope(actor)
    if scope is not None and pr.department_id != scope:
        raise PermissionDeniedError(
            "view purchase request", reason="Purchase request belongs to another department",
        )


def _lock_for_edit(actor, request_id: int) -> PurchaseRequest:
    pr = (
        db.session.query(PurchaseRequest)
        .filter(PurchaseRequest.id == request_id)
        .with_for_update()
        .populate_existing()
        .one_or_none()
    )
    if pr is None:
        raise NotFoundError("PurchaseRequest", request_id)
    if not _can_edit(actor, pr):
        raise PermissionDeniedError(
            "edit purchase request",
            reason="Only the requester may edit a DRAFT purchase request",
        )
    return pr


def _approved_line_item(line_item_id) -> LineItem:
    item = db.session.get(LineItem, parse_int(line_item_id, "line_item_id"))
    if item is None:
        raise NotFoundError("LineItem", line_item_id)
    if item.plan.status != PlanStatus.APPROVED.value:
        raise ValidationError(
            f"Line item {item.item_no} belongs to a plan that is not APPROVED",
            details={"line_item_id": "plan not approved"},
        )
    return item


def _parse_line(data: dict) -> dict:
    item = _approved_line_item(data.get("line_item_id"))
    quantity = parse_decimal(data.get("quantity"), "quantity")
    if quantity <= 0:
        raise ValidationError("quantity must be positive", details={"quantity": "not positive"})
    unit = (data.get("unit") or "").strip() or item.unit
    if not unit:
        raise ValidationError("unit is required", details={"unit": "required"})
    return {"line_item_id": item.id, "unit": unit, "quantity": quantity}


# ── Queries ──────────────────────────────────────────────────────────────


def list_requests(actor, *, status=None, department_id=None, ppmp_aligned=None, search=None):
    """Query of purchase requests visible to *actor*, newest first."""
    if not can_list_plans(actor):
        raise PermissionDeniedError("list purchase requests")
    q = PurchaseRequest.query
    scope = visible_department_scope(actor)
    if scope is not None:
        q = q.filter(PurchaseRequest.department_id == scope)
    if status:
        q = q.filter(
            PurchaseRequest.status == parse_choice(status, "status", PurchaseRequestStatus).value,
        )
    if department_id not in (None, "", "all"):
        q = q.filter(PurchaseRequest.department_id == parse_int(department_id, "department_id"))
    if ppmp_aligned not in (None, ""):
        q = q.filter(PurchaseRequest.ppmp_aligned.is_(_parse_flag(ppmp_aligned, "ppmp_aligned")))
    if search:
        term = f"%{search.strip()}%"
        q = q.filter(or_(PurchaseRequest.pr_no.ilike(term), PurchaseRequest.purpose.ilike(term)))
    return q.order_by(PurchaseRequest.created_at.desc(), PurchaseRequest.id.desc())


def get_request(actor, request_id: int) -> PurchaseRequest:
    pr = db.session.get(PurchaseRequest, request_id)
    if pr is None:
        raise NotFoundError("PurchaseRequest", request_id)
    _check_visible(actor, pr)
    return pr


# ── Writes ───────────────────────────────────────────────────────────────


def create_request(actor, data: dict) -> PurchaseRequest:
    """Create a DRAFT purchase request, optionally with initial lines."""
    department_id = data.get("department_id") or actor.department_id
    if department_id is None:
        raise ValidationError("department_id is required", details={"department_id": "required"})
    department_id = parse_int(department_id, "department_id")
    if not can_create_plan(actor, department_id):
        raise PermissionDeniedError(
            "create purchase request",
            reason="Purchase requests can only be raised for your own department",
        )

    pr_no = require_text(data, "pr_no", max_len=50)
    lines = data.get("lines") or []
    if not isinstance(lines, list):
        raise ValidationError("lines must be a list", details={"lines": "not a list"})

    with unit_of_work("PurchaseRequest", "pr_no"):
        if db.session.get(Department, department_id) is None:
            raise NotFoundError("Department", department_id)
        if PurchaseRequest.query.filter_by(pr_no=pr_no).first() is not None:
            raise ConflictError("PurchaseRequest", "pr_no", pr_no)

        pr = PurchaseRequest(
            pr_no=pr_no,
            purpose=(data.get("purpose") or "").strip() or None,
            remarks=(data.get("remarks") or "").strip() or None,
            ppmp_aligned=_parse_flag(data.get("ppmp_aligned", False), "ppmp_aligned"),
            status=PurchaseRequestStatus.DRAFT.value,
            department_id=department_id,
            requested_by_id=actor.user_id,
        )
        for line in lines:
            pr.lines.append(PurchaseRequestLine(**_parse_line(line if isinstance(line, dict) else {})))
        db.session.add(pr)
        db.session.flush()
        queue_audit(
            entity_type="purchase_request", entity_id=pr.id, action="CREATE",
            actor_user_id=actor.user_id,
            new_values={**snapshot(pr, REQUEST_AUDIT_FIELDS), "line_count": len(pr.lines)},
        )

    logger.info(
        "Purchase request %s created", pr.pr_no,
        extra={"user_id": actor.user_id, "department_id": department_id},
    )
    return pr


def update_request(actor, request_id: int, data: dict) -> PurchaseRequest:
    """Edit purpose, remarks, the PPMP-aligned flag or the status."""
    with unit_of_work():
        pr = _lock_for_edit(actor, request_id)
        before = snapshot(pr, REQUEST_AUDIT_FIELDS)
        if "purpose" in data:
            pr.purpose = (data.get("purpose") or "").strip() or None
        if "remarks" in data:
            pr.remarks = (data.get("remarks") or "").strip() or None
        if "ppmp_aligned" in data:
            pr.ppmp_aligned = _parse_flag(data["ppmp_aligned"], "ppmp_aligned")
        if "status" in data:
            pr.status = parse_choice(data["status"], "status", PurchaseRequestStatus).value
        old, new = changed_values(before, snapshot(pr, REQUEST_AUDIT_FIELDS))
        if new:
            queue_audit(
                entity_type="purchase_request", entity_id=pr.id, action="UPDATE",
                actor_user_id=actor.user_id, old_values=old, new_values=new,
            )
    return pr


def delete_request(actor, request_id: int) -> None:
    with unit_of_work():
        pr = _lock_for_edit(actor, request_id)
        old_values = {**snapshot(pr, REQUEST_AUDIT_FIELDS), "line_count": len(pr.lines)}
        db.session.delete(pr)
        queue_audit(
            entity_type="purchase_request", entity_id=request_id, action="DELETE",
            actor_user_id=actor.user_id, old_values=old_values,
        )
    logger.info("Purchase request %s deleted", request_id, extra={"user_id": actor.user_id})


def list_lines(actor, request_id: int) -> list[PurchaseRequestLine]:
    return list(get_request(actor, request_id).lines)


def add_line(actor, request_id: int, data: dict) -> PurchaseRequestLine:
    """Add a requested quantity of an approved plan's line item."""
    with unit_of_work():
        pr = _lock_for_edit(actor, request_id)
        line = PurchaseRequestLine(purchase_request_id=pr.id, **_parse_line(data))
        db.session.add(line)
        db.session.flush()
        queue_audit(
            entity_type="purchase_request_line", entity_id=line.id, action="CREATE",
            actor_user_id=actor.user_id, new_values=snapshot(line, LINE_AUDIT_FIELDS),
        )
    return line


def delete_line(actor, request_id: int, line_id: int) -> None:
    with unit_of_work():
        pr = _lock_for_edit(actor, request_id)
        line = db.session.get(PurchaseRequestLine, line_id)
        if line is None or line.purchase_request_id != pr.id:
            raise NotFoundError("PurchaseRequestLine", line_id)
        old_values = snapshot(line, LINE_AUDIT_FIELDS)
        db.session.delete(line)
        queue_audit(
            entity_type="purchase_request_line", entity_id=line_id, action="DELETE",
            actor_user_id=actor.user_id, old_values=old_values,
        )

"""
Reporting Aggregator - read-only summaries over the plan collection.

Every function accepts the same optional filters:
    fiscal_year    int, or None / "all" for every year
    department_id  int, or None / "all" for every department
    actor          when given, preparers are narrowed to their department

Empty result sets produce zeros and empty lists, never errors. Money is
returned as Decimal; the blueprint serialises it as 2-place strings.
"""

import logging
from decimal import ROUND_HALF_UP, Decimal

from flask import current_app
from sqlalchemy import desc, func, select

from ppmp.core.exceptions import PermissionDeniedError
from ppmp.models import db
from ppmp.models.auth import Department, Role
from ppmp.models.disbursement import DisbursementLink, DisbursementVoucher
from ppmp.models.plan import LineItem, Plan, PlanStatus
from ppmp.services.permission import can_list_plans, can_view_reports, visible_department_scope
from ppmp.utils.helpers import CENT, decimal_str, parse_int

logger = logging.getLogger(__name__)

ALL = "all"


def _money(value) -> Decimal:
    return Decimal(str(value or 0)).quantize(CENT, rounding=ROUND_HALF_UP)


def _normalise_filter(value, field):
    if value in (None, "", ALL):
        return None
    return parse_int(value, field)


def _plan_conditions(fiscal_year=None, department_id=None, actor=None) -> list:
    conditions = []
    year = _normalise_filter(fiscal_year, "fiscal_year")
    dept = _normalise_filter(department_id, "department_id")
    if year is not None:
        conditions.append(Plan.fiscal_year == year)
    if dept is not None:
        conditions.append(Plan.department_id == dept)
    if actor is not None:
        scope = visible_department_scope(actor)
        if scope is not None:
            conditions.append(Plan.department_id == scope)
    return conditions


# ═════════════════════════════════════════════════════════════════════════════
# Individual aggregates
# ═════════════════════════════════════════════════════════════════════════════


def status_distribution(fiscal_year=None, department_id=None, actor=None) -> list[dict]:
    """Count and percentage for every status, zero counts included."""
    rows = db.session.execute(
        select(Plan.status, func.count(Plan.id))
        .where(*_plan_conditions(fiscal_year, department_id, actor))
        .group_by(Plan.status)
    ).all()
    counts = {status: count for status, count in rows}
    total = sum(counts.values())

    result = []
    for status in PlanStatus:
        count = counts.get(status.value, 0)
        pct = round(count * 100.0 / total, 2) if total else 0.0
        result.append({"status": status.value, "count": count, "percentage": pct})
    return result


def department_summary(fiscal_year=None, department_id=None, actor=None) -> list[dict]:
    rows = db.session.execute(
        select(
            Department.id, Department.name,
            func.count(Plan.id),
            func.coalesce(func.sum(Plan.total_estimated_budget), 0),
        )
        .join(Plan, Plan.department_id == Department.id)
        .where(*_plan_conditions(fiscal_year, department_id, actor))
        .group_by(Department.id, Department.name)
        .order_by(Department.name)
    ).all()
    return [
        {"department_id": dept_id, "department": name, "count": count, "total_budget": _money(total)}
        for dept_id, name, count, total in rows
    ]


def fiscal_year_summary(fiscal_year=None, department_id=None, actor=None) -> list[dict]:
    rows = db.session.execute(
        select(
            Plan.fiscal_year,
            func.count(Plan.id),
            func.coalesce(func.sum(Plan.total_estimated_budget), 0),
        )
        .where(*_plan_conditions(fiscal_year, department_id, actor))
        .group_by(Plan.fiscal_year)
        .order_by(desc(Plan.fiscal_year))
    ).all()
    return [
        {"year": year, "count": count, "total_budget": _money(total)}
        for year, count, total in rows
    ]


def procurement_method_breakdown(fiscal_year=None, department_id=None, actor=None) -> list[dict]:
    """Count and total item cost per procurement method over filtered plans' items."""
    rows = db.session.execute(
        select(
            LineItem.procurement_method,
            func.count(LineItem.id),
            func.coalesce(func.sum(LineItem.total_cost), 0),
        )
        .join(Plan, LineItem.plan_id == Plan.id)
        .where(*_plan_conditions(fiscal_year, department_id, actor))
        .group_by(LineItem.procurement_method)
        .order_by(LineItem.procurement_method)
    ).all()
    return [
        {"method": method, "count": count, "total_value": _money(total)}
        for method, count, total in rows
    ]


def top_items(limit=None, fiscal_year=None, department_id=None, actor=None) -> list[dict]:
    """The highest-total_cost line items of filtered plans."""
    if limit is None:
        limit = current_app.config.get("REPORT_TOP_ITEMS_LIMIT", 10)
    rows = db.session.execute(
        select(LineItem, Plan.title)
        .join(Plan, LineItem.plan_id == Plan.id)
        .where(*_plan_conditions(fiscal_year, department_id, actor))
        .order_by(desc(LineItem.total_cost), LineItem.id)
        .limit(limit)
    ).all()
    return [
        {
            "id": item.id,
            "plan_id": item.plan_id,
            "plan_title": plan_title,
            "item_no": item.item_no,
            "description": item.description,
            "procurement_method": item.procurement_method,
            "total_cost": _money(item.total_cost),
        }
        for item, plan_title in rows
    ]


def utilization(fiscal_year=None, department_id=None, actor=None) -> dict:
    """Utilized = Σ amount of DISTINCT vouchers linked from filtered plans.

    ``utilization_rate`` is a percentage of the total estimated budget.

    A voucher linked to several items (or several plans in the filter)
    counts once.
    """
    conditions = _plan_conditions(fiscal_year, department_id, actor)
    total_budget = _money(db.session.execute(
        select(func.coalesce(func.sum(Plan.total_estimated_budget), 0)).where(*conditions)
    ).scalar_one())

    linked_vouchers = (
        select(DisbursementLink.disbursement_id)
        .join(Plan, DisbursementLink.plan_id == Plan.id)
        .where(*conditions)
        .distinct()
    )
    utilized = _money(db.session.execute(
        select(func.coalesce(func.sum(DisbursementVoucher.amount), 0))
        .where(DisbursementVoucher.id.in_(linked_vouchers))
    ).scalar_one())

    rate = Decimal("0.00")
    if total_budget:
        rate = (utilized / total_budget * 100).quantize(CENT, rounding=ROUND_HALF_UP)
    return {"total_budget": total_budget, "utilized_budget": utilized, "utilization_rate": rate}


# ═════════════════════════════════════════════════════════════════════════════
# Combined report
# ═════════════════════════════════════════════════════════════════════════════


def build_report(fiscal_year=None, department_id=None, actor=None) -> dict:
    if actor is not None and not can_view_reports(actor):
        raise PermissionDeniedError("view reports")
    filters = {"fiscal_year": fiscal_year, "department_id": department_id, "actor": actor}

    by_status = status_distribution(**filters)
    util = utilization(**filters)
    total_allocated = _money(db.session.execute(
        select(func.coalesce(func.sum(Plan.total_allocated_budget), 0))
        .where(*_plan_conditions(fiscal_year, department_id, actor))
    ).scalar_one())

    report = {
        "summary": {
            "total_ppmp": sum(s["count"] for s in by_status),
            "approved_ppmp": next(
                s["count"] for s in by_status if s["status"] == PlanStatus.APPROVED.value
            ),
            "total_budget": util["total_budget"],
            "total_allocated": total_allocated,
            "utilized_budget": util["utilized_budget"],
            "utilization_rate": util["utilization_rate"],
        },
        "by_status": by_status,
        "by_department": department_summary(**filters),
        "by_fiscal_year": fiscal_year_summary(**filters),
        "procurement_methods": procurement_method_breakdown(**filters),
        "top_items": top_items(**filters),
    }
    logger.debug("Report built", extra={"fiscal_year": fiscal_year, "department_id": department_id})
    return report


def serialise(value):
    """Recursively render Decimals as 2-place strings for JSON."""
    if isinstance(value, Decimal):
        return decimal_str(value)
    if isinstance(value, dict):
        return {k: serialise(v) for k, v in value.items()}
    if isinstance(value, list):
        return [serialise(v) for v in value]
    return value


# ═════════════════════════════════════════════════════════════════════════════
# Dashboard
# ═════════════════════════════════════════════════════════════════════════════


def _visible_plans(actor):
    if not can_list_plans(actor):
        raise PermissionDeniedError("list plans")
    q = Plan.query
    scope = visible_department_scope(actor)
    if scope is not None:
        q = q.filter(Plan.department_id == scope)
    return q


def plan_stats(actor) -> dict:
    """Plan counts per status plus the total, within the actor's scope."""
    q = _visible_plans(actor)
    rows = (
        q.with_entities(Plan.status, func.count(Plan.id))
        .group_by(Plan.status)
        .all()
    )
    counts = {status.value.lower(): 0 for status in PlanStatus}
    for status, count in rows:
        counts[status.lower()] = count
    counts["total"] = sum(counts.values())
    return counts


def recent_plans(actor, limit=10) -> list[Plan]:
    return (
        _visible_plans(actor)
        .order_by(Plan.updated_at.desc(), Plan.id.desc())
        .limit(limit)
        .all()
    )


def pending_approvals(actor) -> list[Plan]:
    """SUBMITTED plans, oldest submission first. Approval-capable roles only."""
    if not (actor.is_approver or actor.role == Role.ADMIN):
        raise PermissionDeniedError("view pending approvals")
    return (
        Plan.query.filter(Plan.status == PlanStatus.SUBMITTED.value)
        .order_by(Plan.submitted_at.asc(), Plan.id.asc())
        .all()
    )

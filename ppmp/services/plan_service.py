"""
Plan Service - plans and their child records.

Covers plan create/list/read/update and CRUD for line items, budget
allocations and procurement activities, plus the product catalog.
Lifecycle transitions (submit/approve/reject/delete) live in
``plan_lifecycle``.

Every operation takes an explicit ``Actor``. Writes run inside one
``unit_of_work()`` that locks the plan row before asking the permission
matrix, so the status the check sees is the one the write commits against.
Child writes that move money recompute the parent total in the same
transaction.

Children are always resolved through their parent: a line item id that
exists but belongs to another plan is reported as not found.
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
from ppmp.models.plan import (
    MONTH_FIELDS,
    SCHEDULE_FIELDS,
    ActivityStatus,
    BudgetAllocation,
    ItemCategory,
    LineItem,
    Plan,
    PlanStatus,
    ProcurementActivity,
    ProcurementMethod,
    Product,
)
from ppmp.services.aggregates import (
    compute_line_total,
    recompute_allocated_total,
    recompute_estimated_total,
)
from ppmp.services.audit_service import changed_values, snapshot
from ppmp.services.helpers.unit_of_work import queue_audit, unit_of_work
from ppmp.services.permission import (
    Action,
    PlanContext,
    can_create_plan,
    can_list_plans,
    check,
    visible_department_scope,
)
from ppmp.utils.helpers import (
    parse_choice,
    parse_date_input,
    parse_decimal,
    parse_int,
    parse_optional_decimal,
    require_text,
)

logger = logging.getLogger(__name__)

MIN_FISCAL_YEAR = 2000
MAX_FISCAL_YEAR = 2100
MAX_QUANTITY = 1_000_000_000

PLAN_AUDIT_FIELDS = (
    "title", "description", "fiscal_year", "status", "department_id", "prepared_by_id",
)
ITEM_AUDIT_FIELDS = (
    "item_no", "category", "description", "quantity", "unit", "unit_cost", "total_cost",
    "procurement_method", "product_id", "remarks",
) + SCHEDULE_FIELDS + MONTH_FIELDS
ALLOCATION_AUDIT_FIELDS = ("budget_code", "description", "allocated_amount", "expended_amount")
ACTIVITY_AUDIT_FIELDS = (
    "activity", "start_date", "end_date", "responsible_unit", "status", "line_item_id",
)


# ═════════════════════════════════════════════════════════════════════════════
# Lookup helpers
# ═════════════════════════════════════════════════════════════════════════════


def get_plan_or_404(plan_id: int) -> Plan:
    plan = db.session.get(Plan, plan_id)
    if plan is None:
        raise NotFoundError("Plan", plan_id)
    return plan


def load_plan(actor, plan_id: int, action: Action) -> Plan:
    """Fetch a plan and assert *actor* may perform *action* on it."""
    plan = get_plan_or_404(plan_id)
    check(actor, action, PlanContext.of(plan))
    return plan


def lock_plan_or_404(plan_id: int) -> Plan:
    """Load a plan with its row locked until the current transaction ends."""
    plan = (
        db.session.query(Plan)
        .filter(Plan.id == plan_id)
        .with_for_update()
        .populate_existing()
        .one_or_none()
    )
    if plan is None:
        raise NotFoundError("Plan", plan_id)
    return plan


def lock_plan(actor, plan_id: int, action: Action) -> Plan:
    """Lock a plan and assert *actor* may perform *action* on it.

    Call inside ``unit_of_work()`` so the status the check saw cannot change
    before the write commits.
    """
    plan = lock_plan_or_404(plan_id)
    check(actor, action, PlanContext.of(plan))
    return plan


def _child_or_404(model, child_id: int, plan_id: int, resource: str):
    obj = db.session.get(model, child_id)
    if obj is None or obj.plan_id != plan_id:
        raise NotFoundError(resource, child_id)
    return obj


def _parse_fiscal_year(value) -> int:
    year = parse_int(value, "fiscal_year")
    if not MIN_FISCAL_YEAR <= year <= MAX_FISCAL_YEAR:
        raise ValidationError(
            f"fiscal_year must be between {MIN_FISCAL_YEAR} and {MAX_FISCAL_YEAR}",
            details={"fiscal_year": "out of range"},
        )
    return year


# ═════════════════════════════════════════════════════════════════════════════
# Plans
# ═════════════════════════════════════════════════════════════════════════════


def create_plan(actor, data: dict) -> Plan:
    """Create a DRAFT plan owned by *actor* for a department."""
    department_id = data.get("department_id") or actor.department_id
    if department_id is None:
        raise ValidationError("department_id is required", details={"department_id": "required"})
    department_id = parse_int(department_id, "department_id")

    if not can_create_plan(actor, department_id):
        raise PermissionDeniedError(
            "create plan", reason="Plans can only be created for your own department",
        )

    title = require_text(data, "title", max_len=300)
    fiscal_year = _parse_fiscal_year(data.get("fiscal_year"))
    if db.session.get(Department, department_id) is None:
        raise NotFoundError("Department", department_id)

    with unit_of_work():
        plan = Plan(
            title=title,
            description=(data.get("description") or "").strip(),
            fiscal_year=fiscal_year,
            status=PlanStatus.DRAFT.value,
            department_id=department_id,
            prepared_by_id=actor.user_id,
            total_estimated_budget=0,
            total_allocated_budget=0,
        )
        db.session.add(plan)
        db.session.flush()
        queue_audit(
            entity_type="plan", entity_id=plan.id, action="CREATE",
            actor_user_id=actor.user_id, new_values=snapshot(plan, PLAN_AUDIT_FIELDS),
        )

    logger.info(
        "Plan created: %s", plan.title,
        extra={"plan_id": plan.id, "user_id": actor.user_id, "department_id": department_id},
    )
    return plan


def list_plans(actor, *, status=None, fiscal_year=None, department_id=None, search=None):
    """Query of plans visible to *actor*, newest first."""
    if not can_list_plans(actor):
        raise PermissionDeniedError("list plans")

    q = Plan.query
    scope = visible_department_scope(actor)
    if scope is not None:
        q = q.filter(Plan.department_id == scope)
    if status:
        q = q.filter(Plan.status == parse_choice(status, "status", PlanStatus).value)
    if fiscal_year not in (None, "", "all"):
        q = q.filter(Plan.fiscal_year == parse_int(fiscal_year, "fiscal_year"))
    if department_id not in (None, "", "all"):
        q = q.filter(Plan.department_id == parse_int(department_id, "department_id"))
    if search:
        term = f"%{search.strip()}%"
        q = q.filter(or_(Plan.title.ilike(term), Plan.description.ilike(term)))
    return q.order_by(Plan.created_at.desc(), Plan.id.desc())


def get_plan(actor, plan_id: int) -> Plan:
    return load_plan(actor, plan_id, Action.VIEW)


def update_plan(actor, plan_id: int, data: dict) -> Plan:
    """Edit title/description/fiscal_year. Totals and status are not writable here."""
    with unit_of_work():
        plan = lock_plan(actor, plan_id, Action.EDIT)

        if "status" in data:
            raise ValidationError(
                "Status changes go through submit/approve/reject",
                details={"status": "read-only"},
            )

        updates = {}
        if "title" in data:
            updates["title"] = require_text(data, "title", max_len=300)
        if "description" in data:
            updates["description"] = (data.get("description") or "").strip()
        if "fiscal_year" in data:
            updates["fiscal_year"] = _parse_fiscal_year(data["fiscal_year"])

        before = snapshot(plan, PLAN_AUDIT_FIELDS)
        for field, value in updates.items():
            setattr(plan, field, value)
        old, new = changed_values(before, snapshot(plan, PLAN_AUDIT_FIELDS))
        if new:
            queue_audit(
                entity_type="plan", entity_id=plan.id, action="UPDATE",
                actor_user_id=actor.user_id, old_values=old, new_values=new,
            )
    return plan


# ═════════════════════════════════════════════════════════════════════════════
# Line items
# ═════════════════════════════════════════════════════════════════════════════


def _product_or_404(product_id):
    product = db.session.get(Product, parse_int(product_id, "product_id"))
    if product is None:
        raise NotFoundError("Product", product_id)
    return product


def _check_date_order(start, end, start_field, end_field, *, strict=False):
    if start is None or end is None:
        return
    if end < start or (strict and end == start):
        word = "after" if strict else "on or after"
        raise ValidationError(
            f"{end_field} must be {word} {start_field}",
            details={end_field: "before start"},
        )


def _parse_item_fields(data: dict, *, partial: bool) -> dict:
    """Validate line item input. ``partial`` parses only the keys present."""
    values = {}

    def wanted(field):
        return not partial or field in data

    if wanted("item_no"):
        values["item_no"] = require_text(data, "item_no", max_len=30)
    if wanted("category"):
        values["category"] = parse_choice(data.get("category"), "category", ItemCategory).value
    if wanted("description"):
        values["description"] = require_text(data, "description")
    if wanted("quantity"):
        values["quantity"] = parse_int(data.get("quantity"), "quantity", max_value=MAX_QUANTITY)
    if wanted("unit"):
        values["unit"] = require_text(data, "unit", max_len=30)
    if wanted("unit_cost"):
        values["unit_cost"] = parse_decimal(data.get("unit_cost"), "unit_cost")
    if wanted("procurement_method"):
        values["procurement_method"] = parse_choice(
            data.get("procurement_method"), "procurement_method", ProcurementMethod,
        ).value
    if "remarks" in data:
        values["remarks"] = (data.get("remarks") or "").strip() or None
    if "product_id" in data:
        values["product_id"] = (
            _product_or_404(data["product_id"]).id if data["product_id"] not in (None, "") else None
        )

    schedule = data.get("schedule") if isinstance(data.get("schedule"), dict) else data
    for field in SCHEDULE_FIELDS:
        if field in schedule:
            values[field] = parse_date_input(schedule[field], field)

    monthly = data.get("monthly") if isinstance(data.get("monthly"), dict) else data
    for month in MONTH_FIELDS:
        if month in monthly:
            values[month] = parse_optional_decimal(monthly[month], month)
    return values


def _apply_product_defaults(data: dict) -> dict:
    """Fill description/unit/unit_cost from the referenced catalog product."""
    if data.get("product_id") in (None, ""):
        return data
    product = _product_or_404(data["product_id"])
    merged = dict(data)
    if not merged.get("description"):
        merged["description"] = product.description
    if not merged.get("unit") and product.unit:
        merged["unit"] = product.unit
    if merged.get("unit_cost") in (None, "") and product.default_unit_cost is not None:
        merged["unit_cost"] = product.default_unit_cost
    return merged


def _validate_item_schedule(item: LineItem) -> None:
    _check_date_order(item.start_date, item.end_date, "start_date", "end_date")
    _check_date_order(
        item.procurement_start, item.procurement_end, "procurement_start", "procurement_end",
    )


def _ensure_unique_item_no(plan_id: int, item_no: str, exclude_id=None) -> None:
    q = LineItem.query.filter(LineItem.plan_id == plan_id, LineItem.item_no == item_no)
    if exclude_id is not None:
        q = q.filter(LineItem.id != exclude_id)
    if db.session.query(q.exists()).scalar():
        raise ConflictError("LineItem", "item_no", item_no)


def list_items(actor, plan_id: int) -> list[LineItem]:
    plan = load_plan(actor, plan_id, Action.VIEW)
    return list(plan.items)


def add_item(actor, plan_id: int, data: dict) -> LineItem:
    with unit_of_work("LineItem", "item_no"):
        plan = lock_plan(actor, plan_id, Action.ADD_CHILD)
        values = _parse_item_fields(_apply_product_defaults(data), partial=False)
        _ensure_unique_item_no(plan.id, values["item_no"])

        item = LineItem(plan_id=plan.id, **values)
        _validate_item_schedule(item)
        item.total_cost = compute_line_total(item.quantity, item.unit_cost)
        db.session.add(item)
        recompute_estimated_total(plan)
        queue_audit(
            entity_type="line_item", entity_id=item.id, action="CREATE",
            actor_user_id=actor.user_id, new_values=snapshot(item, ITEM_AUDIT_FIELDS),
        )

    logger.info(
        "Line item %s added", item.item_no,
        extra={"plan_id": plan.id, "item_id": item.id, "total_cost": str(item.total_cost)},
    )
    return item


def update_item(actor, plan_id: int, item_id: int, data: dict) -> LineItem:
    with unit_of_work("LineItem", "item_no"):
        plan = lock_plan(actor, plan_id, Action.EDIT)
        item = _child_or_404(LineItem, item_id, plan.id, "LineItem")
        values = _parse_item_fields(data, partial=True)
        if "item_no" in values and values["item_no"] != item.item_no:
            _ensure_unique_item_no(plan.id, values["item_no"], exclude_id=item.id)

        before = snapshot(item, ITEM_AUDIT_FIELDS)
        for field, value in values.items():
            setattr(item, field, value)
        _validate_item_schedule(item)
        item.total_cost = compute_line_total(item.quantity, item.unit_cost)
        recompute_estimated_total(plan)
        old, new = changed_values(before, snapshot(item, ITEM_AUDIT_FIELDS))
        if new:
            queue_audit(
                entity_type="line_item", entity_id=item.id, action="UPDATE",
                actor_user_id=actor.user_id, old_values=old, new_values=new,
            )
    return item


def delete_item(actor, plan_id: int, item_id: int) -> None:
    with unit_of_work():
        plan = lock_plan(actor, plan_id, Action.EDIT)
        item = _child_or_404(LineItem, item_id, plan.id, "LineItem")
        old_values = snapshot(item, ITEM_AUDIT_FIELDS)
        db.session.delete(item)
        recompute_estimated_total(plan)
        queue_audit(
            entity_type="line_item", entity_id=item_id, action="DELETE",
            actor_user_id=actor.user_id, old_values=old_values,
        )


# ═════════════════════════════════════════════════════════════════════════════
# Budget allocations
# ═════════════════════════════════════════════════════════════════════════════


def _parse_allocation_fields(data: dict, *, partial: bool) -> dict:
    values = {}
    if not partial or "budget_code" in data:
        values["budget_code"] = require_text(data, "budget_code", max_len=50)
    if not partial or "description" in data:
        values["description"] = require_text(data, "description")
    if not partial or "allocated_amount" in data:
        values["allocated_amount"] = parse_decimal(data.get("allocated_amount"), "allocated_amount")
    if "expended_amount" in data:
        values["expended_amount"] = parse_decimal(data.get("expended_amount"), "expended_amount")
    return values


def list_allocations(actor, plan_id: int) -> list[BudgetAllocation]:
    plan = load_plan(actor, plan_id, Action.VIEW)
    return list(plan.budget_allocations)


def add_allocation(actor, plan_id: int, data: dict) -> BudgetAllocation:
    with unit_of_work():
        plan = lock_plan(actor, plan_id, Action.ADD_CHILD)
        values = _parse_allocation_fields(data, partial=False)
        values.setdefault("expended_amount", 0)

        allocation = BudgetAllocation(plan_id=plan.id, **values)
        db.session.add(allocation)
        recompute_allocated_total(plan)
        queue_audit(
            entity_type="budget_allocation", entity_id=allocation.id, action="CREATE",
            actor_user_id=actor.user_id,
            new_values=snapshot(allocation, ALLOCATION_AUDIT_FIELDS),
        )
    return allocation


def update_allocation(actor, plan_id: int, allocation_id: int, data: dict) -> BudgetAllocation:
    with unit_of_work():
        plan = lock_plan(actor, plan_id, Action.EDIT)
        allocation = _child_or_404(BudgetAllocation, allocation_id, plan.id, "BudgetAllocation")
        values = _parse_allocation_fields(data, partial=True)

        before = snapshot(allocation, ALLOCATION_AUDIT_FIELDS)
        for field, value in values.items():
            setattr(allocation, field, value)
        recompute_allocated_total(plan)
        old, new = changed_values(before, snapshot(allocation, ALLOCATION_AUDIT_FIELDS))
        if new:
            queue_audit(
                entity_type="budget_allocation", entity_id=allocation.id, action="UPDATE",
                actor_user_id=actor.user_id, old_values=old, new_values=new,
            )
    return allocation


def delete_allocation(actor, plan_id: int, allocation_id: int) -> None:
    with unit_of_work():
        plan = lock_plan(actor, plan_id, Action.EDIT)
        allocation = _child_or_404(BudgetAllocation, allocation_id, plan.id, "BudgetAllocation")
        old_values = snapshot(allocation, ALLOCATION_AUDIT_FIELDS)
        db.session.delete(allocation)
        recompute_allocated_total(plan)
        queue_audit(
            entity_type="budget_allocation", entity_id=allocation_id, action="DELETE",
            actor_user_id=actor.user_id, old_values=old_values,
        )


# ═════════════════════════════════════════════════════════════════════════════
# Procurement activities
# ═════════════════════════════════════════════════════════════════════════════


def _parse_activity_fields(data: dict, plan_id: int, *, partial: bool) -> dict:
    values = {}
    if not partial or "activity" in data:
        values["activity"] = require_text(data, "activity", max_len=300)
    for field in ("start_date", "end_date"):
        if not partial or field in data:
            parsed = parse_date_input(data.get(field), field)
            if parsed is None:
                raise ValidationError(f"{field} is required", details={field: "required"})
            values[field] = parsed
    if not partial or "responsible_unit" in data:
        values["responsible_unit"] = require_text(data, "responsible_unit", max_len=200)
    if "status" in data:
        values["status"] = parse_choice(data.get("status"), "status", ActivityStatus).value
    if "line_item_id" in data:
        raw = data.get("line_item_id")
        values["line_item_id"] = (
            None if raw in (None, "")
            else _child_or_404(LineItem, parse_int(raw, "line_item_id"), plan_id, "LineItem").id
        )
    return values


def list_activities(actor, plan_id: int) -> list[ProcurementActivity]:
    plan = load_plan(actor, plan_id, Action.VIEW)
    return list(plan.activities)


def add_activity(actor, plan_id: int, data: dict) -> ProcurementActivity:
    with unit_of_work():
        plan = lock_plan(actor, plan_id, Action.ADD_CHILD)
        values = _parse_activity_fields(data, plan.id, partial=False)
        values.setdefault("status", ActivityStatus.PLANNED.value)
        _check_date_order(values["start_date"], values["end_date"], "start_date", "end_date", strict=True)

        activity = ProcurementActivity(plan_id=plan.id, **values)
        db.session.add(activity)
        db.session.flush()
        queue_audit(
            entity_type="procurement_activity", entity_id=activity.id, action="CREATE",
            actor_user_id=actor.user_id, new_values=snapshot(activity, ACTIVITY_AUDIT_FIELDS),
        )
    return activity


def update_activity(actor, plan_id: int, activity_id: int, data: dict) -> ProcurementActivity:
    with unit_of_work():
        plan = lock_plan(actor, plan_id, Action.EDIT)
        activity = _child_or_404(ProcurementActivity, activity_id, plan.id, "ProcurementActivity")
        values = _parse_activity_fields(data, plan.id, partial=True)
        _check_date_order(
            values.get("start_date", activity.start_date),
            values.get("end_date", activity.end_date),
            "start_date", "end_date", strict=True,
        )

        before = snapshot(activity, ACTIVITY_AUDIT_FIELDS)
        for field, value in values.items():
            setattr(activity, field, value)
        old, new = changed_values(before, snapshot(activity, ACTIVITY_AUDIT_FIELDS))
        if new:
            queue_audit(
                entity_type="procurement_activity", entity_id=activity.id, action="UPDATE",
                actor_user_id=actor.user_id, old_values=old, new_values=new,
            )
    return activity


def delete_activity(actor, plan_id: int, activity_id: int) -> None:
    with unit_of_work():
        plan = lock_plan(actor, plan_id, Action.EDIT)
        activity = _child_or_404(ProcurementActivity, activity_id, plan.id, "ProcurementActivity")
        old_values = snapshot(activity, ACTIVITY_AUDIT_FIELDS)
        db.session.delete(activity)
        queue_audit(
            entity_type="procurement_activity", entity_id=activity_id, action="DELETE",
            actor_user_id=actor.user_id, old_values=old_values,
        )


# ═════════════════════════════════════════════════════════════════════════════
# Product catalog
# ═════════════════════════════════════════════════════════════════════════════


def list_products(search=None, limit=100):
    q = Product.query
    if search:
        q = q.filter(Product.description.ilike(f"%{search.strip()}%"))
    return q.order_by(Product.description).limit(limit).all()


def create_product(actor, data: dict) -> Product:
    """Add a catalog entry. ADMIN and preparers maintain the catalog."""
    if actor.role not in (Role.ADMIN, Role.PPMP_PREPARER):
        raise PermissionDeniedError("create product")
    description = require_text(data, "description", max_len=300)
    if Product.query.filter(Product.description == description).first() is not None:
        raise ConflictError("Product", "description", description)

    with unit_of_work("Product", "description"):
        product = Product(
            description=description,
            unit=(data.get("unit") or "").strip() or None,
            default_unit_cost=parse_optional_decimal(data.get("default_unit_cost"), "default_unit_cost"),
        )
        db.session.add(product)
        db.session.flush()
        queue_audit(
            entity_type="product", entity_id=product.id, action="CREATE",
            actor_user_id=actor.user_id,
            new_values={"description": product.description, "unit": product.unit},
        )
    return product

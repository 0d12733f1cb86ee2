"""
Aggregate Consistency Engine.

Keeps the two denormalised plan totals equal to the sum of their children:

    Plan.total_estimated_budget == Σ LineItem.total_cost
    Plan.total_allocated_budget == Σ BudgetAllocation.allocated_amount

Call the recompute helpers inside the same ``unit_of_work()`` as the child
write that triggered them. The plan row is locked first (``FOR UPDATE`` on
PostgreSQL; SQLite serialises writers on its own) and pending child writes
are flushed, so the SUM always reflects the surviving children of this
transaction and concurrent writers on the same plan queue behind the lock.
"""

from decimal import Decimal

from sqlalchemy import func, select

from ppmp.models import db
from ppmp.models.plan import BudgetAllocation, LineItem, Plan
from ppmp.utils.helpers import ensure_money


def compute_line_total(quantity, unit_cost) -> Decimal:
    """quantity × unit_cost, quantised to centavos.

    Raises ValidationError when the product does not fit a money column.
    """
    return ensure_money(Decimal(int(quantity)) * Decimal(str(unit_cost)), "total_cost")


def _to_money(value, field: str) -> Decimal:
    return ensure_money(Decimal(str(value or 0)), field)


def _lock_plan(plan: Plan) -> None:
    db.session.flush()
    db.session.execute(
        select(Plan.id).where(Plan.id == plan.id).with_for_update()
    )


def _sum_children(column, fk_column, plan_id: int, field: str) -> Decimal:
    total = db.session.execute(
        select(func.coalesce(func.sum(column), 0)).where(fk_column == plan_id)
    ).scalar_one()
    return _to_money(total, field)


def recompute_estimated_total(plan: Plan) -> Decimal:
    _lock_plan(plan)
    plan.total_estimated_budget = _sum_children(
        LineItem.total_cost, LineItem.plan_id, plan.id, "total_estimated_budget",
    )
    return plan.total_estimated_budget


def recompute_allocated_total(plan: Plan) -> Decimal:
    _lock_plan(plan)
    plan.total_allocated_budget = _sum_children(
        BudgetAllocation.allocated_amount, BudgetAllocation.plan_id, plan.id, "total_allocated_budget",
    )
    return plan.total_allocated_budget


def recompute_plan_totals(plan: Plan) -> tuple[Decimal, Decimal]:
    return recompute_estimated_total(plan), recompute_allocated_total(plan)

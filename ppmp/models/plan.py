"""
PPMP Administration Service
Procurement plan domain models.

Models:
    - Plan: one department's PPMP for a fiscal year
    - LineItem: one procurement entry within a plan
    - Product: master catalog entry a line item may reference
    - BudgetAllocation: funding line backing a plan
    - ProcurementActivity: scheduled milestone, optionally tied to a line item

Plan lifecycle (PLAN_TRANSITIONS):
    DRAFT -> SUBMITTED
    SUBMITTED -> APPROVED | REJECTED
    APPROVED, REJECTED -> (terminal)

``Plan.total_estimated_budget`` and ``Plan.total_allocated_budget`` are
denormalised sums maintained by ``ppmp.services.aggregates``; nothing else
writes them.
"""

from datetime import datetime, timezone
from enum import Enum

from ppmp.models import db
from ppmp.utils.helpers import decimal_str, iso


# ── Enumerations ─────────────────────────────────────────────────────────────


class PlanStatus(str, Enum):
    DRAFT = "DRAFT"
    SUBMITTED = "SUBMITTED"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


class ItemCategory(str, Enum):
    GOODS = "GOODS"
    INFRASTRUCTURE = "INFRASTRUCTURE"
    CONSULTING_SERVICES = "CONSULTING_SERVICES"
    GENERAL_SERVICES = "GENERAL_SERVICES"
    OTHERS = "OTHERS"


class ProcurementMethod(str, Enum):
    COMPETITIVE_BIDDING = "COMPETITIVE_BIDDING"
    SHOPPING = "SHOPPING"
    NEGOTIATED_PROCUREMENT = "NEGOTIATED_PROCUREMENT"
    DIRECT_CONTRACTING = "DIRECT_CONTRACTING"
    REPEAT_ORDER = "REPEAT_ORDER"


class ActivityStatus(str, Enum):
    PLANNED = "PLANNED"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    DELAYED = "DELAYED"
    CANCELLED = "CANCELLED"


# Monthly breakdown columns on LineItem, in calendar order.
MONTH_FIELDS = (
    "jan", "feb", "march", "april", "may", "june",
    "july", "august", "sept", "oct", "nov", "dec",
)

SCHEDULE_FIELDS = ("start_date", "end_date", "procurement_start", "procurement_end", "delivery_date")


# ── State machine ────────────────────────────────────────────────────────────

PLAN_TRANSITIONS = {
    PlanStatus.DRAFT: {PlanStatus.SUBMITTED},
    PlanStatus.SUBMITTED: {PlanStatus.APPROVED, PlanStatus.REJECTED},
    PlanStatus.APPROVED: set(),
    PlanStatus.REJECTED: set(),
}


def validate_plan_transition(old_status, new_status) -> bool:
    """Return True if old_status -> new_status is a legal plan transition."""
    try:
        old, new = PlanStatus(old_status), PlanStatus(new_status)
    except ValueError:
        return False
    return new in PLAN_TRANSITIONS[old]


def _now():
    return datetime.now(timezone.utc)


# ═════════════════════════════════════════════════════════════════════════════
# Plan
# ═════════════════════════════════════════════════════════════════════════════


class Plan(db.Model):
    """Project Procurement Management Plan."""

    __tablename__ = "plans"
    __table_args__ = (
        db.Index("ix_plans_dept_year", "department_id", "fiscal_year"),
        db.Index("ix_plans_status", "status"),
    )

    id = db.Column(db.Integer, primary_key=True)
    title = db.Column(db.String(300), nullable=False)
    description = db.Column(db.Text, default="")
    fiscal_year = db.Column(db.Integer, nullable=False)
    status = db.Column(db.String(20), nullable=False, default=PlanStatus.DRAFT.value)

    total_estimated_budget = db.Column(db.Numeric(15, 2), nullable=False, default=0)
    total_allocated_budget = db.Column(db.Numeric(15, 2), nullable=False, default=0)

    department_id = db.Column(
        db.Integer, db.ForeignKey("departments.id", ondelete="RESTRICT"), nullable=False, index=True,
    )
    prepared_by_id = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="RESTRICT"), nullable=False, index=True,
    )
    approved_by_id = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True,
    )

    approval_remarks = db.Column(db.Text)
    rejection_reason = db.Column(db.Text)
    submitted_at = db.Column(db.DateTime(timezone=True))
    approved_at = db.Column(db.DateTime(timezone=True))
    rejected_at = db.Column(db.DateTime(timezone=True))

    created_at = db.Column(db.DateTime(timezone=True), default=_now)
    updated_at = db.Column(db.DateTime(timezone=True), default=_now, onupdate=_now)

    department = db.relationship("Department")
    prepared_by = db.relationship("User", foreign_keys=[prepared_by_id])
    approved_by = db.relationship("User", foreign_keys=[approved_by_id])

    items = db.relationship(
        "LineItem", back_populates="plan", cascade="all, delete-orphan",
        order_by="LineItem.item_no",
    )
    budget_allocations = db.relationship(
        "BudgetAllocation", back_populates="plan", cascade="all, delete-orphan",
        order_by="BudgetAllocation.budget_code",
    )
    activities = db.relationship(
        "ProcurementActivity", back_populates="plan", cascade="all, delete-orphan",
        order_by="ProcurementActivity.start_date",
    )
    disbursement_links = db.relationship(
        "DisbursementLink", back_populates="plan", cascade="all, delete-orphan",
    )

    def to_dict(self, include_children=False):
        d = {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "fiscal_year": self.fiscal_year,
            "status": self.status,
            "total_estimated_budget": decimal_str(self.total_estimated_budget),
            "total_allocated_budget": decimal_str(self.total_allocated_budget),
            "department_id": self.department_id,
            "department": self.department.to_dict() if self.department else None,
            "prepared_by_id": self.prepared_by_id,
            "prepared_by": self.prepared_by.summary() if self.prepared_by else None,
            "approved_by_id": self.approved_by_id,
            "approved_by": self.approved_by.summary() if self.approved_by else None,
            "approval_remarks": self.approval_remarks,
            "rejection_reason": self.rejection_reason,
            "submitted_at": iso(self.submitted_at),
            "approved_at": iso(self.approved_at),
            "rejected_at": iso(self.rejected_at),
            "created_at": iso(self.created_at),
            "updated_at": iso(self.updated_at),
            "counts": {
                "items": len(self.items),
                "budget_allocations": len(self.budget_allocations),
                "activities": len(self.activities),
                "disbursement_links": len(self.disbursement_links),
            },
        }
        if include_children:
            d["items"] = [i.to_dict() for i in self.items]
            d["budget_allocations"] = [a.to_dict() for a in self.budget_allocations]
            d["activities"] = [a.to_dict() for a in self.activities]
            d["disbursement_links"] = [link.to_dict() for link in self.disbursement_links]
        return d

    def __repr__(self):
        return f"<Plan {self.id}: {self.title[:40]} [{self.status}]>"


# ═════════════════════════════════════════════════════════════════════════════
# Catalog
# ═════════════════════════════════════════════════════════════════════════════


class Product(db.Model):
    __tablename__ = "products"

    id = db.Column(db.Integer, primary_key=True)
    description = db.Column(db.String(300), nullable=False, unique=True)
    unit = db.Column(db.String(30))
    default_unit_cost = db.Column(db.Numeric(15, 2))
    created_at = db.Column(db.DateTime(timezone=True), default=_now)

    def to_dict(self):
        return {
            "id": self.id,
            "description": self.description,
            "unit": self.unit,
            "default_unit_cost": (
                decimal_str(self.default_unit_cost) if self.default_unit_cost is not None else None
            ),
        }


# ═════════════════════════════════════════════════════════════════════════════
# Line items
# ═════════════════════════════════════════════════════════════════════════════


class LineItem(db.Model):
    """One procurement entry. ``total_cost`` is always quantity × unit_cost."""

    __tablename__ = "line_items"
    __table_args__ = (
        db.UniqueConstraint("plan_id", "item_no", name="uq_line_item_plan_item_no"),
    )

    id = db.Column(db.Integer, primary_key=True)
    plan_id = db.Column(
        db.Integer, db.ForeignKey("plans.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    product_id = db.Column(
        db.Integer, db.ForeignKey("products.id", ondelete="SET NULL"), nullable=True,
    )
    item_no = db.Column(db.String(30), nullable=False)
    category = db.Column(db.String(30), nullable=False)
    description = db.Column(db.Text, nullable=False)
    quantity = db.Column(db.Integer, nullable=False, default=0)
    unit = db.Column(db.String(30), nullable=False)
    unit_cost = db.Column(db.Numeric(15, 2), nullable=False, default=0)
    total_cost = db.Column(db.Numeric(15, 2), nullable=False, default=0)
    procurement_method = db.Column(db.String(40), nullable=False)
    remarks = db.Column(db.Text)

    # Schedule
    start_date = db.Column(db.Date)
    end_date = db.Column(db.Date)
    procurement_start = db.Column(db.Date)
    procurement_end = db.Column(db.Date)
    delivery_date = db.Column(db.Date)

    # Monthly breakdown
    jan = db.Column(db.Numeric(15, 2))
    feb = db.Column(db.Numeric(15, 2))
    march = db.Column(db.Numeric(15, 2))
    april = db.Column(db.Numeric(15, 2))
    may = db.Column(db.Numeric(15, 2))
    june = db.Column(db.Numeric(15, 2))
    july = db.Column(db.Numeric(15, 2))
    august = db.Column(db.Numeric(15, 2))
    sept = db.Column(db.Numeric(15, 2))
    oct = db.Column(db.Numeric(15, 2))
    nov = db.Column(db.Numeric(15, 2))
    dec = db.Column(db.Numeric(15, 2))

    created_at = db.Column(db.DateTime(timezone=True), default=_now)
    updated_at = db.Column(db.DateTime(timezone=True), default=_now, onupdate=_now)

    plan = db.relationship("Plan", back_populates="items")
    product = db.relationship("Product")
    activities = db.relationship("ProcurementActivity", back_populates="line_item")
    disbursement_links = db.relationship(
        "DisbursementLink", back_populates="line_item", cascade="all, delete-orphan",
    )

    def to_dict(self):
        return {
            "id": self.id,
            "plan_id": self.plan_id,
            "product_id": self.product_id,
            "product": self.product.to_dict() if self.product else None,
            "item_no": self.item_no,
            "category": self.category,
            "description": self.description,
            "quantity": self.quantity,
            "unit": self.unit,
            "unit_cost": decimal_str(self.unit_cost),
            "total_cost": decimal_str(self.total_cost),
            "procurement_method": self.procurement_method,
            "remarks": self.remarks,
            "schedule": {f: iso(getattr(self, f)) for f in SCHEDULE_FIELDS},
            "monthly": {
                m: (decimal_str(getattr(self, m)) if getattr(self, m) is not None else None)
                for m in MONTH_FIELDS
            },
            "disbursement_links": [link.to_dict() for link in self.disbursement_links],
        }

    def __repr__(self):
        return f"<LineItem {self.id}: {self.item_no} plan={self.plan_id}>"


# ═════════════════════════════════════════════════════════════════════════════
# Budget allocations
# ═════════════════════════════════════════════════════════════════════════════


class BudgetAllocation(db.Model):
    __tablename__ = "budget_allocations"

    id = db.Column(db.Integer, primary_key=True)
    plan_id = db.Column(
        db.Integer, db.ForeignKey("plans.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    budget_code = db.Column(db.String(50), nullable=False)
    description = db.Column(db.Text, nullable=False)
    allocated_amount = db.Column(db.Numeric(15, 2), nullable=False, default=0)
    # Supplied by finance; not reconciled against disbursement links.
    expended_amount = db.Column(db.Numeric(15, 2), nullable=False, default=0)
    created_at = db.Column(db.DateTime(timezone=True), default=_now)
    updated_at = db.Column(db.DateTime(timezone=True), default=_now, onupdate=_now)

    plan = db.relationship("Plan", back_populates="budget_allocations")

    def to_dict(self):
        return {
            "id": self.id,
            "plan_id": self.plan_id,
            "budget_code": self.budget_code,
            "description": self.description,
            "allocated_amount": decimal_str(self.allocated_amount),
            "expended_amount": decimal_str(self.expended_amount),
        }


# ═════════════════════════════════════════════════════════════════════════════
# Procurement activities
# ═════════════════════════════════════════════════════════════════════════════


class ProcurementActivity(db.Model):
    __tablename__ = "procurement_activities"
    __table_args__ = (
        db.CheckConstraint("end_date > start_date", name="ck_activity_date_order"),
    )

    id = db.Column(db.Integer, primary_key=True)
    plan_id = db.Column(
        db.Integer, db.ForeignKey("plans.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    line_item_id = db.Column(
        db.Integer, db.ForeignKey("line_items.id", ondelete="SET NULL"), nullable=True,
    )
    activity = db.Column(db.String(300), nullable=False)
    start_date = db.Column(db.Date, nullable=False)
    end_date = db.Column(db.Date, nullable=False)
    responsible_unit = db.Column(db.String(200), nullable=False)
    status = db.Column(db.String(20), nullable=False, default=ActivityStatus.PLANNED.value)
    created_at = db.Column(db.DateTime(timezone=True), default=_now)
    updated_at = db.Column(db.DateTime(timezone=True), default=_now, onupdate=_now)

    plan = db.relationship("Plan", back_populates="activities")
    line_item = db.relationship("LineItem", back_populates="activities")

    def to_dict(self):
        return {
            "id": self.id,
            "plan_id": self.plan_id,
            "line_item_id": self.line_item_id,
            "line_item": (
                {"id": self.line_item.id, "item_no": self.line_item.item_no,
                 "description": self.line_item.description}
                if self.line_item else None
            ),
            "activity": self.activity,
            "start_date": iso(self.start_date),
            "end_date": iso(self.end_date),
            "responsible_unit": self.responsible_unit,
            "status": self.status,
        }

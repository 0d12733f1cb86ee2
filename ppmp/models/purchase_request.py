"""
PPMP Administration Service
Purchase request domain models.

Models:
    - PurchaseRequest: an office's request to procure items, numbered by pr_no
    - PurchaseRequestLine: one requested quantity of an approved plan's line item

A request is ``ppmp_aligned`` when the office declares it consistent with its
approved PPMP. Lines may only reference line items of APPROVED plans.
"""

from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum

from ppmp.models import db
from ppmp.utils.helpers import decimal_str, iso


class PurchaseRequestStatus(str, Enum):
    DRAFT = "DRAFT"
    SUBMITTED = "SUBMITTED"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    CANCELLED = "CANCELLED"


def _now():
    return datetime.now(timezone.utc)


class PurchaseRequest(db.Model):
    __tablename__ = "purchase_requests"

    id = db.Column(db.Integer, primary_key=True)
    pr_no = db.Column(db.String(50), nullable=False, unique=True)
    purpose = db.Column(db.Text)
    remarks = db.Column(db.Text)
    ppmp_aligned = db.Column(db.Boolean, nullable=False, default=False)
    status = db.Column(
        db.String(20), nullable=False, default=PurchaseRequestStatus.DRAFT.value, index=True,
    )
    department_id = db.Column(
        db.Integer, db.ForeignKey("departments.id", ondelete="RESTRICT"), nullable=False, index=True,
    )
    requested_by_id = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True,
    )
    created_at = db.Column(db.DateTime(timezone=True), default=_now)
    updated_at = db.Column(db.DateTime(timezone=True), default=_now, onupdate=_now)

    department = db.relationship("Department")
    requested_by = db.relationship("User")
    lines = db.relationship(
        "PurchaseRequestLine",
        back_populates="purchase_request",
        cascade="all, delete-orphan",
        order_by="PurchaseRequestLine.id",
    )

    @property
    def estimated_cost(self) -> Decimal:
        return sum((line.estimated_cost for line in self.lines), Decimal("0"))

    def to_dict(self, include_lines=False):
        d = {
            "id": self.id,
            "pr_no": self.pr_no,
            "purpose": self.purpose,
            "remarks": self.remarks,
            "ppmp_aligned": self.ppmp_aligned,
            "status": self.status,
            "department_id": self.department_id,
            "department": self.department.to_dict() if self.department else None,
            "requested_by": self.requested_by.summary() if self.requested_by else None,
            "line_count": len(self.lines),
            "estimated_cost": decimal_str(self.estimated_cost),
            "created_at": iso(self.created_at),
            "updated_at": iso(self.updated_at),
        }
        if include_lines:
            d["lines"] = [line.to_dict() for line in self.lines]
        return d

    def __repr__(self):
        return f"<PurchaseRequest {self.pr_no} ({self.status})>"


class PurchaseRequestLine(db.Model):
    __tablename__ = "purchase_request_lines"

    id = db.Column(db.Integer, primary_key=True)
    purchase_request_id = db.Column(
        db.Integer, db.ForeignKey("purchase_requests.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    line_item_id = db.Column(
        db.Integer, db.ForeignKey("line_items.id", ondelete="RESTRICT"), nullable=False, index=True,
    )
    unit = db.Column(db.String(30), nullable=False)
    quantity = db.Column(db.Numeric(15, 2), nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), default=_now)

    purchase_request = db.relationship("PurchaseRequest", back_populates="lines")
    line_item = db.relationship("LineItem")

    @property
    def estimated_cost(self) -> Decimal:
        """quantity × the planned unit cost of the referenced line item."""
        unit_cost = self.line_item.unit_cost if self.line_item else 0
        return Decimal(str(self.quantity or 0)) * Decimal(str(unit_cost or 0))

    def to_dict(self):
        item = self.line_item
        return {
            "id": self.id,
            "purchase_request_id": self.purchase_request_id,
            "line_item_id": self.line_item_id,
            "line_item": {
                "item_no": item.item_no,
                "description": item.description,
                "unit_cost": decimal_str(item.unit_cost),
                "plan_id": item.plan_id,
                "plan_title": item.plan.title if item.plan else None,
                "fiscal_year": item.plan.fiscal_year if item.plan else None,
            } if item else None,
            "unit": self.unit,
            "quantity": decimal_str(self.quantity),
            "estimated_cost": decimal_str(self.estimated_cost),
        }

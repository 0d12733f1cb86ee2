"""
PPMP Administration Service
Disbursement domain models.

Models:
    - DisbursementVoucher: locally mirrored voucher released by finance
    - DisbursementLink: association of an approved plan's line item to a voucher

A (plan, line item, voucher) triple is linked at most once; the unique
constraint backs the service-level duplicate check.
"""

from datetime import datetime, timezone

from ppmp.models import db
from ppmp.utils.helpers import decimal_str, iso


class DisbursementVoucher(db.Model):
    __tablename__ = "disbursement_vouchers"

    id = db.Column(db.Integer, primary_key=True)
    dv_number = db.Column(db.String(50), nullable=False, unique=True)
    payee = db.Column(db.String(300), nullable=False)
    particulars = db.Column(db.Text, default="")
    amount = db.Column(db.Numeric(15, 2), nullable=False, default=0)
    status = db.Column(db.String(30), nullable=False, default="RELEASED")
    release_date = db.Column(db.Date)
    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    links = db.relationship("DisbursementLink", back_populates="disbursement")

    def summary(self):
        return {
            "id": self.id,
            "dv_number": self.dv_number,
            "payee": self.payee,
            "amount": decimal_str(self.amount),
        }

    def to_dict(self):
        return {
            **self.summary(),
            "particulars": self.particulars,
            "status": self.status,
            "release_date": iso(self.release_date),
            "created_at": iso(self.created_at),
        }

    def __repr__(self):
        return f"<DisbursementVoucher {self.dv_number}>"


class DisbursementLink(db.Model):
    __tablename__ = "disbursement_links"
    __table_args__ = (
        db.UniqueConstraint(
            "plan_id", "line_item_id", "disbursement_id", name="uq_disbursement_link_triple",
        ),
    )

    id = db.Column(db.Integer, primary_key=True)
    plan_id = db.Column(
        db.Integer, db.ForeignKey("plans.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    line_item_id = db.Column(
        db.Integer, db.ForeignKey("line_items.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    disbursement_id = db.Column(
        db.Integer, db.ForeignKey("disbursement_vouchers.id", ondelete="RESTRICT"),
        nullable=False, index=True,
    )
    linked_by_id = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True,
    )
    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    plan = db.relationship("Plan", back_populates="disbursement_links")
    line_item = db.relationship("LineItem", back_populates="disbursement_links")
    disbursement = db.relationship("DisbursementVoucher", back_populates="links")
    linked_by = db.relationship("User")

    def to_dict(self):
        return {
            "id": self.id,
            "plan_id": self.plan_id,
            "line_item_id": self.line_item_id,
            "disbursement_id": self.disbursement_id,
            "disbursement": self.disbursement.summary() if self.disbursement else None,
            "linked_by_id": self.linked_by_id,
            "created_at": iso(self.created_at),
        }

    def __repr__(self):
        return (
            f"<DisbursementLink {self.id}: plan={self.plan_id} "
            f"item={self.line_item_id} dv={self.disbursement_id}>"
        )

"""
PPMP Administration Service
Audit domain model.

Models:
    - AuditTrail: immutable, append-only record of every mutation.

Rows are inserted only. The ORM refuses UPDATE and DELETE on an existing
row via mapper events, so a stray ``session.delete(entry)`` fails at flush.
"""

import json
from datetime import datetime, timezone

from sqlalchemy import event

from ppmp.models import db
from ppmp.utils.helpers import iso


# ── Constants ────────────────────────────────────────────────────────────────

AUDIT_ACTIONS = {
    "CREATE",
    "UPDATE",
    "DELETE",
    "SUBMIT",
    "APPROVE",
    "REJECT",
    "LINK_DISBURSEMENT",
    "UNLINK_DISBURSEMENT",
}


class AuditTrailImmutableError(RuntimeError):
    """Raised when code tries to modify or remove an audit row."""


def _jsonable(values):
    # Decimals and dates become strings so the JSON column can store them.
    if values is None:
        return None
    return json.loads(json.dumps(values, default=str))


class AuditTrail(db.Model):
    """
    Immutable audit trail.

    One row per mutation. ``old_values`` / ``new_values`` hold the field
    snapshots before and after the change (either may be NULL for
    create/delete).
    """

    __tablename__ = "audit_trail"
    __table_args__ = (
        db.Index("idx_audit_entity", "entity_type", "entity_id"),
        db.Index("idx_audit_action", "action"),
        db.Index("idx_audit_ts", "timestamp"),
    )

    id = db.Column(db.Integer, primary_key=True)
    action = db.Column(db.String(40), nullable=False)
    entity_type = db.Column(db.String(40), nullable=False)
    entity_id = db.Column(db.Integer, nullable=False)
    actor_user_id = db.Column(
        db.Integer,
        db.ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    old_values = db.Column(db.JSON, nullable=True)
    new_values = db.Column(db.JSON, nullable=True)
    timestamp = db.Column(
        db.DateTime(timezone=True), nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "action": self.action,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "actor_user_id": self.actor_user_id,
            "old_values": self.old_values,
            "new_values": self.new_values,
            "timestamp": iso(self.timestamp),
        }

    def __repr__(self):
        return f"<AuditTrail {self.id}: {self.action} on {self.entity_type}/{self.entity_id}>"


@event.listens_for(AuditTrail, "before_update")
def _refuse_update(mapper, connection, target):
    raise AuditTrailImmutableError(f"AuditTrail id={target.id} is append-only")


@event.listens_for(AuditTrail, "before_delete")
def _refuse_delete(mapper, connection, target):
    raise AuditTrailImmutableError(f"AuditTrail id={target.id} is append-only")


# ── Convenience writer ───────────────────────────────────────────────────────

def write_audit(
    *,
    entity_type: str,
    entity_id: int,
    action: str,
    actor_user_id: int | None = None,
    old_values: dict | None = None,
    new_values: dict | None = None,
) -> AuditTrail:
    """
    Append a single audit row.  Uses ``flush`` so callers keep
    transaction control.

    Returns the (flushed) AuditTrail instance.
    """
    entry = AuditTrail(
        entity_type=entity_type,
        entity_id=int(entity_id),
        action=action,
        actor_user_id=actor_user_id,
        old_values=_jsonable(old_values),
        new_values=_jsonable(new_values),
    )
    db.session.add(entry)
    db.session.flush()
    return entry

"""
Audit Trail queries and snapshot helpers.

Writes go through ``queue_audit`` in ``helpers.unit_of_work``; this module
only reads the trail and builds the old/new value snapshots callers queue.
"""

from ppmp.core.exceptions import PermissionDeniedError
from ppmp.models.audit import AuditTrail
from ppmp.models.auth import Role


def snapshot(obj, fields) -> dict:
    """Field → current value dict for an ORM object."""
    return {f: getattr(obj, f) for f in fields}


def changed_values(before: dict, after: dict) -> tuple[dict, dict]:
    """Reduce two snapshots to the fields that actually differ."""
    keys = [k for k in after if before.get(k) != after.get(k)]
    return {k: before.get(k) for k in keys}, {k: after[k] for k in keys}


def list_audit(actor, *, entity_type=None, entity_id=None, action=None, limit=100, offset=0):
    """Newest-first audit entries. ADMIN only."""
    if actor.role != Role.ADMIN:
        raise PermissionDeniedError("view audit trail")
    q = AuditTrail.query
    if entity_type:
        q = q.filter(AuditTrail.entity_type == entity_type)
    if entity_id is not None:
        q = q.filter(AuditTrail.entity_id == entity_id)
    if action:
        q = q.filter(AuditTrail.action == action.upper())
    total = q.count()
    items = (
        q.order_by(AuditTrail.timestamp.desc(), AuditTrail.id.desc())
        .offset(offset).limit(limit).all()
    )
    return items, total

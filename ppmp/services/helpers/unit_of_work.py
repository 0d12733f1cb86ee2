"""
Transaction boundary for mutating service operations.

Every write path runs inside exactly one ``unit_of_work()`` block:

    with unit_of_work():
        item = LineItem(...)
        db.session.add(item)
        recompute_estimated_total(plan)
        queue_audit(entity_type="line_item", entity_id=item.id, action="CREATE", ...)

The block commits once on success and rolls back everything on any
exception. Audit entries queued inside the block are held on
``session.info`` and written after the primary commit, in a transaction of
their own; if that second write fails the primary mutation stays committed
and the failure is logged as a warning. Entries queued by a block that
rolls back are discarded.
"""

import logging
from contextlib import contextmanager

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from ppmp.core.exceptions import ConflictError
from ppmp.models import db
from ppmp.models.audit import AUDIT_ACTIONS, write_audit

logger = logging.getLogger(__name__)

_AUDIT_QUEUE_KEY = "ppmp.pending_audit"


def queue_audit(
    *,
    entity_type: str,
    entity_id: int,
    action: str,
    actor_user_id: int | None = None,
    old_values: dict | None = None,
    new_values: dict | None = None,
) -> None:
    """Hold an audit entry until the surrounding unit of work commits."""
    if action not in AUDIT_ACTIONS:
        raise ValueError(f"Unknown audit action: {action}")
    db.session.info.setdefault(_AUDIT_QUEUE_KEY, []).append({
        "entity_type": entity_type,
        "entity_id": entity_id,
        "action": action,
        "actor_user_id": actor_user_id,
        "old_values": old_values,
        "new_values": new_values,
    })


def _is_unique_violation(exc: IntegrityError) -> bool:
    """True for duplicate-key errors; FK, NOT NULL and CHECK failures are not conflicts."""
    pgcode = getattr(exc.orig, "pgcode", None)
    if pgcode is not None:
        return pgcode == "23505"
    return "UNIQUE constraint failed" in str(exc.orig)


def _discard_pending(session) -> None:
    dropped = session.info.pop(_AUDIT_QUEUE_KEY, [])
    if dropped:
        logger.debug("Discarded %d audit entries from rolled-back unit of work", len(dropped))


def _write_pending(session) -> None:
    entries = session.info.pop(_AUDIT_QUEUE_KEY, [])
    if not entries:
        return
    try:
        for entry in entries:
            write_audit(**entry)
        session.commit()
    except SQLAlchemyError:
        session.rollback()
        logger.warning(
            "Audit write failed for %d entries; primary change already committed",
            len(entries),
            extra={"actions": [e["action"] for e in entries]},
            exc_info=True,
        )


@contextmanager
def unit_of_work(conflict_resource: str = "Record", conflict_field: str = "unique key"):
    """Commit the block as one transaction; translate uniqueness violations to 409."""
    session = db.session
    try:
        yield session
        session.commit()
    except IntegrityError as exc:
        session.rollback()
        _discard_pending(session)
        if not _is_unique_violation(exc):
            raise
        logger.info("Unique violation rolled back: %s", exc.orig)
        raise ConflictError(conflict_resource, conflict_field) from exc
    except Exception:
        session.rollback()
        _discard_pending(session)
        raise
    _write_pending(session)

"""
Notification Service.

Creates per-user notifications for plan lifecycle events and serves the
caller's inbox. ``create`` only flushes: lifecycle operations call it inside
their unit of work so the notification commits with the status change.
"""

from datetime import datetime, timezone

from ppmp.core.exceptions import NotFoundError
from ppmp.models import db
from ppmp.models.notification import Notification


class NotificationService:
    """Stateless service class for notification operations."""

    # ── Create ────────────────────────────────────────────────────────────

    @staticmethod
    def create(*, recipient_user_id, title, message="", type="system",
               entity_type="", entity_id=None):
        notif = Notification(
            recipient_user_id=recipient_user_id,
            type=type,
            title=title,
            message=message,
            entity_type=entity_type,
            entity_id=entity_id,
        )
        db.session.add(notif)
        db.session.flush()
        return notif

    # ── Query ─────────────────────────────────────────────────────────────

    @staticmethod
    def list_for_user(user_id, unread_only=False, limit=50, offset=0):
        """Retrieve a user's notifications, newest first."""
        q = Notification.query.filter_by(recipient_user_id=user_id)
        if unread_only:
            q = q.filter_by(is_read=False)
        total = q.count()
        items = (
            q.order_by(Notification.created_at.desc(), Notification.id.desc())
            .offset(offset).limit(limit).all()
        )
        return items, total

    @staticmethod
    def unread_count(user_id):
        return Notification.query.filter_by(recipient_user_id=user_id, is_read=False).count()

    # ── Actions ───────────────────────────────────────────────────────────

    @staticmethod
    def mark_read(notification_id, user_id):
        """Mark one of the caller's notifications as read."""
        notif = db.session.get(Notification, notification_id)
        if notif is None or notif.recipient_user_id != user_id:
            raise NotFoundError("Notification", notification_id)
        if not notif.is_read:
            notif.mark_read()
            db.session.commit()
        return notif

    @staticmethod
    def mark_all_read(user_id):
        now = datetime.now(timezone.utc)
        count = (
            Notification.query.filter_by(recipient_user_id=user_id, is_read=False)
            .update({"is_read": True, "read_at": now}, synchronize_session="fetch")
        )
        db.session.commit()
        return count

    # ── Plan lifecycle helpers ────────────────────────────────────────────

    @staticmethod
    def notify_plan_approved(plan):
        return NotificationService.create(
            recipient_user_id=plan.prepared_by_id,
            type="ppmp_approved",
            title="PPMP Approved",
            message=f'Your PPMP "{plan.title}" (FY {plan.fiscal_year}) has been approved.',
            entity_type="plan",
            entity_id=plan.id,
        )

    @staticmethod
    def notify_plan_rejected(plan):
        return NotificationService.create(
            recipient_user_id=plan.prepared_by_id,
            type="ppmp_rejected",
            title="PPMP Rejected",
            message=(
                f'Your PPMP "{plan.title}" (FY {plan.fiscal_year}) was rejected: '
                f"{plan.rejection_reason}"
            ),
            entity_type="plan",
            entity_id=plan.id,
        )

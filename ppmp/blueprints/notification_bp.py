"""
Notification blueprint - the caller's inbox.

Endpoints:
    GET  /api/v1/notifications               - list (unread_only=1 to filter)
    GET  /api/v1/notifications/unread-count
    POST /api/v1/notifications/<id>/read
    POST /api/v1/notifications/read-all
"""

from flask import Blueprint, jsonify, request

from ppmp.middleware.jwt_auth import current_actor
from ppmp.services.notification import NotificationService

notification_bp = Blueprint("notifications", __name__, url_prefix="/api/v1")


@notification_bp.route("/notifications", methods=["GET"])
def list_notifications():
    actor = current_actor()
    unread_only = request.args.get("unread_only", "").lower() in ("1", "true", "yes")
    limit = min(max(request.args.get("limit", 50, type=int), 1), 200)
    offset = max(request.args.get("offset", 0, type=int), 0)
    items, total = NotificationService.list_for_user(
        actor.user_id, unread_only=unread_only, limit=limit, offset=offset,
    )
    return jsonify({
        "items": [n.to_dict() for n in items],
        "total": total,
        "unread_count": NotificationService.unread_count(actor.user_id),
    })


@notification_bp.route("/notifications/unread-count", methods=["GET"])
def unread_count():
    return jsonify({"unread_count": NotificationService.unread_count(current_actor().user_id)})


@notification_bp.route("/notifications/<int:notification_id>/read", methods=["POST"])
def mark_read(notification_id):
    notif = NotificationService.mark_read(notification_id, current_actor().user_id)
    return jsonify(notif.to_dict())


@notification_bp.route("/notifications/read-all", methods=["POST"])
def mark_all_read():
    count = NotificationService.mark_all_read(current_actor().user_id)
    return jsonify({"updated": count})

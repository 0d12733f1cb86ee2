"""
PPMP Administration Service
Audit blueprint.

Endpoints:
    GET  /api/v1/audit   - list / filter audit trail (ADMIN only)
"""

from flask import Blueprint, jsonify, request

from ppmp.middleware.jwt_auth import current_actor
from ppmp.services.audit_service import list_audit

audit_bp = Blueprint("audit", __name__, url_prefix="/api/v1")


@audit_bp.route("/audit", methods=["GET"])
def list_audit_entries():
    """
    Return paginated audit entries with optional filters.

    Query params:
        entity_type  - filter by entity type (plan, line_item, ...)
        entity_id    - filter by entity PK
        action       - filter by action (SUBMIT, APPROVE, ...)
        page         - page number (default 1)
        per_page     - items per page (default 50, max 200)
    """
    actor = current_actor()
    page = max(1, request.args.get("page", 1, type=int))
    per_page = min(200, max(1, request.args.get("per_page", 50, type=int)))

    items, total = list_audit(
        actor,
        entity_type=request.args.get("entity_type"),
        entity_id=request.args.get("entity_id", type=int),
        action=request.args.get("action"),
        limit=per_page,
        offset=(page - 1) * per_page,
    )
    return jsonify({
        "audit_entries": [entry.to_dict() for entry in items],
        "total": total,
        "page": page,
        "per_page": per_page,
    })

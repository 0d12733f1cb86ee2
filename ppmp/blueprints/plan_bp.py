"""
PPMP Administration Service
Plan blueprint - plans, their children and lifecycle transitions.

Endpoints:
    GET    /api/v1/plans                                   - list (status, fiscal_year, department_id, search)
    POST   /api/v1/plans                                   - create DRAFT plan
    GET    /api/v1/plans/<id>                              - plan with children
    PUT    /api/v1/plans/<id>                              - edit title/description/fiscal_year
    DELETE /api/v1/plans/<id>                              - delete DRAFT plan
    POST   /api/v1/plans/<id>/submit|approve|reject        - lifecycle
    GET/POST       /api/v1/plans/<id>/items                - line items
    PUT/DELETE     /api/v1/plans/<id>/items/<item_id>
    GET/POST       /api/v1/plans/<id>/budget               - budget allocations
    PUT/DELETE     /api/v1/plans/<id>/budget/<alloc_id>
    GET/POST       /api/v1/plans/<id>/activities           - procurement activities
    PUT/DELETE     /api/v1/plans/<id>/activities/<act_id>
    GET/POST       /api/v1/plans/<id>/disbursement-links   - voucher links
    DELETE         /api/v1/plans/<id>/disbursement-links/<link_id>
    GET    /api/v1/plans/approvals/pending                 - approval queue
    GET    /api/v1/plans/stats                             - counts per status
    GET    /api/v1/plans/recent                            - latest plans

Views stay thin: resolve the actor, call the service, serialise. Service
exceptions are rendered by the app-level error handlers.
"""

from flask import Blueprint, jsonify, request

from ppmp.blueprints import json_body, paginate_query
from ppmp.middleware.jwt_auth import current_actor
from ppmp.services import disbursement_service, plan_lifecycle, plan_service, reporting
from ppmp.services.permission import PlanContext, allowed_actions

plan_bp = Blueprint("plans", __name__, url_prefix="/api/v1")


def _plan_payload(plan, actor, include_children=False):
    d = plan.to_dict(include_children=include_children)
    d["allowed_actions"] = sorted(a.value for a in allowed_actions(actor, PlanContext.of(plan)))
    return d


# ═════════════════════════════════════════════════════════════════════════════
# Plans
# ═════════════════════════════════════════════════════════════════════════════


@plan_bp.route("/plans", methods=["GET"])
def list_plans():
    actor = current_actor()
    q = plan_service.list_plans(
        actor,
        status=request.args.get("status"),
        fiscal_year=request.args.get("fiscal_year"),
        department_id=request.args.get("department_id"),
        search=request.args.get("search"),
    )
    items, total = paginate_query(q)
    return jsonify({"items": [p.to_dict() for p in items], "total": total})


@plan_bp.route("/plans", methods=["POST"])
def create_plan():
    actor = current_actor()
    plan = plan_service.create_plan(actor, json_body())
    return jsonify(_plan_payload(plan, actor)), 201


@plan_bp.route("/plans/<int:plan_id>", methods=["GET"])
def get_plan(plan_id):
    actor = current_actor()
    plan = plan_service.get_plan(actor, plan_id)
    return jsonify(_plan_payload(plan, actor, include_children=True))


@plan_bp.route("/plans/<int:plan_id>", methods=["PUT"])
def update_plan(plan_id):
    actor = current_actor()
    plan = plan_service.update_plan(actor, plan_id, json_body())
    return jsonify(_plan_payload(plan, actor))


@plan_bp.route("/plans/<int:plan_id>", methods=["DELETE"])
def delete_plan(plan_id):
    plan_lifecycle.delete_plan(plan_id, current_actor())
    return jsonify({"message": "Plan deleted"}), 200


# ── Lifecycle ────────────────────────────────────────────────────────────────


@plan_bp.route("/plans/<int:plan_id>/submit", methods=["POST"])
def submit_plan(plan_id):
    actor = current_actor()
    plan = plan_lifecycle.submit_plan(plan_id, actor)
    return jsonify(_plan_payload(plan, actor))


@plan_bp.route("/plans/<int:plan_id>/approve", methods=["POST"])
def approve_plan(plan_id):
    actor = current_actor()
    plan = plan_lifecycle.approve_plan(plan_id, actor, remarks=json_body().get("remarks"))
    return jsonify(_plan_payload(plan, actor))


@plan_bp.route("/plans/<int:plan_id>/reject", methods=["POST"])
def reject_plan(plan_id):
    actor = current_actor()
    plan = plan_lifecycle.reject_plan(plan_id, actor, json_body().get("reason"))
    return jsonify(_plan_payload(plan, actor))


# ── Dashboard ────────────────────────────────────────────────────────────────


@plan_bp.route("/plans/approvals/pending", methods=["GET"])
def pending_approvals():
    plans = reporting.pending_approvals(current_actor())
    return jsonify({"items": [p.to_dict() for p in plans], "total": len(plans)})


@plan_bp.route("/plans/stats", methods=["GET"])
def plan_stats():
    return jsonify(reporting.plan_stats(current_actor()))


@plan_bp.route("/plans/recent", methods=["GET"])
def recent_plans():
    limit = min(max(request.args.get("limit", 10, type=int), 1), 50)
    plans = reporting.recent_plans(current_actor(), limit=limit)
    return jsonify({"items": [p.to_dict() for p in plans]})


# ═════════════════════════════════════════════════════════════════════════════
# Line items
# ═════════════════════════════════════════════════════════════════════════════


@plan_bp.route("/plans/<int:plan_id>/items", methods=["GET"])
def list_items(plan_id):
    items = plan_service.list_items(current_actor(), plan_id)
    return jsonify({"items": [i.to_dict() for i in items], "total": len(items)})


@plan_bp.route("/plans/<int:plan_id>/items", methods=["POST"])
def add_item(plan_id):
    item = plan_service.add_item(current_actor(), plan_id, json_body())
    return jsonify(item.to_dict()), 201


@plan_bp.route("/plans/<int:plan_id>/items/<int:item_id>", methods=["PUT"])
def update_item(plan_id, item_id):
    item = plan_service.update_item(current_actor(), plan_id, item_id, json_body())
    return jsonify(item.to_dict())


@plan_bp.route("/plans/<int:plan_id>/items/<int:item_id>", methods=["DELETE"])
def delete_item(plan_id, item_id):
    plan_service.delete_item(current_actor(), plan_id, item_id)
    return jsonify({"message": "Line item deleted"}), 200


# ═════════════════════════════════════════════════════════════════════════════
# Budget allocations
# ═════════════════════════════════════════════════════════════════════════════


@plan_bp.route("/plans/<int:plan_id>/budget", methods=["GET"])
def list_allocations(plan_id):
    allocations = plan_service.list_allocations(current_actor(), plan_id)
    return jsonify({"items": [a.to_dict() for a in allocations], "total": len(allocations)})


@plan_bp.route("/plans/<int:plan_id>/budget", methods=["POST"])
def add_allocation(plan_id):
    allocation = plan_service.add_allocation(current_actor(), plan_id, json_body())
    return jsonify(allocation.to_dict()), 201


@plan_bp.route("/plans/<int:plan_id>/budget/<int:allocation_id>", methods=["PUT"])
def update_allocation(plan_id, allocation_id):
    allocation = plan_service.update_allocation(current_actor(), plan_id, allocation_id, json_body())
    return jsonify(allocation.to_dict())


@plan_bp.route("/plans/<int:plan_id>/budget/<int:allocation_id>", methods=["DELETE"])
def delete_allocation(plan_id, allocation_id):
    plan_service.delete_allocation(current_actor(), plan_id, allocation_id)
    return jsonify({"message": "Budget allocation deleted"}), 200


# ═════════════════════════════════════════════════════════════════════════════
# Procurement activities
# ═════════════════════════════════════════════════════════════════════════════


@plan_bp.route("/plans/<int:plan_id>/activities", methods=["GET"])
def list_activities(plan_id):
    activities = plan_service.list_activities(current_actor(), plan_id)
    return jsonify({"items": [a.to_dict() for a in activities], "total": len(activities)})


@plan_bp.route("/plans/<int:plan_id>/activities", methods=["POST"])
def add_activity(plan_id):
    activity = plan_service.add_activity(current_actor(), plan_id, json_body())
    return jsonify(activity.to_dict()), 201


@plan_bp.route("/plans/<int:plan_id>/activities/<int:activity_id>", methods=["PUT"])
def update_activity(plan_id, activity_id):
    activity = plan_service.update_activity(current_actor(), plan_id, activity_id, json_body())
    return jsonify(activity.to_dict())


@plan_bp.route("/plans/<int:plan_id>/activities/<int:activity_id>", methods=["DELETE"])
def delete_activity(plan_id, activity_id):
    plan_service.delete_activity(current_actor(), plan_id, activity_id)
    return jsonify({"message": "Procurement activity deleted"}), 200


# ═════════════════════════════════════════════════════════════════════════════
# Disbursement links
# ═════════════════════════════════════════════════════════════════════════════


@plan_bp.route("/plans/<int:plan_id>/disbursement-links", methods=["GET"])
def list_links(plan_id):
    links = disbursement_service.list_links(plan_id, current_actor())
    return jsonify({"items": [link.to_dict() for link in links], "total": len(links)})


@plan_bp.route("/plans/<int:plan_id>/disbursement-links", methods=["POST"])
def create_link(plan_id):
    data = json_body()
    link = disbursement_service.link_disbursement(
        plan_id, data.get("line_item_id"), data.get("disbursement_id"), current_actor(),
    )
    return jsonify(link.to_dict()), 201


@plan_bp.route("/plans/<int:plan_id>/disbursement-links/<int:link_id>", methods=["DELETE"])
def delete_link(plan_id, link_id):
    disbursement_service.unlink_disbursement(plan_id, link_id, current_actor())
    return jsonify({"message": "Disbursement link removed"}), 200

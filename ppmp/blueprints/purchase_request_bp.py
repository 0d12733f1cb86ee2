"""
Purchase request blueprint.

Endpoints:
    GET    /api/v1/purchase-requests                         - list (status, department_id, ppmp_aligned, search)
    POST   /api/v1/purchase-requests                         - create DRAFT request (optional lines)
    GET    /api/v1/purchase-requests/<id>                    - request with lines
    PUT    /api/v1/purchase-requests/<id>                    - edit purpose/remarks/ppmp_aligned/status
    DELETE /api/v1/purchase-requests/<id>
    GET    /api/v1/purchase-requests/<id>/lines
    POST   /api/v1/purchase-requests/<id>/lines              - add an approved plan's line item
    DELETE /api/v1/purchase-requests/<id>/lines/<line_id>
"""

from flask import Blueprint, jsonify, request

from ppmp.blueprints import json_body, paginate_query
from ppmp.middleware.jwt_auth import current_actor
from ppmp.services import purchase_request_service as pr_service

purchase_request_bp = Blueprint("purchase_requests", __name__, url_prefix="/api/v1")


@purchase_request_bp.route("/purchase-requests", methods=["GET"])
def list_requests():
    q = pr_service.list_requests(
        current_actor(),
        status=request.args.get("status"),
        department_id=request.args.get("department_id"),
        ppmp_aligned=request.args.get("ppmp_aligned"),
        search=request.args.get("search"),
    )
    items, total = paginate_query(q)
    return jsonify({"items": [pr.to_dict() for pr in items], "total": total})


@purchase_request_bp.route("/purchase-requests", methods=["POST"])
def create_request():
    pr = pr_service.create_request(current_actor(), json_body())
    return jsonify(pr.to_dict(include_lines=True)), 201


@purchase_request_bp.route("/purchase-requests/<int:request_id>", methods=["GET"])
def get_request(request_id):
    pr = pr_service.get_request(current_actor(), request_id)
    return jsonify(pr.to_dict(include_lines=True))


@purchase_request_bp.route("/purchase-requests/<int:request_id>", methods=["PUT"])
def update_request(request_id):
    pr = pr_service.update_request(current_actor(), request_id, json_body())
    return jsonify(pr.to_dict(include_lines=True))


@purchase_request_bp.route("/purchase-requests/<int:request_id>", methods=["DELETE"])
def delete_request(request_id):
    pr_service.delete_request(current_actor(), request_id)
    return jsonify({"message": "Purchase request deleted"}), 200


@purchase_request_bp.route("/purchase-requests/<int:request_id>/lines", methods=["GET"])
def list_lines(request_id):
    lines = pr_service.list_lines(current_actor(), request_id)
    return jsonify({"items": [line.to_dict() for line in lines], "total": len(lines)})


@purchase_request_bp.route("/purchase-requests/<int:request_id>/lines", methods=["POST"])
def add_line(request_id):
    line = pr_service.add_line(current_actor(), request_id, json_body())
    return jsonify(line.to_dict()), 201


@purchase_request_bp.route("/purchase-requests/<int:request_id>/lines/<int:line_id>", methods=["DELETE"])
def delete_line(request_id, line_id):
    pr_service.delete_line(current_actor(), request_id, line_id)
    return jsonify({"message": "Line removed"}), 200

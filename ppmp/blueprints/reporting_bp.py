"""
Reporting blueprint - combined PPMP report.

Endpoints:
    GET /api/v1/reports?year=<int|all>&department=<id|all>
"""

from flask import Blueprint, jsonify, request

from ppmp.middleware.jwt_auth import current_actor
from ppmp.services import reporting

reporting_bp = Blueprint("reports", __name__, url_prefix="/api/v1")


@reporting_bp.route("/reports", methods=["GET"])
def get_report():
    actor = current_actor()
    report = reporting.build_report(
        fiscal_year=request.args.get("year", request.args.get("fiscal_year")),
        department_id=request.args.get("department", request.args.get("department_id")),
        actor=actor,
    )
    return jsonify(reporting.serialise(report))

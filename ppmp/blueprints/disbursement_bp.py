"""
Disbursement blueprint - voucher lookup for the linking dialog.

Endpoints:
    GET /api/v1/disbursements/search?q=<text>&limit=<n>   (limit ≤ 50)
"""

from flask import Blueprint, jsonify, request

from ppmp.middleware.jwt_auth import current_actor
from ppmp.services.disbursement_service import search_disbursements

disbursement_bp = Blueprint("disbursements", __name__, url_prefix="/api/v1")


@disbursement_bp.route("/disbursements/search", methods=["GET"])
def search():
    current_actor()
    vouchers = search_disbursements(request.args.get("q"), request.args.get("limit"))
    return jsonify({"items": [v.to_dict() for v in vouchers], "total": len(vouchers)})

"""
Auth blueprint - local login issuing JWT access tokens.

Endpoints:
    POST /api/v1/auth/login   - email + password → access token
    GET  /api/v1/auth/me      - current user profile and role
"""

from flask import Blueprint, jsonify

from ppmp.blueprints import json_body
from ppmp.middleware.jwt_auth import current_actor
from ppmp.services.auth_service import authenticate, load_user
from ppmp.services.jwt_service import token_response

auth_bp = Blueprint("auth", __name__, url_prefix="/api/v1/auth")


@auth_bp.route("/login", methods=["POST"])
def login():
    """
    Authenticate with email + password, return an access token.

    Body: { "email": "...", "password": "..." }
    """
    data = json_body()
    user = authenticate(data.get("email"), data.get("password"))
    return jsonify({**token_response(user), "user": user.to_dict()}), 200


@auth_bp.route("/me", methods=["GET"])
def me():
    actor = current_actor()
    return jsonify({"user": load_user(actor.user_id).to_dict()}), 200

"""
Product catalog blueprint.

Endpoints:
    GET  /api/v1/products?search=<text>
    POST /api/v1/products
"""

from flask import Blueprint, jsonify, request

from ppmp.blueprints import json_body
from ppmp.middleware.jwt_auth import current_actor
from ppmp.services import plan_service

product_bp = Blueprint("products", __name__, url_prefix="/api/v1")


@product_bp.route("/products", methods=["GET"])
def list_products():
    current_actor()
    products = plan_service.list_products(request.args.get("search"))
    return jsonify({"items": [p.to_dict() for p in products], "total": len(products)})


@product_bp.route("/products", methods=["POST"])
def create_product():
    product = plan_service.create_product(current_actor(), json_body())
    return jsonify(product.to_dict()), 201

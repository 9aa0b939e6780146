# Overview: Flask API routes for buyer and admin order views and shipping updates.

from flask import Blueprint, request, jsonify, g, current_app

from ..container import get_services
from ..decorators import require_admin, require_auth
from ..services.order_service import order_view
from ..validation import NotFoundError, ValidationError, parse_int


orders_bp = Blueprint("orders", __name__, url_prefix="/api/orders")
admin_orders_bp = Blueprint("admin_orders", __name__, url_prefix="/api/admin/orders")


def _page_params():
    page = parse_int(request.args.get("page", "1"), "page")
    limit = parse_int(request.args.get("limit", "20"), "limit")
    if page < 1 or limit < 1:
        raise ValidationError("page and limit must be positive")
    return page, limit


@orders_bp.get("")
@require_auth
def list_my_orders_route():
    try:
        page, limit = _page_params()
        return jsonify(get_services().ledger.list_for_buyer(g.principal.user_id, page, limit)), 200
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400


@orders_bp.get("/<int:order_id>")
@require_auth
def get_my_order_route(order_id: int):
    try:
        order = get_services().ledger.get_order(order_id, buyer_id=g.principal.user_id)
        return jsonify({"order": order_view(order)}), 200
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404


@admin_orders_bp.get("")
@require_auth
@require_admin
def list_orders_route():
    """List all orders, optionally filtered by ?status=PENDING|PAID|CANCELLED."""
    try:
        page, limit = _page_params()
        result = get_services().ledger.list_all(request.args.get("status"), page, limit)
        return jsonify(result), 200
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400


@admin_orders_bp.get("/<int:order_id>")
@require_auth
@require_admin
def get_order_route(order_id: int):
    try:
        order = get_services().ledger.get_order(order_id)
        return jsonify({"order": order_view(order)}), 200
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404


@admin_orders_bp.put("/<int:order_id>/shipping")
@require_auth
@require_admin
def update_shipping_route(order_id: int):
    """Body: {"carrier", "tracking_number", "tracking_url"?}"""
    try:
        data = request.get_json(silent=True) or {}
        shipping = get_services().ledger.update_shipping(
            order_id,
            data.get("carrier"),
            data.get("tracking_number"),
            data.get("tracking_url"),
        )
        return jsonify({"shipping": shipping.to_dict()}), 200

    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except Exception:
        current_app.logger.exception("Failed to update shipping")
        return jsonify({"error": "Internal server error"}), 500

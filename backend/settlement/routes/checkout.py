# Overview: Flask API routes for starting and resuming hosted checkout; parses input and returns JSON responses.

from flask import Blueprint, request, jsonify, g, current_app

from ..container import get_services
from ..decorators import require_auth
from ..services.checkout_service import CheckoutError
from ..services.order_service import OrderError
from ..validation import NotFoundError, ValidationError, parse_cart_items


checkout_bp = Blueprint("checkout", __name__, url_prefix="/api/checkout")


@checkout_bp.post("")
@require_auth
def start_checkout_route():
    """
    Create a pending order and return the processor checkout URL.

    Body: {"items": [{"catalog_item_id", "variant_id"?, "quantity"}], "currency"?}
    """
    try:
        data = request.get_json(silent=True) or {}
        items = parse_cart_items(data.get("items"))

        result = get_services().checkout.start_checkout(g.principal, items, data.get("currency"))
        return jsonify(result.to_dict()), 201

    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except OrderError as e:
        return jsonify({"error": str(e), "details": e.details}), 400
    except CheckoutError as e:
        return jsonify({"error": str(e), "order_id": e.order_id}), 502
    except Exception:
        current_app.logger.exception("Failed to start checkout")
        return jsonify({"error": "Internal server error"}), 500


@checkout_bp.post("/orders/<int:order_id>")
@require_auth
def resume_checkout_route(order_id: int):
    """Retry checkout for one of the caller's pending orders."""
    try:
        result = get_services().checkout.resume_checkout(g.principal, order_id)
        return jsonify(result.to_dict()), 200

    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except OrderError as e:
        return jsonify({"error": str(e), "details": e.details}), 400
    except CheckoutError as e:
        return jsonify({"error": str(e), "order_id": e.order_id}), 502
    except Exception:
        current_app.logger.exception("Failed to resume checkout")
        return jsonify({"error": "Internal server error"}), 500

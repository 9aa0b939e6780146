# Overview: Flask API routes for member subscriptions and admin plan management.

from flask import Blueprint, request, jsonify, g, current_app

from ..container import get_services
from ..decorators import require_admin, require_auth
from ..services.checkout_service import CheckoutError
from ..services.membership_service import MembershipError
from ..validation import ConflictError, NotFoundError, ValidationError
from ..values import SnapshotVersionError


membership_bp = Blueprint("membership", __name__, url_prefix="/api/membership")
admin_plans_bp = Blueprint("admin_plans", __name__, url_prefix="/api/admin/membership/plans")


@membership_bp.get("")
@require_auth
def get_membership_route():
    """Active plans plus the caller's active subscription (or null)."""
    membership = get_services().membership
    subscription = membership.get_active_subscription(g.principal.user_id)
    return jsonify({
        "plans": [plan.to_dict() for plan in membership.list_plans(active_only=True)],
        "subscription": subscription.to_dict() if subscription else None,
    }), 200


@membership_bp.post("/subscribe")
@require_auth
def subscribe_route():
    """Body: {"plan_slug", "currency"?}"""
    try:
        data = request.get_json(silent=True) or {}
        if not data.get("plan_slug"):
            return jsonify({"error": "plan_slug required"}), 400

        result = get_services().membership.subscribe(g.principal, data["plan_slug"], data.get("currency"))
        return jsonify(result.to_dict()), 200

    except (ValidationError, MembershipError) as e:
        return jsonify({"error": str(e)}), 400
    except CheckoutError as e:
        return jsonify({"error": str(e)}), 502
    except Exception:
        current_app.logger.exception("Failed to start subscription checkout")
        return jsonify({"error": "Internal server error"}), 500


@membership_bp.post("/cancel")
@require_auth
def cancel_route():
    try:
        subscription = get_services().membership.cancel(g.principal.user_id)
        return jsonify({"subscription": subscription.to_dict()}), 200

    except MembershipError as e:
        return jsonify({"error": str(e)}), 400
    except CheckoutError as e:
        return jsonify({"error": str(e)}), 502
    except Exception:
        current_app.logger.exception("Failed to cancel subscription")
        return jsonify({"error": "Internal server error"}), 500


@admin_plans_bp.get("")
@require_auth
@require_admin
def list_plans_route():
    plans = get_services().membership.list_plans()
    return jsonify({"plans": [plan.to_dict() for plan in plans]}), 200


@admin_plans_bp.post("")
@require_auth
@require_admin
def create_plan_route():
    try:
        data = request.get_json(silent=True) or {}
        plan = get_services().membership.create_plan(data)
        return jsonify({"plan": plan.to_dict()}), 201

    except (ValidationError, SnapshotVersionError) as e:
        return jsonify({"error": str(e)}), 400
    except ConflictError as e:
        return jsonify({"error": str(e)}), 409
    except Exception:
        current_app.logger.exception("Failed to create plan")
        return jsonify({"error": "Internal server error"}), 500


@admin_plans_bp.put("/<int:plan_id>")
@require_auth
@require_admin
def update_plan_route(plan_id: int):
    try:
        data = request.get_json(silent=True) or {}
        plan = get_services().membership.update_plan(plan_id, data)
        return jsonify({"plan": plan.to_dict()}), 200

    except (ValidationError, SnapshotVersionError) as e:
        return jsonify({"error": str(e)}), 400
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except Exception:
        current_app.logger.exception("Failed to update plan")
        return jsonify({"error": "Internal server error"}), 500

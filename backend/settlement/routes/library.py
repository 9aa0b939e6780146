# Overview: Flask API routes for the buyer library, access checks and admin entitlement grants.

from flask import Blueprint, request, jsonify, g, current_app

from ..container import get_services
from ..decorators import require_admin, require_auth
from ..models.entitlements import SOURCE_ADMIN
from ..time_utils import parse_iso_datetime
from ..validation import NotFoundError, ValidationError


library_bp = Blueprint("library", __name__, url_prefix="/api/library")
admin_entitlements_bp = Blueprint("admin_entitlements", __name__, url_prefix="/api/admin/entitlements")


@library_bp.get("")
@require_auth
def library_route():
    items = get_services().entitlements.library(g.principal.user_id)
    return jsonify({"items": items}), 200


@library_bp.get("/<item_id>/access")
@require_auth
def access_route(item_id: str):
    """
    Whether the caller may open an item.

    Checks direct entitlements first, then the active membership's features
    for the item's type.
    """
    services = get_services()
    item = services.catalog.get_item(item_id)
    item_type = request.args.get("item_type") or (item.item_type if item else None)

    allowed = services.access.can_access(g.principal.user_id, item_id, item_type)
    return jsonify({"catalog_item_id": item_id, "has_access": allowed}), 200


@admin_entitlements_bp.post("")
@require_auth
@require_admin
def grant_route():
    """Body: {"user_id", "catalog_item_id", "source_kind"? (ADMIN|PROMOTION), "source_id"?, "expires_at"?}"""
    try:
        data = request.get_json(silent=True) or {}
        try:
            expires_at = parse_iso_datetime(data.get("expires_at"))
        except ValueError:
            raise ValidationError("expires_at must be an ISO-8601 datetime")

        entitlement = get_services().entitlements.grant(
            data.get("user_id"),
            data.get("catalog_item_id"),
            (data.get("source_kind") or SOURCE_ADMIN).upper(),
            source_id=data.get("source_id") or g.principal.user_id,
            expires_at=expires_at,
        )
        return jsonify({"entitlement": entitlement.to_dict()}), 201

    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to grant entitlement")
        return jsonify({"error": "Internal server error"}), 500


@admin_entitlements_bp.delete("/<int:entitlement_id>")
@require_auth
@require_admin
def revoke_route(entitlement_id: int):
    try:
        entitlement = get_services().entitlements.revoke_by_id(entitlement_id)
        return jsonify({"entitlement": entitlement.to_dict()}), 200
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404

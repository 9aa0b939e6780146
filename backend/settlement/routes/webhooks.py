# Overview: Flask route receiving payment processor webhooks; hands the raw body to the webhook gateway.

from flask import Blueprint, request, jsonify, current_app

from ..container import get_services


webhooks_bp = Blueprint("webhooks", __name__, url_prefix="/api/stripe")


@webhooks_bp.post("/webhook")
def stripe_webhook_route():
    """
    Processor notification endpoint.

    The body must be read raw; the signature covers the exact bytes sent.
    Non-2xx responses make the processor redeliver.
    """
    payload = request.get_data(cache=False)
    signature = request.headers.get("Stripe-Signature")

    try:
        result = get_services().webhooks.handle(payload, signature)
        return jsonify(result.body), result.status_code

    except Exception:
        current_app.logger.exception("Failed to process webhook")
        return jsonify({"error": "Internal server error"}), 500

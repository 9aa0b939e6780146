# Overview: Request decorators for API routes; bearer authentication and admin gating.

from functools import wraps
from flask import request, jsonify, g

from .container import get_services


def require_auth(f):
    """
    Require a valid bearer token.

    Sets g.principal to the resolved Principal. Returns 401 if the
    Authorization header is missing or the token is not recognised.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        auth_header = request.headers.get("Authorization")

        if not auth_header or not auth_header.startswith("Bearer "):
            return jsonify({"error": "Authentication required"}), 401

        token = auth_header.split(" ", 1)[1].strip()
        principal = get_services().identity.resolve(token)

        if principal is None:
            return jsonify({"error": "Invalid or expired token"}), 401

        g.principal = principal
        return f(*args, **kwargs)

    return decorated_function


def require_admin(f):
    """Require an authenticated admin principal. Apply after @require_auth."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        principal = getattr(g, "principal", None)
        if principal is None:
            return jsonify({"error": "Authentication required"}), 401
        if not principal.is_admin:
            return jsonify({"error": "Admin access required"}), 403
        return f(*args, **kwargs)

    return decorated_function

# Overview: Request decorators for API routes.

from functools import wraps

from flask import g, jsonify, request

from .services import auth_service


def require_auth(f):
    """
    Require a valid bearer token.

    Sets g.current_operator and g.auth_token for the route. Returns 401 when
    the header is missing, the token is unknown, expired or revoked, or the
    operator has been deactivated.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        auth_header = request.headers.get("Authorization")

        if not auth_header or not auth_header.startswith("Bearer "):
            return jsonify({"error": "Authentication required"}), 401

        token = auth_header.split(" ", 1)[1].strip()
        operator = auth_service.validate_token(token)
        if operator is None:
            return jsonify({"error": "Invalid or expired token"}), 401

        g.current_operator = operator
        g.auth_token = token
        return f(*args, **kwargs)

    return decorated_function


def require_admin(f):
    """Must be stacked under require_auth."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        operator = getattr(g, "current_operator", None)
        if operator is None:
            return jsonify({"error": "Authentication required"}), 401
        if not operator.is_admin:
            return jsonify({"error": "Admin privileges required"}), 403
        return f(*args, **kwargs)

    return decorated_function

"""
Bearer-token guard for Flask views.
"""
from functools import wraps

import jwt
from flask import current_app, g, jsonify, request


def require_auth(view):
    @wraps(view)
    def wrapper(*args, **kwargs):
        auth_header = request.headers.get("Authorization")
        if not auth_header:
            return jsonify({"message": "Auth code required"}), 401

        parts = auth_header.split(" ")
        token = parts[1] if len(parts) > 1 else ""
        if not token:
            return jsonify({"message": "Invalid auth code"}), 401

        try:
            g.user = current_app.extensions["auth_service"].verify_token(token)
        except jwt.InvalidTokenError:
            return jsonify({"message": "Invalid or expired auth code"}), 403
        return view(*args, **kwargs)

    return wrapper

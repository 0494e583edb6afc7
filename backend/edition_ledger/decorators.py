# Overview: Request decorators for API routes.

import hmac
from functools import wraps
from flask import request, jsonify, current_app


def require_api_token(f):
    """
    Require the shared operator/webhook token on write endpoints.

    Expects "Authorization: Bearer <EDITIONS_API_TOKEN>". When no token is
    configured the check is skipped so local development works without one.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        expected = current_app.config.get("EDITIONS_API_TOKEN")
        if expected:
            auth_header = request.headers.get("Authorization")
            if not auth_header or not auth_header.startswith("Bearer "):
                return jsonify({"error": "Authentication required"}), 401

            token = auth_header.split(" ", 1)[1]
            if not hmac.compare_digest(token.encode(), expected.encode()):
                current_app.logger.warning(
                    "Rejected API token for %s %s from %s", request.method, request.path, request.remote_addr
                )
                return jsonify({"error": "Invalid token"}), 401

        return f(*args, **kwargs)

    return decorated_function

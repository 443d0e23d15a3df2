# Overview: Request identity decorator for API routes.

from functools import wraps
from flask import request, jsonify, g

from .extensions import db
from .models import User

IDENTITY_HEADER = "X-User-Id"


def require_identity(f):
    """
    Resolve the calling cashier and establish store context.

    Authentication happens upstream; this only maps the forwarded user id to
    an active User. Sets the following Flask g attributes:
    - g.current_user: The cashier User object
    - g.store_id: The cashier's store ID

    Returns 401 if the header is missing, malformed, or names no active user.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        raw = (request.headers.get(IDENTITY_HEADER) or "").strip()
        if not raw.isdigit():
            return jsonify({"error": "Authentication required"}), 401

        user = db.session.get(User, int(raw))
        if user is None or not user.is_active:
            return jsonify({"error": "Invalid or inactive user"}), 401

        g.current_user = user
        g.store_id = user.store_id

        return f(*args, **kwargs)

    return decorated_function

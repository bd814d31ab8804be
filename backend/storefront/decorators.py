# Overview: Request identity decorators for API routes.

from functools import wraps
from flask import request, jsonify, g

from .extensions import db
from .models import User


USER_ID_HEADER = "X-User-Id"


def _resolve_user():
    raw = request.headers.get(USER_ID_HEADER, "").strip()
    if not raw.isdigit():
        return None
    user = db.session.get(User, int(raw))
    if user is None or not user.is_active:
        return None
    return user


def require_user(f):
    """
    Require a caller identity.

    Authentication happens upstream (gateway/session layer); it forwards the
    authenticated user id in X-User-Id. Sets g.current_user.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        user = _resolve_user()
        if user is None:
            return jsonify({"error": "Authentication required", "code": "UNAUTHORIZED"}), 401
        g.current_user = user
        return f(*args, **kwargs)

    return decorated_function


def require_admin(f):
    """Require an ADMIN caller. Sets g.current_user."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        user = _resolve_user()
        if user is None:
            return jsonify({"error": "Authentication required", "code": "UNAUTHORIZED"}), 401
        if not user.is_admin:
            return jsonify({"error": "Admin access required", "code": "FORBIDDEN"}), 403
        g.current_user = user
        return f(*args, **kwargs)

    return decorated_function

"""
Authentication decorators for API endpoints

Provides decorators for requiring authentication and role-based access control.
"""

import logging
from functools import wraps
from typing import Callable, Any

from flask import current_app, g, jsonify
from flask_jwt_extended import get_jwt_identity, verify_jwt_in_request
from flask_jwt_extended.exceptions import JWTExtendedException
from jwt.exceptions import PyJWTError

from metalledger.auth.jwt import parse_identity
from metalledger.core.snapshots import Actor
from metalledger.models import User, UserRole

logger = logging.getLogger(__name__)


def current_actor() -> Actor:
    """The Actor of the authenticated request; use after @require_login"""
    return g.actor


def require_login(f: Callable) -> Callable:
    """Decorator requiring valid JWT token

    Checks for valid JWT token in Authorization header.
    Stores the current user and its Actor on flask.g.

    Usage:
        @api_bp.route('/orders')
        @require_login
        def list_orders():
            actor = current_actor()
    """

    @wraps(f)
    def decorated_function(*args: Any, **kwargs: Any) -> Any:
        try:
            verify_jwt_in_request()
            user_id = parse_identity(get_jwt_identity())
        except (JWTExtendedException, PyJWTError, ValueError, TypeError) as e:
            logger.warning(f"Authentication failed: {e}")
            return jsonify({"error": "Authentication required"}), 401

        db = current_app.extensions["metalledger"].db
        with db.session_context() as session:
            user = session.get(User, user_id)
            if user is None or user.status != "active":
                return jsonify({"error": "User not found or inactive"}), 401
            session.expunge(user)

        g.user = user
        g.actor = Actor.from_user(user)
        return f(*args, **kwargs)

    return decorated_function


def require_role(*allowed_roles: UserRole) -> Callable:
    """Decorator requiring specific role(s)

    Must be used AFTER @require_login decorator.

    Usage:
        @admin_bp.route('/orders')
        @require_login
        @require_role(UserRole.ADMIN)
        def admin_only():
            ...
    """

    def decorator(f: Callable) -> Callable:
        @wraps(f)
        def decorated_function(*args: Any, **kwargs: Any) -> Any:
            user = g.get("user")
            if user is None:
                return jsonify({"error": "Authentication required"}), 401

            if user.role not in allowed_roles:
                required = ", ".join(r.value for r in allowed_roles)
                logger.warning(
                    f"Access denied for user {user.email}: requires {required}, has {user.role.value}"
                )
                return jsonify({"error": f"Access denied. Required role: {required}"}), 403

            return f(*args, **kwargs)

        return decorated_function

    return decorator

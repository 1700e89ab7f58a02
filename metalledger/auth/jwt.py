"""
JWT bearer token setup and issuance
"""

import uuid
from datetime import timedelta
from typing import Optional

from flask_jwt_extended import JWTManager, create_access_token

from metalledger.models import User


def init_jwt(app, secret_key: str) -> JWTManager:
    """
    Initialize JWT authentication for the Flask app

    Args:
        app: Flask application instance
        secret_key: Signing key for access tokens

    Returns:
        JWTManager: Configured JWT manager instance
    """
    app.config["JWT_SECRET_KEY"] = secret_key
    app.config.setdefault("JWT_ACCESS_TOKEN_EXPIRES", timedelta(days=30))

    jwt = JWTManager(app)

    @jwt.additional_claims_loader
    def add_claims_to_access_token(identity):
        """Add custom claims to JWT token"""
        return {"api_version": "1.0.0"}

    return jwt


def create_access_token_for_user(user: User, expires_delta: Optional[timedelta] = None) -> str:
    """
    Create a JWT access token for a user

    The subject is the user id; role is embedded for clients only, the
    server always re-reads it from the database.

    Must run inside an application context.
    """
    return create_access_token(
        identity=str(user.id),
        additional_claims={"role": user.role.value, "email": user.email},
        expires_delta=expires_delta if expires_delta is not None else timedelta(days=30),
    )


def parse_identity(identity: str) -> uuid.UUID:
    return uuid.UUID(identity)

"""
Authentication module

Provides JWT setup and decorators for authentication and authorization.
"""

from metalledger.auth.jwt import init_jwt, create_access_token_for_user
from metalledger.auth.decorators import current_actor, require_login, require_role

__all__ = [
    "init_jwt",
    "create_access_token_for_user",
    "current_actor",
    "require_login",
    "require_role",
]

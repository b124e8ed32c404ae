"""
Authentication and authorization module.

Provides JWT-based authentication, password policy and role-based
authorization.
"""

from gatehouse.auth.jwt import (
    IssuedToken,
    TokenData,
    TokenService,
    get_token_service,
)
from gatehouse.auth.password import (
    PasswordPolicy,
    hash_password,
    verify_password,
)
from gatehouse.auth.policy import (
    Action,
    Identity,
    authorize,
    can_access,
)

__all__ = [
    # JWT
    "IssuedToken",
    "TokenData",
    "TokenService",
    "get_token_service",
    # Passwords
    "PasswordPolicy",
    "hash_password",
    "verify_password",
    # Policy
    "Action",
    "Identity",
    "authorize",
    "can_access",
]

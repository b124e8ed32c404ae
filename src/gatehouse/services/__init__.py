"""
Business logic services.
"""

from gatehouse.services.auth import AuthService, TokenPair
from gatehouse.services.user import UserService

__all__ = [
    "AuthService",
    "TokenPair",
    "UserService",
]

"""
API routes module.
"""

from gatehouse.api.routes.auth import router as auth_router
from gatehouse.api.routes.users import router as users_router

__all__ = [
    "auth_router",
    "users_router",
]

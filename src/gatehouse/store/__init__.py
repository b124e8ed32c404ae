"""
Persistence layer.

Every query method takes an explicit ``include_deleted`` flag instead of
filtering soft-deleted users by convention.
"""

from gatehouse.store.audit import RoleChangeLogStore
from gatehouse.store.tokens import RevocationStore
from gatehouse.store.users import UserStore

__all__ = [
    "RoleChangeLogStore",
    "RevocationStore",
    "UserStore",
]

"""
Role change audit log.
"""

from enum import Enum
from uuid import UUID

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from gatehouse.db.models import RoleChangeLog

logger = structlog.get_logger()


class RoleChangeAction(str, Enum):
    ADD = "ADD"
    REMOVE = "REMOVE"


class RoleChangeLogStore:
    """Append-only store of role mutations."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def append(
        self,
        target_user_id: UUID,
        acting_user_id: UUID,
        role: str,
        action: RoleChangeAction,
    ) -> RoleChangeLog:
        entry = RoleChangeLog(
            target_user_id=target_user_id,
            acting_user_id=acting_user_id,
            role=role,
            action=action.value,
        )
        self.db.add(entry)
        await self.db.flush()

        logger.info(
            "Role change recorded",
            target_user_id=str(target_user_id),
            acting_user_id=str(acting_user_id),
            role=role,
            action=action.value,
        )
        return entry

    async def list_for_user(self, target_user_id: UUID) -> list[RoleChangeLog]:
        """Entries for a user, newest first."""
        result = await self.db.execute(
            select(RoleChangeLog)
            .where(RoleChangeLog.target_user_id == target_user_id)
            .order_by(RoleChangeLog.created_at.desc())
        )
        return list(result.scalars().all())

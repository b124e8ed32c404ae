"""
Refresh token revocation list.
"""

from datetime import datetime, timezone
from uuid import UUID

import structlog
from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from gatehouse.db.models import RevokedToken

logger = structlog.get_logger()

KIND_JTI = "jti"
KIND_SESSION = "session"


class RevocationStore:
    """Tracks refresh token ids (``jti``) and sessions (``sid``) that may no longer refresh."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def revoke(
        self,
        token_id: str,
        user_id: UUID,
        kind: str,
        expires_at: datetime,
    ) -> bool:
        """
        Add ``token_id`` to the list. Revoking twice is a no-op.

        Returns:
            False if ``token_id`` was already revoked, including by a
            concurrent transaction. In that case the transaction is rolled back.
        """
        if await self.db.get(RevokedToken, token_id) is not None:
            return False
        self.db.add(
            RevokedToken(
                token_id=token_id,
                user_id=user_id,
                kind=kind,
                expires_at=expires_at,
            )
        )
        try:
            await self.db.flush()
        except IntegrityError:
            await self.db.rollback()
            logger.info("Token already revoked concurrently", token_id=token_id, kind=kind)
            return False
        return True

    async def is_revoked(self, *token_ids: str) -> bool:
        """True if any of ``token_ids`` is on the list."""
        result = await self.db.execute(
            select(RevokedToken.token_id).where(RevokedToken.token_id.in_(token_ids)).limit(1)
        )
        return result.first() is not None

    async def is_jti_revoked(self, jti: str) -> bool:
        result = await self.db.execute(
            select(RevokedToken.token_id).where(
                RevokedToken.token_id == jti,
                RevokedToken.kind == KIND_JTI,
            )
        )
        return result.first() is not None

    async def purge_expired(self, now: datetime | None = None) -> int:
        """Delete entries whose tokens have expired anyway. Returns rows removed."""
        now = now or datetime.now(timezone.utc)
        result = await self.db.execute(
            delete(RevokedToken).where(RevokedToken.expires_at < now)
        )
        await self.db.flush()
        logger.info("Expired revocations purged", count=result.rowcount)
        return result.rowcount

"""
Credential store.

Uniqueness of email and username among live users is enforced by partial
unique indexes; the ``exists_*`` checks only produce friendlier messages and
never replace the constraint.
"""

from datetime import datetime, timezone
from uuid import UUID

import structlog
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from gatehouse.db.models import User, UserRole
from gatehouse.errors import DuplicateIdentity

logger = structlog.get_logger()

SORTABLE_FIELDS = {
    "email": User.email,
    "firstName": User.first_name,
    "lastName": User.last_name,
    "username": User.username,
}


def normalize_email(email: str) -> str:
    return email.strip().lower()


class UserStore:
    """Persistence operations on user records."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def find_by_id(self, user_id: UUID, include_deleted: bool = True) -> User | None:
        """Get user by ID. Soft-deleted users resolve unless excluded."""
        query = select(User).where(User.id == user_id)
        if not include_deleted:
            query = query.where(User.deleted_at.is_(None))
        result = await self.db.execute(query)
        return result.scalar_one_or_none()

    async def find_by_email(self, email: str, include_deleted: bool = False) -> User | None:
        """Get user by email (case-insensitive)."""
        query = select(User).where(User.email == normalize_email(email))
        if not include_deleted:
            query = query.where(User.deleted_at.is_(None))
        else:
            # Several deleted rows may share an email; prefer the live one
            query = query.order_by(User.deleted_at.is_not(None), User.created_at.desc()).limit(1)
        result = await self.db.execute(query)
        return result.scalar_one_or_none()

    async def find_by_username(self, username: str, include_deleted: bool = False) -> User | None:
        """Get user by username."""
        query = select(User).where(User.username == username)
        if not include_deleted:
            query = query.where(User.deleted_at.is_(None))
        else:
            query = query.order_by(User.deleted_at.is_not(None), User.created_at.desc()).limit(1)
        result = await self.db.execute(query)
        return result.scalar_one_or_none()

    async def exists_by_email(self, email: str, include_deleted: bool = False) -> bool:
        return await self.find_by_email(email, include_deleted=include_deleted) is not None

    async def exists_by_username(self, username: str, include_deleted: bool = False) -> bool:
        return await self.find_by_username(username, include_deleted=include_deleted) is not None

    async def save(self, user: User) -> User:
        """
        Insert or update a user.

        Raises:
            DuplicateIdentity: The write violated email/username uniqueness.
                The surrounding transaction is rolled back.
        """
        user.email = email = normalize_email(user.email)
        self.db.add(user)
        try:
            await self.db.flush()
        except IntegrityError as e:
            # Rollback expires loaded attributes, so log from locals
            await self.db.rollback()
            logger.info("Duplicate identity rejected", email=email, error=str(e.orig))
            raise DuplicateIdentity()
        return user

    async def add_role(self, user: User, role: str) -> User:
        """
        Attach ``role`` to ``user``.

        Raises:
            DuplicateIdentity: A concurrent grant of the same role won.
                The surrounding transaction is rolled back.
        """
        user_id = user.id
        user.role_links.append(UserRole(role=role))
        try:
            await self.db.flush()
        except IntegrityError as e:
            await self.db.rollback()
            logger.info("Duplicate role grant rejected", user_id=str(user_id), role=role, error=str(e.orig))
            raise DuplicateIdentity(f"User already holds role '{role}'")
        return user

    async def soft_delete(self, user_id: UUID) -> User | None:
        """
        Mark a user deleted.

        Idempotent: an already-deleted user keeps its original ``deleted_at``.

        Returns:
            The user, or None if no such row exists
        """
        user = await self.lock(user_id)
        if user is None:
            return None
        if user.deleted_at is None:
            user.deleted_at = datetime.now(timezone.utc)
            await self.db.flush()
            logger.info("User soft-deleted", user_id=str(user_id))
        return user

    async def list_all(
        self,
        include_deleted: bool = False,
        sort: str = "email",
        limit: int | None = None,
        offset: int = 0,
    ) -> list[User]:
        """List users ordered by ``sort`` (email, firstName, lastName, username)."""
        column = SORTABLE_FIELDS.get(sort, User.email)
        query = select(User)
        if not include_deleted:
            query = query.where(User.deleted_at.is_(None))
        query = query.order_by(column.asc(), User.email.asc()).offset(offset)
        if limit is not None:
            query = query.limit(limit)

        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def lock(self, user_id: UUID) -> User | None:
        """Load a user row with a write lock held until the transaction ends."""
        result = await self.db.execute(
            select(User)
            .where(User.id == user_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def count_active_admins(self, admin_role: str) -> int:
        """
        Count live, enabled users holding ``admin_role``.

        The matching rows stay locked for the rest of the transaction so two
        concurrent demotions cannot both see a second admin.
        """
        result = await self.db.execute(
            select(User.id)
            .join(UserRole, UserRole.user_id == User.id)
            .where(
                UserRole.role == admin_role,
                User.deleted_at.is_(None),
                User.enabled.is_(True),
            )
            .with_for_update()
        )
        return len(result.all())


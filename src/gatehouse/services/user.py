"""
User lifecycle service.

Registration, profile updates, password changes, soft delete and role
mutation. Every operation taking an acting identity is gated by
``gatehouse.auth.policy`` before touching the store.
"""

from typing import Any
from uuid import UUID

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from gatehouse.auth.password import PasswordPolicy, hash_password, verify_password
from gatehouse.auth.policy import Action, Identity, authorize, authorize_any, can_access
from gatehouse.config import settings
from gatehouse.db.models import RoleChangeLog, User, UserRole
from gatehouse.errors import (
    AuthorizationDenied,
    DuplicateIdentity,
    FieldViolation,
    IllegalState,
    IncorrectPassword,
    UserNotFound,
    ValidationError,
)
from gatehouse.store import RoleChangeLogStore, UserStore
from gatehouse.store.audit import RoleChangeAction
from gatehouse.store.users import normalize_email

logger = structlog.get_logger()

ADMIN_ONLY_FIELDS = {"enabled"}


class UserService:
    """Service for the user entity lifecycle."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.users = UserStore(db)
        self.role_log = RoleChangeLogStore(db)
        self.password_policy = PasswordPolicy()

    async def register(
        self,
        email: str,
        password: str | None,
        first_name: str | None = None,
        last_name: str | None = None,
        username: str | None = None,
        roles: set[str] | None = None,
    ) -> User:
        """
        Create a new, enabled user.

        Args:
            email: User email (unique, case-insensitive)
            password: Plain text password, checked against the password policy
            first_name: Optional display name
            last_name: Optional display name
            username: Optional unique handle
            roles: Initial roles; defaults to the default role only

        Returns:
            Created user

        Raises:
            ValidationError: Password violates the policy (all violations listed)
            DuplicateIdentity: Email or username already taken
        """
        self.password_policy.check(password)

        email = normalize_email(email)
        if await self.users.exists_by_email(email):
            raise DuplicateIdentity(f"User with email '{email}' already exists")
        if username and await self.users.exists_by_username(username):
            raise DuplicateIdentity(f"User with username '{username}' already exists")

        user = User(
            email=email,
            username=username or None,
            hashed_password=hash_password(password),
            first_name=first_name,
            last_name=last_name,
            enabled=True,
            role_links=[UserRole(role=role) for role in sorted(roles or {settings.default_role})],
        )
        await self.users.save(user)

        logger.info("User registered", user_id=str(user.id), email=email)
        return user

    async def get(self, user_id: UUID, identity: Identity) -> User:
        """
        Get one user. Soft-deleted users are visible to admins only.

        Raises:
            UserNotFound: No such user (or deleted and caller is not admin)
        """
        authorize(identity, Action.GET_ANY_USER, user_id)
        user = await self.users.find_by_id(user_id, include_deleted=identity.is_admin)
        if user is None:
            raise UserNotFound()
        return user

    async def list_users(self, identity: Identity, sort: str = "email") -> list[User]:
        """List live users."""
        authorize(identity, Action.LIST_USERS)
        return await self.users.list_all(include_deleted=False, sort=sort)

    async def update(self, user_id: UUID, fields: dict[str, Any], identity: Identity) -> User:
        """
        Partially update a user; only keys present in ``fields`` change.

        Args:
            user_id: User to update
            fields: Any of email, username, first_name, last_name, enabled
            identity: Acting user (self or admin)

        Returns:
            Updated user

        Raises:
            AuthorizationDenied: Neither self nor admin, or a non-admin
                touching an admin-only field
            UserNotFound: No live user with that ID
            DuplicateIdentity: New email/username already taken
            IllegalState: Disabling the last enabled admin
        """
        authorize_any(identity, (Action.UPDATE_SELF, Action.UPDATE_ANY_USER), user_id)
        admin_fields = {k for k in ADMIN_ONLY_FIELDS & fields.keys() if fields[k] is not None}
        if admin_fields and not can_access(identity, Action.UPDATE_ANY_USER, user_id):
            raise AuthorizationDenied()

        user = await self._lock_live(user_id)

        if "email" in fields and fields["email"] is not None:
            email = normalize_email(fields["email"])
            if email != user.email and await self.users.exists_by_email(email):
                raise DuplicateIdentity(f"User with email '{email}' already exists")
            user.email = email

        if "username" in fields:
            username = fields["username"] or None
            if username and username != user.username and await self.users.exists_by_username(username):
                raise DuplicateIdentity(f"User with username '{username}' already exists")
            user.username = username

        for key in ("first_name", "last_name"):
            if key in fields:
                setattr(user, key, fields[key])

        if "enabled" in fields and fields["enabled"] is not None:
            if not fields["enabled"] and user.enabled and settings.admin_role in user.roles:
                await self._ensure_not_last_admin("Cannot disable the last remaining administrator")
            user.enabled = fields["enabled"]

        await self.users.save(user)
        logger.info(
            "User updated",
            user_id=str(user_id),
            acting_user_id=str(identity.id),
            fields=sorted(fields.keys()),
        )
        return user

    async def change_password(
        self,
        user_id: UUID,
        old_password: str,
        new_password: str | None,
        identity: Identity,
        confirm_password: str | None = None,
    ) -> None:
        """
        Change the caller's own password.

        Admins cannot change other users' passwords through this path.

        Raises:
            AuthorizationDenied: Caller is not the target user
            IncorrectPassword: ``old_password`` does not match
            ValidationError: New password violates the policy, or the
                confirmation does not match
        """
        authorize(identity, Action.CHANGE_OWN_PASSWORD, user_id)
        user = await self._lock_live(user_id)

        if not verify_password(old_password or "", user.hashed_password):
            logger.warning("Incorrect current password", user_id=str(user_id))
            raise IncorrectPassword()

        violations = PasswordPolicy(field="newPassword").validate(new_password)
        if confirm_password is not None and confirm_password != new_password:
            violations.append(FieldViolation(field="confirmPassword", message="Passwords do not match"))
        if violations:
            raise ValidationError(violations)

        user.hashed_password = hash_password(new_password)
        await self.users.save(user)
        logger.info("Password changed", user_id=str(user_id))

    async def soft_delete(self, user_id: UUID, identity: Identity) -> None:
        """
        Soft delete a user. Idempotent.

        Raises:
            AuthorizationDenied: Caller is not admin
            UserNotFound: No such user
            IllegalState: Target is the last enabled admin
        """
        authorize(identity, Action.DELETE_USER, user_id)

        user = await self.users.lock(user_id)
        if user is None:
            raise UserNotFound()
        if user.is_deleted:
            return

        if user.enabled and settings.admin_role in user.roles:
            await self._ensure_not_last_admin("Cannot delete the last remaining administrator")

        await self.users.soft_delete(user_id)
        logger.info("User deleted", user_id=str(user_id), acting_user_id=str(identity.id))

    async def add_role(self, user_id: UUID, role: str, identity: Identity) -> User:
        """
        Grant ``role``. Granting a role the user already holds changes nothing
        and is not logged.
        """
        authorize(identity, Action.ADD_ROLE, user_id)
        role = _normalize_role(role)
        user = await self._lock_live(user_id)

        if role in user.roles:
            return user

        await self.users.add_role(user, role)
        await self.role_log.append(user.id, identity.id, role, RoleChangeAction.ADD)
        return user

    async def remove_role(self, user_id: UUID, role: str, identity: Identity) -> User:
        """
        Revoke ``role``. Removing a role the user does not hold changes
        nothing and is not logged.

        Raises:
            IllegalState: Removing ADMIN from the last enabled admin
        """
        authorize(identity, Action.REMOVE_ROLE, user_id)
        role = _normalize_role(role)
        user = await self._lock_live(user_id)

        link = next((link for link in user.role_links if link.role == role), None)
        if link is None:
            return user

        if role == settings.admin_role and user.enabled:
            await self._ensure_not_last_admin("Cannot remove the ADMIN role from the last remaining administrator")

        user.role_links.remove(link)
        await self.users.save(user)
        await self.role_log.append(user.id, identity.id, role, RoleChangeAction.REMOVE)
        return user

    async def role_changes(self, user_id: UUID, identity: Identity) -> list[RoleChangeLog]:
        """Audit trail of role changes for a user, newest first."""
        authorize(identity, Action.VIEW_ROLE_CHANGES, user_id)
        if await self.users.find_by_id(user_id, include_deleted=True) is None:
            raise UserNotFound()
        return await self.role_log.list_for_user(user_id)

    async def _lock_live(self, user_id: UUID) -> User:
        user = await self.users.lock(user_id)
        if user is None or user.is_deleted:
            raise UserNotFound()
        return user

    async def _ensure_not_last_admin(self, message: str) -> None:
        if await self.users.count_active_admins(settings.admin_role) <= 1:
            raise IllegalState(message)


def _normalize_role(role: str) -> str:
    role = (role or "").strip().upper()
    if not role:
        raise ValidationError([FieldViolation(field="role", message="Role is required", rejected_value=role)])
    return role

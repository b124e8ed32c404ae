"""
Role-based authorization.

A single explicit decision function evaluated per request. Rules, in order:

1. Unauthenticated callers may only register and log in.
2. Self-service actions require the caller to be the target user.
3. Listing and reading users requires any authenticated caller.
4. Administrative actions require the ADMIN role.
5. Everything else is denied.
"""

from dataclasses import dataclass, field
from enum import Enum
from uuid import UUID

import structlog

from gatehouse.config import settings
from gatehouse.errors import AuthorizationDenied, InvalidToken

logger = structlog.get_logger()


class Action(str, Enum):
    REGISTER = "register"
    LOGIN = "login"
    VIEW_SELF = "viewSelf"
    UPDATE_SELF = "updateSelf"
    CHANGE_OWN_PASSWORD = "changeOwnPassword"
    LIST_USERS = "listUsers"
    GET_ANY_USER = "getAnyUser"
    UPDATE_ANY_USER = "updateAnyUser"
    DELETE_USER = "deleteUser"
    ADD_ROLE = "addRole"
    REMOVE_ROLE = "removeRole"
    VIEW_ROLE_CHANGES = "viewRoleChanges"


PUBLIC_ACTIONS = frozenset({Action.REGISTER, Action.LOGIN})
SELF_ACTIONS = frozenset({Action.VIEW_SELF, Action.UPDATE_SELF, Action.CHANGE_OWN_PASSWORD})
AUTHENTICATED_ACTIONS = frozenset({Action.LIST_USERS, Action.GET_ANY_USER})
ADMIN_ACTIONS = frozenset({
    Action.UPDATE_ANY_USER,
    Action.DELETE_USER,
    Action.ADD_ROLE,
    Action.REMOVE_ROLE,
    Action.VIEW_ROLE_CHANGES,
})


@dataclass(frozen=True)
class Identity:
    """Authenticated caller, as asserted by an access token."""
    id: UUID
    email: str = ""
    roles: frozenset[str] = field(default_factory=frozenset)
    session_id: str | None = None

    @property
    def is_admin(self) -> bool:
        return settings.admin_role in self.roles


def can_access(
    identity: Identity | None,
    action: Action,
    target_user_id: UUID | None = None,
) -> bool:
    """Decide whether ``identity`` may perform ``action`` on ``target_user_id``."""
    if identity is None:
        return action in PUBLIC_ACTIONS
    if action in SELF_ACTIONS:
        return target_user_id is not None and identity.id == target_user_id
    if action in AUTHENTICATED_ACTIONS:
        return True
    if action in ADMIN_ACTIONS:
        return identity.is_admin
    return False


def authorize(
    identity: Identity | None,
    action: Action,
    target_user_id: UUID | None = None,
) -> None:
    """
    Enforce ``can_access``.

    Raises:
        InvalidToken: Caller is unauthenticated and the action is not public
        AuthorizationDenied: Caller is authenticated but not permitted
    """
    if can_access(identity, action, target_user_id):
        return
    if identity is None:
        raise InvalidToken("Authentication required")

    logger.warning(
        "Authorization denied",
        user_id=str(identity.id),
        action=action.value,
        target_user_id=str(target_user_id) if target_user_id else None,
    )
    raise AuthorizationDenied()


def authorize_any(
    identity: Identity | None,
    actions: tuple[Action, ...],
    target_user_id: UUID | None = None,
) -> None:
    """Pass if any one of ``actions`` is allowed (e.g. updateSelf or updateAnyUser)."""
    for action in actions[:-1]:
        if can_access(identity, action, target_user_id):
            return
    authorize(identity, actions[-1], target_user_id)

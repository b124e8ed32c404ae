"""
User management API routes.
"""

from uuid import UUID

import structlog
from fastapi import APIRouter, Response, status

from gatehouse.auth.dependencies import CurrentIdentity, Users
from gatehouse.auth.schemas import (
    ChangePasswordRequest,
    RoleChangeResponse,
    RoleRequest,
    UserRegister,
    UserResponse,
    UserUpdate,
)
from gatehouse.errors import UserNotFound

logger = structlog.get_logger()

router = APIRouter(prefix="/users", tags=["Users"])


def _parse_user_id(user_id: str) -> UUID:
    """Path IDs that are not UUIDs cannot name a user."""
    try:
        return UUID(user_id)
    except ValueError:
        raise UserNotFound()


@router.post("", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
async def register(request: UserRegister, user_service: Users) -> UserResponse:
    """
    Register a new user with the default role.
    """
    user = await user_service.register(
        email=request.email,
        password=request.password,
        first_name=request.first_name,
        last_name=request.last_name,
        username=request.username,
    )
    return UserResponse.model_validate(user)


@router.get("", response_model=list[UserResponse])
async def list_users(
    identity: CurrentIdentity,
    user_service: Users,
    sort: str = "email",
) -> list[UserResponse]:
    """
    List users that have not been deleted.

    ``sort`` is one of email, firstName, lastName, username; anything else
    sorts by email.
    """
    users = await user_service.list_users(identity, sort=sort)
    return [UserResponse.model_validate(user) for user in users]


@router.get("/{user_id}", response_model=UserResponse)
async def get_user(user_id: str, identity: CurrentIdentity, user_service: Users) -> UserResponse:
    """
    Get user by ID.
    """
    user = await user_service.get(_parse_user_id(user_id), identity)
    return UserResponse.model_validate(user)


@router.put("/{user_id}", response_model=UserResponse)
async def update_user(
    user_id: str,
    request: UserUpdate,
    identity: CurrentIdentity,
    user_service: Users,
) -> UserResponse:
    """
    Update a user (self or admin). Only fields present in the body change.
    """
    fields = request.model_dump(exclude_unset=True)
    user = await user_service.update(_parse_user_id(user_id), fields, identity)
    return UserResponse.model_validate(user)


@router.delete("/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_user(user_id: str, identity: CurrentIdentity, user_service: Users) -> Response:
    """
    Soft delete a user (admin only).
    """
    await user_service.soft_delete(_parse_user_id(user_id), identity)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/{user_id}/change-password", status_code=status.HTTP_204_NO_CONTENT)
async def change_password(
    user_id: str,
    request: ChangePasswordRequest,
    identity: CurrentIdentity,
    user_service: Users,
) -> Response:
    """
    Change own password (self only).
    """
    await user_service.change_password(
        _parse_user_id(user_id),
        old_password=request.old_password,
        new_password=request.new_password,
        identity=identity,
        confirm_password=request.confirm_password,
    )
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/{user_id}/roles", response_model=UserResponse)
async def add_role(
    user_id: str,
    request: RoleRequest,
    identity: CurrentIdentity,
    user_service: Users,
) -> UserResponse:
    """
    Add a role to a user (admin only).
    """
    user = await user_service.add_role(_parse_user_id(user_id), request.role, identity)
    return UserResponse.model_validate(user)


@router.delete("/{user_id}/roles", response_model=UserResponse)
async def remove_role(
    user_id: str,
    request: RoleRequest,
    identity: CurrentIdentity,
    user_service: Users,
) -> UserResponse:
    """
    Remove a role from a user (admin only).
    """
    user = await user_service.remove_role(_parse_user_id(user_id), request.role, identity)
    return UserResponse.model_validate(user)


@router.get("/{user_id}/role-changes", response_model=list[RoleChangeResponse])
async def list_role_changes(
    user_id: str,
    identity: CurrentIdentity,
    user_service: Users,
) -> list[RoleChangeResponse]:
    """
    Role change audit trail for a user, newest first (admin only).
    """
    entries = await user_service.role_changes(_parse_user_id(user_id), identity)
    return [
        RoleChangeResponse(
            id=entry.id,
            target_user_id=entry.target_user_id,
            acting_user_id=entry.acting_user_id,
            role=entry.role,
            action=entry.action,
            timestamp=entry.created_at,
        )
        for entry in entries
    ]

"""
FastAPI dependencies for authentication.

Provides reusable dependencies for route protection. Authorization itself
is decided by ``gatehouse.auth.policy`` inside the services.
"""

from typing import Annotated

import structlog
from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from gatehouse.auth.jwt import ACCESS, TokenService, get_token_service
from gatehouse.auth.policy import Identity
from gatehouse.db import get_db
from gatehouse.errors import InvalidToken
from gatehouse.services import AuthService, UserService

logger = structlog.get_logger()

# HTTP Bearer token extractor
bearer_scheme = HTTPBearer(auto_error=False)


async def get_current_identity(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(bearer_scheme)],
    tokens: Annotated[TokenService, Depends(get_token_service)],
) -> Identity:
    """
    Extract and validate the caller from a bearer access token.

    The token alone is trusted: no store lookup happens here.

    Usage:
        @app.get("/protected")
        async def protected(identity: CurrentIdentity):
            return {"user_id": identity.id}

    Raises:
        InvalidToken: Missing, malformed, expired or non-access token
    """
    if credentials is None:
        raise InvalidToken("Authentication required")

    token_data = tokens.parse_and_validate(credentials.credentials, expected_type=ACCESS)

    logger.debug("User authenticated", user_id=token_data.sub)

    return Identity(
        id=token_data.user_id,
        email=token_data.email,
        roles=frozenset(token_data.roles),
        session_id=token_data.sid,
    )


def get_auth_service(
    db: Annotated[AsyncSession, Depends(get_db)],
    tokens: Annotated[TokenService, Depends(get_token_service)],
) -> AuthService:
    return AuthService(db, tokens)


def get_user_service(db: Annotated[AsyncSession, Depends(get_db)]) -> UserService:
    return UserService(db)


# Type aliases for cleaner route signatures
CurrentIdentity = Annotated[Identity, Depends(get_current_identity)]
Auth = Annotated[AuthService, Depends(get_auth_service)]
Users = Annotated[UserService, Depends(get_user_service)]

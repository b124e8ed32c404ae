"""
Authentication API routes.
"""

from typing import Annotated

import structlog
from fastapi import APIRouter, Cookie, Response, status

from gatehouse.auth.dependencies import Auth, CurrentIdentity
from gatehouse.auth.jwt import IssuedToken
from gatehouse.auth.schemas import LoginRequest, Token, UserResponse
from gatehouse.config import settings
from gatehouse.services import TokenPair

logger = structlog.get_logger()

router = APIRouter(prefix="/auth", tags=["Authentication"])

RefreshCookie = Annotated[str | None, Cookie(alias=settings.refresh_cookie_name)]


def _set_refresh_cookie(response: Response, refresh: IssuedToken) -> None:
    response.set_cookie(
        key=settings.refresh_cookie_name,
        value=refresh.token,
        max_age=refresh.max_age,
        path=settings.refresh_cookie_path,
        secure=settings.refresh_cookie_secure,
        httponly=True,
        samesite="strict",
    )


def _clear_refresh_cookie(response: Response) -> None:
    response.set_cookie(
        key=settings.refresh_cookie_name,
        value="",
        max_age=0,
        path=settings.refresh_cookie_path,
        secure=settings.refresh_cookie_secure,
        httponly=True,
        samesite="strict",
    )


def _token_body(tokens: TokenPair) -> Token:
    return Token(token=tokens.access.token, expires_in=tokens.access.max_age)


@router.post("/login", response_model=Token)
async def login(request: LoginRequest, response: Response, auth_service: Auth) -> Token:
    """
    Authenticate user and get an access token.

    The refresh token is set as an HttpOnly cookie scoped to the refresh path.
    """
    _, tokens = await auth_service.login(email=request.email, password=request.password)
    _set_refresh_cookie(response, tokens.refresh)
    return _token_body(tokens)


@router.post("/refresh", response_model=Token)
async def refresh_token(
    response: Response,
    auth_service: Auth,
    refresh_cookie: RefreshCookie = None,
) -> Token:
    """
    Exchange the refresh cookie for a new access token.

    The refresh token is rotated: a new cookie replaces the old one.
    """
    tokens = await auth_service.refresh(refresh_cookie)
    _set_refresh_cookie(response, tokens.refresh)
    return _token_body(tokens)


@router.get("/me", response_model=UserResponse)
async def get_current_user_info(identity: CurrentIdentity, auth_service: Auth) -> UserResponse:
    """
    Get current authenticated user info.
    """
    user = await auth_service.get_current_user(identity)
    return UserResponse.model_validate(user)


@router.post("/revoke-refresh-token", status_code=status.HTTP_204_NO_CONTENT)
async def revoke_refresh_token(identity: CurrentIdentity, auth_service: Auth) -> Response:
    """
    Revoke the refresh token and clear its cookie.

    The current access token remains valid until it expires. For a complete
    logout the client should also discard the access token it holds.
    """
    await auth_service.revoke_refresh_token(identity)
    response = Response(status_code=status.HTTP_204_NO_CONTENT)
    _clear_refresh_cookie(response)
    return response

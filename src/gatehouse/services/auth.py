"""
Authentication service.

Handles login, refresh with rotation, current-user resolution and refresh
token revocation.
"""

from dataclasses import dataclass
from datetime import datetime, timezone

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from gatehouse.auth.jwt import REFRESH, IssuedToken, TokenService
from gatehouse.auth.password import verify_password
from gatehouse.auth.policy import Identity
from gatehouse.db.models import User
from gatehouse.errors import AccountDisabled, InvalidCredentials, InvalidToken, UserNotFound
from gatehouse.store import RevocationStore, UserStore
from gatehouse.store.tokens import KIND_JTI, KIND_SESSION

logger = structlog.get_logger()


@dataclass(frozen=True)
class TokenPair:
    """Access token for the response body, refresh token for the cookie."""
    access: IssuedToken
    refresh: IssuedToken


class AuthService:
    """Service for authentication operations."""

    def __init__(self, db: AsyncSession, tokens: TokenService):
        self.db = db
        self.tokens = tokens
        self.users = UserStore(db)
        self.revocations = RevocationStore(db)

    async def login(self, email: str, password: str) -> tuple[User, TokenPair]:
        """
        Authenticate user and return tokens.

        Args:
            email: User email
            password: User password

        Returns:
            Tuple of (user, tokens)

        Raises:
            InvalidCredentials: Unknown email, soft-deleted account or wrong password
            AccountDisabled: Correct credentials for a disabled account
        """
        user = await self.users.find_by_email(email, include_deleted=False)

        # Always pay for one bcrypt verification so unknown emails are not faster
        password_ok = verify_password(password, user.hashed_password if user else None)
        if user is None or not password_ok:
            logger.warning("Invalid login attempt", email=email)
            raise InvalidCredentials()

        if not user.enabled:
            logger.warning("Login attempt for disabled user", user_id=str(user.id))
            raise AccountDisabled()

        user.last_login_at = datetime.now(timezone.utc)
        await self.db.flush()

        tokens = self._create_tokens(user)

        logger.info("User logged in", user_id=str(user.id))
        return user, tokens

    async def refresh(self, refresh_token: str | None) -> TokenPair:
        """
        Exchange a refresh token for a new token pair.

        The presented refresh token is revoked and replaced (rotation). A
        refresh token that was already rotated away signals theft, so its
        whole session is revoked.

        Args:
            refresh_token: Refresh token from the cookie

        Returns:
            New token pair in the same session

        Raises:
            InvalidToken: Missing, invalid, expired, revoked or reused token,
                or the user no longer exists
            AccountDisabled: The user has been disabled since login
        """
        if not refresh_token:
            raise InvalidToken("Refresh token missing")

        token_data = self.tokens.parse_and_validate(refresh_token, expected_type=REFRESH)

        if await self.revocations.is_jti_revoked(token_data.jti):
            logger.warning(
                "Refresh token reuse detected",
                user_id=token_data.sub,
                session_id=token_data.sid,
            )
            await self.revocations.revoke(
                token_data.sid, token_data.user_id, KIND_SESSION, token_data.exp,
            )
            # The request fails, but the session revocation must survive its rollback
            await self.db.commit()
            raise InvalidToken("Refresh token has been revoked")

        if await self.revocations.is_revoked(token_data.sid):
            raise InvalidToken("Refresh token has been revoked")

        # Get user to verify still present and enabled
        user = await self.users.find_by_id(token_data.user_id, include_deleted=False)
        if user is None:
            raise InvalidToken("User not found")
        if not user.enabled:
            raise AccountDisabled()

        if not await self.revocations.revoke(token_data.jti, user.id, KIND_JTI, token_data.exp):
            # Lost a race with another refresh of the same token
            raise InvalidToken("Refresh token has been revoked")
        tokens = self._create_tokens(user, session_id=token_data.sid)

        logger.info("Token refreshed", user_id=token_data.sub)
        return tokens

    async def get_current_user(self, identity: Identity) -> User:
        """
        Load the live record behind an access token.

        Profile fields come from the store; roles in the token remain a
        snapshot taken at issuance.

        Raises:
            UserNotFound: The subject was deleted or never existed
        """
        user = await self.users.find_by_id(identity.id, include_deleted=False)
        if user is None:
            raise UserNotFound()
        return user

    async def revoke_refresh_token(self, identity: Identity) -> None:
        """
        Revoke every refresh token of the caller's session.

        The access token used for this call stays valid until it expires.
        """
        if identity.session_id is None:
            return
        expires_at = datetime.now(timezone.utc) + self.tokens.refresh_ttl
        await self.revocations.revoke(identity.session_id, identity.id, KIND_SESSION, expires_at)
        logger.info("Refresh session revoked", user_id=str(identity.id), session_id=identity.session_id)

    def _create_tokens(self, user: User, session_id: str | None = None) -> TokenPair:
        """Create access and refresh token pair for user."""
        access = self.tokens.issue_access_token(
            subject=str(user.id),
            roles=user.roles,
            email=user.email,
            session_id=session_id,
        )
        refresh = self.tokens.issue_refresh_token(
            subject=str(user.id),
            session_id=access.sid,
        )
        return TokenPair(access=access, refresh=refresh)

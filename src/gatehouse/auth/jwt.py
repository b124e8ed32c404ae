"""
JWT token handling.

Creates and validates signed access and refresh tokens. Access tokens carry a
snapshot of the user's roles so authorization never needs a store round-trip.
"""

from datetime import datetime, timedelta, timezone
from functools import lru_cache
from uuid import UUID, uuid4

import structlog
from jose import JWTError, jwt
from pydantic import BaseModel

from gatehouse.config import settings
from gatehouse.errors import InvalidToken

logger = structlog.get_logger()

ACCESS = "access"
REFRESH = "refresh"

_REQUIRED_CLAIMS = ("sub", "exp", "iat", "jti", "sid", "token_type")


class TokenData(BaseModel):
    """Decoded token data."""
    sub: str  # User ID
    email: str = ""
    roles: list[str] = []
    exp: datetime
    iat: datetime
    jti: str
    sid: str  # Session (token family) ID, shared by every token of one login
    token_type: str = ACCESS

    @property
    def user_id(self) -> UUID:
        return UUID(self.sub)


class IssuedToken(BaseModel):
    """An encoded token together with its identifiers and expiry."""
    token: str
    jti: str
    sid: str
    expires_at: datetime

    @property
    def max_age(self) -> int:
        """Remaining lifetime in whole seconds."""
        remaining = self.expires_at - datetime.now(timezone.utc)
        return max(int(remaining.total_seconds()), 0)


class TokenService:
    """
    Issues and validates tokens with a process-wide signing key.

    Key material comes from configuration and is never generated here.
    """

    def __init__(
        self,
        secret_key: str,
        algorithm: str = "HS256",
        access_ttl: timedelta = timedelta(minutes=15),
        refresh_ttl: timedelta = timedelta(days=7),
    ):
        self.secret_key = secret_key
        self.algorithm = algorithm
        self.access_ttl = access_ttl
        self.refresh_ttl = refresh_ttl

    @classmethod
    def from_settings(cls) -> "TokenService":
        return cls(
            secret_key=settings.jwt_secret_key,
            algorithm=settings.jwt_algorithm,
            access_ttl=timedelta(minutes=settings.access_token_expire_minutes),
            refresh_ttl=timedelta(days=settings.refresh_token_expire_days),
        )

    def issue_access_token(
        self,
        subject: str,
        roles: set[str] | list[str],
        email: str = "",
        session_id: str | None = None,
        expires_delta: timedelta | None = None,
    ) -> IssuedToken:
        """
        Create a JWT access token.

        Args:
            subject: User identifier
            roles: Role snapshot embedded in the token
            email: User email
            session_id: Session the token belongs to (new session if omitted)
            expires_delta: Custom expiration time

        Returns:
            Encoded token with its expiry
        """
        issued = self._encode(
            subject,
            ACCESS,
            expires_delta or self.access_ttl,
            session_id,
            {"email": email, "roles": sorted(roles)},
        )

        logger.debug(
            "Access token created",
            user_id=subject,
            expires_at=issued.expires_at.isoformat(),
        )
        return issued

    def issue_refresh_token(
        self,
        subject: str,
        session_id: str | None = None,
        expires_delta: timedelta | None = None,
    ) -> IssuedToken:
        """
        Create a JWT refresh token.

        Args:
            subject: User identifier
            session_id: Session the token belongs to (new session if omitted)
            expires_delta: Custom expiration time

        Returns:
            Encoded refresh token with its expiry
        """
        issued = self._encode(subject, REFRESH, expires_delta or self.refresh_ttl, session_id, {})

        logger.debug(
            "Refresh token created",
            user_id=subject,
            expires_at=issued.expires_at.isoformat(),
        )
        return issued

    def parse_and_validate(self, token: str, expected_type: str | None = None) -> TokenData:
        """
        Decode and validate a JWT token.

        Args:
            token: Encoded JWT token
            expected_type: Reject tokens of any other type when given

        Returns:
            Decoded token data

        Raises:
            InvalidToken: Bad signature, malformed, expired, missing claims
                or wrong token type
        """
        try:
            payload = jwt.decode(token, self.secret_key, algorithms=[self.algorithm])
        except JWTError as e:
            logger.warning("Token decode failed", error=str(e))
            raise InvalidToken(f"Invalid token: {e}")

        missing = [claim for claim in _REQUIRED_CLAIMS if not payload.get(claim)]
        if missing:
            logger.warning("Token missing claims", claims=missing)
            raise InvalidToken(f"Token missing required claims: {', '.join(missing)}")

        try:
            UUID(payload["sub"])
            data = TokenData(
                sub=payload["sub"],
                email=payload.get("email", ""),
                roles=payload.get("roles", []),
                exp=datetime.fromtimestamp(payload["exp"], tz=timezone.utc),
                iat=datetime.fromtimestamp(payload["iat"], tz=timezone.utc),
                jti=payload["jti"],
                sid=payload["sid"],
                token_type=payload["token_type"],
            )
        except (ValueError, TypeError) as e:
            raise InvalidToken(f"Malformed token claims: {e}")

        if expected_type is not None and data.token_type != expected_type:
            raise InvalidToken(f"Invalid token type - expected {expected_type} token")

        return data

    def _encode(
        self,
        subject: str,
        token_type: str,
        lifetime: timedelta,
        session_id: str | None,
        extra: dict,
    ) -> IssuedToken:
        now = datetime.now(timezone.utc)
        expire = now + lifetime
        jti = uuid4().hex
        sid = session_id or uuid4().hex

        payload = {
            "sub": str(subject),
            "exp": expire,
            "iat": now,
            "jti": jti,
            "sid": sid,
            "token_type": token_type,
            **extra,
        }
        token = jwt.encode(payload, self.secret_key, algorithm=self.algorithm)
        return IssuedToken(token=token, jti=jti, sid=sid, expires_at=expire)


@lru_cache
def get_token_service() -> TokenService:
    """Process-wide token service built from settings."""
    return TokenService.from_settings()

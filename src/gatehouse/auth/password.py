"""
Password hashing, verification and complexity policy.

Uses bcrypt for secure password storage.
"""

import re

from passlib.context import CryptContext

from gatehouse.config import settings
from gatehouse.errors import FieldViolation, ValidationError

# Configure password hashing
pwd_context = CryptContext(
    schemes=["bcrypt"],
    deprecated="auto",
    bcrypt__rounds=settings.bcrypt_rounds,
)

# Hash of a throwaway value, verified against when the user does not exist so
# unknown emails cost the same as wrong passwords.
_DUMMY_HASH = pwd_context.hash("gatehouse-timing-equalizer")

MIN_LENGTH = 8
MAX_LENGTH = 128
SPECIAL_CHARACTERS = "@$!%*?&#^()-_=+[]{}|;:,.<>"

_UPPER = re.compile(r"[A-Z]")
_LOWER = re.compile(r"[a-z]")
_DIGIT = re.compile(r"[0-9]")
_SPECIAL = re.compile("[" + re.escape(SPECIAL_CHARACTERS) + "]")


def hash_password(password: str) -> str:
    """
    Hash a password for storage.

    Args:
        password: Plain text password

    Returns:
        Hashed password
    """
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str | None) -> bool:
    """
    Verify a password against its hash.

    Passing ``None`` as the hash still performs a full bcrypt verification
    against a dummy hash and returns False.

    Args:
        plain_password: Plain text password to check
        hashed_password: Stored password hash

    Returns:
        True if password matches
    """
    if hashed_password is None:
        pwd_context.verify(plain_password, _DUMMY_HASH)
        return False
    return pwd_context.verify(plain_password, hashed_password)


class PasswordPolicy:
    """
    Complexity rules applied to new passwords.

    Length in [8, 128], at least one ASCII uppercase letter, one ASCII
    lowercase letter, one digit and one character from SPECIAL_CHARACTERS.
    Characters outside these classes (spaces, accented letters) are allowed
    and simply do not count towards any rule.
    """

    def __init__(self, field: str = "password"):
        self.field = field

    def validate(self, password: str | None) -> list[FieldViolation]:
        """Return every violated rule; an empty list means the password is acceptable."""
        if not password:
            return [self._violation("is required")]

        violations = []
        if len(password) < MIN_LENGTH:
            violations.append(self._violation(f"must be at least {MIN_LENGTH} characters"))
        if len(password) > MAX_LENGTH:
            violations.append(self._violation(f"must not exceed {MAX_LENGTH} characters"))
        if not _UPPER.search(password):
            violations.append(self._violation("must contain at least one uppercase letter"))
        if not _LOWER.search(password):
            violations.append(self._violation("must contain at least one lowercase letter"))
        if not _DIGIT.search(password):
            violations.append(self._violation("must contain at least one number"))
        if not _SPECIAL.search(password):
            violations.append(
                self._violation(
                    f"must contain at least one special character ({SPECIAL_CHARACTERS})"
                )
            )
        return violations

    def check(self, password: str | None) -> None:
        """Raise ValidationError listing all violations, if any."""
        violations = self.validate(password)
        if violations:
            raise ValidationError(violations, message="Password does not meet complexity requirements")

    def _violation(self, message: str) -> FieldViolation:
        # Candidate passwords are never echoed back
        return FieldViolation(field=self.field, message=f"Password {message}", rejected_value=None)

"""
Password hashing, verification, and strength validation.

Handles:
- Password hashing (scrypt via werkzeug)
- Password verification, including a dummy check for unknown users so
  response timing does not reveal which usernames exist
- Password policy validation
"""
import logging
import re
from dataclasses import dataclass

from werkzeug.security import generate_password_hash, check_password_hash

logger = logging.getLogger(__name__)

__all__ = [
    "hash_password",
    "verify_password",
    "verify_against_dummy",
    "PasswordPolicy",
]

SPECIAL_CHARACTERS = "+&%$#@!~"

_CONSECUTIVE_RE = re.compile(r"(.)\1\1")

# Hash of a random value nobody knows; verified against when the user does not exist
_DUMMY_HASH = generate_password_hash("dummy-password-for-timing-equalization")


def hash_password(password: str) -> str:
    """Hash a password with werkzeug's default KDF.

    Args:
        password: Plain text password

    Returns:
        Salted hash of the password
    """
    return generate_password_hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    """Verify a password against its hash.

    Args:
        password: Plain text password
        password_hash: Hash to check against

    Returns:
        True if password matches, False otherwise
    """
    if not password or not password_hash:
        return False
    return check_password_hash(password_hash, password)


def verify_against_dummy(password: str) -> bool:
    """Spend the same work as a real verification. Always False."""
    check_password_hash(_DUMMY_HASH, password or "")
    return False


@dataclass(frozen=True)
class PasswordPolicy:
    """Complexity rules applied to every new password."""
    min_length: int = 10
    require_uppercase: bool = True
    require_lowercase: bool = True
    require_digit: bool = True
    require_special: bool = True

    @classmethod
    def from_settings(cls, auth_settings) -> "PasswordPolicy":
        return cls(
            min_length=auth_settings.password_min_length,
            require_uppercase=auth_settings.password_require_uppercase,
            require_lowercase=auth_settings.password_require_lowercase,
            require_digit=auth_settings.password_require_digit,
            require_special=auth_settings.password_require_special,
        )

    def validate(self, password: str, username: str = None) -> tuple[bool, str]:
        """Validate password meets complexity requirements.

        Args:
            password: Password to validate
            username: Account name the password may not contain

        Returns:
            (is_valid, error_message) tuple
        """
        if not password:
            return False, "Password is required"

        if len(password) < self.min_length:
            return False, f"Password must be at least {self.min_length} characters"

        if self.require_uppercase and not re.search(r"[A-Z]", password):
            return False, "Password must contain at least one uppercase letter"

        if self.require_lowercase and not re.search(r"[a-z]", password):
            return False, "Password must contain at least one lowercase letter"

        if self.require_digit and not re.search(r"\d", password):
            return False, "Password must contain at least one digit"

        if self.require_special and not any(c in SPECIAL_CHARACTERS for c in password):
            return False, f"Password must contain at least one special character ({SPECIAL_CHARACTERS})"

        if _CONSECUTIVE_RE.search(password):
            return False, "Password must not contain more than 2 consecutive identical characters"

        if username and username.lower() in password.lower():
            return False, "Password must not contain the username"

        return True, ""

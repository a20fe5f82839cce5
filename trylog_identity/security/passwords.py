"""Password hashing, policy checks, and random password generation."""

from __future__ import annotations

import secrets

from passlib.context import CryptContext

from ..domain.exceptions import ExhaustedPoolError

_pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")

# Shared across threads; SystemRandom draws from os.urandom and keeps no state.
_random = secrets.SystemRandom()

UPPERCASE = tuple(chr(code) for code in range(65, 91))
LOWERCASE = tuple(chr(code) for code in range(97, 123))
DIGITS = tuple(chr(code) for code in range(48, 58))
# Printable ASCII punctuation minus the double quote and the backslash.
SYMBOLS = tuple(
    chr(code)
    for code in [33, *range(35, 48), *range(58, 65), 91, *range(93, 97), *range(123, 127)]
)

MIN_PASSWORD_LENGTH = 6


def hash_password(password: str) -> str:
    """Hash a password for storing."""
    return _pwd_context.hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    """Verify a password against its hash."""
    try:
        return _pwd_context.verify(password, password_hash)
    except ValueError:
        return False


def password_policy_errors(password: str) -> list[str]:
    """Return the identity error codes a password violates (empty when it is acceptable)."""
    errors: list[str] = []
    if len(password) < MIN_PASSWORD_LENGTH:
        errors.append("PasswordTooShort")
    if not any(ch.isdigit() for ch in password):
        errors.append("PasswordRequiresDigit")
    if not any(ch.islower() for ch in password):
        errors.append("PasswordRequiresLower")
    if not any(ch.isupper() for ch in password):
        errors.append("PasswordRequiresUpper")
    if all(ch.isalnum() for ch in password):
        errors.append("PasswordRequiresNonAlphanumeric")
    return errors


def generate_random_password(rounds: int = 8) -> str:
    """Create a pseudo-random password mixing letters, digits and symbols.

    Each of the ``rounds - 1`` repetitions appends one uppercase letter, one
    lowercase letter, one symbol and one digit, in that order, so the result is
    ``4 * (rounds - 1)`` characters long. Characters are drawn without
    replacement, so no character appears twice.

    Raises
    ------
    ValueError
        If ``rounds`` is lower than 2.
    ExhaustedPoolError
        If a pool holds fewer than ``rounds - 1`` characters (``rounds > 11``).
    """
    if rounds < 2:
        raise ValueError("rounds must be at least 2")

    pools = [list(UPPERCASE), list(LOWERCASE), list(SYMBOLS), list(DIGITS)]
    for pool in pools:
        if len(pool) < rounds - 1:
            raise ExhaustedPoolError(
                f"pool of {len(pool)} characters cannot supply {rounds - 1} unique draws"
            )

    chars: list[str] = []
    for _ in range(rounds - 1):
        for pool in pools:
            chars.append(_draw(pool))
    return "".join(chars)


def _draw(pool: list[str]) -> str:
    return pool.pop(_random.randrange(len(pool)))

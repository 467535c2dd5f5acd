"""Password hashing with bcrypt."""

import bcrypt
from protean.exceptions import ValidationError

from storefront.config import get_settings

# bcrypt only looks at the first 72 bytes of a password
MAX_PASSWORD_BYTES = 72

_dummy_hash: bytes | None = None


def validate_password(password) -> bytes:
    if not isinstance(password, str) or not password:
        raise ValidationError({"password": ["Password is required"]})
    encoded = password.encode("utf-8")
    if len(encoded) > MAX_PASSWORD_BYTES:
        raise ValidationError({"password": [f"Password must be at most {MAX_PASSWORD_BYTES} bytes"]})
    return encoded


def hash_password(password: str) -> str:
    """Hash a password with bcrypt."""
    salt = bcrypt.gensalt(rounds=get_settings().bcrypt_rounds)
    return bcrypt.hashpw(validate_password(password), salt).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    """Verify a password against its hash."""
    if not isinstance(password, str) or not password:
        return False
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        # Over-long password or corrupt hash
        return False


def burn_password_check(password: str) -> None:
    """Spend the time of one real verification against a throwaway hash.

    Login for an unknown email calls this so its response time matches a
    wrong password for a known email.
    """
    global _dummy_hash
    if _dummy_hash is None:
        _dummy_hash = bcrypt.hashpw(b"storefront-timing-equaliser", bcrypt.gensalt(rounds=get_settings().bcrypt_rounds))
    verify_password(password, _dummy_hash.decode("utf-8"))

# firstrun/core/security.py
"""
Security helpers for provisioning.
Handles password hashing for the administrative account and secret
generation / redaction for generated configuration.
"""
import secrets
import string
from urllib.parse import urlsplit, urlunsplit

from passlib.context import CryptContext

# Password hashing context
# Argon2 only, the admin hash is written once and verified by the app later
pwd_context = CryptContext(
    schemes=["argon2"],  # Use Argon2 for password hashing
    deprecated="auto",   # Automatically handle deprecated schemes
)

SESSION_SECRET_LENGTH = 64
_SECRET_ALPHABET = string.ascii_letters + string.digits + "!@#$%^&*"


def hash_password(plain: str) -> str:
    """
    Hash a plain text password using Argon2.

    Args:
        plain: Plain text password to hash

    Returns:
        Hashed password string (safe to store in database)
    """
    return pwd_context.hash(plain)


def verify_password(plain: str, hashed: str) -> bool:
    """
    Verify a plain text password against a hashed password.

    Returns:
        True if password matches, False otherwise
    """
    return pwd_context.verify(plain, hashed)


def generate_session_secret(length: int = SESSION_SECRET_LENGTH) -> str:
    """Random secret for SESSION_SECRET in generated env files."""
    return "".join(secrets.choice(_SECRET_ALPHABET) for _ in range(length))


def redact_url(url: str | None) -> str | None:
    """
    Mask the password part of a connection URL.

    ``postgresql://app:s3cret@db:5432/app`` -> ``postgresql://app:***@db:5432/app``
    Strings that are not URLs are returned unchanged.
    """
    if not url:
        return url
    parts = urlsplit(url)
    if not parts.netloc or "@" not in parts.netloc:
        return url
    userinfo, _, hostinfo = parts.netloc.rpartition("@")
    if ":" in userinfo:
        user = userinfo.split(":", 1)[0]
        userinfo = f"{user}:***"
    return urlunsplit((parts.scheme, f"{userinfo}@{hostinfo}", parts.path, parts.query, parts.fragment))


def mask_secret(value: str | None) -> str | None:
    """Keep the first four characters of a key, mask the rest."""
    if not value:
        return value
    if len(value) <= 4:
        return "***"
    return value[:4] + "***"

"""
bcrypt helpers for the admin password.
The back-office has a single shared password; only its hash is configured
(ADMIN_PASSWORD_HASH, produced by nightlife-password).
"""
import logging

import bcrypt

logger = logging.getLogger(__name__)


def hash_password(password: str) -> str:
    """Hash a password into a value suitable for ADMIN_PASSWORD_HASH."""
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(password: str, hashed_password: str) -> bool:
    """
    Check a password against a bcrypt hash.

    A hash bcrypt cannot parse (a truncated or hand-edited setting) counts as
    a mismatch rather than an error.
    """
    try:
        return bcrypt.checkpw(password.encode("utf-8"), hashed_password.encode("utf-8"))
    except ValueError as e:
        logger.warning(f"Password hash could not be checked: {str(e)}")
        return False

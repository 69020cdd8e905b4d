"""
Salted password hashing using PBKDF2-HMAC-SHA256.
"""

import base64
import hmac
import os
from typing import Optional

from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from config import settings


HASH_SCHEME = "pbkdf2_sha256"
SALT_BYTES = 16


def _derive(password: str, salt: bytes, iterations: int) -> bytes:
    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=32,
        salt=salt,
        iterations=iterations,
    )
    return kdf.derive(password.encode("utf-8"))


def _b64(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).decode("ascii").rstrip("=")


def _unb64(text: str) -> bytes:
    return base64.urlsafe_b64decode(text + "=" * (-len(text) % 4))


def hash_password(password: str, iterations: Optional[int] = None) -> str:
    """
    Hash a password for storage.

    Args:
        password: Plain text password
        iterations: PBKDF2 work factor, defaults to PASSWORD_HASH_ITERATIONS

    Returns:
        ``pbkdf2_sha256$<iterations>$<salt>$<digest>`` string
    """
    rounds = int(iterations or settings.PASSWORD_HASH_ITERATIONS)
    salt = os.urandom(SALT_BYTES)
    digest = _derive(password, salt, rounds)
    return f"{HASH_SCHEME}${rounds}${_b64(salt)}${_b64(digest)}"


def verify_password(password: str, stored_hash: Optional[str]) -> bool:
    """
    Check a candidate password against a stored hash.

    Returns False for malformed or missing hashes rather than raising.
    """
    if not stored_hash:
        return False
    try:
        scheme, rounds, salt_text, digest_text = stored_hash.split("$", 3)
        if scheme != HASH_SCHEME:
            return False
        candidate = _derive(password, _unb64(salt_text), int(rounds))
        expected = _unb64(digest_text)
    except (ValueError, TypeError):
        return False
    return hmac.compare_digest(candidate, expected)

"""Token, digest and password helpers shared by the service layer.

Bearer tokens are generated with ``secrets.token_urlsafe`` and only their
SHA-256 digests are persisted. Password hashes use argon2id through
argon2-cffi.
"""

from __future__ import annotations

import base64
import binascii
import hashlib
import hmac
import secrets

from argon2 import PasswordHasher
from argon2.exceptions import InvalidHashError, VerificationError

# 32 random bytes -> 43 URL-safe characters (256 bits of entropy)
TOKEN_BYTES = 32

_password_hasher = PasswordHasher()

# Checked for unknown users; rejection takes as long as a wrong password.
_DUMMY_PASSWORD_HASH = _password_hasher.hash("zerosend-dummy-password")


def generate_token() -> str:
    """Generate a URL-safe random token with 256 bits of entropy."""
    return secrets.token_urlsafe(TOKEN_BYTES)


def hash_token(token: str) -> str:
    """SHA-256 hex digest of a bearer token, for storage and log references."""
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def compare_digests(a: str, b: str) -> bool:
    """Constant-time comparison of two hex digests."""
    return hmac.compare_digest(a.encode("utf-8"), b.encode("utf-8"))


def hash_email(email: str) -> str:
    """SHA-256 hex digest of a normalized (stripped, lower-cased) email."""
    return hashlib.sha256(email.strip().lower().encode("utf-8")).hexdigest()


def hash_user_agent(user_agent: str | None) -> str | None:
    """SHA-256 hex digest of a User-Agent header, or None when absent."""
    if not user_agent:
        return None
    return hashlib.sha256(user_agent.encode("utf-8")).hexdigest()


def public_key_fingerprint(public_key_b64: str) -> str:
    """SHA3-256 hex fingerprint of a base64-encoded public key.

    Raises:
        ValueError: If the input is not valid, non-empty base64.
    """
    try:
        raw = base64.b64decode(public_key_b64, validate=True)
    except binascii.Error as e:
        msg = "public key must be valid base64"
        raise ValueError(msg) from e
    if not raw:
        msg = "public key must not be empty"
        raise ValueError(msg)
    return hashlib.sha3_256(raw).hexdigest()


def hash_password(password: str) -> str:
    """Hash a password with argon2id."""
    return _password_hasher.hash(password)


def verify_password(password_hash: str | None, password: str) -> bool:
    """Check a password against a stored argon2 hash.

    A missing hash is checked against a dummy hash and always fails, keeping
    the work done identical for unknown and known accounts.
    """
    try:
        matched = _password_hasher.verify(password_hash or _DUMMY_PASSWORD_HASH, password)
    except (VerificationError, InvalidHashError):
        return False
    return matched and password_hash is not None

"""
Service-token hashing utilities.

Security notes:
  • SHA-256 is used for token hashing — acceptable because service tokens
    are high-entropy random strings (not low-entropy passwords).
  • Raw tokens use the ul_svc_ prefix (convention, not security).
  • Only the hash is configured (SERVICE_TOKEN_HASH); the raw token is
    shown once by generate_service_token() and never stored.
"""

import hashlib
import hmac
import secrets

_TOKEN_PREFIX = "ul_svc_"


def hash_token(raw_token: str) -> str:
    """Hex SHA-256 digest of a raw token."""
    return hashlib.sha256(raw_token.encode("utf-8")).hexdigest()


def verify_token(raw_token: str, expected_hash: str) -> bool:
    """Constant-time comparison of a raw token against a stored hash."""
    if not expected_hash:
        return False
    return hmac.compare_digest(hash_token(raw_token), expected_hash.lower())


def generate_service_token() -> tuple[str, str]:
    """
    Generate a new service token.

    Returns:
        (raw_token, token_hash) — raw_token goes to the calling service,
        token_hash into SERVICE_TOKEN_HASH.
    """
    raw_token = f"{_TOKEN_PREFIX}{secrets.token_hex(32)}"
    return raw_token, hash_token(raw_token)

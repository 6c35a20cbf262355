# =============================================================================
# Auth Service — Admin Credentials
# =============================================================================
#
# Pure helpers shared by the auth dependency, the admin key endpoints and
# the tests. Admin keys are 256-bit random tokens stored as SHA-256 hashes:
# the hash is deterministic so it can be looked up directly.
# =============================================================================

from __future__ import annotations

import hashlib
import hmac
import secrets

KEY_PREFIX = "sk-"


def generate_api_key() -> tuple[str, str, str]:
    """
    Generate a new admin API key.

    Returns:
        (raw_key, key_prefix, key_hash):
        - raw_key: "sk-" + 64 hex chars, shown to the admin once
        - key_prefix: first 8 chars, safe to display in the dashboard
        - key_hash: SHA-256 hex digest stored in api_keys.key_hash
    """
    raw_key = f"{KEY_PREFIX}{secrets.token_hex(32)}"
    return raw_key, raw_key[:8], hash_api_key(raw_key)


def hash_api_key(raw_key: str) -> str:
    """SHA-256 hex digest of a raw key."""
    return hashlib.sha256(raw_key.encode()).hexdigest()


def matches_bootstrap_token(raw_token: str, configured: str) -> bool:
    """
    Constant-time comparison against the configured bootstrap admin token.

    An empty configured token never matches.
    """
    if not configured:
        return False
    return hmac.compare_digest(raw_token.encode(), configured.encode())

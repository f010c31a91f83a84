"""Opaque token helpers for link-based authorization."""

import hmac
import secrets

TOKEN_BYTES = 32


def generate_token(nbytes: int = TOKEN_BYTES) -> str:
    """Generate a cryptographically secure hex token (256 bits by default)."""
    return secrets.token_hex(nbytes)


def generate_security_tokens() -> tuple[str, str]:
    """Return a distinct (confirmation_token, cancellation_token) pair."""
    confirmation = generate_token()
    cancellation = generate_token()
    while cancellation == confirmation:
        cancellation = generate_token()
    return confirmation, cancellation


def tokens_match(expected: str | None, provided: str | None) -> bool:
    """Exact-match comparison; empty values never match."""
    if not expected or not provided:
        return False
    return hmac.compare_digest(expected.encode(), provided.encode())

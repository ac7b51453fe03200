"""
PKCE (RFC 7636) and state helpers for starting an authorization request.
S256 only.
"""
import hashlib
import secrets
from base64 import urlsafe_b64encode


def generate_state() -> str:
    """Opaque value for CSRF protection; returned in callback. 256 bits, base64url."""
    return secrets.token_urlsafe(32)


def generate_pkce() -> tuple[str, str]:
    """
    Generate code_verifier and code_challenge (S256).
    Returns (code_verifier, code_challenge). Verifier is 86 chars (512 bits entropy).
    """
    code_verifier = secrets.token_urlsafe(64)
    return code_verifier, s256_challenge(code_verifier)


def s256_challenge(code_verifier: str) -> str:
    """base64url(SHA256(verifier)) without padding."""
    digest = hashlib.sha256(code_verifier.encode("ascii")).digest()
    return urlsafe_b64encode(digest).rstrip(b"=").decode("ascii")

"""HMAC-SHA256 webhook signatures over the raw request body."""
from __future__ import annotations

import hashlib
import hmac

from kasama_ai.core.exceptions import AuthenticationError

PREFIX = "sha256="


def sign(secret: str, body: bytes) -> str:
    return PREFIX + hmac.new(key=secret.encode("utf-8"), msg=body, digestmod=hashlib.sha256).hexdigest()


def verify_signature(secret: str | None, body: bytes, header: str | None, allow_bare_hex: bool = False) -> None:
    """
    Check `header` against HMAC(secret, body). Raises AuthenticationError when the
    secret or header is missing or the digest differs. With allow_bare_hex the
    header may omit the "sha256=" prefix.
    """
    if not secret:
        raise AuthenticationError("webhook secret not configured")
    if not header:
        raise AuthenticationError("missing signature header")
    provided = header.strip()
    if allow_bare_hex and not provided.startswith(PREFIX):
        provided = PREFIX + provided
    # constant-time comparison
    if not hmac.compare_digest(provided.encode("utf-8"), sign(secret, body).encode("utf-8")):
        raise AuthenticationError("invalid signature")

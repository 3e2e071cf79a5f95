"""Client identity resolution for rate limiting.

The forwarding header is trusted unconditionally when present. A client can
pick its own identity by forging it; there is no trusted-proxy allow-list.
"""

from __future__ import annotations

import hashlib

from starlette.requests import HTTPConnection


def resolve_client_identity(
    request: HTTPConnection,
    forwarded_header: str = "x-forwarded-for",
) -> str | None:
    """Derive the rate limit identity for a request.

    Args:
        request: Incoming request (or websocket) connection.
        forwarded_header: Header carrying the client address set by a proxy.

    Returns:
        The forwarding header value if present and non-empty, else the
        transport peer address, else None.
    """

    forwarded = request.headers.get(forwarded_header, "").strip()
    if forwarded:
        return forwarded

    if request.client and request.client.host:
        return request.client.host

    return None


def hash_identity(identity: str) -> str:
    """Hash an identity for logging without exposing client addresses."""
    return hashlib.sha256(identity.encode()).hexdigest()[:16]

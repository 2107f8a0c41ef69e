"""HTTP header helpers."""
from __future__ import annotations

from typing import Optional

from starlette.requests import HTTPConnection


def client_ip(conn: HTTPConnection) -> Optional[str]:
    """Return the caller's IP address.

    Prefers the first hop of X-Forwarded-For (set by the ingress proxy),
    then X-Real-IP, then the socket peer.
    """
    forwarded = conn.headers.get("x-forwarded-for")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    real_ip = conn.headers.get("x-real-ip")
    if real_ip:
        return real_ip.strip()
    return conn.client.host if conn.client else None

"""Caller identity extraction and rate-limit key construction.

Trust boundary:
    These headers are only meaningful when the service sits behind an edge
    proxy (e.g., Cloudflare, a load balancer) that sets them and strips any
    client-supplied values. The service cannot verify that itself; exposing
    it directly lets callers pick their own identity.
"""

from __future__ import annotations

from fastapi import Request

# Set by Cloudflare to the address that opened the connection to the edge.
CONNECTING_IP_HEADER = "cf-connecting-ip"
FORWARDED_FOR_HEADER = "x-forwarded-for"
REAL_IP_HEADER = "x-real-ip"

UNKNOWN_CLIENT = "unknown-client"
DEFAULT_PREFIX = "default"


def get_client_identifier(request: Request) -> str:
    """Derive a stable identity for the caller from proxy headers.

    Tries, in order: the edge "connecting IP" header, the first entry of the
    forwarded-for chain, the "real IP" header. Empty values count as absent.

    Args:
        request: Inbound request (anything with a case-insensitive
            ``headers`` mapping).

    Returns:
        The caller's address, or ``"unknown-client"`` when none is present.

    Examples:
        >>> # Headers: {"X-Forwarded-For": "203.0.113.7, 10.0.0.1"}
        >>> # -> "203.0.113.7"
    """
    headers = request.headers

    connecting_ip = (headers.get(CONNECTING_IP_HEADER) or "").strip()
    if connecting_ip:
        return connecting_ip

    forwarded_for = headers.get(FORWARDED_FOR_HEADER)
    if forwarded_for:
        first_hop = forwarded_for.split(",")[0].strip()
        if first_hop:
            return first_hop

    real_ip = (headers.get(REAL_IP_HEADER) or "").strip()
    if real_ip:
        return real_ip

    return UNKNOWN_CLIENT


def build_rate_limit_key(request: Request, prefix: str = DEFAULT_PREFIX) -> str:
    """Namespace the caller identity by endpoint: ``"{prefix}:{identity}"``.

    Distinct prefixes keep quotas for different protected endpoints apart,
    even for the same caller.
    """
    return f"{prefix}:{get_client_identifier(request)}"

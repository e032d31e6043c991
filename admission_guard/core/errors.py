"""Error types raised by the admission guard.

Each error carries a stable ``code`` that ends up in the JSON error body,
so clients and dashboards can match on it instead of on the message.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, TypedDict


class ErrorDetails(TypedDict, total=False):
    """Optional context attached to an error.

    ``field`` names the offending setting or parameter, ``hint`` tells an
    operator how to fix it. Anything else goes under ``context``.
    """

    field: str
    hint: str
    key_hash: str
    context: dict[str, Any]


@dataclass
class AppError(Exception):
    """Base class for errors mapped to a JSON response.

    Attributes:
        code: Machine-readable error code, e.g. ``rate_limit_invalid_config``.
        message: Short human-readable description.
        details: Extra context; only returned to clients for 4xx responses.
    """

    code: str
    message: str
    details: ErrorDetails | None = None

    def __post_init__(self) -> None:
        super().__init__(self.message)


class ConfigurationAppError(AppError):
    """A limit or setting declared by the deployment is unusable."""


class AuthenticationAppError(AppError):
    """Missing or wrong credentials for an administration route."""


@dataclass
class RateLimitExceededError(AppError):
    """Caller is over quota for the current window.

    Rendered as ``{"error": message, "retryAfter": seconds}`` with the
    rate-limit headers, the body existing form clients already parse.
    """

    retry_after: int = 0
    headers: dict[str, str] = field(default_factory=dict)

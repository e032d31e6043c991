"""Pydantic schemas for rate-limit administration responses."""

from __future__ import annotations

from pydantic import BaseModel, Field


class RateLimitStatusResponse(BaseModel):
    """Current window usage for one caller on one protected endpoint."""

    key: str = Field(..., description="Rate-limit key in the form 'prefix:identity'.")
    success: bool = Field(
        ..., description="Whether the next request would be admitted."
    )
    remaining: int = Field(
        ..., ge=0, description="Requests left in the current window."
    )
    reset_time: int = Field(
        ..., description="UNIX epoch milliseconds when the current window resets."
    )
    limit: int = Field(..., description="Maximum requests per window for this endpoint.")
    window_ms: int = Field(..., description="Window length in milliseconds.")

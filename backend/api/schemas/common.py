"""Common schemas used across the API."""

from typing import Any, Optional

from pydantic import BaseModel, Field


class MessageResponse(BaseModel):
    """Simple message response."""

    message: str


class ErrorResponse(BaseModel):
    """Standard error response."""

    detail: Any = Field(description="Human-readable error message")
    error: str = Field(description="Machine-readable error code")
    request_id: Optional[str] = Field(default=None, description="X-Request-ID of the failed request")

"""
Error Envelopes

JSON bodies returned by the exception handlers for the session inspection
and cron routes. The inbound webhook never uses them; it acknowledges every
delivery with a WebhookAck.
"""

from datetime import datetime, timezone
from typing import List, Optional

from pydantic import BaseModel, Field


class ErrorResponse(BaseModel):
    """Error body shared by every non-2xx response."""

    status: str = Field(default="error")
    message: str = Field(..., description="Human-readable error message")
    error_code: str = Field(..., description="HTTP_<status> or the scheduling exception name")
    path: str = Field(..., description="Request path that failed")
    retryable: bool = Field(
        default=False,
        description="True when the store was unavailable and the call may be retried"
    )
    exception_type: Optional[str] = Field(default=None, description="Set for unexpected errors")
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class FieldError(BaseModel):
    """One failing request field, with its location joined as a dotted path."""

    field: str
    message: str
    type: str


class RequestValidationResponse(ErrorResponse):
    errors: List[FieldError] = Field(default_factory=list)

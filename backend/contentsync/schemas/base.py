"""Base schemas for common response patterns."""

from pydantic import BaseModel


class ErrorResponse(BaseModel):
    """Error response schema."""

    error: str
    message: str


class MessageResponse(BaseModel):
    """Simple message response schema."""

    message: str


class CountResponse(BaseModel):
    """Response carrying the number of affected rows."""

    count: int
    message: str

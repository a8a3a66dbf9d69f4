"""Shared response schemas."""

from pydantic import BaseModel


class ErrorResponse(BaseModel):
    """Error body returned with non-2xx responses."""

    detail: str

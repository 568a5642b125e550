"""Shared error envelope schemas for OpenAPI documentation."""

from pydantic import BaseModel, ConfigDict, Field


class ErrorDetail(BaseModel):
    """A single field-level or contextual error detail."""

    model_config = ConfigDict(extra="allow")

    field: str | None = None
    message: str | None = None


class ErrorBody(BaseModel):
    """Structured error body returned inside every error response."""

    code: str
    message: str
    details: list[ErrorDetail] = []
    request_id: str = Field(alias="requestId")

    model_config = ConfigDict(populate_by_name=True)


class ErrorResponse(BaseModel):
    """Top-level error envelope."""

    error: ErrorBody


# Documented on every dispute route
ERROR_RESPONSES = {
    401: {"model": ErrorResponse, "description": "Missing or invalid token"},
    403: {"model": ErrorResponse, "description": "Actor may not perform this action"},
    404: {"model": ErrorResponse, "description": "Negotiation, dispute or escrow not found"},
    409: {"model": ErrorResponse, "description": "Conflicting dispute state"},
    422: {"model": ErrorResponse, "description": "Validation or business rule failure"},
    503: {"model": ErrorResponse, "description": "Store unavailable, safe to retry"},
}

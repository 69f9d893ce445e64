"""
Cordova CMS Backend - Pydantic Response Schemas
=================================================

What:  Models for the parts of the API with a fixed shape.
Why:   Resource documents are untyped mappings and are returned as-is; only
       error bodies and the health report have a schema, which also feeds
       the OpenAPI docs.
"""

from typing import Optional

from pydantic import BaseModel, Field


class ErrorResponse(BaseModel):
    """
    Standardized error body for every non-2xx response.

    Example:
        {
            "error": "conflict",
            "message": "role with ID 'admin' already exists",
            "request_id": "1f2e3d4c"
        }
    """
    error: str = Field(description="Machine-readable error kind")
    message: str = Field(description="Human-readable error description")
    details: Optional[dict] = Field(default=None, description="Additional error context")
    request_id: Optional[str] = Field(default=None, description="Request correlation ID")


class HealthResponse(BaseModel):
    """Health report returned by GET /health."""
    status: str = Field(description="Overall service status: healthy, unhealthy")
    version: str = Field(description="Application version")
    database: str = Field(description="MongoDB connectivity: connected, disconnected")
    uptime_seconds: float = Field(description="Seconds since service started")

"""
HEARDROP Backend — Shared Schemas
===================================

What:  Error envelope, plain message responses and the health report.
"""

from typing import Any, Dict, Optional

from pydantic import BaseModel, Field


class ErrorResponse(BaseModel):
    """
    What:  Standard error response body returned by every exception handler.
    Why:   Clients parse one shape regardless of which endpoint failed.

    Example:
        {
            "error": "account_locked",
            "message": "Too many failed attempts from your IP. Please try again in 12 minutes.",
            "details": {"retry_after": 720, "scope": "ip"},
            "request_id": "a1b2c3d4"
        }
    """
    error: str = Field(description="Machine-readable error code")
    message: str = Field(description="Human-readable error description")
    details: Optional[Dict[str, Any]] = Field(default=None)
    request_id: Optional[str] = Field(default=None)


class MessageResponse(BaseModel):
    message: str


class HealthResponse(BaseModel):
    """
    Status levels:
        healthy:   database reachable and every provider circuit closed
        degraded:  database reachable, at least one provider unavailable
        unhealthy: database unreachable
    """
    status: str = Field(description="Overall status: healthy, degraded, unhealthy")
    version: str
    database: str = Field(description="connected or disconnected")
    services: Dict[str, str] = Field(
        description="Per-provider state: available, circuit_open, half_open, not_configured"
    )
    uptime_seconds: float

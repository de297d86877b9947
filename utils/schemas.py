"""
Pydantic Schemas / Data Transfer Objects (DTOs)

This script defines the response models of the top-level API endpoints and
re-exports the brain's request/response models.
"""

from pydantic import BaseModel
from typing import Optional

# Re-export brain models for API use
from brain.models import (
    RunResponse,
    StatusResponse,
    AnalyzeMessageRequest,
    AnalyzeMessageResponse
)


class RootResponse(BaseModel):
    """Response model for the root endpoint."""
    message: str


class HealthResponse(BaseModel):
    """Response model for the service health check."""
    status: str
    scheduler: str
    database: Optional[str] = None
    error: Optional[str] = None

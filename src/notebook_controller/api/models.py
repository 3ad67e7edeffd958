"""Response models for the notebook controller API."""

from pydantic import BaseModel, Field


class HealthResponse(BaseModel):
    """Liveness probe response."""

    status: str = Field(default="ok", description="Always ok while the process serves requests")

from typing import Optional
from pydantic import BaseModel, Field


class HealthResponse(BaseModel):
    """Health check response."""
    success: bool = Field(description="Whether the worker is healthy")
    lighttools_connected: bool = Field(description="Whether a LightTools session is attached")
    lighttools_pid: Optional[int] = Field(default=None, description="PID of the attached LightTools session")
    version: Optional[str] = Field(default=None, description="Configured LightTools version")
    worker_count: int = Field(description="Number of uvicorn worker processes serving this URL")
    connection_error: Optional[str] = Field(default=None, description="Error detail when lighttools_connected is False")

"""Pydantic schema for published job progress."""

from pydantic import BaseModel, Field


class ProgressSnapshot(BaseModel):
    """Current progress of an in-flight job."""

    percentage: float = Field(..., ge=0, le=100, description="Percent complete")
    elapsed: int = Field(..., ge=0, description="Seconds since the job started")
    eta: int = Field(..., ge=0, description="Estimated seconds remaining")
    description: str = Field("", description="Human-readable progress message")
    timestamp: str = Field(..., description="ISO format timestamp of the snapshot")

"""Models for the ray path power interval endpoints."""

from typing import Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from config import (
    DEFAULT_RECEIVER, WILDCARD, DEFAULT_OUTPUT_DIR, DEFAULT_IMAGE_BASE_NAME,
    DEFAULT_IMAGE_FORMAT, SUPPORTED_IMAGE_FORMATS,
)
from lighttools_handler.power_bands import PowerInterval


class PowerIntervalModel(BaseModel):
    """One power percentage interval, e.g. [100, 70]."""
    upper_percent: float = Field(ge=0, le=100, description="Upper cumulative power percentage")
    lower_percent: float = Field(ge=0, le=100, description="Lower cumulative power percentage")

    @model_validator(mode="after")
    def _check_order(self) -> "PowerIntervalModel":
        if self.upper_percent < self.lower_percent:
            raise ValueError(
                f"upper_percent ({self.upper_percent:g}) must be >= lower_percent ({self.lower_percent:g})"
            )
        return self

    def to_interval(self) -> PowerInterval:
        return PowerInterval(self.upper_percent, self.lower_percent)


class RayPathSummaryRequest(BaseModel):
    """Ray path summary request."""
    receiver: str = Field(default=DEFAULT_RECEIVER, description="Surface receiver name")


class RayPathSummaryResponse(BaseModel):
    """Ray path counts and the available source/final surface filter values."""
    success: bool = Field(description="Whether the operation succeeded")
    receiver: Optional[str] = Field(default=None, description="Surface receiver name")
    num_ray_paths: Optional[int] = Field(default=None, description="Ray paths in the run")
    num_missing: Optional[int] = Field(default=None, description="Ray paths with missing power, source, or surface")
    sources: Optional[list[str]] = Field(default=None, description="Unique source names")
    surfaces: Optional[list[str]] = Field(default=None, description="Unique final surfaces")
    total_power: Optional[float] = Field(default=None, description="Summed power of usable ray paths")
    error: Optional[str] = Field(default=None, description="Error message if operation failed")


class PowerIntervalsRequest(BaseModel):
    """Power interval visualization request."""
    receiver: str = Field(default=DEFAULT_RECEIVER, description="Surface receiver name")
    intervals: list[PowerIntervalModel] = Field(min_length=1, description="Intervals, processed in order")
    source_filter: str = Field(default=WILDCARD, description="Source name, or '*' for all sources")
    surface_filter: str = Field(default=WILDCARD, description="Final surface name, or '*' for all surfaces")
    save_directory: str = Field(default=DEFAULT_OUTPUT_DIR, description="Output directory on the worker machine")
    capture: bool = Field(default=True, description="Capture a screenshot per band")
    base_name: str = Field(default=DEFAULT_IMAGE_BASE_NAME, description="Output file name prefix")
    image_format: str = Field(default=DEFAULT_IMAGE_FORMAT, description="Screenshot format")

    @field_validator("image_format")
    @classmethod
    def _check_format(cls, value: str) -> str:
        if value.lower() not in SUPPORTED_IMAGE_FORMATS:
            raise ValueError(f"image_format must be one of {', '.join(SUPPORTED_IMAGE_FORMATS)}")
        return value.lower()


class BandResult(BaseModel):
    """Outcome of one power interval."""
    interval: PowerIntervalModel = Field(description="Processed interval")
    member_indices: list[int] = Field(description="1-based ray path indices shown, power-descending")
    ray_count: int = Field(description="Number of ray paths in the band")
    band_power: float = Field(description="Summed power of the band's ray paths")
    image_path: Optional[str] = Field(default=None, description="Saved screenshot, if captured")
    data_path: Optional[str] = Field(default=None, description="Saved .mat data, if written")
    warnings: list[str] = Field(default_factory=list, description="Degraded steps for this band")


class PowerIntervalsResponse(BaseModel):
    """Power interval visualization response."""
    success: bool = Field(description="Whether the operation succeeded")
    run_id: Optional[str] = Field(default=None, description="Run timestamp used in file names")
    num_ray_paths: Optional[int] = Field(default=None, description="Ray paths in the run")
    num_filtered: Optional[int] = Field(default=None, description="Ray paths matching the filters")
    total_power: Optional[float] = Field(default=None, description="Summed power of the filtered ray paths")
    source_filter: Optional[str] = Field(default=None)
    surface_filter: Optional[str] = Field(default=None)
    bands: Optional[list[BandResult]] = Field(default=None, description="Per-interval results")
    summary_path: Optional[str] = Field(default=None, description="Band summary CSV")
    error: Optional[str] = Field(default=None, description="Error message if operation failed")


class RestoreVisibilityRequest(BaseModel):
    """Restore visibility request."""
    receiver: str = Field(default=DEFAULT_RECEIVER, description="Surface receiver name")


class RestoreVisibilityResponse(BaseModel):
    """Restore visibility response."""
    success: bool = Field(description="Whether the operation succeeded")
    num_ray_paths: Optional[int] = Field(default=None, description="Ray paths made visible")
    warnings: Optional[list[str]] = Field(default=None, description="Failed restoration calls")
    error: Optional[str] = Field(default=None, description="Error message if operation failed")

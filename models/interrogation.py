from typing import Optional
from pydantic import BaseModel, Field

from config import DEFAULT_OUTPUT_DIR


class InterrogationRequest(BaseModel):
    """Model interrogation request."""
    keys: list[str] = Field(min_length=1, description="LightTools data keys to interrogate")
    save_directory: str = Field(default=DEFAULT_OUTPUT_DIR, description="Output directory on the worker machine")
    write_files: bool = Field(default=True, description="Write CSV and MAT output")


class InterrogationResponse(BaseModel):
    """
    Model interrogation response.

    rows holds [data key, property name, value or error text] for every
    property; mesh data itself is only written to the MAT file.
    """
    success: bool = Field(description="Whether the operation succeeded")
    rows: Optional[list[list[str]]] = Field(default=None, description="[key, property, value or status] rows")
    array_shapes: Optional[dict[str, dict[str, list[int]]]] = Field(default=None, description="Mesh shapes by key and property")
    processed_keys: Optional[list[str]] = Field(default=None, description="Keys whose properties were read")
    skipped_keys: Optional[list[str]] = Field(default=None, description="Keys whose DbKeyDump produced no file")
    csv_path: Optional[str] = Field(default=None)
    mat_path: Optional[str] = Field(default=None)
    error: Optional[str] = Field(default=None, description="Error message if operation failed")

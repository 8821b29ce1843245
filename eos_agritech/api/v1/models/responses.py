"""
API response models using Pydantic.
"""
from typing import Any, List, Optional
from pydantic import BaseModel, Field

from eos_agritech.utils.polygon_io import PolygonOption


class PolygonImportResponse(BaseModel):
    """Polygons found in an imported file."""
    filename: str = Field(
        description="Name of the imported file"
    )
    polygon_count: int = Field(
        description="Number of polygons found"
    )
    options: List[PolygonOption] = Field(
        description="Polygon options sorted by area, largest first"
    )

    class Config:
        json_schema_extra = {
            "example": {
                "filename": "farm.kml",
                "polygon_count": 1,
                "options": [
                    {
                        "id": "kml-0",
                        "label": "Polygon 1",
                        "coordinates": [
                            [12.49, 41.89], [12.495, 41.89], [12.495, 41.894], [12.49, 41.89]
                        ],
                        "area_ha": 18.4,
                    }
                ],
            }
        }


class SessionValueResponse(BaseModel):
    """A stored session value."""
    session_id: str
    key: str
    value: Optional[Any] = Field(
        default=None,
        description="Stored JSON value"
    )
    stored: bool = Field(
        default=True,
        description="False when a summary without observations or with fallback was not kept"
    )


class ErrorResponse(BaseModel):
    """Error body of the eos-proxy endpoint."""
    error: str
    error_code: str
    provider_status: Optional[int] = None
    retry_after: Optional[float] = None

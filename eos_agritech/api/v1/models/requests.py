"""
API request models using Pydantic.
"""
from typing import Optional
from pydantic import BaseModel, Field

from eos_agritech.domain.models import EosConfig, PolygonData


class FieldRequest(BaseModel):
    """Body of the field summary and analysis endpoints."""
    polygon: PolygonData = Field(
        description="Field boundary"
    )
    config: EosConfig = Field(
        default_factory=EosConfig,
        description="Crop, dates and optional cloud filters"
    )
    session_id: Optional[str] = Field(
        default=None,
        description="Session whose last good summary is saved and reused when a fetch fails"
    )

    class Config:
        json_schema_extra = {
            "example": {
                "polygon": {
                    "coordinates": [
                        [12.4900, 41.8900],
                        [12.4950, 41.8900],
                        [12.4950, 41.8940],
                        [12.4900, 41.8940],
                        [12.4900, 41.8900],
                    ],
                    "source": "drawn",
                },
                "config": {"cropType": "wheat", "planting_date": "2024-10-15"},
                "session_id": "browser-42",
            }
        }


class PolygonImportRequest(BaseModel):
    """An uploaded KML or GeoJSON file as text."""
    filename: str = Field(
        description="Original file name; the extension selects the parser",
        examples=["field.kml"]
    )
    content: str = Field(
        description="File content"
    )

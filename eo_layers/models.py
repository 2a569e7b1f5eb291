"""
Pydantic models for response schemas.

Field names are snake_case in Python and camelCase on the wire.
"""

from typing import List, Dict, Any, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class ApiModel(BaseModel):
    """Base model serializing to camelCase JSON."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_json(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class Center(ApiModel):
    """Map center."""
    latitude: float = Field(..., ge=-90, le=90, description="Latitude")
    longitude: float = Field(..., ge=-180, le=180, description="Longitude")


class Bounds(ApiModel):
    """Bounding box in degrees."""
    north: float
    south: float
    east: float
    west: float


class DateRange(ApiModel):
    start: str
    end: str


class NDVISampleModel(ApiModel):
    """One acquisition of the NDVI time series, descaled to [-1, 1]."""
    date: str
    timestamp: Optional[int] = None
    year: int
    calendar_day: int = Field(..., ge=1, le=365)
    ndvi_mean: float
    ndvi_median: Optional[float] = None
    ndvi_stddev: Optional[float] = None
    ndvi_raw: Optional[float] = None


class CalendarDayAverageModel(ApiModel):
    """Multi-year average for one normalized calendar day."""
    calendar_day: int = Field(..., ge=1, le=365)
    ndvi_mean: float
    ndvi_median: Optional[float] = None
    sample_count: int = Field(..., ge=1)
    years: List[int]


class TimeSeriesMapModel(ApiModel):
    date: str
    timestamp: Optional[int] = None
    tile_url: str


class TimeSeries(ApiModel):
    enabled: bool
    data: List[NDVISampleModel] = []
    maps: List[TimeSeriesMapModel] = []
    calendar_day_averages: List[CalendarDayAverageModel] = []
    date_range: DateRange
    total_images: int
    processed_maps: int


class NDVIResponse(ApiModel):
    """Response for the NDVI layer."""
    success: bool = True
    map_url: str
    center: Center
    bounds: Bounds
    zoom: int
    time_series: TimeSeries
    metadata: Dict[str, Any] = {}


class LULCResponse(ApiModel):
    """Response for the land cover layer."""
    success: bool = True
    map_url: str
    center: Center
    bounds: Bounds
    zoom: int
    metadata: Dict[str, Any] = {}


class FloodMaps(ApiModel):
    before: str
    after: str
    difference: str
    flooded: str


class FloodStatistics(ApiModel):
    flooded_area_ha: int = Field(..., ge=0, description="Flooded area in hectares")
    flooded_area_km2: float = Field(..., ge=0, description="Flooded area in square kilometres")


class FloodResponse(ApiModel):
    """Response for flood extent detection."""
    success: bool = True
    maps: FloodMaps
    center: Center
    bounds: Bounds
    zoom: int
    statistics: FloodStatistics
    metadata: Dict[str, Any] = {}


class ErrorResponse(ApiModel):
    """Error response model."""
    success: bool = False
    error: str
    detail: Optional[str] = None
    error_code: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None
    timestamp: Optional[str] = None
    request_params: Optional[Dict[str, Any]] = None

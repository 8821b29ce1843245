"""
Domain models for fields, EOS requests and EOS responses.

These models represent the core domain entities and should be independent
of any infrastructure concerns (API clients, databases, etc.).
"""
from typing import List, Literal, Optional, Tuple
from pydantic import BaseModel, ConfigDict, Field


Coordinate = Tuple[float, float]
"""A [longitude, latitude] pair."""

WaterStressLevel = Literal["none", "mild", "moderate", "severe"]
HeatStressRisk = Literal["low", "medium", "high"]
DevelopmentRate = Literal["early", "normal", "delayed"]


class Location(BaseModel):
    """Centroid of a field."""
    lat: float
    lng: float
    country: Optional[str] = None


class PolygonData(BaseModel):
    """Field boundary as entered by the user."""
    geojson: Optional[str] = Field(
        default=None,
        description="GeoJSON text of the polygon"
    )
    coordinates: List[List[float]] = Field(
        default_factory=list,
        description="Ring of [lon, lat] pairs (extra elevation values are tolerated)"
    )
    source: str = ""
    area_ha: float = 0.0


class CloudFilters(BaseModel):
    """Cloud filtering parameters sent with a statistics request."""
    max_cloud_cover_in_aoi: int = Field(ge=0, le=100)
    exclude_cover_pixels: bool
    cloud_masking_level: Literal[0, 1, 2]


class EosParameterProfile(CloudFilters):
    """A named cloud-filter profile."""
    description: str


class EosConfig(BaseModel):
    """Request descriptor for one field analysis."""
    crop_type: str = Field(default="wheat", alias="cropType")
    api_key: Optional[str] = Field(
        default=None,
        alias="apiKey",
        description="'demo' selects demo data; anything else uses the live proxy"
    )
    start_date: Optional[str] = None
    end_date: Optional[str] = None
    planting_date: Optional[str] = None
    max_cloud_cover_in_aoi: Optional[int] = Field(default=None, ge=0, le=100)
    exclude_cover_pixels: Optional[bool] = None
    cloud_masking_level: Optional[Literal[0, 1, 2]] = None
    auto_fallback: Optional[bool] = None
    location: Optional[Location] = None

    model_config = ConfigDict(populate_by_name=True)

    @property
    def is_demo(self) -> bool:
        return self.api_key == "demo"


class VegetationPoint(BaseModel):
    """One observation date of the index series."""
    date: str
    NDVI: float
    NDMI: float
    ReCI: Optional[float] = None


class VegetationAnalysis(BaseModel):
    health_status: str
    growth_stage: str


class UsedFilters(BaseModel):
    max_cloud_cover_in_aoi: Optional[int] = None
    exclude_cover_pixels: Optional[bool] = None
    cloud_masking_level: Optional[int] = None
    sensors: Optional[List[str]] = None
    aoi_cover_share_min: Optional[float] = None


class VegetationMeta(BaseModel):
    mode: Optional[str] = None
    start_date: Optional[str] = None
    end_date: Optional[str] = None
    reason: Optional[str] = None
    observation_count: int = 0
    fallback_used: bool = False
    used_filters: Optional[UsedFilters] = None
    optimization_used: Optional[bool] = None
    indices_requested: Optional[List[str]] = None


class VegetationData(BaseModel):
    field_id: str
    satellite: str
    time_series: List[VegetationPoint]
    analysis: VegetationAnalysis
    meta: Optional[VegetationMeta] = None


class WeatherDay(BaseModel):
    """One day of provider weather history or forecast."""
    model_config = ConfigDict(extra="ignore")

    date: Optional[str] = None
    temperature_min: Optional[float] = None
    temperature_max: Optional[float] = None
    rainfall: Optional[float] = Field(default=None, description="Daily precipitation (mm)")
    humidity: Optional[float] = None
    wind_speed: Optional[float] = None
    solar_radiation: Optional[float] = None
    sunshine_hours: Optional[float] = None
    cloudiness: Optional[float] = None
    pressure: Optional[float] = None


class WeatherForecast(BaseModel):
    date: str
    temperature_min: float
    temperature_max: float
    precipitation: float
    humidity: float
    wind_speed: float
    cloudiness: float
    stress_probability: float = Field(ge=0, le=100)


class HistoricalComparison(BaseModel):
    temperature_vs_normal: float
    precipitation_vs_normal: float
    stress_days_count: int


class WeatherData(BaseModel):
    """Weather aggregated over the analysis period."""
    temperature_avg: float
    temperature_min: float
    temperature_max: float
    precipitation_total: float
    humidity_avg: float
    humidity_min: float
    humidity_max: float
    wind_speed_avg: float
    wind_speed_max: float
    solar_radiation: float
    sunshine_hours: float
    cloudiness: float
    pressure: float
    growing_degree_days: float
    heat_stress_index: float
    cold_stress_index: float
    water_balance: float
    evapotranspiration: float
    alerts: List[str] = Field(default_factory=list)
    forecast: Optional[List[WeatherForecast]] = None
    historical_comparison: Optional[HistoricalComparison] = None


class SoilMoistureForecast(BaseModel):
    date: str
    surface_moisture: float
    root_zone_moisture: float
    stress_probability: float
    irrigation_need: bool


class IrrigationPlan(BaseModel):
    timing: Literal["immediate", "within_3_days", "within_week", "not_needed"]
    volume_mm: float
    priority: Literal["critical", "high", "medium", "low"]


class SoilMoistureData(BaseModel):
    surface_moisture: float = Field(description="0-7cm moisture (%)")
    root_zone_moisture: float = Field(description="Root zone moisture up to 70cm (%)")
    soil_moisture_index: float
    evapotranspiration_actual: float
    evapotranspiration_potential: float
    water_deficit: float
    drought_stress_level: WaterStressLevel
    historical_percentile: float
    forecast_7d: List[SoilMoistureForecast] = Field(default_factory=list)
    field_capacity: float
    wilting_point: float
    available_water_content: float
    irrigation_recommendation: Optional[IrrigationPlan] = None


class NdviData(BaseModel):
    current_value: Optional[float] = None
    trend_30_days: Optional[float] = None
    field_average: Optional[float] = None
    uniformity_score: Optional[float] = None


class NdmiData(BaseModel):
    current_value: Optional[float] = None
    water_stress_level: Optional[WaterStressLevel] = None
    trend_14_days: Optional[float] = None
    critical_threshold: float = 0.3


class Phenology(BaseModel):
    current_stage: Optional[str] = None
    days_from_planting: Optional[int] = None
    expected_harvest_days: Optional[int] = None
    development_rate: Optional[DevelopmentRate] = None


class WeatherRisks(BaseModel):
    temperature_stress_days: Optional[int] = None
    precipitation_deficit_mm: Optional[float] = None
    frost_risk_forecast_7d: Optional[bool] = None
    heat_stress_risk: Optional[HeatStressRisk] = None
    water_deficit_cumulative: Optional[float] = None


class SummaryMeta(BaseModel):
    start_date: Optional[str] = None
    end_date: Optional[str] = None
    sensor_used: Optional[str] = None
    observation_count: int = 0
    fallback_used: bool = False
    used_filters: Optional[UsedFilters] = None
    optimization_used: Optional[bool] = None
    attempt_number: Optional[int] = None
    escalation_used: Optional[bool] = None
    escalation_level: Optional[str] = None
    all_attempts_failed: Optional[bool] = None
    suggestions: Optional[List[str]] = None


class EosSummary(BaseModel):
    """Flat snapshot of one field analysis run."""
    ndvi_data: NdviData = Field(default_factory=NdviData)
    ndmi_data: NdmiData = Field(default_factory=NdmiData)
    soil_moisture: Optional[SoilMoistureData] = None
    phenology: Phenology = Field(default_factory=Phenology)
    weather_risks: WeatherRisks = Field(default_factory=WeatherRisks)
    weather: Optional[WeatherData] = None
    ndvi_series: List[VegetationPoint] = Field(default_factory=list)
    meta: SummaryMeta = Field(default_factory=SummaryMeta)

    @property
    def observation_count(self) -> int:
        return self.meta.observation_count


class ProductivityData(BaseModel):
    predicted_yield_ton_ha: float
    confidence_level: int
    recommendations: List[str]
    expected_revenue_eur_ha: int


class EosProxyRequest(BaseModel):
    """Body of an eos-proxy call."""
    action: Optional[str] = None
    polygon: Optional[PolygonData] = None
    start_date: Optional[str] = None
    end_date: Optional[str] = None
    planting_date: Optional[str] = None
    crop_type: str = "wheat"
    max_cloud_cover_in_aoi: Optional[float] = None
    exclude_cover_pixels: Optional[bool] = None
    cloud_masking_level: Optional[int] = None
    auto_fallback: Optional[bool] = None


class VegetationResult(BaseModel):
    vegetation: VegetationData
    meta: VegetationMeta


class WeatherMeta(BaseModel):
    mode: str = "live"
    start_date: str
    end_date: str


class WeatherResult(BaseModel):
    weather: WeatherData
    meta: WeatherMeta


class SoilMoistureResult(BaseModel):
    soil_moisture: SoilMoistureData


class SavedSummaryBundle(BaseModel):
    """Last successful analysis kept for offline fallback."""
    polygon: Optional[PolygonData] = None
    user_config: Optional[EosConfig] = None
    summary: EosSummary
    exported_at: str

    @property
    def is_valid(self) -> bool:
        """Only bundles with real observations fetched without fallback are kept."""
        return self.summary.meta.observation_count > 0 and not self.summary.meta.fallback_used

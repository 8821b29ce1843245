"""
Fixed demo dataset served when a request uses the ``demo`` API key.
"""
from typing import Optional

from eos_agritech.domain.models import (
    EosSummary,
    HistoricalComparison,
    NdmiData,
    NdviData,
    Phenology,
    SummaryMeta,
    VegetationAnalysis,
    VegetationData,
    VegetationPoint,
    WeatherData,
    WeatherRisks,
)
from eos_agritech.services.domain import summary_builder
from eos_agritech.services.domain.crop_analysis import classify_water_stress_level


def demo_vegetation() -> VegetationData:
    return VegetationData(
        field_id="IT_FIELD_001",
        satellite="Sentinel-2",
        time_series=[
            VegetationPoint(date="2024-01-15", NDVI=0.68, NDMI=0.42),
            VegetationPoint(date="2024-01-21", NDVI=0.74, NDMI=0.36),
            VegetationPoint(date="2024-01-27", NDVI=0.69, NDMI=0.30),
            VegetationPoint(date="2024-02-04", NDVI=0.72, NDMI=0.34),
            VegetationPoint(date="2024-02-12", NDVI=0.76, NDMI=0.37),
        ],
        analysis=VegetationAnalysis(health_status="moderate_stress", growth_stage="tillering"),
    )


def demo_weather() -> WeatherData:
    return WeatherData(
        temperature_avg=11.8,
        temperature_min=8.2,
        temperature_max=15.4,
        precipitation_total=145.2,
        humidity_avg=72.5,
        humidity_min=65.0,
        humidity_max=80.0,
        wind_speed_avg=3.2,
        wind_speed_max=8.1,
        solar_radiation=15.3,
        sunshine_hours=6.8,
        cloudiness=45.2,
        pressure=1013.5,
        growing_degree_days=156.7,
        heat_stress_index=12.5,
        cold_stress_index=8.3,
        water_balance=-32.1,
        evapotranspiration=177.3,
        alerts=["Water stress detected"],
        historical_comparison=HistoricalComparison(
            temperature_vs_normal=-2.3,
            precipitation_vs_normal=25.8,
            stress_days_count=3,
        ),
    )


def demo_summary(
    start_date: Optional[str] = None,
    end_date: Optional[str] = None,
    planting_date: Optional[str] = None,
) -> EosSummary:
    """Summary built from the demo series; no network traffic involved."""
    vegetation = demo_vegetation()
    series = vegetation.time_series
    last = series[-1]
    reference = end_date or last.date

    return EosSummary(
        ndvi_data=NdviData(
            current_value=last.NDVI,
            trend_30_days=summary_builder.pct_change(
                last.NDVI, summary_builder.nearest_value(series, 30, "NDVI")
            ),
            field_average=summary_builder.field_average(series),
            uniformity_score=summary_builder.UNIFORMITY_SCORE,
        ),
        ndmi_data=NdmiData(
            current_value=last.NDMI,
            water_stress_level=classify_water_stress_level(last.NDMI),
            trend_14_days=summary_builder.pct_change(
                last.NDMI, summary_builder.nearest_value(series, 14, "NDMI")
            ),
        ),
        phenology=Phenology(
            current_stage=vegetation.analysis.growth_stage,
            days_from_planting=summary_builder.days_between(planting_date, reference),
            expected_harvest_days=200,
            development_rate="normal",
        ),
        weather_risks=WeatherRisks(frost_risk_forecast_7d=False, heat_stress_risk="low"),
        weather=demo_weather(),
        ndvi_series=series,
        meta=SummaryMeta(
            start_date=start_date,
            end_date=end_date,
            sensor_used=summary_builder.SENSOR_LABEL,
            observation_count=len(series),
            fallback_used=False,
        ),
    )

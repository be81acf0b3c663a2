"""US EPA air quality index helpers.

Pure functions only: no I/O, no state. Used by providers (to derive AQI from
raw PM2.5), the synthetic generator, and the simulation engine.
"""

from __future__ import annotations

import math

from .schemas import HealthPrecaution

# (pm_low, pm_high, aqi_low, aqi_high) for PM2.5 in µg/m³
PM25_BREAKPOINTS: tuple[tuple[float, float, int, int], ...] = (
    (0.0, 12.0, 0, 50),
    (12.1, 35.4, 51, 100),
    (35.5, 55.4, 101, 150),
    (55.5, 150.4, 151, 200),
    (150.5, 250.4, 201, 300),
    (250.5, 500.4, 301, 500),
)

# Concentrations above this are not physical; clamping keeps the result finite.
MAX_PM25 = 10_000.0


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def aqi_from_pm25(pm25: float) -> int:
    """Convert a PM2.5 concentration to an AQI value.

    Piecewise linear over the EPA table. Each segment is selected by its upper
    bound, so concentrations between two segments (e.g. 12.05) fall into the
    higher one. Values above 500.4 extrapolate along the last segment's slope
    up to MAX_PM25, where the input is clamped so the result stays finite.
    Negative and NaN inputs are treated as 0.
    """

    if math.isnan(pm25) or pm25 <= 0:
        return 0
    pm25 = min(pm25, MAX_PM25)

    for pm_low, pm_high, aqi_low, aqi_high in PM25_BREAKPOINTS:
        if pm25 <= pm_high:
            break
    # Falls through with the final segment for extrapolation

    slope = (aqi_high - aqi_low) / (pm_high - pm_low)
    return max(0, _round_half_up(slope * (pm25 - pm_low) + aqi_low))


_PRECAUTIONS: tuple[tuple[int, HealthPrecaution], ...] = (
    (
        50,
        HealthPrecaution(
            level="good",
            message="Air quality is satisfactory",
            recommendations=["Enjoy outdoor activities"],
            mask_required=False,
            avoid_outdoor_activity=False,
        ),
    ),
    (
        100,
        HealthPrecaution(
            level="moderate",
            message="Air quality is acceptable for most people",
            recommendations=["Sensitive individuals may experience minor breathing discomfort"],
            mask_required=False,
            avoid_outdoor_activity=False,
        ),
    ),
    (
        150,
        HealthPrecaution(
            level="unhealthy_sensitive",
            message="Unhealthy for sensitive groups",
            recommendations=[
                "Sensitive individuals should limit outdoor activities",
                "Consider wearing a mask",
            ],
            mask_required=True,
            avoid_outdoor_activity=True,
        ),
    ),
    (
        200,
        HealthPrecaution(
            level="unhealthy",
            message="Unhealthy for everyone",
            recommendations=["Avoid outdoor activities", "Wear a mask if going outside"],
            mask_required=True,
            avoid_outdoor_activity=True,
        ),
    ),
    (
        300,
        HealthPrecaution(
            level="very_unhealthy",
            message="Very unhealthy air quality",
            recommendations=[
                "Stay indoors",
                "Use air purifiers",
                "Wear N95 mask if going outside",
            ],
            mask_required=True,
            avoid_outdoor_activity=True,
        ),
    ),
)

_HAZARDOUS = HealthPrecaution(
    level="hazardous",
    message="Hazardous air quality",
    recommendations=[
        "Stay indoors with windows closed",
        "Use air purifiers",
        "Avoid all outdoor activities",
    ],
    mask_required=True,
    avoid_outdoor_activity=True,
)


def health_precautions_from_aqi(aqi: float) -> HealthPrecaution:
    """Map an AQI value to its advisory band (upper bounds are inclusive)."""

    for upper, precaution in _PRECAUTIONS:
        if aqi <= upper:
            return precaution.model_copy(deep=True)
    return _HAZARDOUS.model_copy(deep=True)


def aqi_category(aqi: float) -> str:
    """Return the band name for an AQI value."""

    return health_precautions_from_aqi(aqi).level

"""
Deterministic synthetic environmental data.

Last-resort fallback for the gateway when no provider can answer. Values are
plausible (ranges follow typical urban/rural conditions) and reproducible:
the generator is seeded from the data type and the quantized location key,
so the same place always yields the same numbers. Every payload is tagged
with source ``synthetic``.
"""

from __future__ import annotations

import hashlib
import math
import random
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Optional

from .aqi import aqi_from_pm25
from .schemas import AirQualityReading, DataType, Location, WeatherReading, utc_now

SYNTHETIC_SOURCE = "synthetic"

_URBAN_MARKERS = ("city", "new york", "los angeles")


def _rng(data_type: str, location_key: str) -> random.Random:
    digest = hashlib.sha256(f"{data_type}|{location_key}".encode("utf-8")).digest()
    return random.Random(int.from_bytes(digest[:8], "big"))


def _is_urban(location: Location) -> bool:
    city = location.city.lower()
    return any(marker in city for marker in _URBAN_MARKERS)


def _air_quality(rng: random.Random, location: Location, now: datetime) -> Dict[str, Any]:
    base = 25 + rng.random() * 15 if _is_urban(location) else 15 + rng.random() * 10
    # Diurnal swing keyed to the hour of the synthetic timestamp
    pm25 = round(base + math.sin(now.hour / 24 * math.pi * 2) * 5 + rng.random() * 3, 2)
    pm25 = max(pm25, 0.0)
    reading = AirQualityReading(
        aqi=aqi_from_pm25(pm25),
        pm25=pm25,
        pm10=round(pm25 * 1.5, 2),
        no2=round(20 + rng.random() * 30, 2),
        o3=round(30 + rng.random() * 40, 2),
        co=round(1 + rng.random() * 2, 2),
        so2=round(5 + rng.random() * 10, 2),
        timestamp=now,
        source=SYNTHETIC_SOURCE,
        uncertainty=round(5 + rng.random() * 10, 2),
    )
    return reading.model_dump(mode="json")


def _weather(rng: random.Random, location: Location, now: datetime) -> list:
    readings = []
    for hours_ago in range(23, -1, -1):
        stamp = now - timedelta(hours=hours_ago)
        readings.append(
            WeatherReading(
                temperature=round(20 + math.sin(stamp.hour / 24 * math.pi * 2) * 10 + rng.random() * 5, 1),
                humidity=round(60 + rng.random() * 30, 1),
                wind_speed=round(5 + rng.random() * 10, 1),
                wind_direction=round(rng.random() * 360, 0),
                pressure=round(1013 + rng.random() * 20, 1),
                precipitation=round(rng.random() * 5, 1) if rng.random() > 0.8 else 0.0,
                visibility=round(10 - rng.random() * 2, 1),
                timestamp=stamp,
                source=SYNTHETIC_SOURCE,
            ).model_dump(mode="json")
        )
    return readings


def _fires(rng: random.Random, location: Location, now: datetime) -> list:
    radius_deg = 50 / 111
    fires = []
    for _ in range(rng.randint(0, 4)):
        fires.append(
            {
                "latitude": round(location.latitude + (rng.random() - 0.5) * radius_deg, 4),
                "longitude": round(location.longitude + (rng.random() - 0.5) * radius_deg, 4),
                "brightness": round(300 + rng.random() * 100, 1),
                "acq_date": now.date().isoformat(),
                "satellite": "MODIS",
                "confidence": rng.randint(0, 99),
                "frp": round(rng.random() * 50, 1),
                "source": SYNTHETIC_SOURCE,
            }
        )
    return fires


def _imagery(rng: random.Random, location: Location, now: datetime) -> Dict[str, Any]:
    # No URL: there is no real image behind a synthetic answer
    return {
        "url": None,
        "date": now.date().isoformat(),
        "location": location.model_dump(mode="json", exclude_none=True),
        "layers": [],
        "resolution": None,
        "source": SYNTHETIC_SOURCE,
    }


def _precipitation(rng: random.Random, location: Location, now: datetime) -> list:
    series = []
    start = now.replace(minute=0, second=0, microsecond=0)
    for step in range(8):
        amount = round(rng.random() * 10, 2) if rng.random() > 0.7 else 0.0
        series.append(
            {
                "timestamp": (start + timedelta(hours=3 * step)).isoformat(),
                "precipitation": amount,
                "precipitation_type": "snow" if rng.random() > 0.8 else "rain",
                "intensity": round(rng.random() * 5, 2),
                "source": SYNTHETIC_SOURCE,
            }
        )
    return series


def _ground_stations(rng: random.Random, location: Location, now: datetime) -> Dict[str, Any]:
    return {
        "openaq": [
            {
                "id": None,
                "name": "Synthetic station",
                "coordinates": {
                    "latitude": round(location.latitude + (rng.random() - 0.5) * 0.1, 4),
                    "longitude": round(location.longitude + (rng.random() - 0.5) * 0.1, 4),
                },
                "parameters": ["pm25"],
                "pm25": round(15 + rng.random() * 20, 2),
            }
        ],
        "timestamp": now.isoformat(),
        "source": SYNTHETIC_SOURCE,
    }


def _airs(rng: random.Random, location: Location, now: datetime) -> Dict[str, Any]:
    return WeatherReading(
        temperature=round(20 + rng.random() * 15, 1),
        humidity=round(50 + rng.random() * 40, 1),
        wind_speed=round(5 + rng.random() * 10, 1),
        wind_direction=round(rng.random() * 360, 0),
        pressure=round(1013 + rng.random() * 20, 1),
        timestamp=now,
        source=SYNTHETIC_SOURCE,
    ).model_dump(mode="json")


def _tempo(rng: random.Random, location: Location, now: datetime) -> Dict[str, Any]:
    pm25 = round(15 + rng.random() * 20, 2)
    return AirQualityReading(
        aqi=aqi_from_pm25(pm25),
        pm25=pm25,
        pm10=round(25 + rng.random() * 30, 2),
        no2=round(20 + rng.random() * 25, 2),
        o3=round(35 + rng.random() * 30, 2),
        co=round(1 + rng.random() * 2, 2),
        so2=round(5 + rng.random() * 10, 2),
        timestamp=now,
        source=SYNTHETIC_SOURCE,
        uncertainty=3.0,
    ).model_dump(mode="json")


_GENERATORS: Dict[str, Callable[[random.Random, Location, datetime], Any]] = {
    "realtime_aqi": _air_quality,
    "weather": _weather,
    "fires": _fires,
    "imagery": _imagery,
    "precipitation": _precipitation,
    "ground_stations": _ground_stations,
    "airs": _airs,
    "tempo": _tempo,
}


def synthesize(
    data_type: DataType,
    location: Location,
    location_key: str,
    now: Optional[datetime] = None,
) -> Any:
    """Generate a synthetic payload for ``data_type`` at ``location``.

    Same ``(data_type, location_key, now.hour)`` always gives the same values.
    """

    generator = _GENERATORS.get(data_type)
    if generator is None:
        raise ValueError(f"No synthetic generator for data type {data_type!r}")
    now = now or utc_now()
    return generator(_rng(data_type, location_key), location, now)

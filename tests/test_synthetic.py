"""Tests for deterministic synthetic fallback data."""

import pytest

from cleanspace.aqi import aqi_from_pm25
from cleanspace.schemas import AirQualityReading, Location, WeatherReading
from cleanspace.synthetic import SYNTHETIC_SOURCE, synthesize

ALL_TYPES = ["realtime_aqi", "weather", "fires", "imagery", "precipitation", "ground_stations", "airs", "tempo"]


@pytest.mark.parametrize("data_type", ALL_TYPES)
def test_same_place_and_time_gives_same_values(data_type, clock, new_york):
    key = new_york.location_key(data_type)
    assert synthesize(data_type, new_york, key, clock()) == synthesize(data_type, new_york, key, clock())


def test_air_quality_is_consistent_and_tagged(clock, new_york):
    data = synthesize("realtime_aqi", new_york, new_york.location_key("realtime_aqi"), clock())
    reading = AirQualityReading.model_validate(data)
    assert reading.source == SYNTHETIC_SOURCE
    assert reading.aqi == aqi_from_pm25(reading.pm25)


def test_urban_locations_are_dirtier_on_average(clock):
    urban, rural = [], []
    for index in range(20):
        lat = 30 + index
        city = Location(latitude=lat, longitude=-74.0, city="Test City")
        village = Location(latitude=lat, longitude=-74.0, city="Hamlet")
        urban.append(synthesize("realtime_aqi", city, city.location_key("u"), clock())["pm25"])
        rural.append(synthesize("realtime_aqi", village, village.location_key("r"), clock())["pm25"])
    assert sum(urban) / len(urban) > sum(rural) / len(rural)


def test_weather_is_a_24_hour_series(clock, new_york):
    series = synthesize("weather", new_york, new_york.location_key("weather"), clock())
    assert len(series) == 24
    readings = [WeatherReading.model_validate(item) for item in series]
    assert readings[-1].timestamp == clock()
    assert all(0 <= reading.humidity <= 100 for reading in readings)


def test_imagery_has_no_url(clock, new_york):
    assert synthesize("imagery", new_york, "imagery_k", clock())["url"] is None


def test_unknown_type_raises(new_york):
    with pytest.raises(ValueError):
        synthesize("ozone_map", new_york, "k")

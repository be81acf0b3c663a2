"""Tests for the EPA AQI helpers."""

import math

import pytest

from cleanspace.aqi import MAX_PM25, aqi_category, aqi_from_pm25, health_precautions_from_aqi


@pytest.mark.parametrize(
    "pm25, expected",
    [
        (0.0, 0),
        (12.0, 50),
        (12.1, 51),
        (35.4, 100),
        (35.5, 101),
        (55.4, 150),
        (150.4, 200),
        (250.4, 300),
        (500.4, 500),
    ],
)
def test_aqi_breakpoints(pm25, expected):
    assert aqi_from_pm25(pm25) == expected


def test_aqi_is_monotonic_and_total():
    previous = -1
    value = 0.0
    while value < 700:
        aqi = aqi_from_pm25(value)
        assert isinstance(aqi, int)
        assert aqi >= previous
        previous = aqi
        value += 0.05


def test_aqi_extrapolates_above_table():
    # Final segment slope continues past 500.4 until the clamp
    assert 500 < aqi_from_pm25(600.0) < aqi_from_pm25(5_000.0) < aqi_from_pm25(MAX_PM25)
    assert aqi_from_pm25(math.inf) == aqi_from_pm25(1e9) == aqi_from_pm25(MAX_PM25)


def test_aqi_degenerate_inputs():
    assert aqi_from_pm25(-5.0) == 0
    assert aqi_from_pm25(math.nan) == 0


def test_precaution_bands_are_closed_on_upper_bound():
    assert health_precautions_from_aqi(50).level == "good"
    assert health_precautions_from_aqi(51).level == "moderate"
    assert health_precautions_from_aqi(100).level == "moderate"
    assert health_precautions_from_aqi(101).level == "unhealthy_sensitive"
    assert health_precautions_from_aqi(200).level == "unhealthy"
    assert health_precautions_from_aqi(300).level == "very_unhealthy"
    assert health_precautions_from_aqi(301).level == "hazardous"


def test_precautions_flags_and_isolation():
    sensitive = health_precautions_from_aqi(120)
    assert sensitive.mask_required is True
    assert sensitive.recommendations

    # Returned values are copies: mutating one does not leak into the next
    sensitive.recommendations.append("mutated")
    assert "mutated" not in health_precautions_from_aqi(120).recommendations

    good = health_precautions_from_aqi(10)
    assert good.mask_required is False
    assert good.avoid_outdoor_activity is False
    assert aqi_category(10) == "good"

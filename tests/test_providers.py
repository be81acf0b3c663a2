"""Tests for the external data providers with the HTTP layer stubbed out."""

import json
from datetime import date

import pytest

from cleanspace import providers
from cleanspace.errors import ProviderError, ProviderNotConfigured
from cleanspace.providers import (
    AQICNProvider,
    FirmsFireProvider,
    NasaPowerWeatherProvider,
    OpenAQProvider,
    OpenMeteoAirQualityProvider,
    OpenMeteoPrecipitationProvider,
    PurpleAirProvider,
    WorldviewImageryProvider,
    bounding_box,
    default_providers,
    parse_fire_csv,
)


def stub_http(monkeypatch, body, requests=None):
    def fake_get(url, headers, timeout, provider):
        if requests is not None:
            requests.append((url, headers))
        if isinstance(body, Exception):
            raise body
        return body if isinstance(body, str) else json.dumps(body)

    monkeypatch.setattr(providers, "_http_get", fake_get)


@pytest.mark.asyncio
async def test_open_meteo_air_quality(monkeypatch, new_york):
    requests = []
    stub_http(
        monkeypatch,
        {"current": {"pm2_5": 40.0, "pm10": 55.0, "carbon_monoxide": 250.0, "nitrogen_dioxide": 20.0, "ozone": 60.0, "sulphur_dioxide": 3.0}},
        requests,
    )

    data = await OpenMeteoAirQualityProvider().fetch(new_york)

    assert data["aqi"] == 112
    assert data["pm25"] == 40.0
    assert data["co"] == pytest.approx(0.25)
    assert data["source"] == "open_meteo"
    assert "latitude=40.7128" in requests[0][0]


@pytest.mark.asyncio
async def test_open_meteo_without_pm25_returns_none(monkeypatch, new_york):
    stub_http(monkeypatch, {"current": {"pm10": 10}})
    assert await OpenMeteoAirQualityProvider().fetch(new_york) is None


@pytest.mark.asyncio
async def test_aqicn_reads_station_aqi(monkeypatch, new_york):
    stub_http(monkeypatch, {"status": "ok", "data": {"aqi": 87, "iaqi": {"pm25": {"v": 29}, "no2": {"v": 14}}}})
    data = await AQICNProvider("token").fetch(new_york)
    assert data["aqi"] == 87
    assert data["pm25"] == 29
    assert data["no2"] == 14

    stub_http(monkeypatch, {"status": "ok", "data": {"aqi": "-", "iaqi": {}}})
    assert await AQICNProvider("token").fetch(new_york) is None

    stub_http(monkeypatch, {"status": "error", "data": "Invalid key"})
    assert await AQICNProvider("token").fetch(new_york) is None


@pytest.mark.asyncio
async def test_purpleair_averages_sensors(monkeypatch, new_york):
    requests = []
    stub_http(monkeypatch, {"data": [[1, 10.0], [2, 14.0], [3, None]]}, requests)

    data = await PurpleAirProvider("key").fetch(new_york)

    assert data["pm25"] == pytest.approx(12.0)
    assert requests[0][1] == {"X-API-Key": "key"}


@pytest.mark.asyncio
async def test_keyed_providers_refuse_without_credentials(new_york):
    for provider in (AQICNProvider(None), PurpleAirProvider(""), FirmsFireProvider(None), OpenAQProvider(None)):
        assert not provider.is_configured()
        with pytest.raises(ProviderNotConfigured):
            await provider.fetch(new_york)


@pytest.mark.asyncio
async def test_nasa_power_skips_fill_values(monkeypatch, new_york):
    stub_http(
        monkeypatch,
        {
            "properties": {
                "parameter": {
                    "T2M": {"2025100400": 18.5, "2025100401": -999.0},
                    "RH2M": {"2025100400": 65.0, "2025100401": 60.0},
                    "WS2M": {"2025100400": 3.2},
                    "PS": {"2025100400": 101.2},
                }
            }
        },
    )

    data = await NasaPowerWeatherProvider().fetch(new_york, date=date(2025, 10, 4))

    assert len(data) == 1
    assert data[0]["temperature"] == 18.5
    assert data[0]["pressure"] == pytest.approx(1012.0)
    assert data[0]["timestamp"].startswith("2025-10-04T00:00:00")


@pytest.mark.asyncio
async def test_firms_parses_csv_and_rejects_bad_key(monkeypatch, new_york):
    csv_body = "latitude,longitude,brightness,confidence\n40.9,-74.2,320.5,85\n41.0,-74.3\n"
    stub_http(monkeypatch, csv_body)
    fires = await FirmsFireProvider("key").fetch(new_york, radius_km=100)
    assert fires == [{"latitude": "40.9", "longitude": "-74.2", "brightness": "320.5", "confidence": "85"}]

    stub_http(monkeypatch, "latitude,longitude\n")
    assert await FirmsFireProvider("key").fetch(new_york) == []

    stub_http(monkeypatch, "Invalid MAP_KEY.")
    with pytest.raises(ProviderError):
        await FirmsFireProvider("key").fetch(new_york)


@pytest.mark.asyncio
async def test_worldview_builds_url_without_network(monkeypatch, new_york):
    stub_http(monkeypatch, AssertionError("no request expected"))
    data = await WorldviewImageryProvider().fetch(new_york, date=date(2025, 10, 4))
    assert data["url"].startswith(providers.WORLDVIEW_SNAPSHOT_URL)
    assert "TIME=2025-10-04" in data["url"]


@pytest.mark.asyncio
async def test_precipitation_series(monkeypatch, new_york):
    stub_http(
        monkeypatch,
        {"hourly": {"time": ["2025-10-04T00:00", "2025-10-04T01:00"], "precipitation": [0.4, 1.2], "rain": [0.4, 0.0], "snowfall": [0.0, 1.2]}},
    )
    series = await OpenMeteoPrecipitationProvider().fetch(new_york)
    assert [entry["precipitation_type"] for entry in series] == ["rain", "snow"]


@pytest.mark.asyncio
async def test_openaq_stations(monkeypatch, new_york):
    stub_http(
        monkeypatch,
        {"results": [{"id": 7, "name": "Queens", "distance": 1200, "sensors": [{"parameter": {"name": "pm25"}}, {"parameter": {"name": "no2"}}]}]},
    )
    data = await OpenAQProvider("key").fetch(new_york)
    assert data["openaq"][0]["parameters"] == ["no2", "pm25"]


@pytest.mark.asyncio
async def test_transport_errors_surface_as_provider_errors(monkeypatch, new_york):
    stub_http(monkeypatch, ProviderError("open_meteo_air_quality", "HTTP 503: Service Unavailable"))
    with pytest.raises(ProviderError):
        await OpenMeteoAirQualityProvider().fetch(new_york)

    stub_http(monkeypatch, "<html>oops</html>")
    with pytest.raises(ProviderError, match="non-JSON"):
        await OpenMeteoAirQualityProvider().fetch(new_york)


def test_parse_fire_csv_handles_empty_text():
    assert parse_fire_csv("") == []


def test_bounding_box_is_centered(new_york):
    box = bounding_box(new_york, 111)
    assert box["north"] == pytest.approx(41.7128)
    assert box["south"] == pytest.approx(39.7128)
    assert box["east"] > new_york.longitude > box["west"]


def test_default_provider_order():
    class Keys:
        AQICN_API_KEY = "a"
        PURPLEAIR_API_KEY = None
        FIRMS_API_KEY = None
        OPENAQ_API_KEY = None
        PROVIDER_TIMEOUT_SECONDS = 5

    built = default_providers(Keys)
    realtime = [provider.name for provider in built if provider.data_type == "realtime_aqi"]
    assert realtime == ["open_meteo_air_quality", "aqicn", "purpleair"]
    assert all(provider.timeout == 5 for provider in built)
    assert {provider.data_type for provider in built} == {
        "realtime_aqi", "weather", "fires", "imagery", "precipitation", "ground_stations"
    }

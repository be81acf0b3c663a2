"""
External environmental data providers.

Each provider serves one data type and returns a JSON-serializable payload
(or None when it has nothing for the location). Providers are tried in order
by the gateway; raising ProviderError and returning None are treated alike.

Network calls use the standard library HTTP client in a worker thread so the
event loop never blocks.
"""

from __future__ import annotations

import asyncio
import csv
import io
import json
import math
from abc import ABC, abstractmethod
from datetime import date, datetime, timedelta, timezone
from typing import Any, Dict, List, Mapping, Optional
from urllib import error, parse, request

from .aqi import aqi_from_pm25
from .errors import ProviderError, ProviderNotConfigured
from .logging_utils import log_provider
from .schemas import AirQualityReading, DataType, Location, ProviderTag, WeatherReading, utc_now

OPEN_METEO_AIR_QUALITY_URL = "https://air-quality-api.open-meteo.com/v1/air-quality"
OPEN_METEO_FORECAST_URL = "https://api.open-meteo.com/v1/forecast"
AQICN_FEED_URL = "https://api.waqi.info/feed"
PURPLEAIR_SENSORS_URL = "https://api.purpleair.com/v1/sensors"
NASA_POWER_HOURLY_URL = "https://power.larc.nasa.gov/api/temporal/hourly/point"
FIRMS_AREA_CSV_URL = "https://firms.modaps.eosdis.nasa.gov/api/area/csv"
WORLDVIEW_SNAPSHOT_URL = "https://wvs.earthdata.nasa.gov/api/v1/snapshot"
OPENAQ_LOCATIONS_URL = "https://api.openaq.org/v3/locations"

DEFAULT_TIMEOUT_SECONDS = 10.0
# NASA POWER marks missing samples with this fill value
_POWER_FILL_VALUE = -999.0


def _http_get(url: str, headers: Mapping[str, str], timeout: float, provider: str) -> str:
    """Execute a blocking GET and return the decoded body."""

    req = request.Request(url, headers={"Accept": "*/*", **headers}, method="GET")
    try:
        with request.urlopen(req, timeout=timeout) as resp:
            return resp.read().decode("utf-8")
    except error.HTTPError as exc:
        raise ProviderError(provider, f"HTTP {exc.code}: {exc.reason}") from exc
    except error.URLError as exc:
        raise ProviderError(provider, f"could not reach {url}: {exc.reason}") from exc
    except TimeoutError as exc:
        raise ProviderError(provider, f"timed out after {timeout:g}s") from exc


def bounding_box(location: Location, radius_km: float) -> Dict[str, float]:
    """Approximate box around ``location`` (1 degree latitude ~ 111 km)."""

    lat = location.latitude
    lon = location.longitude
    lat_delta = radius_km / 111
    lon_delta = radius_km / (111 * max(math.cos(math.radians(lat)), 1e-6))
    return {
        "north": lat + lat_delta,
        "south": lat - lat_delta,
        "east": lon + lon_delta,
        "west": lon - lon_delta,
    }


def _bbox_string(box: Mapping[str, float]) -> str:
    return f"{box['west']:.4f},{box['south']:.4f},{box['east']:.4f},{box['north']:.4f}"


def _number(value: Any, default: float = 0.0) -> float:
    try:
        result = float(value)
    except (TypeError, ValueError):
        return default
    return result if math.isfinite(result) else default


class Provider(ABC):
    """One external source of one environmental data type."""

    name: str = "provider"
    data_type: DataType = "realtime_aqi"
    source: ProviderTag = "simulated"

    def __init__(self, *, timeout: float = DEFAULT_TIMEOUT_SECONDS):
        self.timeout = timeout

    def is_configured(self) -> bool:
        """False when required credentials are missing; the gateway skips it."""

        return True

    @abstractmethod
    async def fetch(self, location: Location, **params: Any) -> Any:
        """Return a JSON-serializable payload for ``location``, or None.

        Raises:
            ProviderError: If the upstream call fails
        """

    async def _get_text(
        self,
        url: str,
        query: Optional[Mapping[str, Any]] = None,
        headers: Optional[Mapping[str, str]] = None,
    ) -> str:
        if query:
            url = f"{url}?{parse.urlencode(query)}"
        log_provider(f"{self.name}: GET {url.split('?')[0]}")
        return await asyncio.to_thread(_http_get, url, dict(headers or {}), self.timeout, self.name)

    async def _get_json(
        self,
        url: str,
        query: Optional[Mapping[str, Any]] = None,
        headers: Optional[Mapping[str, str]] = None,
    ) -> Any:
        body = await self._get_text(url, query, headers)
        try:
            return json.loads(body)
        except json.JSONDecodeError as exc:
            raise ProviderError(self.name, "returned non-JSON response") from exc

    def __repr__(self) -> str:
        return f"{type(self).__name__}(data_type={self.data_type!r})"


# ============================================================================
# Real-time air quality
# ============================================================================


class OpenMeteoAirQualityProvider(Provider):
    """Open-Meteo air quality (no key required)."""

    name = "open_meteo_air_quality"
    data_type = "realtime_aqi"
    source = "open_meteo"

    async def fetch(self, location: Location, **params: Any) -> Optional[Dict[str, Any]]:
        payload = await self._get_json(
            OPEN_METEO_AIR_QUALITY_URL,
            {
                "latitude": location.latitude,
                "longitude": location.longitude,
                "current": "pm10,pm2_5,carbon_monoxide,nitrogen_dioxide,sulphur_dioxide,ozone",
                "timezone": "auto",
            },
        )
        current = payload.get("current") if isinstance(payload, dict) else None
        if not current or current.get("pm2_5") is None:
            return None

        pm25 = max(_number(current.get("pm2_5")), 0.0)
        reading = AirQualityReading(
            aqi=aqi_from_pm25(pm25),
            pm25=pm25,
            pm10=max(_number(current.get("pm10")), 0.0),
            no2=max(_number(current.get("nitrogen_dioxide")), 0.0),
            o3=max(_number(current.get("ozone")), 0.0),
            # Open-Meteo reports CO in µg/m³
            co=max(_number(current.get("carbon_monoxide")), 0.0) / 1000,
            so2=max(_number(current.get("sulphur_dioxide")), 0.0),
            source=self.source,
            uncertainty=5.0,
        )
        return reading.model_dump(mode="json")


class AQICNProvider(Provider):
    """World Air Quality Index feed (token required)."""

    name = "aqicn"
    data_type = "realtime_aqi"
    source = "aqicn"

    def __init__(self, token: Optional[str], *, timeout: float = DEFAULT_TIMEOUT_SECONDS):
        super().__init__(timeout=timeout)
        self.token = token

    def is_configured(self) -> bool:
        return bool(self.token)

    async def fetch(self, location: Location, **params: Any) -> Optional[Dict[str, Any]]:
        if not self.token:
            raise ProviderNotConfigured(self.name)
        payload = await self._get_json(
            f"{AQICN_FEED_URL}/geo:{location.latitude};{location.longitude}/",
            {"token": self.token},
        )
        if not isinstance(payload, dict) or payload.get("status") != "ok" or not payload.get("data"):
            return None

        data = payload["data"]
        iaqi = data.get("iaqi") or {}

        def component(key: str) -> float:
            return max(_number((iaqi.get(key) or {}).get("v")), 0.0)

        # The station AQI can be "-" when the station is offline
        aqi = _number(data.get("aqi"), default=-1)
        if aqi < 0:
            return None
        reading = AirQualityReading(
            aqi=int(aqi),
            pm25=component("pm25"),
            pm10=component("pm10"),
            no2=component("no2"),
            o3=component("o3"),
            co=component("co"),
            so2=component("so2"),
            source=self.source,
            uncertainty=8.0,
        )
        return reading.model_dump(mode="json")


class PurpleAirProvider(Provider):
    """Average of nearby outdoor PurpleAir sensors (API key required)."""

    name = "purpleair"
    data_type = "realtime_aqi"
    source = "purpleair"
    search_radius_km = 10.0

    def __init__(self, api_key: Optional[str], *, timeout: float = DEFAULT_TIMEOUT_SECONDS):
        super().__init__(timeout=timeout)
        self.api_key = api_key

    def is_configured(self) -> bool:
        return bool(self.api_key)

    async def fetch(self, location: Location, **params: Any) -> Optional[Dict[str, Any]]:
        if not self.api_key:
            raise ProviderNotConfigured(self.name)
        box = bounding_box(location, self.search_radius_km)
        payload = await self._get_json(
            PURPLEAIR_SENSORS_URL,
            {
                "fields": "pm2.5_10minute",
                "location_type": 0,
                "nwlng": box["west"],
                "nwlat": box["north"],
                "selng": box["east"],
                "selat": box["south"],
            },
            headers={"X-API-Key": self.api_key},
        )
        rows = payload.get("data") if isinstance(payload, dict) else None
        if not rows:
            return None

        # Each row is [sensor_index, pm2.5_10minute]
        values = [_number(row[1], -1.0) for row in rows if isinstance(row, list) and len(row) > 1]
        values = [value for value in values if value >= 0]
        if not values:
            return None
        pm25 = sum(values) / len(values)
        reading = AirQualityReading(
            aqi=aqi_from_pm25(pm25),
            pm25=pm25,
            pm10=pm25 * 1.5,
            source=self.source,
            uncertainty=10.0,
        )
        return reading.model_dump(mode="json")


# ============================================================================
# Weather
# ============================================================================


class NasaPowerWeatherProvider(Provider):
    """Hourly meteorology from NASA POWER (no key required)."""

    name = "nasa_power"
    data_type = "weather"
    source = "nasa_power"

    async def fetch(self, location: Location, **params: Any) -> Optional[List[Dict[str, Any]]]:
        end: date = params.get("end") or params.get("date") or utc_now().date()
        start: date = params.get("start") or (end - timedelta(days=1))
        payload = await self._get_json(
            NASA_POWER_HOURLY_URL,
            {
                "parameters": "T2M,RH2M,WS2M,WD2M,PS,PRECTOTCORR",
                "community": "RE",
                "latitude": location.latitude,
                "longitude": location.longitude,
                "start": start.strftime("%Y%m%d"),
                "end": end.strftime("%Y%m%d"),
                "format": "JSON",
                "time-standard": "UTC",
            },
        )
        parameter = (payload.get("properties") or {}).get("parameter") if isinstance(payload, dict) else None
        if not parameter or "T2M" not in parameter:
            return None

        readings = []
        for stamp, temperature in parameter["T2M"].items():
            if _number(temperature, _POWER_FILL_VALUE) == _POWER_FILL_VALUE:
                continue

            def value(key: str, default: float = 0.0) -> float:
                raw = _number((parameter.get(key) or {}).get(stamp), default)
                return default if raw == _POWER_FILL_VALUE else raw

            readings.append(
                WeatherReading(
                    temperature=_number(temperature),
                    humidity=min(max(value("RH2M", 50.0), 0.0), 100.0),
                    wind_speed=max(value("WS2M"), 0.0),
                    wind_direction=value("WD2M"),
                    # POWER reports surface pressure in kPa
                    pressure=value("PS", 101.3) * 10,
                    precipitation=max(value("PRECTOTCORR"), 0.0),
                    timestamp=datetime.strptime(stamp, "%Y%m%d%H").replace(tzinfo=timezone.utc),
                    source=self.source,
                ).model_dump(mode="json")
            )
        return readings or None


class OpenMeteoPrecipitationProvider(Provider):
    """Hourly precipitation from the Open-Meteo forecast API (no key required)."""

    name = "open_meteo_precipitation"
    data_type = "precipitation"
    source = "open_meteo"

    async def fetch(self, location: Location, **params: Any) -> Optional[List[Dict[str, Any]]]:
        payload = await self._get_json(
            OPEN_METEO_FORECAST_URL,
            {
                "latitude": location.latitude,
                "longitude": location.longitude,
                "hourly": "precipitation,rain,snowfall",
                "forecast_days": 1,
                "timezone": "UTC",
            },
        )
        hourly = payload.get("hourly") if isinstance(payload, dict) else None
        if not hourly or not hourly.get("time"):
            return None

        def column(key: str, index: int) -> float:
            values = hourly.get(key) or []
            return max(_number(values[index]), 0.0) if index < len(values) else 0.0

        series = []
        for index, stamp in enumerate(hourly["time"]):
            amount = column("precipitation", index)
            snowfall = column("snowfall", index)
            rainfall = column("rain", index)
            series.append(
                {
                    "timestamp": stamp,
                    "precipitation": amount,
                    "precipitation_type": "snow" if snowfall > rainfall else "rain",
                    "intensity": amount,
                    "source": self.source,
                }
            )
        return series


# ============================================================================
# Fires, imagery, ground stations
# ============================================================================


def parse_fire_csv(text: str) -> List[Dict[str, str]]:
    """Parse FIRMS area CSV into one dict per detection, skipping ragged rows."""

    reader = csv.reader(io.StringIO(text.strip()))
    rows = list(reader)
    if not rows:
        return []
    headers = [header.strip() for header in rows[0]]
    fires = []
    for values in rows[1:]:
        if len(values) != len(headers):
            continue
        fires.append({header: value.strip() for header, value in zip(headers, values)})
    return fires


class FirmsFireProvider(Provider):
    """Active fire detections from NASA FIRMS (MAP key required)."""

    name = "firms"
    data_type = "fires"
    source = "firms"

    def __init__(self, map_key: Optional[str], *, timeout: float = DEFAULT_TIMEOUT_SECONDS):
        super().__init__(timeout=timeout)
        self.map_key = map_key

    def is_configured(self) -> bool:
        return bool(self.map_key)

    async def fetch(self, location: Location, **params: Any) -> List[Dict[str, str]]:
        if not self.map_key:
            raise ProviderNotConfigured(self.name)
        radius = float(params.get("radius_km", 50))
        days = int(params.get("days", 1))
        box = _bbox_string(bounding_box(location, radius))
        text = await self._get_text(f"{FIRMS_AREA_CSV_URL}/{self.map_key}/MODIS_NRT/{box}/{days}")
        if text.lstrip().lower().startswith("invalid"):
            raise ProviderError(self.name, text.strip()[:200])
        # An empty detection list is a valid answer
        return parse_fire_csv(text)


class WorldviewImageryProvider(Provider):
    """True-colour snapshot URL from NASA Worldview; builds a link, no request."""

    name = "worldview"
    data_type = "imagery"
    source = "worldview"

    async def fetch(self, location: Location, **params: Any) -> Dict[str, Any]:
        day: date = params.get("date") or utc_now().date()
        box = bounding_box(location, float(params.get("radius_km", 100)))
        query = {
            "REQUEST": "GetSnapshot",
            "LAYERS": "MODIS_Aqua_CorrectedReflectance_TrueColor,MODIS_Fires_All",
            "CRS": "EPSG:4326",
            "TIME": day.isoformat(),
            # EPSG:4326 snapshots take the box as south,west,north,east
            "BBOX": f"{box['south']:.4f},{box['west']:.4f},{box['north']:.4f},{box['east']:.4f}",
            "FORMAT": "image/jpeg",
            "WIDTH": 512,
            "HEIGHT": 512,
        }
        return {
            "url": f"{WORLDVIEW_SNAPSHOT_URL}?{parse.urlencode(query)}",
            "date": day.isoformat(),
            "location": location.model_dump(mode="json", exclude_none=True),
            "layers": ["true_color", "fires"],
            "resolution": "250m",
        }


class OpenAQProvider(Provider):
    """Nearby monitoring stations from OpenAQ v3 (API key required)."""

    name = "openaq"
    data_type = "ground_stations"
    source = "openaq"
    search_radius_m = 25000

    def __init__(self, api_key: Optional[str], *, timeout: float = DEFAULT_TIMEOUT_SECONDS):
        super().__init__(timeout=timeout)
        self.api_key = api_key

    def is_configured(self) -> bool:
        return bool(self.api_key)

    async def fetch(self, location: Location, **params: Any) -> Optional[Dict[str, Any]]:
        if not self.api_key:
            raise ProviderNotConfigured(self.name)
        payload = await self._get_json(
            OPENAQ_LOCATIONS_URL,
            {
                "coordinates": f"{location.latitude},{location.longitude}",
                "radius": self.search_radius_m,
                "limit": int(params.get("limit", 10)),
            },
            headers={"X-API-Key": self.api_key},
        )
        results = payload.get("results") if isinstance(payload, dict) else None
        if not results:
            return None
        stations = [
            {
                "id": station.get("id"),
                "name": station.get("name"),
                "coordinates": station.get("coordinates"),
                "distance": station.get("distance"),
                "parameters": sorted(
                    {(sensor.get("parameter") or {}).get("name") for sensor in station.get("sensors") or []}
                    - {None}
                ),
            }
            for station in results
        ]
        return {"openaq": stations, "timestamp": utc_now().isoformat()}


def default_providers(config: Any) -> List[Provider]:
    """Build the ordered provider list from configuration.

    Order within a data type is the fallback order: realtime air quality is
    tried Open-Meteo first, then AQICN, then PurpleAir.
    """

    timeout = float(getattr(config, "PROVIDER_TIMEOUT_SECONDS", DEFAULT_TIMEOUT_SECONDS))
    return [
        OpenMeteoAirQualityProvider(timeout=timeout),
        AQICNProvider(getattr(config, "AQICN_API_KEY", None), timeout=timeout),
        PurpleAirProvider(getattr(config, "PURPLEAIR_API_KEY", None), timeout=timeout),
        NasaPowerWeatherProvider(timeout=timeout),
        FirmsFireProvider(getattr(config, "FIRMS_API_KEY", None), timeout=timeout),
        WorldviewImageryProvider(timeout=timeout),
        OpenMeteoPrecipitationProvider(timeout=timeout),
        OpenAQProvider(getattr(config, "OPENAQ_API_KEY", None), timeout=timeout),
    ]

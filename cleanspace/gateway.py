"""
EnvironmentalDataGateway: read-through cache in front of the providers.

Resolution order for ``get(data_type, location)``:
1. Remote keyed cache table, if the row for (data_type, location_key) has
   not expired (no provider call)
2. Providers registered for the data type, in order; the first non-empty
   answer is written to the remote cache with the data type's TTL
3. Last-known data from the on-device LocalCache for the same location
   (realtime_aqi and weather only)
4. Deterministic synthetic data, tagged ``synthetic``

While offline, steps 1 and 2 are skipped. ``get`` never raises for a known
data type: every provider and cache failure is logged and the next step is
tried. An unknown data type is rejected up front with ValueError.
"""

from __future__ import annotations

import asyncio
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, List, Optional

from pydantic import ValidationError

from .aqi import health_precautions_from_aqi
from .data_service import DataService
from .errors import ProviderError, ProviderNotConfigured, RemoteStoreError
from .local_cache import LocalCache
from .logging_utils import log_error, log_provider, log_sync
from .providers import Provider
from .schemas import (
    AirQualityReading,
    DataQuality,
    DataType,
    EnvironmentalReading,
    EnvironmentalReport,
    EnvironmentalSnapshot,
    Location,
    WeatherReading,
    utc_now,
)
from .synthetic import SYNTHETIC_SOURCE, synthesize

# Volatile < medium < static-ish
CACHE_TTL_SECONDS: Dict[str, float] = {
    "realtime_aqi": 10 * 60,
    "fires": 30 * 60,
    "tempo": 30 * 60,
    "ground_stations": 60 * 60,
    "precipitation": 60 * 60,
    "weather": 60 * 60,
    "imagery": 24 * 60 * 60,
    "airs": 24 * 60 * 60,
}

REPORT_SECTIONS: Dict[str, DataType] = {
    "air_quality": "realtime_aqi",
    "weather": "weather",
    "precipitation": "precipitation",
    "fires": "fires",
    "imagery": "imagery",
    "ground_stations": "ground_stations",
}


def assess_data_quality(sources: Dict[str, bool]) -> DataQuality:
    """Grade a report by the share of sections backed by real data."""

    available = [name for name, ok in sources.items() if ok]
    missing = [name for name, ok in sources.items() if not ok]
    percentage = len(available) / len(sources) * 100 if sources else 0.0
    if percentage > 80:
        level = "excellent"
    elif percentage > 60:
        level = "good"
    elif percentage > 40:
        level = "fair"
    else:
        level = "poor"
    return DataQuality(
        percentage=percentage,
        level=level,
        available_sources=available,
        missing_sources=missing,
    )


class EnvironmentalDataGateway:
    """Multi-source environmental data lookup that always answers."""

    def __init__(
        self,
        providers: Iterable[Provider],
        *,
        data_service: Optional[DataService] = None,
        local_cache: Optional[LocalCache] = None,
        is_online: Callable[[], bool] = lambda: True,
        precision: int = 2,
        ttl_seconds: Optional[Dict[str, float]] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.providers: List[Provider] = list(providers)
        self.data_service = data_service
        self.local_cache = local_cache
        self.precision = precision
        self.ttl_seconds = {**CACHE_TTL_SECONDS, **(ttl_seconds or {})}
        self._is_online = is_online
        self._clock = clock

    def providers_for(self, data_type: str) -> List[Provider]:
        return [provider for provider in self.providers if provider.data_type == data_type]

    def location_key(self, data_type: str, location: Location) -> str:
        return location.location_key(data_type, self.precision)

    # ------------------------------------------------------------------
    # Core lookup
    # ------------------------------------------------------------------

    async def get(self, data_type: DataType, location: Location, **params: Any) -> EnvironmentalReading:
        if data_type not in CACHE_TTL_SECONDS:
            raise ValueError(f"Unknown data type: {data_type!r}")
        key = self.location_key(data_type, location)

        if self._is_online():
            cached = await self._read_remote_cache(data_type, key, location)
            if cached is not None:
                return cached

            fetched = await self._fetch_from_providers(data_type, key, location, params)
            if fetched is not None:
                return fetched
        else:
            log_sync(f"Offline: skipping remote cache and providers for {key}")

        last_known = self._read_local_cache(data_type, key, location)
        if last_known is not None:
            return last_known

        log_provider(f"No real data for {key}, generating synthetic {data_type}")
        return EnvironmentalReading(
            data_type=data_type,
            location_key=key,
            location=location,
            data=synthesize(data_type, location, key, self._clock()),
            source=SYNTHETIC_SOURCE,
            synthetic=True,
            fetched_at=self._clock(),
        )

    async def _read_remote_cache(
        self, data_type: DataType, key: str, location: Location
    ) -> Optional[EnvironmentalReading]:
        if self.data_service is None:
            return None
        try:
            row = await self.data_service.get_cached_environmental_data(data_type, key)
        except (RemoteStoreError, ValidationError) as exc:
            log_error(f"Cache read failed for {key}: {exc}")
            return None
        if row is None:
            return None

        log_sync(f"Cache hit for {key} (expires {row.expires_at.isoformat()})")
        return EnvironmentalReading(
            data_type=data_type,
            location_key=key,
            location=location,
            data=row.data,
            source=str(row.metadata.get("source", "cache")),
            cache_tier="remote",
            fetched_at=row.created_at,
        )

    async def _fetch_from_providers(
        self, data_type: DataType, key: str, location: Location, params: Dict[str, Any]
    ) -> Optional[EnvironmentalReading]:
        for provider in self.providers_for(data_type):
            if not provider.is_configured():
                log_provider(f"{provider.name} not configured, skipping")
                continue
            try:
                data = await provider.fetch(location, **params)
            except ProviderNotConfigured:
                continue
            except ProviderError as exc:
                log_error(f"Provider {exc}, trying next")
                continue
            except Exception as exc:
                log_error(f"Provider {provider.name} raised {type(exc).__name__}: {exc}, trying next")
                continue
            if data is None:
                log_provider(f"{provider.name} had no {data_type} data for {key}")
                continue

            log_provider(f"{provider.name} answered {data_type} for {key}")
            await self._write_remote_cache(data_type, key, data, provider, location)
            return EnvironmentalReading(
                data_type=data_type,
                location_key=key,
                location=location,
                data=data,
                source=provider.source,
                fetched_at=self._clock(),
            )
        return None

    async def _write_remote_cache(
        self, data_type: DataType, key: str, data: Any, provider: Provider, location: Location
    ) -> None:
        if self.data_service is None:
            return
        metadata = {
            "source": provider.source,
            "provider": provider.name,
            "location": location.model_dump(mode="json", exclude_none=True),
        }
        try:
            await self.data_service.cache_environmental_data(
                data_type, key, data, self.ttl_seconds[data_type], metadata
            )
        except RemoteStoreError as exc:
            # The caller still gets the fresh data; only the cache write is lost
            log_error(f"Cache write failed for {key}: {exc}")

    def _read_local_cache(
        self, data_type: DataType, key: str, location: Location
    ) -> Optional[EnvironmentalReading]:
        if self.local_cache is None:
            return None

        data: Any = None
        source = "cache"
        if data_type == "realtime_aqi":
            reading = self.local_cache.latest_air_quality(location, self.precision)
            if reading is not None:
                data, source = reading.model_dump(mode="json"), reading.source
        elif data_type == "weather":
            series = self.local_cache.weather if self.local_cache.matches(location, self.precision) else []
            if series:
                data = [reading.model_dump(mode="json") for reading in series]
                source = series[-1].source
        if data is None:
            return None

        log_sync(f"Serving last-known {data_type} for {key} from local cache")
        return EnvironmentalReading(
            data_type=data_type,
            location_key=key,
            location=location,
            data=data,
            source=source,
            synthetic=source == SYNTHETIC_SOURCE,
            cache_tier="local",
            fetched_at=self.local_cache.last_sync or self._clock(),
        )

    # ------------------------------------------------------------------
    # Typed helpers
    # ------------------------------------------------------------------

    async def get_air_quality(self, location: Location) -> AirQualityReading:
        reading = await self.get("realtime_aqi", location)
        return AirQualityReading.model_validate(reading.data)

    async def get_weather(self, location: Location) -> WeatherReading:
        reading = await self.get("weather", location)
        data = reading.data
        if isinstance(data, list):
            # Hourly series: the most recent sample is the current weather
            data = data[-1]
        return WeatherReading.model_validate(data)

    async def capture_snapshot(self, location: Location) -> EnvironmentalSnapshot:
        """Fetch current air quality and weather together.

        Real, freshly resolved data is also written to the LocalCache so it
        can be served while offline.
        """

        aq_reading, weather_reading = await asyncio.gather(
            self.get("realtime_aqi", location),
            self.get("weather", location),
        )
        air_quality = AirQualityReading.model_validate(aq_reading.data)
        weather_data = weather_reading.data
        weather = WeatherReading.model_validate(
            weather_data[-1] if isinstance(weather_data, list) else weather_data
        )
        snapshot = EnvironmentalSnapshot(
            location=location,
            air_quality=air_quality,
            weather=weather,
            captured_at=self._clock(),
            source=air_quality.source,
        )

        if self.local_cache is not None and aq_reading.is_real and aq_reading.cache_tier != "local":
            self.local_cache.cache_snapshot(snapshot)
        return snapshot

    async def environmental_report(self, location: Location) -> EnvironmentalReport:
        """Gather every report section concurrently and grade data quality."""

        names = list(REPORT_SECTIONS)
        params: Dict[str, Dict[str, Any]] = {"fires": {"radius_km": 100}}
        readings = await asyncio.gather(
            *(self.get(REPORT_SECTIONS[name], location, **params.get(name, {})) for name in names)
        )
        by_name = dict(zip(names, readings))

        air_quality = AirQualityReading.model_validate(by_name["air_quality"].data)
        weather_data = by_name["weather"].data
        weather = WeatherReading.model_validate(
            weather_data[-1] if isinstance(weather_data, list) else weather_data
        )

        return EnvironmentalReport(
            location=location,
            timestamp=self._clock(),
            air_quality=air_quality,
            weather=weather,
            precipitation=by_name["precipitation"].data,
            fires=by_name["fires"].data,
            imagery=by_name["imagery"].data,
            ground_stations=by_name["ground_stations"].data,
            health_precautions=health_precautions_from_aqi(air_quality.aqi),
            data_quality=assess_data_quality({name: reading.is_real for name, reading in by_name.items()}),
        )

"""
LocalCache: last-known environmental data kept on the device.

Holds the most recent air-quality and weather series, the location they were
captured for, and the last known game session, together with the time they
were last refreshed. Everything is persisted through a KeyValueStorage after
each change so a restart can serve cached data while offline.
"""

from __future__ import annotations

from datetime import datetime
from typing import Callable, List, Optional

from pydantic import BaseModel, Field, ValidationError

from .logging_utils import log_error
from .schemas import (
    AirQualityReading,
    EnvironmentalSnapshot,
    GameSession,
    Location,
    WeatherReading,
    utc_now,
)
from .storage import KeyValueStorage

STORAGE_KEY = "cleanspace_offline_data"
DEFAULT_STALE_AFTER_SECONDS = 60 * 60


class OfflineData(BaseModel):
    """Persisted shape of the local cache."""

    air_quality: List[AirQualityReading] = Field(default_factory=list)
    weather: List[WeatherReading] = Field(default_factory=list)
    game_session: Optional[GameSession] = None
    location: Optional[Location] = None
    last_sync: Optional[datetime] = None


class LocalCache:
    """Durable last-known snapshot of environmental data and game session."""

    def __init__(
        self,
        storage: KeyValueStorage,
        *,
        stale_after_seconds: float = DEFAULT_STALE_AFTER_SECONDS,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.storage = storage
        self.stale_after_seconds = stale_after_seconds
        self._clock = clock
        self._data = self._load()

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def _load(self) -> OfflineData:
        raw = self.storage.get(STORAGE_KEY)
        if raw is None:
            return OfflineData()
        try:
            return OfflineData.model_validate_json(raw)
        except ValidationError as exc:
            # Covers malformed JSON too: pydantic reports it as a json_invalid error
            log_error(f"Local cache is corrupted, starting empty ({exc.error_count()} issue(s))")
            self.storage.remove(STORAGE_KEY)
            return OfflineData()

    def _save(self) -> None:
        try:
            self.storage.set(STORAGE_KEY, self._data.model_dump_json())
        except OSError as exc:
            log_error(f"Could not persist local cache: {exc}")

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def cache_air_quality(self, readings: List[AirQualityReading], location: Location) -> None:
        self._data.air_quality = list(readings)
        self._data.location = location
        self._data.last_sync = self._clock()
        self._save()

    def cache_weather(self, readings: List[WeatherReading], location: Location) -> None:
        self._data.weather = list(readings)
        self._data.location = location
        self._data.last_sync = self._clock()
        self._save()

    def cache_snapshot(self, snapshot: EnvironmentalSnapshot) -> None:
        """Replace cached air quality and weather with one captured snapshot."""

        self._data.air_quality = [snapshot.air_quality]
        self._data.weather = [snapshot.weather]
        self._data.location = snapshot.location
        self._data.last_sync = snapshot.captured_at
        self._save()

    def cache_game_session(self, session: GameSession) -> None:
        # A session is not environmental data, so last_sync is left alone
        self._data.game_session = session
        self._save()

    def clear(self) -> None:
        self._data = OfflineData()
        self._save()

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    @property
    def air_quality(self) -> List[AirQualityReading]:
        return list(self._data.air_quality)

    @property
    def weather(self) -> List[WeatherReading]:
        return list(self._data.weather)

    @property
    def game_session(self) -> Optional[GameSession]:
        return self._data.game_session

    @property
    def location(self) -> Optional[Location]:
        return self._data.location

    @property
    def last_sync(self) -> Optional[datetime]:
        return self._data.last_sync

    @property
    def has_data(self) -> bool:
        return bool(self._data.air_quality or self._data.weather or self._data.game_session)

    def matches(self, location: Location, precision: int = 2) -> bool:
        """True when the cached data was captured for (roughly) ``location``."""

        cached = self._data.location
        if cached is None:
            return False
        return cached.location_key("", precision) == location.location_key("", precision)

    def latest_air_quality(self, location: Location, precision: int = 2) -> Optional[AirQualityReading]:
        if not self._data.air_quality or not self.matches(location, precision):
            return None
        return self._data.air_quality[-1]

    def latest_weather(self, location: Location, precision: int = 2) -> Optional[WeatherReading]:
        if not self._data.weather or not self.matches(location, precision):
            return None
        return self._data.weather[-1]

    def data_age(self, now: Optional[datetime] = None) -> Optional[float]:
        """Seconds since environmental data was last cached, None if never."""

        if self._data.last_sync is None:
            return None
        now = now or self._clock()
        return (now - self._data.last_sync).total_seconds()

    def is_stale(self, now: Optional[datetime] = None) -> bool:
        age = self.data_age(now)
        return age is None or age > self.stale_after_seconds

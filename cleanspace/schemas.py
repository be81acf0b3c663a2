"""
Pydantic schemas for the CleanSpace core.

All data structures exchanged between the action queue, the sync coordinator,
the environmental data gateway, and the simulation engine are defined here.

Design Philosophy:
- Readings and snapshots are values: superseded by newer ones, never mutated
- Queued payloads are tagged variants validated per ``kind`` at enqueue time
- Simulation rule violations are data (``Rejection``), not exceptions
- Everything is JSON-serializable so it can cross the local storage and
  remote store boundaries unchanged
"""

from datetime import datetime, timezone
from typing import Any, Dict, List, Literal, Optional
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    return str(uuid4())


# ============================================================================
# Enumerations
# ============================================================================

ProviderTag = Literal[
    "nasa_power",
    "merra2",
    "modis",
    "open_meteo",
    "aqicn",
    "purpleair",
    "firms",
    "worldview",
    "openaq",
    "airs",
    "tempo",
    "simulated",
    "synthetic",
]

DataType = Literal[
    "realtime_aqi",
    "weather",
    "fires",
    "imagery",
    "precipitation",
    "ground_stations",
    "airs",
    "tempo",
]

QueuedActionKind = Literal["telemetry", "achievement", "game_session", "mission_progress"]

GameActionType = Literal[
    "plant_tree",
    "plant_rooftop_garden",
    "remove_vehicle",
    "shutdown_factory",
    "retrofit_factory",
    "remove_construction",
    "relocate",
]

ActionStatus = Literal["pending", "active", "completed", "failed"]

PrecautionLevel = Literal[
    "good",
    "moderate",
    "unhealthy_sensitive",
    "unhealthy",
    "very_unhealthy",
    "hazardous",
]

RejectionReason = Literal["insufficient_funds", "on_cooldown", "ineligible_location", "session_ended"]

SimulationStatus = Literal["running", "succeeded", "failed"]


# ============================================================================
# Environmental data
# ============================================================================


class Location(BaseModel):
    """A real-world place a reading or a game session is tied to."""

    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)
    city: str = ""
    country: str = ""
    id: Optional[str] = None
    name: Optional[str] = None
    region_size_km: Optional[float] = Field(None, ge=0)

    def location_key(self, data_type: str, precision: int = 2) -> str:
        """Quantized cache key for this location and data type.

        Coordinates are rounded to ``precision`` decimals (2 decimals is roughly
        1 km), so queries that differ only in trailing precision share a key.
        Adding 0.0 normalises -0.0 so both hemispheres' zero share a key.
        """

        lat = round(self.latitude, precision) + 0.0
        lon = round(self.longitude, precision) + 0.0
        return f"{data_type}_{lat:.{precision}f}_{lon:.{precision}f}"


class AirQualityReading(BaseModel):
    """Pollutant concentrations plus the AQI derived from PM2.5."""

    aqi: int = Field(..., ge=0)
    pm25: float = Field(..., ge=0, description="µg/m³")
    pm10: float = Field(0.0, ge=0, description="µg/m³")
    no2: float = Field(0.0, ge=0, description="ppb")
    o3: float = Field(0.0, ge=0, description="ppb")
    co: float = Field(0.0, ge=0, description="ppm")
    so2: float = Field(0.0, ge=0, description="ppb")
    timestamp: datetime = Field(default_factory=utc_now)
    source: ProviderTag = "simulated"
    uncertainty: Optional[float] = Field(None, ge=0)

    def aqi_consistent(self) -> bool:
        """True when ``aqi`` matches the EPA formula applied to ``pm25``.

        A mismatch is a data-quality defect (some providers report their own
        AQI scale), not a reason to reject the reading.
        """

        from .aqi import aqi_from_pm25

        return aqi_from_pm25(self.pm25) == self.aqi


class WeatherReading(BaseModel):
    temperature: float = Field(..., description="°C")
    humidity: float = Field(..., ge=0, le=100, description="%")
    wind_speed: float = Field(0.0, ge=0, description="m/s")
    wind_direction: float = Field(0.0, description="degrees")
    pressure: float = Field(1013.0, description="hPa")
    precipitation: float = Field(0.0, ge=0, description="mm")
    visibility: float = Field(10.0, ge=0, description="km")
    timestamp: datetime = Field(default_factory=utc_now)
    source: ProviderTag = "nasa_power"


class EnvironmentalSnapshot(BaseModel):
    """Air quality and weather captured together for one location."""

    model_config = ConfigDict(frozen=True)

    location: Location
    air_quality: AirQualityReading
    weather: WeatherReading
    captured_at: datetime = Field(default_factory=utc_now)
    source: ProviderTag


class EnvironmentalReading(BaseModel):
    """Result of a gateway lookup for one data type at one location.

    ``data`` is the provider-shaped value (an AirQualityReading dump for
    realtime_aqi, a list of fire detections for fires, and so on). Callers
    must check ``synthetic`` before presenting the value as measured data.
    """

    data_type: DataType
    location_key: str
    location: Location
    data: Any
    source: str
    synthetic: bool = False
    # "remote": keyed cache table hit; "local": last-known on-device data
    cache_tier: Optional[Literal["remote", "local"]] = None
    fetched_at: datetime = Field(default_factory=utc_now)

    @property
    def is_real(self) -> bool:
        return not self.synthetic

    @property
    def from_cache(self) -> bool:
        return self.cache_tier is not None


class CacheRow(BaseModel):
    """A row of the remote keyed expiring cache table."""

    data_type: str
    location_key: str
    data: Any
    expires_at: datetime
    metadata: Dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=utc_now)


class HealthPrecaution(BaseModel):
    level: PrecautionLevel
    message: str
    recommendations: List[str] = Field(default_factory=list)
    mask_required: bool = False
    avoid_outdoor_activity: bool = False


class DataQuality(BaseModel):
    """Share of report sections backed by real (non-synthetic) data."""

    percentage: float
    level: Literal["excellent", "good", "fair", "poor"]
    available_sources: List[str] = Field(default_factory=list)
    missing_sources: List[str] = Field(default_factory=list)


class EnvironmentalReport(BaseModel):
    location: Location
    timestamp: datetime = Field(default_factory=utc_now)
    air_quality: Optional[AirQualityReading] = None
    weather: Optional[WeatherReading] = None
    precipitation: Any = None
    fires: Any = None
    imagery: Any = None
    ground_stations: Any = None
    health_precautions: Optional[HealthPrecaution] = None
    data_quality: DataQuality


# ============================================================================
# Queued actions
# ============================================================================


class _Payload(BaseModel):
    # Unknown fields are rejected so malformed payloads fail at enqueue time
    # rather than when the remote store refuses them.
    model_config = ConfigDict(extra="forbid")


class TelemetryPayload(_Payload):
    event_type: str = Field(..., min_length=1)
    event_data: Dict[str, Any] = Field(default_factory=dict)
    session_id: Optional[str] = None


class AchievementPayload(_Payload):
    achievement_type: str = Field(..., min_length=1)
    title: str = Field(..., min_length=1)
    description: Optional[str] = None
    points_earned: int = Field(0, ge=0)
    metadata: Dict[str, Any] = Field(default_factory=dict)


class GameSessionPayload(_Payload):
    # Present when updating an existing remote row, absent on create
    id: Optional[str] = None
    location: Optional[Dict[str, Any]] = None
    status: Literal["active", "completed", "failed", "paused"] = "active"
    score: int = Field(0, ge=0)
    final_aqi: Optional[int] = Field(None, ge=0)
    actions_completed: int = Field(0, ge=0)
    achievements: List[str] = Field(default_factory=list)
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None


class MissionProgressPayload(_Payload):
    # Present when updating existing progress, absent on create
    mission_id: Optional[str] = None
    progress: float = Field(0.0, ge=0, le=100)
    status: Literal["locked", "available", "in_progress", "completed"] = "in_progress"
    completed_objectives: List[str] = Field(default_factory=list)
    score: int = Field(0, ge=0)


PAYLOAD_MODELS: Dict[str, type[_Payload]] = {
    "telemetry": TelemetryPayload,
    "achievement": AchievementPayload,
    "game_session": GameSessionPayload,
    "mission_progress": MissionProgressPayload,
}


class QueuedAction(BaseModel):
    """A pending mutation destined for the remote store."""

    id: str = Field(default_factory=new_id)
    kind: QueuedActionKind
    payload: Dict[str, Any] = Field(default_factory=dict)
    enqueued_at: datetime = Field(default_factory=utc_now)
    attempts: int = Field(0, ge=0)
    # Set only when retry backoff is enabled
    next_attempt_at: Optional[datetime] = None


class DrainResult(BaseModel):
    """Outcome of one drain pass.

    ``failed`` lists every action whose delivery failed during this pass;
    ``dropped`` is the subset removed for good (retry ceiling reached or
    permanent error). Failed actions not dropped stay queued.
    """

    succeeded: List[str] = Field(default_factory=list)
    failed: List[str] = Field(default_factory=list)
    dropped: List[str] = Field(default_factory=list)
    skipped: bool = False

    @property
    def attempted(self) -> int:
        return len(self.succeeded) + len(self.failed)


class SyncStatus(BaseModel):
    offline: bool
    queued_count: int
    last_sync_at: Optional[datetime] = None
    has_cached_data: bool = False
    sync_in_progress: bool = False
    data_age_seconds: Optional[float] = None
    is_stale: bool = False
    dropped_count: int = 0
    location: Optional[Location] = None


# ============================================================================
# Game and simulation
# ============================================================================


class ActionEffect(BaseModel):
    pm25_change: float = Field(0.0, description="µg/m³")
    no2_change: float = Field(0.0, description="ppb")
    o3_change: float = Field(0.0, description="ppb")
    area_of_effect: float = Field(0.0, ge=0, description="radius in meters")
    duration_hours: float = Field(0.0, ge=0)
    description: str = "No effect"


class ActionLocation(BaseModel):
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)
    area: float = Field(..., ge=0, description="m²")


class LandParcel(BaseModel):
    id: str
    type: Literal["empty_lot", "rooftop", "building", "road", "park", "industrial"]
    area: float = Field(..., ge=0, description="m²")
    latitude: float
    longitude: float
    owner: Optional[str] = None
    can_plant: bool = False
    can_demolish: bool = False
    current_use: str = ""


class GameAction(BaseModel):
    """A player intent, and once accepted, an effect on the simulated air."""

    id: str = Field(default_factory=new_id)
    type: GameActionType
    location: ActionLocation
    parcel: Optional[LandParcel] = None
    cost: int = Field(0, ge=0)
    cooldown: float = Field(0.0, ge=0, description="seconds")
    effect: ActionEffect = Field(default_factory=ActionEffect)
    timestamp: datetime = Field(default_factory=utc_now)
    status: ActionStatus = "pending"
    # Simulation-clock seconds; set when the action is accepted
    started_at: Optional[float] = None
    expires_at: Optional[float] = None


class Rejection(BaseModel):
    """Returned instead of a GameAction when a proposal breaks a game rule."""

    reason: RejectionReason
    action_type: GameActionType
    message: str = ""


class PlayerInventory(BaseModel):
    saplings: int = Field(0, ge=0)
    credits: int = Field(0, ge=0)
    tools: List[str] = Field(default_factory=list)
    upgrades: List[str] = Field(default_factory=list)


class PlayerState(BaseModel):
    id: str = "player"
    health: float = Field(100.0, ge=0, le=100)
    energy: float = Field(100.0, ge=0, le=100)
    credits: int = Field(100, ge=0)
    disguise: Literal["asthma_patient", "allergy_patient"] = "asthma_patient"
    location: Optional[Location] = None
    safe_time_remaining: float = Field(3600.0, ge=0, description="seconds")
    is_in_safe_zone: bool = True
    inventory: PlayerInventory = Field(default_factory=PlayerInventory)


class HealthImpact(BaseModel):
    current_exposure: float = 0.0
    safe_threshold: int = 50
    recovery_rate: float = 3.0


class SimulationState(BaseModel):
    current_aqi: int = 0
    baseline_aqi: int = 0
    target_aqi: int = 50
    # PM2.5 behind baseline_aqi; effects are summed in concentration space
    baseline_pm25: float = 0.0
    time_remaining: float = Field(0.0, ge=0, description="seconds")
    elapsed_seconds: float = 0.0
    actions_applied: List[GameAction] = Field(default_factory=list)
    predicted_trajectory: List[AirQualityReading] = Field(default_factory=list)
    health_impact: HealthImpact = Field(default_factory=HealthImpact)
    status: SimulationStatus = "running"


def _default_cooldowns() -> Dict[str, float]:
    return {
        "plant_tree": 300,
        "plant_rooftop_garden": 600,
        "remove_vehicle": 180,
        "shutdown_factory": 1800,
        "retrofit_factory": 3600,
        "remove_construction": 900,
        "relocate": 60,
    }


def _default_costs() -> Dict[str, int]:
    return {
        "plant_tree": 10,
        "plant_rooftop_garden": 15,
        "remove_vehicle": 5,
        "shutdown_factory": 50,
        "retrofit_factory": 100,
        "remove_construction": 30,
        "relocate": 0,
    }


class SimulationParameters(BaseModel):
    tree_effect_radius: float = 200.0
    vehicle_effect_radius: float = 100.0
    factory_effect_radius: float = 500.0
    mixing_volume: float = 1000.0
    exposure_factor: float = 1.0


class GameConfig(BaseModel):
    safe_aqi_threshold: int = 50
    health_drain_rate: float = Field(2.0, description="health points per minute at AQI 100")
    recovery_rate: float = Field(3.0, description="health points per minute in safe air")
    mission_time_limit: float = Field(24 * 60 * 60, description="seconds")
    action_cooldowns: Dict[str, float] = Field(default_factory=_default_cooldowns)
    action_costs: Dict[str, int] = Field(default_factory=_default_costs)
    simulation_parameters: SimulationParameters = Field(default_factory=SimulationParameters)


class GameSession(BaseModel):
    id: str = Field(default_factory=new_id)
    player_id: str
    location: Location
    start_time: datetime = Field(default_factory=utc_now)
    end_time: Optional[datetime] = None
    status: Literal["active", "completed", "failed", "paused"] = "active"
    score: int = 0
    achievements: List[str] = Field(default_factory=list)
    final_aqi: int = 0
    actions_completed: int = 0


# ============================================================================
# Assistant
# ============================================================================


class Recommendation(BaseModel):
    type: Literal["action", "strategy", "warning", "encouragement"]
    priority: Literal["low", "medium", "high", "critical"]
    title: str
    message: str
    suggested_actions: List[str] = Field(default_factory=list)
    reasoning: str = ""


class RecommendationList(BaseModel):
    recommendations: List[Recommendation] = Field(default_factory=list)


class GameAnalysis(BaseModel):
    current_situation: str
    risk_assessment: str
    recommended_strategy: str
    next_steps: List[str] = Field(default_factory=list)
    motivational_message: str = ""
    environmental_impact: str = ""


class GameStateSnapshot(BaseModel):
    """Everything the assistant sees about the current game."""

    location: Optional[Location] = None
    air_quality: Optional[AirQualityReading] = None
    weather: Optional[WeatherReading] = None
    player: Optional[PlayerState] = None
    simulation: Optional[SimulationState] = None
    recent_actions: List[GameAction] = Field(default_factory=list)

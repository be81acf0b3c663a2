"""
CleanSpace - offline-resilient core for an air-quality game client.

Durable action queue with bounded retry, connectivity-aware sync,
multi-provider environmental data with read-through caching, and a
deterministic pollutant-response simulation.

All components are constructed explicitly (see AppContext). No global state.
"""

__version__ = "0.2.0"

# Composition root
from .context import AppContext
from .config import Config

# Offline resilience
from .storage import KeyValueStorage, InMemoryStorage, JsonFileStorage
from .local_cache import LocalCache, OfflineData
from .action_queue import ActionQueue, MAX_RETRIES
from .sync import SyncCoordinator

# Remote persistence
from .remote_store import RemoteStore, InMemoryRemoteStore, SupabaseRemoteStore, Subscription
from .data_service import DataService
from .auth import AuthSession, AuthUser, bind_supabase_auth

# Environmental data
from .aqi import aqi_from_pm25, health_precautions_from_aqi, aqi_category
from .providers import (
    Provider,
    OpenMeteoAirQualityProvider,
    AQICNProvider,
    PurpleAirProvider,
    NasaPowerWeatherProvider,
    FirmsFireProvider,
    WorldviewImageryProvider,
    OpenMeteoPrecipitationProvider,
    OpenAQProvider,
    default_providers,
)
from .synthetic import synthesize
from .gateway import EnvironmentalDataGateway, CACHE_TTL_SECONDS, assess_data_quality

# Game
from .simulation import SimulationEngine, calculate_action_effect
from .session import GameSessionRunner
from .assistant import GameAssistant

# Errors
from .errors import (
    CleanSpaceError,
    RemoteStoreError,
    TransientRemoteError,
    PermanentRemoteError,
    ProviderError,
    ProviderNotConfigured,
    OfflineError,
    PayloadValidationError,
)

# Schemas
from .schemas import (
    Location,
    AirQualityReading,
    WeatherReading,
    EnvironmentalSnapshot,
    EnvironmentalReading,
    EnvironmentalReport,
    DataQuality,
    HealthPrecaution,
    QueuedAction,
    DrainResult,
    SyncStatus,
    TelemetryPayload,
    AchievementPayload,
    GameSessionPayload,
    MissionProgressPayload,
    ActionEffect,
    ActionLocation,
    LandParcel,
    GameAction,
    Rejection,
    PlayerState,
    SimulationState,
    GameConfig,
    GameSession,
    Recommendation,
    GameAnalysis,
    GameStateSnapshot,
)

__all__ = [
    # Composition
    "AppContext",
    "Config",
    # Offline resilience
    "KeyValueStorage",
    "InMemoryStorage",
    "JsonFileStorage",
    "LocalCache",
    "OfflineData",
    "ActionQueue",
    "MAX_RETRIES",
    "SyncCoordinator",
    # Remote persistence
    "RemoteStore",
    "InMemoryRemoteStore",
    "SupabaseRemoteStore",
    "Subscription",
    "DataService",
    "AuthSession",
    "AuthUser",
    "bind_supabase_auth",
    # Environmental data
    "aqi_from_pm25",
    "health_precautions_from_aqi",
    "aqi_category",
    "Provider",
    "OpenMeteoAirQualityProvider",
    "AQICNProvider",
    "PurpleAirProvider",
    "NasaPowerWeatherProvider",
    "FirmsFireProvider",
    "WorldviewImageryProvider",
    "OpenMeteoPrecipitationProvider",
    "OpenAQProvider",
    "default_providers",
    "synthesize",
    "EnvironmentalDataGateway",
    "CACHE_TTL_SECONDS",
    "assess_data_quality",
    # Game
    "SimulationEngine",
    "calculate_action_effect",
    "GameSessionRunner",
    "GameAssistant",
    # Errors
    "CleanSpaceError",
    "RemoteStoreError",
    "TransientRemoteError",
    "PermanentRemoteError",
    "ProviderError",
    "ProviderNotConfigured",
    "OfflineError",
    "PayloadValidationError",
    # Schemas
    "Location",
    "AirQualityReading",
    "WeatherReading",
    "EnvironmentalSnapshot",
    "EnvironmentalReading",
    "EnvironmentalReport",
    "DataQuality",
    "HealthPrecaution",
    "QueuedAction",
    "DrainResult",
    "SyncStatus",
    "TelemetryPayload",
    "AchievementPayload",
    "GameSessionPayload",
    "MissionProgressPayload",
    "ActionEffect",
    "ActionLocation",
    "LandParcel",
    "GameAction",
    "Rejection",
    "PlayerState",
    "SimulationState",
    "GameConfig",
    "GameSession",
    "Recommendation",
    "GameAnalysis",
    "GameStateSnapshot",
]

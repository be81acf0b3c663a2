"""
DataService: typed CleanSpace operations on top of a RemoteStore.

Translates game-level intents (log telemetry, record an achievement, save a
session) into rows of the remote tables, scoped to the signed-in user. It is
also the delivery target of the action queue: ``deliver`` dispatches a
QueuedAction to the matching operation.

Remote tables used:
- telemetry, achievements, game_sessions, mission_progress, profiles
- nasa_data_cache (keyed expiring cache: data_type + location_key)
- leaderboard (read-only view)
"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional

from pydantic import ValidationError

from .auth import AuthSession
from .errors import PermanentRemoteError, TransientRemoteError
from .logging_utils import log_error, log_sync
from .remote_store import ChangeCallback, RemoteStore, Row, Subscription
from .schemas import (
    PAYLOAD_MODELS,
    AchievementPayload,
    CacheRow,
    GameSessionPayload,
    MissionProgressPayload,
    QueuedAction,
    TelemetryPayload,
    utc_now,
)

CACHE_TABLE = "nasa_data_cache"
XP_PER_LEVEL = 1000


def _dump(payload) -> Row:
    return payload.model_dump(mode="json", exclude_none=True)


class DataService:
    """Remote operations for the current user."""

    def __init__(
        self,
        remote: RemoteStore,
        auth: AuthSession,
        *,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.remote = remote
        self.auth = auth
        self._clock = clock

    def _require_user(self) -> str:
        user_id = self.auth.user_id
        if user_id is None:
            # Transient: the player may sign in before the next drain
            raise TransientRemoteError("User not authenticated")
        return user_id

    # ------------------------------------------------------------------
    # Queue delivery
    # ------------------------------------------------------------------

    async def deliver(self, action: QueuedAction) -> None:
        """Send one queued action to the remote store.

        Raises:
            RemoteStoreError: If the remote call fails (transient or permanent)
        """

        model = PAYLOAD_MODELS.get(action.kind)
        if model is None:
            raise PermanentRemoteError(f"Unknown action kind: {action.kind}")
        try:
            payload = model.model_validate(action.payload)
        except ValidationError as exc:
            raise PermanentRemoteError(f"Malformed {action.kind} payload: {exc}") from exc
        log_sync(f"Delivering {action.kind} action {action.id} (attempt {action.attempts + 1})")

        if isinstance(payload, TelemetryPayload):
            await self.log_telemetry(payload)
        elif isinstance(payload, AchievementPayload):
            await self.create_achievement(payload)
        elif isinstance(payload, GameSessionPayload):
            if payload.id:
                await self.update_game_session(payload.id, payload)
            else:
                await self.create_game_session(payload)
        elif isinstance(payload, MissionProgressPayload):
            if payload.mission_id:
                await self.update_mission_progress(payload.mission_id, payload)
            else:
                await self.create_mission_progress(payload)

    # ------------------------------------------------------------------
    # Telemetry and achievements
    # ------------------------------------------------------------------

    async def log_telemetry(self, payload: TelemetryPayload) -> Row:
        values = _dump(payload)
        values["user_id"] = self.auth.user_id
        values["timestamp"] = self._clock().isoformat()
        return await self.remote.insert_row("telemetry", values)

    async def create_achievement(self, payload: AchievementPayload) -> Row:
        user_id = self._require_user()
        row = await self.remote.insert_row("achievements", {**_dump(payload), "user_id": user_id})
        await self._update_user_xp(user_id, payload.points_earned)
        return row

    async def get_user_achievements(self, user_id: Optional[str] = None) -> List[Row]:
        target = user_id or self._require_user()
        return await self.remote.select_rows(
            "achievements", {"user_id": target}, order="created_at", descending=True
        )

    async def _update_user_xp(self, user_id: str, xp_gained: int) -> None:
        if xp_gained <= 0:
            return
        profile = self.auth.user.profile if self.auth.user else {}
        total_xp = int(profile.get("total_xp", 0)) + xp_gained
        patch = {"total_xp": total_xp, "level": total_xp // XP_PER_LEVEL + 1}
        try:
            await self.remote.update_row("profiles", {"id": user_id}, patch)
        except (TransientRemoteError, PermanentRemoteError) as exc:
            # The achievement row already exists; retrying the whole action
            # would duplicate it, so the XP update is best effort.
            log_error(f"Could not update XP for {user_id}: {exc}")
            return
        self.auth.update_profile(patch)

    # ------------------------------------------------------------------
    # Game sessions and mission progress
    # ------------------------------------------------------------------

    async def create_game_session(self, payload: GameSessionPayload) -> Row:
        user_id = self._require_user()
        return await self.remote.insert_row("game_sessions", {**_dump(payload), "user_id": user_id})

    async def update_game_session(self, session_id: str, payload: GameSessionPayload) -> Row:
        self._require_user()
        patch = _dump(payload)
        patch.pop("id", None)
        return await self.remote.update_row("game_sessions", {"id": session_id}, patch)

    async def get_user_game_sessions(self, user_id: Optional[str] = None, limit: int = 50) -> List[Row]:
        target = user_id or self._require_user()
        return await self.remote.select_rows(
            "game_sessions", {"user_id": target}, order="created_at", descending=True, limit=limit
        )

    async def create_mission_progress(self, payload: MissionProgressPayload) -> Row:
        user_id = self._require_user()
        return await self.remote.insert_row("mission_progress", {**_dump(payload), "user_id": user_id})

    async def update_mission_progress(self, mission_id: str, payload: MissionProgressPayload) -> Row:
        user_id = self._require_user()
        patch = _dump(payload)
        patch.pop("mission_id", None)
        return await self.remote.update_row(
            "mission_progress", {"user_id": user_id, "mission_id": mission_id}, patch
        )

    # ------------------------------------------------------------------
    # Environmental data cache
    # ------------------------------------------------------------------

    async def cache_environmental_data(
        self,
        data_type: str,
        location_key: str,
        data: Any,
        ttl_seconds: float,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Row:
        now = self._clock()
        values = {
            "data_type": data_type,
            "location_key": location_key,
            "data": data,
            "expires_at": (now + timedelta(seconds=ttl_seconds)).isoformat(),
            "metadata": metadata or {},
        }
        return await self.remote.upsert_row(CACHE_TABLE, values, ("data_type", "location_key"))

    async def get_cached_environmental_data(self, data_type: str, location_key: str) -> Optional[CacheRow]:
        """Return the unexpired cache row for the key, or None."""

        rows = await self.remote.select_rows(
            CACHE_TABLE,
            {"data_type": data_type, "location_key": location_key},
            greater_than={"expires_at": self._clock()},
            limit=1,
        )
        if not rows:
            return None
        return CacheRow.model_validate(rows[0])

    # ------------------------------------------------------------------
    # Leaderboard and live updates
    # ------------------------------------------------------------------

    async def get_leaderboard(self, limit: int = 50) -> List[Row]:
        return await self.remote.select_rows("leaderboard", order="global_rank", limit=limit)

    async def subscribe_to_achievements(self, user_id: str, callback: ChangeCallback) -> Subscription:
        return await self.remote.subscribe("achievements", callback, {"user_id": user_id})

    async def subscribe_to_leaderboard(self, callback: ChangeCallback) -> Subscription:
        return await self.remote.subscribe("profiles", callback)

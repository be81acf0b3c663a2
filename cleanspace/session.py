"""
GameSessionRunner: one playable session wired to data, engine and sync.

Starting a session samples the baseline from the gateway (writing the
snapshot to the LocalCache). Accepted actions are recorded as telemetry
through the sync coordinator; rejections never leave the engine. When the
engine reaches a terminal state the finished session is cached locally and
queued as a ``game_session`` record.

The simulation clock can be driven manually with ``tick(dt)`` or by an
asyncio timer (``start_clock`` / ``stop_clock``).
"""

from __future__ import annotations

import asyncio
from contextlib import suppress
from datetime import datetime
from typing import Callable, List, Optional, Union

from .auth import AuthSession
from .gateway import EnvironmentalDataGateway
from .local_cache import LocalCache
from .logging_utils import log_error, log_info
from .schemas import (
    EnvironmentalSnapshot,
    GameAction,
    GameSession,
    GameSessionPayload,
    GameStateSnapshot,
    Location,
    Rejection,
    SimulationState,
    TelemetryPayload,
    utc_now,
)
from .simulation import SimulationEngine
from .sync import SyncCoordinator


class GameSessionRunner:
    """Drives a SimulationEngine for one session at a time."""

    def __init__(
        self,
        engine: SimulationEngine,
        gateway: EnvironmentalDataGateway,
        coordinator: SyncCoordinator,
        local_cache: LocalCache,
        auth: AuthSession,
        *,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.engine = engine
        self.gateway = gateway
        self.coordinator = coordinator
        self.local_cache = local_cache
        self.auth = auth
        self._clock = clock
        self.session: Optional[GameSession] = None
        self.snapshot: Optional[EnvironmentalSnapshot] = None
        self._timer: Optional[asyncio.Task] = None
        self._finished = False

    @property
    def active(self) -> bool:
        return self.session is not None and not self._finished

    async def start(self, location: Location) -> GameSession:
        """Begin a new session at ``location`` with a fresh baseline."""

        await self.stop_clock()
        self.snapshot = await self.gateway.capture_snapshot(location)
        self.engine.reset()
        self.engine.initialize([self.snapshot.air_quality], location)

        self.session = GameSession(
            player_id=self.auth.user_id or "anonymous",
            location=location,
            start_time=self._clock(),
            final_aqi=self.engine.state.current_aqi,
        )
        self._finished = False
        self.local_cache.cache_game_session(self.session)
        log_info(
            f"Session {self.session.id} started at {location.city or location.location_key('loc')} "
            f"(baseline AQI {self.engine.state.baseline_aqi}, source {self.snapshot.source})"
        )
        await self._record(
            "session_started",
            {
                "baseline_aqi": self.engine.state.baseline_aqi,
                "source": self.snapshot.source,
                "location": location.model_dump(mode="json", exclude_none=True),
            },
        )
        return self.session

    async def apply(self, proposal: GameAction) -> Union[GameAction, Rejection]:
        if self.session is None:
            raise RuntimeError("No session started")
        result = self.engine.apply_action(proposal)
        if isinstance(result, GameAction):
            await self._record(
                "action_applied",
                {
                    "action_id": result.id,
                    "action_type": result.type,
                    "cost": result.cost,
                    "pm25_change": result.effect.pm25_change,
                    "current_aqi": self.engine.state.current_aqi,
                },
            )
        return result

    async def tick(self, dt_seconds: float) -> SimulationState:
        if self.session is None:
            raise RuntimeError("No session started")
        state = self.engine.tick(dt_seconds)
        if not self.engine.is_running and not self._finished:
            await self._finish()
        return state

    async def _finish(self) -> None:
        assert self.session is not None
        self._finished = True
        state = self.engine.state
        self.session = self.session.model_copy(
            update={
                "status": "completed" if state.status == "succeeded" else "failed",
                "end_time": self._clock(),
                "score": self.engine.calculate_score(),
                "final_aqi": state.current_aqi,
                "actions_completed": len(state.actions_applied),
            }
        )
        self.local_cache.cache_game_session(self.session)
        log_info(f"Session {self.session.id} {self.session.status} with score {self.session.score}")

        # No id: the remote row is created once, when the session ends
        payload = GameSessionPayload(
            location=self.session.location.model_dump(mode="json", exclude_none=True),
            status=self.session.status,
            score=self.session.score,
            final_aqi=self.session.final_aqi,
            actions_completed=self.session.actions_completed,
            achievements=list(self.session.achievements),
            start_time=self.session.start_time,
            end_time=self.session.end_time,
        )
        await self.coordinator.queue_action("game_session", payload)

    async def _record(self, event_type: str, event_data: dict) -> None:
        payload = TelemetryPayload(
            event_type=event_type,
            event_data=event_data,
            session_id=self.session.id if self.session else None,
        )
        await self.coordinator.queue_action("telemetry", payload)

    # ------------------------------------------------------------------
    # Timer
    # ------------------------------------------------------------------

    def start_clock(self, interval_seconds: float = 1.0, sim_seconds_per_tick: float = 60.0) -> None:
        """Tick the engine every ``interval_seconds`` of wall time."""

        if self.session is None:
            raise RuntimeError("No session started")
        if self._timer is not None and not self._timer.done():
            return
        self._timer = asyncio.get_running_loop().create_task(
            self._run_clock(interval_seconds, sim_seconds_per_tick)
        )

    async def stop_clock(self) -> None:
        timer, self._timer = self._timer, None
        if timer is None:
            return
        timer.cancel()
        with suppress(asyncio.CancelledError):
            await timer

    async def _run_clock(self, interval_seconds: float, sim_seconds_per_tick: float) -> None:
        while self.engine.is_running:
            await asyncio.sleep(interval_seconds)
            try:
                await self.tick(sim_seconds_per_tick)
            except Exception as exc:
                log_error(f"Session tick failed: {exc}")
                raise

    # ------------------------------------------------------------------
    # Assistant input
    # ------------------------------------------------------------------

    def game_state(self, recent: int = 5) -> GameStateSnapshot:
        actions: List[GameAction] = self.engine.state.actions_applied[-recent:] if recent else []
        return GameStateSnapshot(
            location=self.session.location if self.session else None,
            air_quality=self.engine.current_reading() if self.session else None,
            weather=self.snapshot.weather if self.snapshot else None,
            player=self.engine.player,
            simulation=self.engine.state,
            recent_actions=list(actions),
        )

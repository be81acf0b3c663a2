"""
SimulationEngine: deterministic pollutant response to player actions.

The engine owns one SimulationState and one PlayerState per session and is
the only thing that mutates them, through two entry points:

- ``apply_action(proposal)`` validates a player intent against the game rules
  (funds, per-type cooldown, land-parcel eligibility). A rule violation is
  returned as a ``Rejection`` value, never raised. An accepted action pays its
  cost, starts its cooldown, and its effect contributes to the air from that
  moment until ``duration_hours`` of simulated time have passed.
- ``tick(dt_seconds)`` advances simulated time: expires effects, recomputes
  the AQI, drains or restores player health, and evaluates win/loss.

AQI model:
    pm25 = max(0, baseline_pm25 + sum(pm25_change of active effects))
    current_aqi = aqi_from_pm25(pm25)

Effects from simultaneous actions are assumed to overlap the session location
and add linearly. Time is simulated seconds (``elapsed_seconds``); cooldowns
and effect lifetimes use that clock, never wall time.

Status: running -> succeeded | failed. Terminal states are absorbing: ticks
are no-ops and proposals are rejected with ``session_ended``.
"""

from __future__ import annotations

import math
from datetime import datetime, timedelta
from typing import Callable, Dict, List, Optional, Sequence, Union

from .aqi import aqi_from_pm25
from .logging_utils import log_info, log_success
from .schemas import (
    ActionEffect,
    AirQualityReading,
    GameAction,
    GameConfig,
    HealthImpact,
    LandParcel,
    Location,
    PlayerState,
    Rejection,
    RejectionReason,
    SimulationParameters,
    SimulationState,
    utc_now,
)

SECONDS_PER_HOUR = 3600.0
# Decay time constant (hours) used for trajectory projection
TRAJECTORY_DECAY_HOURS = 12.0


# ============================================================================
# Effect formulas
# ============================================================================


def _units(area: float, per_unit_area: float) -> int:
    return int(math.floor(area / per_unit_area))


def calculate_action_effect(action: GameAction, params: SimulationParameters) -> ActionEffect:
    """Pollutant change an action produces, from its type and footprint.

    Each type converts the action area into a unit count (trees per 25 m²,
    gardens per 50 m², vehicles per 20 m², factories per 1000 m²,
    construction sites per 500 m²) and scales fixed per-unit changes.
    """

    area = action.location.area

    if action.type == "plant_tree":
        count = _units(area, 25)
        return ActionEffect(
            pm25_change=-0.5 * count,
            no2_change=-0.2 * count,
            # Biogenic emissions raise ozone slightly
            o3_change=0.1 * count,
            area_of_effect=params.tree_effect_radius,
            duration_hours=24,
            description=f"Planted {count} trees, reducing PM2.5 by {0.5 * count:.1f} µg/m³",
        )

    if action.type == "plant_rooftop_garden":
        count = _units(area, 50)
        return ActionEffect(
            pm25_change=-0.3 * count,
            no2_change=-0.1 * count,
            o3_change=0.05 * count,
            area_of_effect=params.tree_effect_radius * 0.7,
            duration_hours=24,
            description=f"Installed {count} rooftop gardens, reducing PM2.5 by {0.3 * count:.1f} µg/m³",
        )

    if action.type == "remove_vehicle":
        count = _units(area, 20)
        return ActionEffect(
            pm25_change=-2.0 * count,
            no2_change=-1.0 * count,
            # Less NO titration means more ozone
            o3_change=0.5 * count,
            area_of_effect=params.vehicle_effect_radius,
            duration_hours=12,
            description=f"Removed {count} vehicles, reducing PM2.5 by {2.0 * count:.1f} µg/m³",
        )

    if action.type == "shutdown_factory":
        count = _units(area, 1000)
        return ActionEffect(
            pm25_change=-5.0 * count,
            no2_change=-2.0 * count,
            o3_change=-0.5 * count,
            area_of_effect=params.factory_effect_radius,
            duration_hours=48,
            description=f"Shut down {count} factories, reducing PM2.5 by {5.0 * count:.1f} µg/m³",
        )

    if action.type == "retrofit_factory":
        count = _units(area, 1000)
        return ActionEffect(
            pm25_change=-2.5 * count,
            no2_change=-1.0 * count,
            o3_change=-0.25 * count,
            area_of_effect=params.factory_effect_radius,
            duration_hours=72,
            description=f"Retrofitted {count} factories, reducing PM2.5 by {2.5 * count:.1f} µg/m³",
        )

    if action.type == "remove_construction":
        count = _units(area, 500)
        return ActionEffect(
            pm25_change=-3.0 * count,
            no2_change=-1.5 * count,
            o3_change=0.2 * count,
            area_of_effect=params.tree_effect_radius,
            duration_hours=36,
            description=f"Removed {count} construction sites, reducing PM2.5 by {3.0 * count:.1f} µg/m³",
        )

    return ActionEffect()


def _parcel_allows(action_type: str, parcel: Optional[LandParcel]) -> bool:
    if action_type in ("remove_vehicle", "relocate"):
        return True
    if parcel is None:
        return False
    if action_type == "plant_tree":
        return parcel.can_plant and parcel.type in ("empty_lot", "park")
    if action_type == "plant_rooftop_garden":
        return parcel.can_plant and parcel.type == "rooftop"
    if action_type == "shutdown_factory":
        return parcel.can_demolish and parcel.type == "industrial"
    if action_type == "retrofit_factory":
        return parcel.type == "industrial"
    if action_type == "remove_construction":
        return parcel.can_demolish
    return False


# ============================================================================
# Engine
# ============================================================================


class SimulationEngine:
    """Session state machine for the pollution-reduction game."""

    def __init__(
        self,
        config: Optional[GameConfig] = None,
        player: Optional[PlayerState] = None,
        *,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.config = config or GameConfig()
        self._clock = clock
        self._initial_player = (player or PlayerState()).model_copy(deep=True)
        self.player = self._initial_player.model_copy(deep=True)
        self.state = self._fresh_state()
        self._baseline: Optional[AirQualityReading] = None
        # action type -> elapsed_seconds at which its cooldown ends
        self._cooldown_until: Dict[str, float] = {}

    def _fresh_state(self) -> SimulationState:
        return SimulationState(
            target_aqi=self.config.safe_aqi_threshold,
            time_remaining=self.config.mission_time_limit,
            health_impact=HealthImpact(
                safe_threshold=self.config.safe_aqi_threshold,
                recovery_rate=self.config.recovery_rate,
            ),
        )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def is_running(self) -> bool:
        return self.state.status == "running"

    def initialize(
        self,
        readings: Sequence[AirQualityReading],
        location: Optional[Location] = None,
    ) -> SimulationState:
        """Set the baseline from the latest of ``readings``.

        An empty sequence leaves the state untouched.
        """

        if not readings:
            return self.state
        latest = readings[-1]
        self._baseline = latest
        self.state.baseline_aqi = latest.aqi
        self.state.baseline_pm25 = latest.pm25
        self.state.current_aqi = latest.aqi
        self.state.predicted_trajectory = list(readings)
        if location is not None:
            self.player.location = location
        self.player.is_in_safe_zone = latest.aqi <= self.config.safe_aqi_threshold
        log_info(f"Simulation baseline AQI {latest.aqi} (target {self.state.target_aqi})")
        return self.state

    def reset(self) -> None:
        self.state = self._fresh_state()
        self.player = self._initial_player.model_copy(deep=True)
        self._baseline = None
        self._cooldown_until = {}

    # ------------------------------------------------------------------
    # Actions
    # ------------------------------------------------------------------

    def cooldown_remaining(self, action_type: str) -> float:
        return max(0.0, self._cooldown_until.get(action_type, 0.0) - self.state.elapsed_seconds)

    def active_actions(self) -> List[GameAction]:
        return [action for action in self.state.actions_applied if action.status == "active"]

    def apply_action(self, proposal: GameAction) -> Union[GameAction, Rejection]:
        """Validate and apply a player action.

        Cost and cooldown come from the game config (the proposal's values are
        used only for types the config does not list).
        """

        action_type = proposal.type
        if not self.is_running:
            return self._reject("session_ended", action_type, f"Session already {self.state.status}")

        cost = self.config.action_costs.get(action_type, proposal.cost)
        cooldown = self.config.action_cooldowns.get(action_type, proposal.cooldown)

        if self.player.credits < cost:
            return self._reject(
                "insufficient_funds", action_type, f"Need {cost} credits, have {self.player.credits}"
            )
        remaining = self.cooldown_remaining(action_type)
        if remaining > 0:
            return self._reject("on_cooldown", action_type, f"{action_type} ready in {remaining:.0f}s")
        if not _parcel_allows(action_type, proposal.parcel):
            return self._reject(
                "ineligible_location", action_type, f"{action_type} is not allowed on this parcel"
            )

        now = self.state.elapsed_seconds
        effect = calculate_action_effect(proposal, self.config.simulation_parameters)
        accepted = proposal.model_copy(
            update={
                "cost": cost,
                "cooldown": cooldown,
                "effect": effect,
                "timestamp": self._clock(),
                "started_at": now,
                "expires_at": now + effect.duration_hours * SECONDS_PER_HOUR,
                "status": "active" if effect.duration_hours > 0 else "completed",
            },
            deep=True,
        )

        self.player.credits -= cost
        self._cooldown_until[action_type] = now + cooldown
        if action_type == "relocate":
            self._relocate(accepted)
        self.state.actions_applied.append(accepted)
        self._recompute_aqi()
        log_success(f"{effect.description} (AQI now {self.state.current_aqi})")
        return accepted

    def _relocate(self, action: GameAction) -> None:
        base = self.player.location
        self.player.location = Location(
            latitude=action.location.latitude,
            longitude=action.location.longitude,
            city=base.city if base else "",
            country=base.country if base else "",
        )

    @staticmethod
    def _reject(reason: RejectionReason, action_type, message: str) -> Rejection:
        log_info(f"Rejected {action_type}: {message}")
        return Rejection(reason=reason, action_type=action_type, message=message)

    # ------------------------------------------------------------------
    # Time
    # ------------------------------------------------------------------

    def _active_pm25_change(self) -> float:
        return sum(action.effect.pm25_change for action in self.active_actions())

    def _recompute_aqi(self) -> None:
        pm25 = max(0.0, self.state.baseline_pm25 + self._active_pm25_change())
        self.state.current_aqi = aqi_from_pm25(pm25)

    def _expire_effects(self) -> None:
        elapsed = self.state.elapsed_seconds
        for action in self.state.actions_applied:
            if action.status == "active" and action.expires_at is not None and action.expires_at <= elapsed:
                action.status = "completed"

    def _update_player(self, dt: float) -> None:
        player = self.player
        aqi = self.state.current_aqi
        safe = aqi <= self.config.safe_aqi_threshold
        minutes = dt / 60

        if safe:
            gain = self.config.recovery_rate * minutes
            player.health = min(100.0, player.health + gain)
            player.energy = min(100.0, player.energy + gain)
            self.state.health_impact.current_exposure = 0.0
        else:
            drain = (aqi / 100) * self.config.health_drain_rate * minutes
            player.health = max(0.0, player.health - drain)
            player.energy = max(0.0, player.energy - drain)
            player.safe_time_remaining = max(0.0, player.safe_time_remaining - dt)
            self.state.health_impact.current_exposure = (
                aqi * self.config.simulation_parameters.exposure_factor
            )
        player.is_in_safe_zone = safe

    def tick(self, dt_seconds: float) -> SimulationState:
        """Advance simulated time by ``dt_seconds``; no-op once terminal."""

        if dt_seconds < 0:
            raise ValueError("dt_seconds must be non-negative")
        if not self.is_running or dt_seconds == 0:
            return self.state

        state = self.state
        state.elapsed_seconds += dt_seconds
        state.time_remaining = max(0.0, state.time_remaining - dt_seconds)
        self._expire_effects()
        self._recompute_aqi()
        self._update_player(dt_seconds)

        if self.player.health <= 0:
            state.status = "failed"
            log_info("Mission failed: health depleted")
        elif state.current_aqi <= state.target_aqi:
            state.status = "succeeded"
            log_success(f"Mission succeeded: AQI {state.current_aqi} <= {state.target_aqi}")
        elif state.time_remaining <= 0:
            state.status = "failed"
            log_info(f"Mission failed: time ran out at AQI {state.current_aqi}")
        return state

    # ------------------------------------------------------------------
    # Projection and scoring
    # ------------------------------------------------------------------

    def current_reading(self) -> AirQualityReading:
        """Baseline reading with the active effects applied."""

        base = self._baseline or AirQualityReading(aqi=self.state.baseline_aqi, pm25=self.state.baseline_pm25)
        active = self.active_actions()
        pm25 = max(0.0, base.pm25 + sum(action.effect.pm25_change for action in active))
        return base.model_copy(
            update={
                "pm25": pm25,
                "no2": max(0.0, base.no2 + sum(action.effect.no2_change for action in active)),
                "o3": max(0.0, base.o3 + sum(action.effect.o3_change for action in active)),
                "aqi": aqi_from_pm25(pm25),
                "timestamp": self._clock(),
                "source": "simulated",
            }
        )

    def predict_trajectory(self, hours: int = 24) -> List[AirQualityReading]:
        """Hourly projection with active effects decaying as exp(-h / 12)."""

        current = self.current_reading()
        base_pm25 = self._baseline.pm25 if self._baseline else self.state.baseline_pm25
        change = self._active_pm25_change()
        start = current.timestamp

        trajectory = []
        for hour in range(1, hours + 1):
            decay = math.exp(-hour / TRAJECTORY_DECAY_HOURS)
            pm25 = max(0.0, base_pm25 + change * decay)
            trajectory.append(
                current.model_copy(
                    update={
                        "pm25": pm25,
                        "aqi": aqi_from_pm25(pm25),
                        "timestamp": start + timedelta(hours=hour),
                    }
                )
            )
        self.state.predicted_trajectory = trajectory
        return trajectory

    def calculate_score(self) -> int:
        improvement = self.state.baseline_aqi - self.state.current_aqi
        time_bonus = self.state.time_remaining / 60
        count = len(self.state.actions_applied)
        efficiency = improvement / count if count else 0
        # Half-up rounding, matching the AQI formula
        return max(0, math.floor(improvement * 10 + time_bonus + efficiency * 5 + 0.5))

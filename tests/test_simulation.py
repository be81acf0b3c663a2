"""Tests for the pollutant-response simulation engine."""

import math

import pytest

from cleanspace.aqi import aqi_from_pm25
from cleanspace.schemas import (
    ActionLocation,
    AirQualityReading,
    GameAction,
    GameConfig,
    LandParcel,
    Location,
    PlayerState,
    Rejection,
    SimulationParameters,
)
from cleanspace.simulation import SimulationEngine, calculate_action_effect


def make_parcel(parcel_type="park", *, can_plant=True, can_demolish=False) -> LandParcel:
    return LandParcel(
        id=f"parcel-{parcel_type}",
        type=parcel_type,
        area=500,
        latitude=40.7128,
        longitude=-74.006,
        can_plant=can_plant,
        can_demolish=can_demolish,
    )


def make_action(action_type="plant_tree", area=100.0, parcel=None, **kwargs) -> GameAction:
    return GameAction(
        type=action_type,
        location=ActionLocation(latitude=40.7128, longitude=-74.006, area=area),
        parcel=parcel,
        **kwargs,
    )


def make_engine(pm25=40.0, config=None, player=None) -> SimulationEngine:
    engine = SimulationEngine(config, player)
    reading = AirQualityReading(aqi=aqi_from_pm25(pm25), pm25=pm25)
    engine.initialize([reading], Location(latitude=40.7128, longitude=-74.006, city="New York"))
    return engine


def test_initialize_sets_baseline():
    engine = make_engine(40.0)
    assert engine.state.baseline_aqi == 112
    assert engine.state.current_aqi == 112
    assert engine.state.target_aqi == 50
    assert not engine.player.is_in_safe_zone


def test_initialize_with_no_readings_is_noop():
    engine = SimulationEngine()
    engine.initialize([])
    assert engine.state.baseline_aqi == 0
    assert engine.is_running


def test_plant_tree_costs_credits_and_lowers_aqi():
    engine = make_engine(40.0)

    result = engine.apply_action(make_action(parcel=make_parcel()))

    assert isinstance(result, GameAction)
    assert result.status == "active"
    assert result.effect.pm25_change == pytest.approx(-2.0)
    assert result.expires_at == 24 * 3600
    assert engine.player.credits == 90
    assert engine.state.current_aqi == 107
    assert engine.state.current_aqi < engine.state.baseline_aqi


def test_cost_comes_from_config_not_proposal():
    engine = make_engine(40.0)
    result = engine.apply_action(make_action(parcel=make_parcel(), cost=0, cooldown=0))
    assert result.cost == 10
    assert engine.cooldown_remaining("plant_tree") == 300


def test_cooldown_blocks_until_simulated_time_passes():
    engine = make_engine(40.0)
    engine.apply_action(make_action(parcel=make_parcel()))

    second = engine.apply_action(make_action(parcel=make_parcel()))
    assert isinstance(second, Rejection)
    assert second.reason == "on_cooldown"
    assert engine.player.credits == 90

    # Other types have their own cooldown
    assert isinstance(engine.apply_action(make_action("remove_vehicle", area=20)), GameAction)

    engine.tick(301)
    assert isinstance(engine.apply_action(make_action(parcel=make_parcel())), GameAction)


def test_insufficient_funds_is_checked_first():
    engine = make_engine(40.0, player=PlayerState(credits=5))
    result = engine.apply_action(make_action(parcel=make_parcel("industrial", can_plant=False)))
    assert result.reason == "insufficient_funds"
    assert engine.player.credits == 5
    assert engine.state.actions_applied == []


@pytest.mark.parametrize(
    "action_type, parcel, allowed",
    [
        ("plant_tree", None, False),
        ("plant_tree", make_parcel("industrial"), False),
        ("plant_tree", make_parcel("empty_lot"), True),
        ("plant_tree", make_parcel("park", can_plant=False), False),
        ("plant_rooftop_garden", make_parcel("rooftop"), True),
        ("plant_rooftop_garden", make_parcel("park"), False),
        ("shutdown_factory", make_parcel("industrial", can_demolish=True), True),
        ("shutdown_factory", make_parcel("industrial"), False),
        ("retrofit_factory", make_parcel("industrial"), True),
        ("remove_construction", make_parcel("building", can_demolish=True), True),
        ("remove_construction", make_parcel("building"), False),
        ("remove_vehicle", None, True),
        ("relocate", None, True),
    ],
)
def test_parcel_eligibility(action_type, parcel, allowed):
    engine = make_engine(40.0)
    result = engine.apply_action(make_action(action_type, area=1000, parcel=parcel))
    if allowed:
        assert isinstance(result, GameAction)
    else:
        assert result.reason == "ineligible_location"


def test_effect_formulas_floor_unit_counts():
    params = SimulationParameters()
    assert calculate_action_effect(make_action("plant_tree", area=99), params).pm25_change == pytest.approx(-1.5)
    assert calculate_action_effect(make_action("remove_vehicle", area=40), params).pm25_change == pytest.approx(-4.0)
    factory = calculate_action_effect(make_action("shutdown_factory", area=2500), params)
    assert factory.pm25_change == pytest.approx(-10.0)
    assert factory.duration_hours == 48
    assert calculate_action_effect(make_action("relocate", area=10), params).pm25_change == 0


def test_relocate_moves_player():
    engine = make_engine(40.0)
    result = engine.apply_action(
        GameAction(type="relocate", location=ActionLocation(latitude=40.8, longitude=-73.9, area=0))
    )
    assert result.status == "completed"
    assert engine.player.location.latitude == 40.8
    assert engine.player.location.city == "New York"


def test_health_depletion_fails_session_and_freezes_it():
    engine = make_engine(300.0)

    state = engine.tick(3600)

    assert state.status == "failed"
    assert engine.player.health == 0
    elapsed = state.elapsed_seconds

    engine.tick(60)
    assert engine.state.elapsed_seconds == elapsed
    rejection = engine.apply_action(make_action(parcel=make_parcel()))
    assert rejection.reason == "session_ended"


def test_reaching_target_succeeds():
    engine = make_engine(14.0)
    assert engine.state.baseline_aqi == 55

    engine.apply_action(make_action(parcel=make_parcel()))
    assert engine.state.current_aqi == 50
    state = engine.tick(60)

    assert state.status == "succeeded"
    assert engine.player.is_in_safe_zone


def test_effects_expire_on_simulated_clock():
    engine = make_engine(14.0, config=GameConfig(health_drain_rate=0.0))
    action = engine.apply_action(make_action(area=25, parcel=make_parcel()))
    assert engine.state.current_aqi == 54

    engine.tick(23 * 3600)
    assert engine.active_actions()[0].id == action.id
    assert engine.state.current_aqi == 54

    state = engine.tick(3600)
    assert engine.active_actions() == []
    assert state.current_aqi == 55
    assert state.status == "failed"
    assert state.time_remaining == 0


def test_player_drains_outside_safe_air():
    engine = make_engine(40.0)
    engine.tick(600)
    # 112 / 100 * 2 points per minute for 10 minutes
    assert engine.player.health == pytest.approx(100 - 1.12 * 2 * 10)
    assert engine.player.energy == engine.player.health
    assert engine.player.safe_time_remaining == 3000
    assert engine.state.health_impact.current_exposure == 112


def test_negative_tick_raises():
    with pytest.raises(ValueError):
        make_engine().tick(-1)


def test_trajectory_decays_toward_baseline():
    engine = make_engine(40.0)
    engine.apply_action(make_action(parcel=make_parcel()))

    trajectory = engine.predict_trajectory()

    assert len(trajectory) == 24
    assert trajectory[0].pm25 == pytest.approx(40.0 - 2.0 * math.exp(-1 / 12))
    assert trajectory[-1].pm25 > trajectory[0].pm25
    assert engine.state.predicted_trajectory == trajectory
    assert engine.current_reading().source == "simulated"


def test_score_rounds_half_up():
    engine = make_engine(40.0)
    engine.apply_action(make_action(parcel=make_parcel()))
    # improvement 5 -> 50, time bonus 1440, efficiency 5 * 5
    assert engine.calculate_score() == 1515


def test_reset_restores_initial_player_and_cooldowns():
    engine = make_engine(40.0)
    engine.apply_action(make_action(parcel=make_parcel()))
    engine.reset()
    assert engine.player.credits == 100
    assert engine.state.actions_applied == []
    assert engine.cooldown_remaining("plant_tree") == 0

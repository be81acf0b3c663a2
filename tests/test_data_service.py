"""Tests for remote CleanSpace operations and queue delivery."""

import pytest

from cleanspace.auth import AuthSession, AuthUser
from cleanspace.data_service import CACHE_TABLE, DataService
from cleanspace.errors import PermanentRemoteError, TransientRemoteError
from cleanspace.remote_store import InMemoryRemoteStore
from cleanspace.schemas import QueuedAction


def make_service(clock, user=None):
    remote = InMemoryRemoteStore()
    auth = AuthSession(user)
    return DataService(remote, auth, clock=clock), remote, auth


def make_user(**profile) -> AuthUser:
    return AuthUser(id="user-1", email="player@example.com", profile=profile)


@pytest.mark.asyncio
async def test_deliver_telemetry_without_user(clock):
    service, remote, _ = make_service(clock)

    await service.deliver(QueuedAction(kind="telemetry", payload={"event_type": "app_open"}))

    row = remote.tables["telemetry"][0]
    assert row["event_type"] == "app_open"
    assert row["user_id"] is None
    assert row["timestamp"] == clock().isoformat()


@pytest.mark.asyncio
async def test_deliver_requires_user_for_scoped_tables(clock):
    service, remote, _ = make_service(clock)
    action = QueuedAction(kind="achievement", payload={"achievement_type": "t", "title": "T"})

    with pytest.raises(TransientRemoteError, match="not authenticated"):
        await service.deliver(action)
    assert "achievements" not in remote.tables


@pytest.mark.asyncio
async def test_malformed_payload_is_permanent(clock):
    service, _, _ = make_service(clock, make_user())
    action = QueuedAction(kind="achievement", payload={"title": "no type"})

    with pytest.raises(PermanentRemoteError):
        await service.deliver(action)


@pytest.mark.asyncio
async def test_achievement_awards_xp_and_level(clock):
    user = make_user(total_xp=950)
    service, remote, auth = make_service(clock, user)
    remote.tables["profiles"] = [{"id": "user-1", "total_xp": 950, "level": 1}]
    events = []
    auth.subscribe(lambda event, current: events.append(event))

    await service.deliver(
        QueuedAction(
            kind="achievement",
            payload={"achievement_type": "clean_air", "title": "Clean Air", "points_earned": 100},
        )
    )

    assert remote.tables["achievements"][0]["user_id"] == "user-1"
    assert remote.tables["profiles"][0]["total_xp"] == 1050
    assert remote.tables["profiles"][0]["level"] == 2
    assert auth.user.profile["level"] == 2
    assert events == ["USER_UPDATED"]


@pytest.mark.asyncio
async def test_xp_update_failure_does_not_fail_delivery(clock):
    service, remote, _ = make_service(clock, make_user())

    # No profile row: the XP update fails but the achievement is kept
    await service.deliver(
        QueuedAction(kind="achievement", payload={"achievement_type": "a", "title": "A", "points_earned": 5})
    )
    assert len(remote.tables["achievements"]) == 1


@pytest.mark.asyncio
async def test_game_session_create_then_update(clock):
    service, remote, _ = make_service(clock, make_user())

    await service.deliver(QueuedAction(kind="game_session", payload={"status": "active", "score": 0}))
    session_id = remote.tables["game_sessions"][0]["id"]

    await service.deliver(
        QueuedAction(kind="game_session", payload={"id": session_id, "status": "completed", "score": 420})
    )

    rows = await service.get_user_game_sessions()
    assert len(rows) == 1
    assert rows[0]["status"] == "completed"
    assert rows[0]["score"] == 420


@pytest.mark.asyncio
async def test_mission_progress_update_targets_user_and_mission(clock):
    service, remote, _ = make_service(clock, make_user())
    remote.tables["mission_progress"] = [
        {"user_id": "user-1", "mission_id": "m1", "progress": 10},
        {"user_id": "user-2", "mission_id": "m1", "progress": 10},
    ]

    await service.deliver(
        QueuedAction(kind="mission_progress", payload={"mission_id": "m1", "progress": 75.0})
    )

    assert remote.tables["mission_progress"][0]["progress"] == 75.0
    assert remote.tables["mission_progress"][1]["progress"] == 10


@pytest.mark.asyncio
async def test_environmental_cache_expires(clock):
    service, remote, _ = make_service(clock)

    await service.cache_environmental_data(
        "realtime_aqi", "realtime_aqi_40.71_-74.01", {"aqi": 112}, ttl_seconds=600, metadata={"source": "open_meteo"}
    )
    row = await service.get_cached_environmental_data("realtime_aqi", "realtime_aqi_40.71_-74.01")
    assert row is not None
    assert row.data == {"aqi": 112}
    assert row.metadata["source"] == "open_meteo"

    clock.advance(seconds=601)
    assert await service.get_cached_environmental_data("realtime_aqi", "realtime_aqi_40.71_-74.01") is None
    assert len(remote.tables[CACHE_TABLE]) == 1


@pytest.mark.asyncio
async def test_subscriptions_and_leaderboard(clock):
    service, remote, _ = make_service(clock, make_user())
    remote.tables["leaderboard"] = [
        {"username": "b", "global_rank": 2},
        {"username": "a", "global_rank": 1},
    ]
    received = []
    subscription = await service.subscribe_to_achievements("user-1", received.append)

    await remote.insert_row("achievements", {"user_id": "user-1", "title": "Live"})
    await subscription.unsubscribe()

    assert [row["username"] for row in await service.get_leaderboard()] == ["a", "b"]
    assert received[0]["new"]["title"] == "Live"

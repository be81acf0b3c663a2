"""End-to-end tests through the composed AppContext."""

import json

import pytest

from cleanspace import providers
from cleanspace.auth import AuthUser
from cleanspace.config import Config
from cleanspace.context import AppContext
from cleanspace.providers import OpenMeteoAirQualityProvider
from cleanspace.remote_store import InMemoryRemoteStore
from cleanspace.storage import InMemoryStorage


class LocalConfig(Config):
    SUPABASE_URL = None
    SUPABASE_KEY = None
    LLM_PROVIDER = None
    LLM_MODEL = None
    MAX_RETRIES = 3
    RETRY_BACKOFF_SECONDS = 0.0
    SYNC_INTERVAL_SECONDS = 30.0
    LOCATION_PRECISION = 2


def stub_open_meteo(monkeypatch, pm25=40.0):
    requests = []

    def fake_get(url, headers, timeout, provider):
        requests.append(url)
        return json.dumps({"current": {"pm2_5": pm25, "pm10": 60.0}})

    monkeypatch.setattr(providers, "_http_get", fake_get)
    return requests


def build(storage=None, remote=None, online=True) -> AppContext:
    return AppContext.build(
        LocalConfig,
        storage=storage or InMemoryStorage(),
        remote=remote or InMemoryRemoteStore(),
        providers=[OpenMeteoAirQualityProvider()],
        online=online,
    )


def test_build_rejects_half_configured_supabase():
    class Broken(LocalConfig):
        SUPABASE_URL = "https://example.supabase.co"

    with pytest.raises(ValueError):
        AppContext.build(Broken, storage=InMemoryStorage())


def test_build_defaults_to_in_memory_remote():
    ctx = AppContext.build(LocalConfig, storage=InMemoryStorage(), providers=[])
    assert isinstance(ctx.remote, InMemoryRemoteStore)
    assert not ctx.assistant.configured


@pytest.mark.asyncio
async def test_new_york_reading_end_to_end(monkeypatch, new_york):
    requests = stub_open_meteo(monkeypatch)
    ctx = build()
    await ctx.start()
    try:
        reading = await ctx.gateway.get("realtime_aqi", new_york)
        report = await ctx.gateway.environmental_report(new_york)
    finally:
        await ctx.close()

    assert reading.data["aqi"] == 112
    assert reading.is_real
    assert report.health_precautions.level == "unhealthy_sensitive"
    assert report.health_precautions.mask_required
    # The report's air quality came from the remote cache
    assert len(requests) == 1
    assert not ctx.coordinator.running


@pytest.mark.asyncio
async def test_offline_play_syncs_after_restart(monkeypatch, new_york):
    stub_open_meteo(monkeypatch)
    storage = InMemoryStorage()
    remote = InMemoryRemoteStore()

    ctx = build(storage, remote, online=False)
    await ctx.start()
    await ctx.session.start(new_york)
    assert ctx.session.snapshot.source == "synthetic"
    assert "You're offline" in ctx.coordinator.status_message()
    queued = len(ctx.queue)
    assert queued == 1
    await ctx.close()

    # Relaunch online with a signed-in player: the queued telemetry is flushed on start
    ctx = build(storage, remote, online=True)
    ctx.auth.handle_auth_event("SIGNED_IN", AuthUser(id="user-1"))
    assert len(ctx.queue) == queued
    await ctx.start()
    try:
        assert len(ctx.queue) == 0
        assert remote.tables["telemetry"][0]["event_type"] == "session_started"
        assert ctx.coordinator.status().queued_count == 0
    finally:
        await ctx.close()

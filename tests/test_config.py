"""Tests for environment-driven configuration."""

import pytest

from cleanspace.config import Config, _env_key


class Valid(Config):
    SUPABASE_URL = None
    SUPABASE_KEY = None
    LLM_PROVIDER = None
    LLM_MODEL = None
    MAX_RETRIES = 3
    SYNC_INTERVAL_SECONDS = 30.0
    LOCATION_PRECISION = 2


def test_valid_configuration_passes():
    Valid.validate()


@pytest.mark.parametrize(
    "overrides",
    [
        {"SUPABASE_URL": "https://x.supabase.co"},
        {"LLM_PROVIDER": "openai"},
        {"MAX_RETRIES": 0},
        {"SYNC_INTERVAL_SECONDS": 0},
        {"LOCATION_PRECISION": 7},
    ],
)
def test_inconsistent_configuration_raises(overrides):
    broken = type("Broken", (Valid,), overrides)
    with pytest.raises(ValueError):
        broken.validate()


def test_demo_keys_count_as_unset(monkeypatch):
    monkeypatch.setenv("AQICN_API_KEY", "DEMO_KEY")
    monkeypatch.setenv("FIRMS_API_KEY", "")
    monkeypatch.setenv("PURPLEAIR_API_KEY", "real-key")
    assert _env_key("AQICN_API_KEY") is None
    assert _env_key("FIRMS_API_KEY") is None
    assert _env_key("PURPLEAIR_API_KEY") == "real-key"


def test_display_lists_configured_providers():
    configured = type("Configured", (Valid,), {"AQICN_API_KEY": "k", "FIRMS_API_KEY": None, "PURPLEAIR_API_KEY": None, "OPENAQ_API_KEY": None})
    text = configured.display()
    assert "Remote store: in-memory" in text
    assert "Keyed providers: aqicn" in text
    assert "fallback only" in text

"""
CleanSpace Configuration

Loads configuration from environment variables with sensible defaults.
"""

import os
from pathlib import Path
from dotenv import load_dotenv

# Load .env file if it exists
load_dotenv()


def _env_key(name: str) -> str | None:
    """Return an API key, treating empty values and DEMO_KEY as unset."""
    value = os.getenv(name)
    if not value or value == "DEMO_KEY":
        return None
    return value


class Config:
    """Application configuration loaded from environment variables."""

    # Remote store (Supabase)
    SUPABASE_URL: str | None = os.getenv("SUPABASE_URL")
    SUPABASE_KEY: str | None = os.getenv("SUPABASE_KEY")

    # Assistant LLM configuration. Leave unset to use the local fallback only.
    LLM_PROVIDER: str | None = os.getenv("LLM_PROVIDER")
    LLM_MODEL: str | None = os.getenv("LLM_MODEL")

    # Environmental data provider keys
    AQICN_API_KEY: str | None = _env_key("AQICN_API_KEY")
    PURPLEAIR_API_KEY: str | None = _env_key("PURPLEAIR_API_KEY")
    FIRMS_API_KEY: str | None = _env_key("FIRMS_API_KEY")
    NASA_API_KEY: str | None = _env_key("NASA_API_KEY")
    OPENAQ_API_KEY: str | None = _env_key("OPENAQ_API_KEY")

    # Local durable storage
    STORAGE_PATH: Path = Path(
        os.getenv("CLEANSPACE_STORAGE_PATH", str(Path.home() / ".cleanspace" / "storage.json"))
    )

    # Sync behaviour
    SYNC_INTERVAL_SECONDS: float = float(os.getenv("SYNC_INTERVAL_SECONDS", "30"))
    MAX_RETRIES: int = int(os.getenv("MAX_RETRIES", "3"))
    # 0 keeps the original behaviour: a failed action is retried on the next drain
    RETRY_BACKOFF_SECONDS: float = float(os.getenv("RETRY_BACKOFF_SECONDS", "0"))
    STALE_AFTER_SECONDS: float = float(os.getenv("STALE_AFTER_SECONDS", "3600"))

    # Gateway behaviour
    PROVIDER_TIMEOUT_SECONDS: float = float(os.getenv("PROVIDER_TIMEOUT_SECONDS", "10"))
    LOCATION_PRECISION: int = int(os.getenv("LOCATION_PRECISION", "2"))

    # Logging
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

    @classmethod
    def validate(cls) -> None:
        """Validate configuration and raise errors for inconsistent values."""
        if bool(cls.SUPABASE_URL) != bool(cls.SUPABASE_KEY):
            raise ValueError(
                "SUPABASE_URL and SUPABASE_KEY must be set together. "
                "Leave both unset to run against the in-memory store."
            )

        if bool(cls.LLM_PROVIDER) != bool(cls.LLM_MODEL):
            raise ValueError(
                "LLM_PROVIDER and LLM_MODEL must be set together "
                "(e.g., LLM_PROVIDER=openai LLM_MODEL=gpt-4o-mini)."
            )

        if cls.MAX_RETRIES < 1:
            raise ValueError("MAX_RETRIES must be at least 1")

        if cls.SYNC_INTERVAL_SECONDS <= 0:
            raise ValueError("SYNC_INTERVAL_SECONDS must be positive")

        if not 0 <= cls.LOCATION_PRECISION <= 6:
            raise ValueError("LOCATION_PRECISION must be between 0 and 6 decimals")

    @classmethod
    def display(cls) -> str:
        """Return a formatted string showing current configuration."""
        providers = [
            name
            for name, key in (
                ("aqicn", cls.AQICN_API_KEY),
                ("purpleair", cls.PURPLEAIR_API_KEY),
                ("firms", cls.FIRMS_API_KEY),
                ("openaq", cls.OPENAQ_API_KEY),
            )
            if key
        ]
        lines = [
            "CleanSpace Configuration:",
            f"  Remote store: {'supabase' if cls.SUPABASE_URL else 'in-memory'}",
            f"  Assistant LLM: {cls.LLM_PROVIDER or 'fallback only'} {cls.LLM_MODEL or ''}".rstrip(),
            f"  Keyed providers: {', '.join(providers) or 'none'}",
            f"  Storage: {cls.STORAGE_PATH}",
            f"  Sync interval: {cls.SYNC_INTERVAL_SECONDS:g}s, max retries: {cls.MAX_RETRIES}",
        ]
        return "\n".join(lines)

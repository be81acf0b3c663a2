"""Logging utilities for CleanSpace services.

Provides color-coded output to distinguish sync, provider, and failure paths.
"""

import os
from enum import Enum


class Color(Enum):
    """ANSI color codes for terminal output."""

    BLUE = "\033[94m"      # Sync and queue operations
    YELLOW = "\033[93m"    # External provider and LLM calls
    RED = "\033[91m"       # Errors and retries
    GREEN = "\033[92m"     # Success/completion
    CYAN = "\033[96m"      # Info/metadata

    # Formatting
    BOLD = "\033[1m"
    RESET = "\033[0m"


_LEVELS = {"DEBUG": 10, "INFO": 20, "WARNING": 30, "ERROR": 40}


def colored(text: str, color: Color, bold: bool = False) -> str:
    """Wrap text in ANSI color codes if colors are enabled.

    Args:
        text: Text to colorize
        color: Color to apply
        bold: Whether to make text bold

    Returns:
        Colorized text if CLEANSPACE_NO_COLOR is not set, otherwise plain text
    """
    if os.getenv("CLEANSPACE_NO_COLOR"):
        return text

    prefix = color.value
    if bold:
        prefix = Color.BOLD.value + prefix

    return f"{prefix}{text}{Color.RESET.value}"


def _enabled(level: str) -> bool:
    configured = os.getenv("LOG_LEVEL", "INFO").upper()
    return _LEVELS.get(level, 20) >= _LEVELS.get(configured, 20)


def log_sync(message: str) -> None:
    """Log a queue/sync operation (blue)."""
    if _enabled("DEBUG"):
        print(colored(f"{LOG_TAG_SYNC} {message}", Color.BLUE))


def log_provider(message: str) -> None:
    """Log an external provider or LLM call (yellow)."""
    if _enabled("DEBUG"):
        print(colored(f"{LOG_TAG_PROVIDER} {message}", Color.YELLOW))


def log_error(message: str) -> None:
    """Log an error or retry (red)."""
    if _enabled("WARNING"):
        print(colored(f"{LOG_TAG_ERROR} {message}", Color.RED))


def log_success(message: str) -> None:
    """Log a success (green)."""
    if _enabled("INFO"):
        print(colored(f"{LOG_TAG_SUCCESS} {message}", Color.GREEN))


def log_info(message: str) -> None:
    """Log metadata/info (cyan)."""
    if _enabled("INFO"):
        print(colored(f"{LOG_TAG_INFO} {message}", Color.CYAN))


# Markers for operation types (color-blind accessible)
LOG_TAG_SYNC = "[•]"
LOG_TAG_PROVIDER = "[API]"
LOG_TAG_ERROR = "[!]"
LOG_TAG_SUCCESS = "[✓]"
LOG_TAG_INFO = "[i]"

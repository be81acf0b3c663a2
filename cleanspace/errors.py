"""Exception types shared across CleanSpace services."""

from __future__ import annotations

from typing import Any


class CleanSpaceError(Exception):
    """Base class for library errors."""


class RemoteStoreError(CleanSpaceError):
    """Raised when a RemoteStore call fails.

    ``transient`` separates failures worth retrying (network, 5xx, timeout)
    from ones that will fail again unchanged (validation, auth).
    """

    def __init__(self, message: str, *, transient: bool = True, code: str | None = None) -> None:
        self.transient = transient
        self.code = code
        super().__init__(message)


class TransientRemoteError(RemoteStoreError):
    def __init__(self, message: str, *, code: str | None = None) -> None:
        super().__init__(message, transient=True, code=code)


class PermanentRemoteError(RemoteStoreError):
    def __init__(self, message: str, *, code: str | None = None) -> None:
        super().__init__(message, transient=False, code=code)


class ProviderError(CleanSpaceError):
    """Raised by an environmental data provider when a fetch fails."""

    def __init__(self, provider: str, message: str) -> None:
        self.provider = provider
        super().__init__(f"{provider}: {message}")


class ProviderNotConfigured(ProviderError):
    """Raised when a provider is asked to fetch without its credentials."""

    def __init__(self, provider: str) -> None:
        super().__init__(provider, "provider is not configured")


class OfflineError(CleanSpaceError):
    """Raised when an operation needs connectivity while offline."""


class PayloadValidationError(CleanSpaceError):
    """Raised when a queued payload does not match its kind's schema.

    Carries the offending kind and the validation issues so callers can show
    them without unpacking pydantic internals.
    """

    def __init__(self, kind: str, issues: list[str], payload: Any = None) -> None:
        self.kind = kind
        self.issues = issues
        self.payload = payload
        lines = [f"Invalid payload for queued action kind '{kind}':"]
        lines.extend(f"  - {issue}" for issue in issues)
        super().__init__("\n".join(lines))

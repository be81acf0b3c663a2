"""Authentication state as an observable value.

Sign-in itself is delegated to an external identity provider. This module only
tracks who is signed in and notifies subscribers when that changes, fed by the
provider's native change events (for Supabase: ``auth.on_auth_state_change``).
"""

from __future__ import annotations

from typing import Any, Callable, Dict, List, Optional

from pydantic import BaseModel, Field

from .logging_utils import log_error, log_info

AUTH_EVENTS = ("INITIAL_SESSION", "SIGNED_IN", "SIGNED_OUT", "TOKEN_REFRESHED", "USER_UPDATED")


class AuthUser(BaseModel):
    id: str
    email: Optional[str] = None
    username: Optional[str] = None
    profile: Dict[str, Any] = Field(default_factory=dict)


AuthListener = Callable[[str, Optional[AuthUser]], None]


class AuthSession:
    """Current user plus a callback registry for auth changes."""

    def __init__(self, user: Optional[AuthUser] = None):
        self._user = user
        self._listeners: List[AuthListener] = []

    @property
    def user(self) -> Optional[AuthUser]:
        return self._user

    @property
    def user_id(self) -> Optional[str]:
        return self._user.id if self._user else None

    @property
    def is_authenticated(self) -> bool:
        return self._user is not None

    def subscribe(self, listener: AuthListener) -> Callable[[], None]:
        """Register ``listener(event, user)``; returns a function that unregisters it."""

        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def handle_auth_event(self, event: str, user: Optional[AuthUser]) -> None:
        """Apply an identity-provider event and notify listeners."""

        if event not in AUTH_EVENTS:
            raise ValueError(f"Unknown auth event: {event}")

        self._user = None if event == "SIGNED_OUT" else user
        log_info(f"Auth event {event} (user: {self.user_id or 'anonymous'})")

        for listener in list(self._listeners):
            try:
                listener(event, self._user)
            except Exception as exc:
                log_error(f"Auth listener failed on {event}: {exc}")

    def update_profile(self, patch: Dict[str, Any]) -> None:
        if self._user is None:
            return
        self._user.profile.update(patch)
        self.handle_auth_event("USER_UPDATED", self._user)


def user_from_supabase(user: Any) -> Optional[AuthUser]:
    """Convert a Supabase ``User`` into an AuthUser."""

    if user is None:
        return None
    metadata = dict(getattr(user, "user_metadata", None) or {})
    return AuthUser(
        id=str(user.id),
        email=getattr(user, "email", None),
        username=metadata.get("username"),
        profile=metadata,
    )


def bind_supabase_auth(client: Any, session: AuthSession) -> Callable[[], None]:
    """Feed ``session`` from a Supabase client's auth change events.

    Returns a function that removes the listener.
    """

    def _on_change(event: Any, supabase_session: Any) -> None:
        name = getattr(event, "value", event)
        if name not in AUTH_EVENTS:
            # MFA and password-recovery events do not change who is signed in
            return
        user = getattr(supabase_session, "user", None) if supabase_session else None
        session.handle_auth_event(name, user_from_supabase(user))

    subscription = client.auth.on_auth_state_change(_on_change)
    return subscription.unsubscribe

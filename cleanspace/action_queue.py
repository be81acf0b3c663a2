"""
ActionQueue: durable, ordered, at-least-once delivery of pending mutations.

Every mutating game event (telemetry, achievements, session and mission
updates) goes through the queue. ``enqueue`` validates the payload against the
schema for its kind and writes the whole queue to local storage before it
returns, so a restart never loses pending work. ``drain`` attempts delivery
of every queued action in FIFO order.

Delivery semantics:
- Isolation: a failure is caught per action; the remaining actions are still
  attempted in the same drain
- Retry ceiling: each failure increments ``attempts``; at ``max_retries`` the
  action is dropped, counted, and never resurfaced
- Permanent errors (RemoteStoreError with ``transient=False``) drop the
  action after the first attempt
- Optional backoff: with ``retry_backoff_seconds > 0`` a failed action is
  skipped by drains until ``backoff * 2**(attempts-1)`` seconds have passed
- Reentrancy: a drain started while another is in flight returns immediately
  with ``skipped=True``; this flag is the only mutual exclusion needed under
  a single event loop
"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional, Set, Union

from pydantic import BaseModel, TypeAdapter, ValidationError

from .errors import PayloadValidationError, RemoteStoreError
from .logging_utils import log_error, log_success, log_sync
from .schemas import PAYLOAD_MODELS, DrainResult, QueuedAction, QueuedActionKind, utc_now
from .storage import KeyValueStorage

STORAGE_KEY = "cleanspace_action_queue"
MAX_RETRIES = 3

Deliver = Callable[[QueuedAction], Awaitable[Any]]

_QUEUE_ADAPTER = TypeAdapter(List[QueuedAction])


def _validation_issues(error: ValidationError) -> list[str]:
    issues = []
    for err in error.errors(include_url=False):
        loc = ".".join(str(part) for part in err.get("loc", [])) or "root"
        issues.append(f"{loc}: {err.get('msg', 'validation error')}")
    return issues or ["root: payload did not match the expected schema"]


class ActionQueue:
    """Durable FIFO of QueuedActions with bounded retry."""

    def __init__(
        self,
        storage: KeyValueStorage,
        deliver: Deliver,
        *,
        max_retries: int = MAX_RETRIES,
        retry_backoff_seconds: float = 0.0,
        clock: Callable[[], datetime] = utc_now,
    ):
        if max_retries < 1:
            raise ValueError("max_retries must be at least 1")
        self.storage = storage
        self.deliver = deliver
        self.max_retries = max_retries
        self.retry_backoff_seconds = retry_backoff_seconds
        self._clock = clock
        self._actions: List[QueuedAction] = self._load()
        self._draining = False
        # Actions removed without ever being delivered (this process only)
        self.dropped_count = 0

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def _load(self) -> List[QueuedAction]:
        raw = self.storage.get(STORAGE_KEY)
        if raw is None:
            return []
        try:
            return _QUEUE_ADAPTER.validate_json(raw)
        except ValidationError as exc:
            log_error(f"Action queue storage is corrupted, starting empty ({exc.error_count()} issue(s))")
            self.storage.remove(STORAGE_KEY)
            return []

    def _save(self) -> None:
        try:
            self.storage.set(STORAGE_KEY, _QUEUE_ADAPTER.dump_json(self._actions).decode("utf-8"))
        except OSError as exc:
            log_error(f"Could not persist action queue: {exc}")

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def __len__(self) -> int:
        return len(self._actions)

    @property
    def is_draining(self) -> bool:
        return self._draining

    def pending(self) -> List[QueuedAction]:
        """Snapshot of queued actions in delivery order."""

        return [action.model_copy(deep=True) for action in self._actions]

    def enqueue(
        self,
        kind: QueuedActionKind,
        payload: Union[Mapping[str, Any], BaseModel],
    ) -> str:
        """Validate and durably queue a mutation; returns the action id.

        Raises:
            PayloadValidationError: If ``kind`` is unknown or ``payload`` does
                not match the schema registered for it
        """

        model = PAYLOAD_MODELS.get(kind)
        if model is None:
            raise PayloadValidationError(kind, [f"unknown kind (expected one of {sorted(PAYLOAD_MODELS)})"])

        raw = payload.model_dump(mode="json") if isinstance(payload, BaseModel) else dict(payload)
        try:
            validated = model.model_validate(raw)
        except ValidationError as exc:
            raise PayloadValidationError(kind, _validation_issues(exc), raw) from exc

        action = QueuedAction(
            kind=kind,
            payload=validated.model_dump(mode="json", exclude_none=True),
            enqueued_at=self._clock(),
        )
        self._actions.append(action)
        self._save()
        log_sync(f"Queued {kind} action {action.id} ({len(self._actions)} pending)")
        return action.id

    def remove(self, action_id: str) -> bool:
        before = len(self._actions)
        self._actions = [action for action in self._actions if action.id != action_id]
        if len(self._actions) != before:
            self._save()
            return True
        return False

    def clear(self) -> None:
        self._actions = []
        self._save()

    async def drain(self) -> DrainResult:
        """Attempt delivery of every queued action once, in FIFO order."""

        if self._draining:
            return DrainResult(skipped=True)
        if not self._actions:
            return DrainResult()

        self._draining = True
        now = self._clock()
        result = DrainResult()
        finished: Set[str] = set()
        # Actions enqueued while this drain awaits are left for the next one
        batch = list(self._actions)

        try:
            for action in batch:
                if action.next_attempt_at is not None and action.next_attempt_at > now:
                    continue
                try:
                    await self.deliver(action)
                except RemoteStoreError as exc:
                    self._record_failure(action, exc, exc.transient, now, result, finished)
                except Exception as exc:  # unknown errors count as transient
                    self._record_failure(action, exc, True, now, result, finished)
                else:
                    result.succeeded.append(action.id)
                    finished.add(action.id)
        finally:
            self._actions = [action for action in self._actions if action.id not in finished]
            self._save()
            self._draining = False

        if result.attempted:
            log_success(
                f"Drain complete: {len(result.succeeded)} synced, "
                f"{len(result.failed)} failed, {len(result.dropped)} dropped, "
                f"{len(self._actions)} pending"
            )
        return result

    def _record_failure(
        self,
        action: QueuedAction,
        exc: Exception,
        transient: bool,
        now: datetime,
        result: DrainResult,
        finished: Set[str],
    ) -> None:
        action.attempts += 1
        result.failed.append(action.id)

        if not transient or action.attempts >= self.max_retries:
            reason = "permanent error" if not transient else f"{action.attempts} failed attempts"
            log_error(f"Dropping {action.kind} action {action.id} after {reason}: {exc}")
            finished.add(action.id)
            result.dropped.append(action.id)
            self.dropped_count += 1
            return

        if self.retry_backoff_seconds > 0:
            delay = self.retry_backoff_seconds * 2 ** (action.attempts - 1)
            action.next_attempt_at = now + timedelta(seconds=delay)
        log_error(
            f"Failed to sync {action.kind} action {action.id} "
            f"(attempt {action.attempts}/{self.max_retries}): {exc}"
        )

    def stats(self) -> Dict[str, int]:
        return {
            "pending": len(self._actions),
            "dropped": self.dropped_count,
        }

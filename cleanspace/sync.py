"""
SyncCoordinator: reconciles the local action queue with the remote store.

Two states, Online and Offline. Drains are triggered by:
1. The Offline -> Online transition (immediately)
2. A periodic timer while Online (default every 30s)
3. The app regaining the foreground while Online
4. An explicit ``force_sync()`` (raises OfflineError while Offline)
5. ``queue_action()`` while Online

A drain already in flight is never cancelled by going offline; in-flight
deliveries finish or fail on their own and only the next scheduled drain is
skipped. The queue's draining flag is the only mutual exclusion.
"""

from __future__ import annotations

import asyncio
from contextlib import suppress
from datetime import datetime
from typing import Any, Callable, List, Mapping, Optional, Union

from pydantic import BaseModel

from .action_queue import ActionQueue
from .errors import OfflineError
from .local_cache import LocalCache
from .logging_utils import log_error, log_info, log_sync
from .schemas import DrainResult, QueuedActionKind, SyncStatus, utc_now

DEFAULT_SYNC_INTERVAL_SECONDS = 30.0

StatusListener = Callable[[SyncStatus], None]


class SyncCoordinator:
    """Connectivity state machine driving ActionQueue drains."""

    def __init__(
        self,
        queue: ActionQueue,
        cache: LocalCache,
        *,
        online: bool = True,
        interval_seconds: float = DEFAULT_SYNC_INTERVAL_SECONDS,
        clock: Callable[[], datetime] = utc_now,
    ):
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")
        self.queue = queue
        self.cache = cache
        self.interval_seconds = interval_seconds
        self._clock = clock
        self._online = online
        self._timer: Optional[asyncio.Task] = None
        self._listeners: List[StatusListener] = []
        self.last_drain_at: Optional[datetime] = None
        self.last_result: Optional[DrainResult] = None

    # ------------------------------------------------------------------
    # Connectivity
    # ------------------------------------------------------------------

    @property
    def online(self) -> bool:
        return self._online

    @property
    def offline(self) -> bool:
        return not self._online

    @property
    def sync_in_progress(self) -> bool:
        return self.queue.is_draining

    async def set_online(self) -> Optional[DrainResult]:
        """Handle a connectivity-restored signal; drains on Offline -> Online."""

        if self._online:
            return None
        self._online = True
        log_info("Connection restored, syncing queued actions")
        self._notify()
        return await self._drain("reconnect")

    def set_offline(self) -> None:
        if not self._online:
            return
        self._online = False
        log_info(f"Connection lost, {len(self.queue)} action(s) will sync later")
        self._notify()

    async def on_visibility_change(self, visible: bool) -> Optional[DrainResult]:
        if visible and self._online:
            return await self._drain("foreground")
        return None

    # ------------------------------------------------------------------
    # Periodic timer
    # ------------------------------------------------------------------

    @property
    def running(self) -> bool:
        return self._timer is not None and not self._timer.done()

    def start(self) -> None:
        """Start the periodic drain timer on the running event loop."""

        if self.running:
            return
        self._timer = asyncio.get_running_loop().create_task(self._periodic())
        log_sync(f"Periodic sync every {self.interval_seconds:g}s")

    async def stop(self) -> None:
        timer, self._timer = self._timer, None
        if timer is None:
            return
        timer.cancel()
        with suppress(asyncio.CancelledError):
            await timer

    async def _periodic(self) -> None:
        while True:
            await asyncio.sleep(self.interval_seconds)
            if not self._online or self.queue.is_draining:
                continue
            try:
                await self._drain("periodic")
            except Exception as exc:
                log_error(f"Periodic sync failed: {exc}")

    # ------------------------------------------------------------------
    # Draining
    # ------------------------------------------------------------------

    async def force_sync(self) -> DrainResult:
        """Drain now.

        Raises:
            OfflineError: If called while offline
        """

        if not self._online:
            raise OfflineError("Cannot sync while offline")
        result = await self._drain("manual")
        return result if result is not None else DrainResult(skipped=True)

    async def queue_action(
        self,
        kind: QueuedActionKind,
        payload: Union[Mapping[str, Any], BaseModel],
    ) -> str:
        """Enqueue a mutation and, when online, try to deliver it right away."""

        action_id = self.queue.enqueue(kind, payload)
        if self._online:
            await self._drain("enqueue")
        else:
            self._notify()
        return action_id

    async def _drain(self, reason: str) -> Optional[DrainResult]:
        if not self._online or len(self.queue) == 0:
            return None
        if self.queue.is_draining:
            log_sync(f"Sync ({reason}) skipped: drain already in progress")
            return None

        log_sync(f"Sync ({reason}): draining {len(self.queue)} action(s)")
        result = await self.queue.drain()
        if not result.skipped:
            self.last_drain_at = self._clock()
            self.last_result = result
            self._notify()
        return result

    # ------------------------------------------------------------------
    # Status
    # ------------------------------------------------------------------

    def subscribe(self, listener: StatusListener) -> Callable[[], None]:
        """Register ``listener(status)``; returns a function that unregisters it."""

        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def _notify(self) -> None:
        if not self._listeners:
            return
        status = self.status()
        for listener in list(self._listeners):
            try:
                listener(status)
            except Exception as exc:
                log_error(f"Sync status listener failed: {exc}")

    def status(self) -> SyncStatus:
        now = self._clock()
        return SyncStatus(
            offline=not self._online,
            queued_count=len(self.queue),
            last_sync_at=self.cache.last_sync,
            has_cached_data=self.cache.has_data,
            sync_in_progress=self.queue.is_draining,
            data_age_seconds=self.cache.data_age(now),
            is_stale=self.cache.is_stale(now),
            dropped_count=self.queue.dropped_count,
            location=self.cache.location,
        )

    def status_message(self) -> str:
        """User-facing offline notice; empty while online."""

        if self._online:
            return ""

        queued = len(self.queue)
        has_data = self.cache.has_data

        if queued > 0 and has_data:
            return f"You're offline. Using cached data and {queued} actions will sync when online."
        if queued > 0:
            return f"You're offline. {queued} actions will sync when online."
        if has_data:
            last_sync = self.cache.last_sync
            since = last_sync.astimezone().strftime("%H:%M:%S") if last_sync else "an earlier session"
            return f"You're offline. Using cached data from {since}."
        return "You're offline. Limited functionality available."

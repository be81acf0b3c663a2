"""
AppContext: the explicitly constructed object graph of a CleanSpace client.

One instance of each component, wired together in ``build``. Tests pass
fakes (storage, remote store, providers) instead of patching modules.

Usage pattern:
    ctx = AppContext.build(Config)
    await ctx.start()
    reading = await ctx.gateway.get("realtime_aqi", location)
    await ctx.close()
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Iterable, List, Optional

from .action_queue import ActionQueue
from .assistant import GameAssistant
from .auth import AuthSession, bind_supabase_auth
from .config import Config
from .data_service import DataService
from .gateway import EnvironmentalDataGateway
from .local_cache import LocalCache
from .logging_utils import log_info
from .providers import Provider, default_providers
from .remote_store import InMemoryRemoteStore, RemoteStore, SupabaseRemoteStore
from .schemas import GameConfig
from .session import GameSessionRunner
from .simulation import SimulationEngine
from .storage import JsonFileStorage, KeyValueStorage
from .sync import SyncCoordinator


@dataclass
class AppContext:
    config: Any
    storage: KeyValueStorage
    remote: RemoteStore
    auth: AuthSession
    data_service: DataService
    local_cache: LocalCache
    queue: ActionQueue
    coordinator: SyncCoordinator
    gateway: EnvironmentalDataGateway
    engine: SimulationEngine
    session: GameSessionRunner
    assistant: GameAssistant
    _teardown: List[Callable[[], None]] = field(default_factory=list, repr=False)

    @classmethod
    def build(
        cls,
        config: Any = Config,
        *,
        storage: Optional[KeyValueStorage] = None,
        remote: Optional[RemoteStore] = None,
        providers: Optional[Iterable[Provider]] = None,
        game_config: Optional[GameConfig] = None,
        online: bool = True,
    ) -> "AppContext":
        """Wire every component from ``config``; explicit arguments win."""

        config.validate()

        if storage is None:
            storage = JsonFileStorage(config.STORAGE_PATH)
        if remote is None:
            if config.SUPABASE_URL:
                remote = SupabaseRemoteStore(config.SUPABASE_URL, config.SUPABASE_KEY)
            else:
                remote = InMemoryRemoteStore()

        auth = AuthSession()
        data_service = DataService(remote, auth)
        local_cache = LocalCache(storage, stale_after_seconds=config.STALE_AFTER_SECONDS)
        queue = ActionQueue(
            storage,
            data_service.deliver,
            max_retries=config.MAX_RETRIES,
            retry_backoff_seconds=config.RETRY_BACKOFF_SECONDS,
        )
        coordinator = SyncCoordinator(
            queue,
            local_cache,
            online=online,
            interval_seconds=config.SYNC_INTERVAL_SECONDS,
        )
        gateway = EnvironmentalDataGateway(
            default_providers(config) if providers is None else providers,
            data_service=data_service,
            local_cache=local_cache,
            is_online=lambda: coordinator.online,
            precision=config.LOCATION_PRECISION,
        )
        engine = SimulationEngine(game_config)
        session = GameSessionRunner(engine, gateway, coordinator, local_cache, auth)
        assistant = GameAssistant(config.LLM_PROVIDER, config.LLM_MODEL)

        return cls(
            config=config,
            storage=storage,
            remote=remote,
            auth=auth,
            data_service=data_service,
            local_cache=local_cache,
            queue=queue,
            coordinator=coordinator,
            gateway=gateway,
            engine=engine,
            session=session,
            assistant=assistant,
        )

    async def start(self) -> None:
        """Open the remote store, start periodic sync, and flush anything queued."""

        await self.remote.initialize()
        client = getattr(self.remote, "client", None)
        if isinstance(self.remote, SupabaseRemoteStore) and client is not None:
            self._teardown.append(bind_supabase_auth(client, self.auth))
        self.coordinator.start()
        log_info(f"CleanSpace started ({len(self.queue)} queued action(s))")
        if self.coordinator.online and len(self.queue):
            await self.coordinator.force_sync()

    async def close(self) -> None:
        """Stop every timer and release the remote store."""

        await self.session.stop_clock()
        await self.coordinator.stop()
        while self._teardown:
            self._teardown.pop()()
        await self.remote.close()

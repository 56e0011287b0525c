"""Main application entry-point for makerspace-dash."""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

import aiohttp
from aiohttp import web

from .adapters import BambuCloudClient, SupabaseClient
from .api import create_app
from .config import DashConfig, load_config
from .core import (
    AnnotatedPrinter,
    DescriptionStore,
    EmptyingRecord,
    FlagStore,
    IdentityProvider,
    JobSource,
    KeyedLock,
    TelemetrySource,
)
from .descriptions import JobDescriptionService
from .emptying import EmptyingTracker
from .health import HealthReporter
from .logging import configure_logging
from .refresher import IntervalRefresher
from .stores import (
    InMemoryDescriptionStore,
    InMemoryFlagStore,
    SupabaseDescriptionStore,
    SupabaseFlagStore,
)
from .token_manager import TokenCache, TokenManager

LOGGER = logging.getLogger(__name__)


class DashboardApp:
    """Wires configuration, upstream clients and services together.

    Collaborators can be injected for testing; anything not injected is built
    from the configuration when the app is opened.
    """

    def __init__(
        self,
        config: Optional[DashConfig] = None,
        *,
        telemetry: Optional[TelemetrySource] = None,
        jobs: Optional[JobSource] = None,
        flag_store: Optional[FlagStore] = None,
        description_store: Optional[DescriptionStore] = None,
        identity: Optional[IdentityProvider] = None,
    ) -> None:
        self._config = config or load_config()
        self._telemetry = telemetry
        self._jobs = jobs
        self._flag_store = flag_store
        self._description_store = description_store
        self._identity = identity

        self._session: Optional[aiohttp.ClientSession] = None
        self._supabase: Optional[SupabaseClient] = None
        self._token_cache = TokenCache()
        self.health = HealthReporter()
        self.tracker: Optional[EmptyingTracker] = None
        self.descriptions: Optional[JobDescriptionService] = None

    @property
    def config(self) -> DashConfig:
        return self._config

    async def __aenter__(self) -> "DashboardApp":
        await self.open()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def open(self) -> None:
        config = self._config
        self._session = aiohttp.ClientSession()

        if self._telemetry is None or self._jobs is None:
            cloud = BambuCloudClient(
                config.bambu,
                TokenManager(config.bambu, self._token_cache),
                session=self._session,
            )
            self._telemetry = self._telemetry or cloud
            self._jobs = self._jobs or cloud

        needs_supabase = (
            self._identity is None
            or (config.tracker.store_backend == "supabase"
                and (self._flag_store is None or self._description_store is None))
        )
        if needs_supabase and config.supabase.url:
            self._supabase = SupabaseClient(
                config.supabase,
                session=self._session,
                timeout=config.tracker.storage_timeout_seconds,
            )

        if config.tracker.store_backend == "memory":
            self._flag_store = self._flag_store or InMemoryFlagStore()
            self._description_store = self._description_store or InMemoryDescriptionStore()
        else:
            client = self._require_supabase()
            self._flag_store = self._flag_store or SupabaseFlagStore(
                client, config.supabase.emptying_table
            )
            self._description_store = self._description_store or SupabaseDescriptionStore(
                client, config.supabase.descriptions_table
            )

        if self._identity is None and self._supabase is not None:
            self._identity = self._supabase

        self.tracker = EmptyingTracker(
            self._telemetry,
            self._flag_store,
            telemetry_timeout=config.tracker.telemetry_timeout_seconds,
            storage_timeout=config.tracker.storage_timeout_seconds,
            locks=KeyedLock(),
            health=self.health,
        )
        self.descriptions = JobDescriptionService(self._description_store)
        LOGGER.debug("Services ready (store backend: %s)", config.tracker.store_backend)

    async def aclose(self) -> None:
        if self._session is not None:
            await self._session.close()
            self._session = None

    def build_web_app(self) -> web.Application:
        if self.tracker is None or self.descriptions is None:
            raise RuntimeError("DashboardApp.open() must be called first")
        if self._identity is None:
            self._identity = self._require_supabase()
        assert self._telemetry is not None and self._jobs is not None
        return create_app(
            tracker=self.tracker,
            telemetry=self._telemetry,
            jobs=self._jobs,
            descriptions=self.descriptions,
            identity=self._identity,
            health=self.health,
        )

    async def refresh_once(self) -> list[AnnotatedPrinter]:
        assert self.tracker is not None
        return await self.tracker.refresh()

    async def set_flag_once(self, printer_id: str, needs_emptying: bool) -> EmptyingRecord:
        assert self.tracker is not None
        return await self.tracker.set_flag(printer_id, needs_emptying)

    async def serve(self, *, stop_event: Optional[asyncio.Event] = None) -> None:
        """Serve the HTTP API and run the interval refresher until stopped."""
        config = self._config
        runner = web.AppRunner(self.build_web_app())
        await runner.setup()
        site = web.TCPSite(runner, config.server.host, config.server.port)
        await site.start()
        LOGGER.info(
            "makerspace-dash listening on http://%s:%s",
            config.server.host,
            config.server.port,
        )

        refresher: Optional[IntervalRefresher] = None
        if config.tracker.refresh_interval_seconds > 0:
            refresher = IntervalRefresher(
                self.refresh_once,
                interval_seconds=config.tracker.refresh_interval_seconds,
            )
            refresher.start()

        try:
            await (stop_event or asyncio.Event()).wait()
        finally:
            if refresher is not None:
                await refresher.stop()
            await runner.cleanup()

    @classmethod
    def start(cls, config: Optional[DashConfig] = None) -> None:
        instance = cls(config=config)
        configure_logging(
            instance._config.logging.level,
            log_path=instance._config.logging.path,
            log_network=instance._config.logging.log_network,
        )

        async def _main() -> None:
            async with instance:
                await instance.serve()

        try:
            asyncio.run(_main())
        except KeyboardInterrupt:
            LOGGER.info("makerspace-dash received shutdown signal")

    def _require_supabase(self) -> SupabaseClient:
        if self._supabase is None:
            # Raises with the name of the missing setting.
            self._supabase = SupabaseClient(
                self._config.supabase,
                session=self._session,
                timeout=self._config.tracker.storage_timeout_seconds,
            )
        return self._supabase

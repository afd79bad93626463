"""Wiring of storage, registry, engine and the other services."""

from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from sqlalchemy.ext.asyncio import AsyncEngine

from roleswitch.core.config import Settings
from roleswitch.core.datetime_utils import utc_now
from roleswitch.core.logging import get_logger
from roleswitch.core.scheduler import TimerScheduler, start_maintenance_jobs
from roleswitch.core.websocket import ConnectionManager
from roleswitch.db.migrations import run_migrations
from roleswitch.db.session import build_engine, build_session_maker, create_schema
from roleswitch.schemas import EngineSettings
from roleswitch.services.analytics import AnalyticsService
from roleswitch.services.data_transfer import DataTransferService
from roleswitch.services.role_registry import RoleRegistry
from roleswitch.services.session_engine import SessionEngine
from roleswitch.services.settings_manager import SettingsManager
from roleswitch.services.storage import StorageService

logger = get_logger(__name__)


@dataclass
class ServiceContainer:
    """Everything one running instance owns. Routes reach it through ``app.state``."""

    settings: Settings
    db_engine: AsyncEngine
    storage: StorageService
    timers: Any
    registry: RoleRegistry
    settings_manager: SettingsManager
    engine: SessionEngine
    analytics: AnalyticsService
    data_transfer: DataTransferService
    connections: ConnectionManager
    _unsubscribers: list[Callable[[], None]] = field(default_factory=list)

    def wire_broadcasts(self) -> None:
        """Forward every change signal to connected WebSocket clients."""
        channels = [
            self.engine.session_changed,
            self.engine.state_changed,
            self.engine.timer_tick,
            self.engine.event_created,
            self.registry.roles_changed,
            self.settings_manager.settings_changed,
        ]
        for signal in channels:
            self._unsubscribers.append(
                signal.subscribe(self.connections.subscriber(signal.name))
            )

    async def shutdown(self) -> None:
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers.clear()
        self.engine.shutdown()
        self.timers.shutdown()
        await self.db_engine.dispose()
        logger.info("Services stopped")


def engine_defaults(settings: Settings) -> EngineSettings:
    return EngineSettings(
        minimum_session_duration=settings.minimum_session_duration,
        transition_window_duration=settings.transition_window_duration,
        enable_notifications=settings.enable_notifications,
        auto_save_interval=settings.auto_save_interval,
    )


async def create_container(
    settings: Settings,
    scheduler: Any = None,
    clock: Callable[[], datetime] | None = None,
) -> ServiceContainer:
    """
    Build and start all services.

    Args:
        settings: Application settings
        scheduler: Timer scheduler; a ``TimerScheduler`` over APScheduler by default
        clock: Source of "now"; ``utc_now`` by default

    Returns:
        Started container with the engine restored from storage
    """
    clock = clock or utc_now
    timers = scheduler or TimerScheduler()

    db_engine = build_engine(settings.async_database_url, echo=settings.debug)
    if settings.run_migrations:
        try:
            await run_migrations(settings.async_database_url)
        except Exception as e:
            logger.warning(f"Could not run migrations, creating schema from models: {e}")
            await create_schema(db_engine)
    else:
        await create_schema(db_engine)

    storage = StorageService(build_session_maker(db_engine))

    registry = RoleRegistry(storage, seed_defaults=settings.seed_default_roles, clock=clock)
    await registry.load()

    settings_manager = SettingsManager(storage, engine_defaults(settings))
    await settings_manager.load()

    timers.start()
    engine = SessionEngine(
        roles=registry,
        storage=storage,
        settings=settings_manager.get_settings(),
        timers=timers,
        clock=clock,
        tick_seconds=settings.timer_tick_seconds,
    )
    settings_manager.settings_changed.subscribe(engine.update_settings)
    await engine.restore()

    start_maintenance_jobs(timers, storage, settings)

    container = ServiceContainer(
        settings=settings,
        db_engine=db_engine,
        storage=storage,
        timers=timers,
        registry=registry,
        settings_manager=settings_manager,
        engine=engine,
        analytics=AnalyticsService(storage, registry, clock=clock),
        data_transfer=DataTransferService(
            storage, registry, engine, settings_manager, clock=clock
        ),
        connections=ConnectionManager(),
    )
    container.wire_broadcasts()

    logger.info(
        "Services started",
        extra={
            "event_type": "startup",
            "roles": len(registry.get_all_roles()),
            "active_session": engine.get_current_session() is not None,
        },
    )
    return container

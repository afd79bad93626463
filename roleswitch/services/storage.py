"""Persistence for roles, sessions, events, engine state and settings."""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any

from sqlalchemy import delete, func, select, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from roleswitch.core.datetime_utils import utc_now
from roleswitch.core.exceptions import StorageError
from roleswitch.core.logging import get_logger, log_error
from roleswitch.db.models import (
    DEFAULT_SETTINGS_KEY,
    SYSTEM_STATE_ROW_ID,
    AppSettingsRecord,
    EventRecord,
    RoleRecord,
    SessionRecord,
    SystemStateRecord,
)
from roleswitch.schemas import (
    Event,
    EventMeta,
    EventType,
    Role,
    Session,
    SystemState,
)

logger = get_logger(__name__)


def _role_from_record(record: RoleRecord) -> Role:
    return Role(
        id=record.id,
        name=record.name,
        color_hex=record.color_hex,
        description=record.description,
        icon=record.icon,
        created_at=record.created_at,
        updated_at=record.updated_at,
    )


def _session_from_record(record: SessionRecord) -> Session:
    return Session(
        id=record.id,
        role_id=record.role_id,
        start_time=record.start_time,
        end_time=record.end_time,
        duration=record.duration_ms,
        notes=list(record.notes or []),
        events=[Event.model_validate(item) for item in record.events or []],
        is_active=record.is_active,
    )


def _event_from_record(record: EventRecord) -> Event:
    return Event(
        id=record.id,
        type=EventType(record.event_type),
        role_id=record.role_id,
        at=record.at,
        meta=EventMeta.model_validate(record.meta) if record.meta else None,
    )


class StorageService:
    """
    Persistence collaborator backed by SQLAlchemy async sessions.

    Every public coroutine runs in its own transaction. Database failures are
    logged and re-raised as ``StorageError``; nothing is retried here.
    """

    def __init__(self, session_maker: async_sessionmaker[AsyncSession]) -> None:
        self._session_maker = session_maker

    @asynccontextmanager
    async def _transaction(self, operation: str) -> AsyncIterator[AsyncSession]:
        try:
            async with self._session_maker() as db:
                yield db
                await db.commit()
        except SQLAlchemyError as e:
            log_error(
                logger,
                f"Storage operation failed: {operation}",
                error=e,
                extra={"operation": operation},
            )
            raise StorageError(operation, e) from e

    async def _state_row(self, db: AsyncSession) -> SystemStateRecord:
        row = await db.get(SystemStateRecord, SYSTEM_STATE_ROW_ID)
        if row is None:
            row = SystemStateRecord(id=SYSTEM_STATE_ROW_ID)
            db.add(row)
        return row

    async def ping(self) -> None:
        async with self._transaction("ping") as db:
            await db.execute(text("SELECT 1"))

    # Current session + state

    async def load_current_session(self) -> Session | None:
        async with self._transaction("load_current_session") as db:
            row = await db.get(SystemStateRecord, SYSTEM_STATE_ROW_ID)
            if row is None or not row.current_session:
                return None
            return Session.model_validate(row.current_session)

    async def save_current_session(self, session: Session | None) -> None:
        async with self._transaction("save_current_session") as db:
            row = await self._state_row(db)
            row.current_session = session.model_dump(mode="json") if session else None

    async def load_state(self) -> SystemState | None:
        async with self._transaction("load_state") as db:
            row = await db.get(SystemStateRecord, SYSTEM_STATE_ROW_ID)
            if row is None or not row.has_state:
                return None
            return SystemState(
                is_locked=row.is_locked,
                lock_end_time=row.lock_end_time,
                is_in_transition=row.is_in_transition,
                transition_start_time=row.transition_start_time,
                transition_end_time=row.transition_end_time,
                transition_target_role_id=row.transition_target_role_id,
                transition_note=row.transition_note,
                last_active_time=row.last_active_time or utc_now(),
            )

    async def save_state(self, state: SystemState) -> None:
        async with self._transaction("save_state") as db:
            row = await self._state_row(db)
            row.is_locked = state.is_locked
            row.lock_end_time = state.lock_end_time
            row.is_in_transition = state.is_in_transition
            row.transition_start_time = state.transition_start_time
            row.transition_end_time = state.transition_end_time
            row.transition_target_role_id = state.transition_target_role_id
            row.transition_note = state.transition_note
            row.last_active_time = state.last_active_time
            row.has_state = True

    # Session history

    async def append_session_history(self, session: Session) -> None:
        """Insert or update a session in history (upsert by id)."""
        async with self._transaction("append_session_history") as db:
            record = await db.get(SessionRecord, session.id)
            if record is None:
                record = SessionRecord(id=session.id)
                db.add(record)
            record.role_id = session.role_id
            record.start_time = session.start_time
            record.end_time = session.end_time
            record.duration_ms = session.duration
            record.notes = list(session.notes)
            record.events = [event.model_dump(mode="json") for event in session.events]
            record.is_active = session.is_active

    async def has_session(self, session_id: str) -> bool:
        async with self._transaction("has_session") as db:
            return await db.get(SessionRecord, session_id) is not None

    async def get_all_sessions(self) -> list[Session]:
        async with self._transaction("get_all_sessions") as db:
            result = await db.execute(
                select(SessionRecord).order_by(SessionRecord.start_time.desc())
            )
            return [_session_from_record(r) for r in result.scalars().all()]

    async def get_recent_sessions(self, limit: int = 100, offset: int = 0) -> list[Session]:
        async with self._transaction("get_recent_sessions") as db:
            result = await db.execute(
                select(SessionRecord)
                .order_by(SessionRecord.start_time.desc())
                .limit(limit)
                .offset(offset)
            )
            return [_session_from_record(r) for r in result.scalars().all()]

    async def get_sessions_in_range(self, start: datetime, end: datetime) -> list[Session]:
        """Sessions whose start time falls inside [start, end]."""
        async with self._transaction("get_sessions_in_range") as db:
            result = await db.execute(
                select(SessionRecord)
                .where(SessionRecord.start_time >= start)
                .where(SessionRecord.start_time <= end)
                .order_by(SessionRecord.start_time)
            )
            return [_session_from_record(r) for r in result.scalars().all()]

    async def get_sessions_by_role(self, role_id: str) -> list[Session]:
        async with self._transaction("get_sessions_by_role") as db:
            result = await db.execute(
                select(SessionRecord)
                .where(SessionRecord.role_id == role_id)
                .order_by(SessionRecord.start_time)
            )
            return [_session_from_record(r) for r in result.scalars().all()]

    # Event log

    async def append_event(self, event: Event) -> None:
        async with self._transaction("append_event") as db:
            db.add(
                EventRecord(
                    id=event.id,
                    event_type=event.type.value,
                    role_id=event.role_id,
                    at=event.at,
                    session_id=event.meta.session_id if event.meta else None,
                    meta=event.meta.model_dump(mode="json", exclude_none=True) if event.meta else None,
                )
            )

    async def has_event(self, event_id: str) -> bool:
        async with self._transaction("has_event") as db:
            return await db.get(EventRecord, event_id) is not None

    async def get_all_events(self) -> list[Event]:
        async with self._transaction("get_all_events") as db:
            result = await db.execute(select(EventRecord).order_by(EventRecord.at))
            return [_event_from_record(r) for r in result.scalars().all()]

    async def get_events_in_range(self, start: datetime, end: datetime) -> list[Event]:
        async with self._transaction("get_events_in_range") as db:
            result = await db.execute(
                select(EventRecord)
                .where(EventRecord.at >= start)
                .where(EventRecord.at <= end)
                .order_by(EventRecord.at)
            )
            return [_event_from_record(r) for r in result.scalars().all()]

    async def get_events_by_type(self, event_type: EventType) -> list[Event]:
        async with self._transaction("get_events_by_type") as db:
            result = await db.execute(
                select(EventRecord)
                .where(EventRecord.event_type == event_type.value)
                .order_by(EventRecord.at)
            )
            return [_event_from_record(r) for r in result.scalars().all()]

    # Roles

    async def get_all_roles(self) -> list[Role]:
        async with self._transaction("get_all_roles") as db:
            result = await db.execute(select(RoleRecord).order_by(RoleRecord.created_at))
            return [_role_from_record(r) for r in result.scalars().all()]

    async def save_role(self, role: Role) -> None:
        async with self._transaction("save_role") as db:
            record = await db.get(RoleRecord, role.id)
            if record is None:
                record = RoleRecord(id=role.id, created_at=role.created_at)
                db.add(record)
            record.name = role.name
            record.color_hex = role.color_hex
            record.description = role.description
            record.icon = role.icon
            record.updated_at = role.updated_at

    async def delete_role(self, role_id: str) -> bool:
        async with self._transaction("delete_role") as db:
            result = await db.execute(delete(RoleRecord).where(RoleRecord.id == role_id))
            return result.rowcount > 0

    async def clear_roles(self) -> None:
        async with self._transaction("clear_roles") as db:
            await db.execute(delete(RoleRecord))

    # Settings

    async def load_settings(self) -> dict[str, Any] | None:
        async with self._transaction("load_settings") as db:
            record = await db.get(AppSettingsRecord, DEFAULT_SETTINGS_KEY)
            return dict(record.settings) if record else None

    async def save_settings(self, settings: dict[str, Any]) -> None:
        async with self._transaction("save_settings") as db:
            record = await db.get(AppSettingsRecord, DEFAULT_SETTINGS_KEY)
            if record is None:
                record = AppSettingsRecord(key=DEFAULT_SETTINGS_KEY, settings=settings)
                db.add(record)
            else:
                record.settings = settings

    # Maintenance

    async def count_history(self) -> dict[str, int]:
        async with self._transaction("count_history") as db:
            sessions = await db.scalar(select(func.count()).select_from(SessionRecord))
            events = await db.scalar(select(func.count()).select_from(EventRecord))
            roles = await db.scalar(select(func.count()).select_from(RoleRecord))
            return {"roles": roles or 0, "sessions": sessions or 0, "events": events or 0}

    async def prune_history(self, max_sessions: int, max_events: int) -> dict[str, int]:
        """Keep only the newest ``max_sessions`` closed sessions and ``max_events`` events."""
        async with self._transaction("prune_history") as db:
            stale_sessions = (
                await db.execute(
                    select(SessionRecord.id)
                    .where(SessionRecord.is_active.is_(False))
                    .order_by(SessionRecord.start_time.desc())
                    .offset(max_sessions)
                )
            ).scalars().all()
            if stale_sessions:
                await db.execute(delete(SessionRecord).where(SessionRecord.id.in_(stale_sessions)))

            stale_events = (
                await db.execute(
                    select(EventRecord.id)
                    .order_by(EventRecord.at.desc())
                    .offset(max_events)
                )
            ).scalars().all()
            if stale_events:
                await db.execute(delete(EventRecord).where(EventRecord.id.in_(stale_events)))

            return {
                "sessions_deleted": len(stale_sessions),
                "events_deleted": len(stale_events),
            }

    async def clear_history(self) -> None:
        """Delete closed sessions and the event log."""
        async with self._transaction("clear_history") as db:
            await db.execute(delete(SessionRecord).where(SessionRecord.is_active.is_(False)))
            await db.execute(delete(EventRecord))

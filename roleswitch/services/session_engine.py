"""
Session engine: the role/session state machine.

Owns the active session, the minimum-duration lock and the transition window.
Every mutation runs under one ``asyncio.Lock`` so explicit operations and
timer callbacks never interleave.
"""

import asyncio
import itertools
import math
from collections.abc import Callable, Iterable
from datetime import datetime, timedelta
from functools import partial
from typing import Any, Protocol

from roleswitch.core.datetime_utils import SECOND_MS, duration_ms, utc_now
from roleswitch.core.exceptions import (
    NoActiveSessionError,
    NoTransitionActiveError,
    RoleNotFoundError,
    SameRoleError,
    SessionAlreadyActiveError,
    SessionLockedError,
    StorageError,
    TransitionInProgressError,
)
from roleswitch.core.logging import get_logger, log_error
from roleswitch.core.scheduler import TimerScheduler
from roleswitch.core.signals import Signal
from roleswitch.core.validation import generate_id, sanitize_input
from roleswitch.schemas import (
    EngineSettings,
    Event,
    EventMeta,
    EventType,
    LockState,
    Role,
    Session,
    SystemState,
    TimerState,
    TransitionState,
)

logger = get_logger(__name__)

LOCK_JOB_ID = "session_lock"
TRANSITION_JOB_ID = "session_transition"
TICK_JOB_ID = "session_tick"


class RoleLookup(Protocol):
    def get_role_by_id(self, role_id: str) -> Role | None: ...

    def get_all_roles(self) -> list[Role]: ...


class SessionEngine:
    """
    Role/session state machine.

    States are derived from three flags: no session, active (unlocked),
    active and locked, and in transition. Writes are optimistic: memory is
    updated first and a failing storage call surfaces as ``StorageError``
    without undoing the in-memory change.
    """

    def __init__(
        self,
        roles: RoleLookup,
        storage: Any,
        settings: EngineSettings,
        timers: TimerScheduler,
        clock: Callable[[], datetime] = utc_now,
        tick_seconds: float = 1.0,
    ) -> None:
        self._roles = roles
        self._storage = storage
        self._settings = settings.model_copy()
        self._timers = timers
        self._clock = clock
        self._tick_seconds = tick_seconds

        self._mutex = asyncio.Lock()
        self._current: Session | None = None
        self._state = SystemState(last_active_time=clock())

        # Scheduled callbacks compare their token with these before acting
        self._tokens = itertools.count(1)
        self._lock_token: int | None = None
        self._transition_token: int | None = None

        self.session_changed: Signal[Session | None] = Signal("session_changed")
        self.state_changed: Signal[SystemState] = Signal("state_changed")
        self.timer_tick: Signal[TimerState] = Signal("timer_tick")
        self.event_created: Signal[Event] = Signal("event_created")

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------

    async def start_session(self, role_id: str, note: str | None = None) -> Session:
        """
        Start a new session for ``role_id``.

        Raises:
            RoleNotFoundError: If the role does not exist
            SessionAlreadyActiveError: If a session is already running
            TransitionInProgressError: If a transition window is open
        """
        async with self._mutex:
            return await self._start_session(role_id, note)

    async def end_session(self, note: str | None = None) -> Session:
        """
        End the active session and return the closed snapshot.

        Raises:
            NoActiveSessionError: If nothing is running
            SessionLockedError: If the minimum-duration lock still holds
        """
        async with self._mutex:
            return await self._end_session(note)

    async def switch_role(self, new_role_id: str, note: str | None = None) -> Session:
        """
        Switch the active session to another role.

        With a transition window configured, this only opens the window and
        returns the still-current session; the switch happens when the window
        elapses. Without one, the switch happens now and the new session is
        returned. If nothing is running this behaves like ``start_session``.
        """
        async with self._mutex:
            if self._roles.get_role_by_id(new_role_id) is None:
                raise RoleNotFoundError(new_role_id)

            if self._current is None:
                return await self._start_session(new_role_id, note)

            if self._current.role_id == new_role_id:
                raise SameRoleError()

            if self._state.is_locked and not self.can_override_lock():
                raise SessionLockedError("Cannot switch roles: session is locked")

            if self._state.is_in_transition:
                raise TransitionInProgressError("Cannot switch roles: already in transition")

            now = self._clock()
            if self._settings.transition_window_duration > 0:
                self._begin_transition(new_role_id, note, now)
                logger.info(
                    "Role transition started",
                    extra={
                        "event_type": "transition_started",
                        "session_id": self._current.id,
                        "target_role_id": new_role_id,
                        "ends_at": self._state.transition_end_time.isoformat(),
                    },
                )
                await self._commit(session_changed=False)
                return self._current.model_copy(deep=True)

            return await self._perform_switch(new_role_id, note, now)

    async def cancel_transition(self) -> Session | None:
        """
        Abandon the pending transition; the current session carries on.

        Raises:
            NoTransitionActiveError: If no transition is pending
        """
        async with self._mutex:
            if not self._state.is_in_transition:
                raise NoTransitionActiveError()

            target_role_id = self._state.transition_target_role_id
            self._clear_transition()

            events: list[Event] = []
            history: list[Session] = []
            current = self._current
            if current is not None:
                event = self._new_event(
                    EventType.CANCEL_TRANSITION,
                    current.role_id,
                    self._clock(),
                    session_id=current.id,
                    previous_role_id=target_role_id,
                    reason="transition_cancelled",
                )
                current.events.append(event)
                events.append(event)
                history.append(current)

            logger.info(
                "Role transition cancelled",
                extra={"event_type": "transition_cancelled", "target_role_id": target_role_id},
            )
            await self._commit(events=events, history=history)
            return self._snapshot()

    async def add_session_note(self, note: str) -> Session:
        """Append a sanitized note to the active session. Never lock-checked."""
        async with self._mutex:
            current = self._current
            if current is None:
                raise NoActiveSessionError("No active session to add note to")

            current.notes.append(sanitize_input(note))
            await self._commit(history=[current], state_changed=False)
            return current.model_copy(deep=True)

    async def force_end_session(self, reason: str | None = None) -> Session | None:
        """End the active session regardless of the lock. Returns None if nothing is running."""
        async with self._mutex:
            if self._current is None:
                return None

            if self._state.is_locked:
                logger.info(
                    "Overriding session lock",
                    extra={"event_type": "lock_overridden", "session_id": self._current.id},
                )
                self._clear_lock()

            return await self._end_session(None, reason=reason)

    def can_override_lock(self) -> bool:
        """Extension point for lock overrides. ``force_end_session`` is the only bypass."""
        return False

    async def restore(self) -> None:
        """
        Reload persisted state after a restart.

        Expired locks are dropped and expired transitions complete right away;
        live ones get their timers re-armed for the time that remains.
        """
        async with self._mutex:
            try:
                state = await self._storage.load_state()
                session = await self._storage.load_current_session()
            except StorageError as e:
                log_error(logger, "Failed to restore session state, starting fresh", error=e)
                return

            now = self._clock()
            if state is not None:
                self._state = state
            self._current = session if session is not None and session.is_active else None

            if self._current is None:
                if self._state.is_locked or self._state.is_in_transition:
                    logger.info(
                        "Clearing stale lock/transition without an active session",
                        extra={"event_type": "state_recovered"},
                    )
                self._reset_lock()
                self._reset_transition()
            else:
                self._start_tick()
                logger.info(
                    "Restored active session",
                    extra={
                        "event_type": "session_restored",
                        "session_id": self._current.id,
                        "role_id": self._current.role_id,
                    },
                )
                self._restore_lock(now)

                if self._state.is_in_transition:
                    end_time = self._state.transition_end_time
                    if end_time is None or self._state.transition_target_role_id is None:
                        self._reset_transition()
                    elif end_time <= now:
                        try:
                            await self._complete_transition()
                        except StorageError as e:
                            log_error(logger, "Failed to persist recovered transition", error=e)
                        return
                    else:
                        self._schedule_transition(end_time)

            try:
                await self._commit()
            except StorageError as e:
                log_error(logger, "Failed to persist restored state", error=e)

    def update_settings(self, settings: EngineSettings) -> None:
        """Use new settings for future operations. Armed timers keep their deadlines."""
        self._settings = settings.model_copy()
        logger.info(
            "Engine settings updated",
            extra={
                "minimum_session_duration": settings.minimum_session_duration,
                "transition_window_duration": settings.transition_window_duration,
            },
        )

    def shutdown(self) -> None:
        """Cancel every engine timer."""
        for job_id in (LOCK_JOB_ID, TRANSITION_JOB_ID, TICK_JOB_ID):
            self._timers.cancel(job_id)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_settings(self) -> EngineSettings:
        return self._settings.model_copy()

    def get_current_session(self) -> Session | None:
        return self._snapshot()

    def get_state(self) -> SystemState:
        return self._state.model_copy(deep=True)

    def get_timer_state(self) -> TimerState:
        now = self._clock()
        if self._current is None:
            return TimerState(is_running=False, current_duration=0, last_update_time=now)
        return TimerState(
            is_running=True,
            current_duration=duration_ms(self._current.start_time, now),
            last_update_time=now,
        )

    def get_lock_state(self) -> LockState:
        remaining_ms = 0
        if self._state.lock_end_time is not None:
            remaining_ms = max(0, duration_ms(self._clock(), self._state.lock_end_time))

        return LockState(
            is_locked=self._state.is_locked,
            end_time=self._state.lock_end_time,
            current_role_id=self._current.role_id if self._current else None,
            remaining_time=math.ceil(remaining_ms / SECOND_MS),
            can_override=self.can_override_lock(),
        )

    def get_transition_state(self) -> TransitionState:
        state = self._state
        if state.transition_start_time and state.transition_end_time:
            window = int((state.transition_end_time - state.transition_start_time).total_seconds())
        else:
            window = self._settings.transition_window_duration

        return TransitionState(
            is_transitioning=state.is_in_transition,
            target_role_id=state.transition_target_role_id,
            start_time=state.transition_start_time,
            end_time=state.transition_end_time,
            duration=window,
            can_cancel=state.is_in_transition,
        )

    # ------------------------------------------------------------------
    # State transitions (caller holds the mutex)
    # ------------------------------------------------------------------

    async def _start_session(self, role_id: str, note: str | None) -> Session:
        if self._roles.get_role_by_id(role_id) is None:
            raise RoleNotFoundError(role_id)

        if self._current is not None:
            raise SessionAlreadyActiveError()

        if self._state.is_in_transition:
            raise TransitionInProgressError("Cannot start session: currently in transition period")

        now = self._clock()
        session = Session(
            id=generate_id(),
            role_id=role_id,
            start_time=now,
            notes=[note] if note else [],
        )
        event = self._new_event(EventType.START, role_id, now, session_id=session.id, note=note)
        session.events.append(event)

        self._current = session
        self._arm_lock(now)
        self._start_tick()

        logger.info(
            "Session started",
            extra={"event_type": "session_started", "session_id": session.id, "role_id": role_id},
        )
        await self._commit(events=[event], history=[session])
        return session.model_copy(deep=True)

    async def _end_session(self, note: str | None, reason: str | None = None) -> Session:
        current = self._current
        if current is None:
            raise NoActiveSessionError("No active session to end")

        if self._state.is_locked and not self.can_override_lock():
            raise SessionLockedError("Cannot end session: session is locked")

        now = self._clock()
        elapsed = duration_ms(current.start_time, now)
        event = self._new_event(
            EventType.END,
            current.role_id,
            now,
            session_id=current.id,
            duration=elapsed,
            note=note,
            reason=reason,
        )

        current.end_time = now
        current.duration = elapsed
        current.is_active = False
        current.events.append(event)
        if note:
            current.notes.append(note)

        self._current = None
        self._clear_lock()
        self._clear_transition()
        self._stop_tick()

        logger.info(
            "Session ended",
            extra={
                "event_type": "session_ended",
                "session_id": current.id,
                "role_id": current.role_id,
                "duration_ms": elapsed,
                "reason": reason,
            },
        )
        await self._commit(events=[event], history=[current])
        return current.model_copy(deep=True)

    async def _perform_switch(self, new_role_id: str, note: str | None, now: datetime) -> Session:
        """Close the current session and open one for ``new_role_id`` at the same instant."""
        current = self._current
        if current is None:
            return await self._start_session(new_role_id, note)

        elapsed = duration_ms(current.start_time, now)
        event = self._new_event(
            EventType.SWITCH,
            new_role_id,
            now,
            session_id=current.id,
            previous_role_id=current.role_id,
            duration=elapsed,
            note=note,
        )

        current.end_time = now
        current.duration = elapsed
        current.is_active = False
        current.events.append(event)
        if note:
            current.notes.append(note)

        new_session = Session(
            id=generate_id(),
            role_id=new_role_id,
            start_time=now,
            events=[event],
        )
        self._current = new_session

        self._clear_lock()
        self._arm_lock(now)

        logger.info(
            "Role switched",
            extra={
                "event_type": "role_switched",
                "previous_session_id": current.id,
                "session_id": new_session.id,
                "previous_role_id": current.role_id,
                "role_id": new_role_id,
            },
        )
        await self._commit(events=[event], history=[current, new_session])
        return new_session.model_copy(deep=True)

    async def _complete_transition(self) -> None:
        target_role_id = self._state.transition_target_role_id
        note = self._state.transition_note
        self._clear_transition()

        if (
            target_role_id is None
            or self._roles.get_role_by_id(target_role_id) is None
            or (self._current is not None and self._current.role_id == target_role_id)
        ):
            logger.warning(
                "Abandoning role transition: target role is unavailable",
                extra={"event_type": "transition_abandoned", "target_role_id": target_role_id},
            )
            await self._commit(session_changed=False)
            return

        await self._perform_switch(target_role_id, note, self._clock())

    # ------------------------------------------------------------------
    # Lock, transition and tick timers
    # ------------------------------------------------------------------

    def _arm_lock(self, now: datetime) -> None:
        seconds = self._settings.minimum_session_duration
        if seconds <= 0:
            return
        self._state.is_locked = True
        self._state.lock_end_time = now + timedelta(seconds=seconds)
        self._schedule_lock(self._state.lock_end_time)

    def _schedule_lock(self, run_at: datetime) -> None:
        token = next(self._tokens)
        self._lock_token = token
        self._timers.call_at(LOCK_JOB_ID, run_at, partial(self._on_lock_expired, token))

    def _restore_lock(self, now: datetime) -> None:
        if not self._state.is_locked:
            self._reset_lock()
            return

        end_time = self._state.lock_end_time
        if end_time is None or end_time <= now:
            logger.info("Persisted lock has expired", extra={"event_type": "lock_expired"})
            self._reset_lock()
        else:
            self._schedule_lock(end_time)

    def _clear_lock(self) -> None:
        self._timers.cancel(LOCK_JOB_ID)
        self._reset_lock()

    def _reset_lock(self) -> None:
        self._lock_token = None
        self._state.is_locked = False
        self._state.lock_end_time = None

    async def _on_lock_expired(self, token: int) -> None:
        async with self._mutex:
            if token != self._lock_token or not self._state.is_locked:
                logger.debug("Ignoring stale lock expiry", extra={"token": token})
                return

            self._reset_lock()
            logger.info("Session unlocked", extra={"event_type": "lock_expired"})
            try:
                await self._commit(session_changed=False)
            except Exception as e:
                log_error(logger, "Failed to persist lock expiry", error=e)

    def _begin_transition(self, target_role_id: str, note: str | None, now: datetime) -> None:
        end_time = now + timedelta(seconds=self._settings.transition_window_duration)
        self._state.is_in_transition = True
        self._state.transition_target_role_id = target_role_id
        self._state.transition_start_time = now
        self._state.transition_end_time = end_time
        self._state.transition_note = note
        self._schedule_transition(end_time)

    def _schedule_transition(self, run_at: datetime) -> None:
        token = next(self._tokens)
        self._transition_token = token
        self._timers.call_at(TRANSITION_JOB_ID, run_at, partial(self._on_transition_due, token))

    def _clear_transition(self) -> None:
        self._timers.cancel(TRANSITION_JOB_ID)
        self._reset_transition()

    def _reset_transition(self) -> None:
        self._transition_token = None
        self._state.is_in_transition = False
        self._state.transition_target_role_id = None
        self._state.transition_start_time = None
        self._state.transition_end_time = None
        self._state.transition_note = None

    async def _on_transition_due(self, token: int) -> None:
        async with self._mutex:
            if token != self._transition_token or not self._state.is_in_transition:
                logger.debug("Ignoring stale transition completion", extra={"token": token})
                return

            try:
                await self._complete_transition()
            except Exception as e:
                log_error(logger, "Deferred role switch failed", error=e)

    def _start_tick(self) -> None:
        self._timers.call_every(TICK_JOB_ID, self._tick_seconds, self._on_tick)

    def _stop_tick(self) -> None:
        self._timers.cancel(TICK_JOB_ID)

    async def _on_tick(self) -> None:
        if self._current is None:
            return
        self.timer_tick.emit(self.get_timer_state())

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _snapshot(self) -> Session | None:
        return self._current.model_copy(deep=True) if self._current else None

    def _new_event(self, event_type: EventType, role_id: str, at: datetime, **meta: Any) -> Event:
        return Event(
            id=generate_id(),
            type=event_type,
            role_id=role_id,
            at=at,
            meta=EventMeta(**meta),
        )

    async def _commit(
        self,
        events: Iterable[Event] = (),
        history: Iterable[Session] = (),
        session_changed: bool = True,
        state_changed: bool = True,
    ) -> None:
        """
        Persist the in-memory change, then notify subscribers.

        Notifications are sent even when a write fails; the failure is
        re-raised to the caller and nothing is rolled back.
        """
        events = list(events)
        self._state.last_active_time = self._clock()
        try:
            for event in events:
                await self._storage.append_event(event)
            await self._storage.save_current_session(self._current)
            await self._storage.save_state(self._state)
            for session in history:
                await self._storage.append_session_history(session)
        finally:
            for event in events:
                self.event_created.emit(event)
            if session_changed:
                self.session_changed.emit(self._snapshot())
            if state_changed:
                self.state_changed.emit(self.get_state())

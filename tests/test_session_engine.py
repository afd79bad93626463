"""Tests for the session engine state machine."""

from datetime import timedelta

import pytest

from roleswitch.core.datetime_utils import duration_ms
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
from roleswitch.schemas import EngineSettings, EventType, Session, SystemState
from roleswitch.services.session_engine import LOCK_JOB_ID, TICK_JOB_ID, TRANSITION_JOB_ID


class TestStartSession:
    """Tests for starting sessions."""

    @pytest.mark.asyncio
    async def test_start_session_creates_active_session(self, make_engine, clock, storage):
        engine = make_engine()

        session = await engine.start_session("role1", note="kickoff")

        assert session.role_id == "role1"
        assert session.is_active is True
        assert session.start_time == clock()
        assert session.notes == ["kickoff"]
        assert [e.type for e in session.events] == [EventType.START]
        assert storage.current_session.id == session.id
        assert storage.events[0].meta.session_id == session.id

    @pytest.mark.asyncio
    async def test_start_session_arms_lock(self, make_engine, clock, timers):
        engine = make_engine(minimum_session_duration=300)

        await engine.start_session("role1")

        state = engine.get_state()
        assert state.is_locked is True
        assert state.lock_end_time == clock() + timedelta(seconds=300)
        assert state.lock_end_time > clock()
        assert timers.run_time(LOCK_JOB_ID) == state.lock_end_time

    @pytest.mark.asyncio
    async def test_zero_minimum_duration_disables_lock(self, make_engine, timers):
        engine = make_engine(minimum_session_duration=0)

        await engine.start_session("role1")

        assert engine.get_state().is_locked is False
        assert engine.get_state().lock_end_time is None
        assert not timers.has_job(LOCK_JOB_ID)

    @pytest.mark.asyncio
    async def test_start_session_unknown_role(self, make_engine, storage):
        engine = make_engine()

        with pytest.raises(RoleNotFoundError) as exc_info:
            await engine.start_session("missing")

        assert exc_info.value.message == "Role with ID missing not found"
        assert engine.get_current_session() is None
        assert storage.events == []

    @pytest.mark.asyncio
    async def test_start_session_twice_rejected(self, make_engine):
        engine = make_engine()
        first = await engine.start_session("role1")

        with pytest.raises(SessionAlreadyActiveError):
            await engine.start_session("role2")

        assert engine.get_current_session().id == first.id

    @pytest.mark.asyncio
    async def test_signals_fire_in_order(self, make_engine):
        engine = make_engine()
        received = []
        engine.event_created.subscribe(lambda e: received.append(("event", e.type)))
        engine.session_changed.subscribe(lambda s: received.append(("session", s.role_id)))
        engine.state_changed.subscribe(lambda s: received.append(("state", s.is_locked)))

        await engine.start_session("role1")

        assert received == [
            ("event", EventType.START),
            ("session", "role1"),
            ("state", True),
        ]


class TestEndSession:
    """Tests for ending sessions and the minimum-duration lock."""

    @pytest.mark.asyncio
    async def test_end_session_blocked_while_locked(self, make_engine):
        engine = make_engine(minimum_session_duration=300)
        await engine.start_session("role1")

        with pytest.raises(SessionLockedError) as exc_info:
            await engine.end_session()

        assert exc_info.value.message == "Cannot end session: session is locked"
        assert engine.get_current_session() is not None

    @pytest.mark.asyncio
    async def test_end_session_after_lock_expires(self, make_engine, timers):
        engine = make_engine(minimum_session_duration=300)
        await engine.start_session("role1")

        await timers.advance(300)
        assert engine.get_state().is_locked is False

        closed = await engine.end_session()

        assert closed.is_active is False
        assert closed.duration == 300_000
        assert engine.get_current_session() is None
        assert not timers.has_job(TICK_JOB_ID)

    @pytest.mark.asyncio
    async def test_round_trip_records_duration(self, make_engine, clock, storage):
        engine = make_engine(minimum_session_duration=0)
        started = await engine.start_session("role1")

        clock.advance(90.25)
        closed = await engine.end_session(note="done")

        assert closed.duration == 90_250
        assert closed.duration == duration_ms(closed.start_time, closed.end_time)
        assert closed.end_time >= closed.start_time
        assert closed.notes == ["done"]
        assert [e.type for e in storage.events] == [EventType.START, EventType.END]
        assert storage.events[1].meta.duration == 90_250
        assert storage.events[1].meta.session_id == started.id
        assert storage.sessions[started.id].is_active is False
        assert storage.current_session is None

    @pytest.mark.asyncio
    async def test_end_without_session(self, make_engine):
        engine = make_engine()

        with pytest.raises(NoActiveSessionError) as exc_info:
            await engine.end_session()

        assert exc_info.value.message == "No active session to end"

    @pytest.mark.asyncio
    async def test_force_end_overrides_lock(self, make_engine, storage, timers):
        engine = make_engine(minimum_session_duration=300)
        await engine.start_session("role1")

        closed = await engine.force_end_session(reason="admin")

        assert closed is not None
        assert closed.is_active is False
        assert storage.events[-1].type == EventType.END
        assert storage.events[-1].meta.reason == "admin"
        assert engine.get_state().is_locked is False
        assert not timers.has_job(LOCK_JOB_ID)

    @pytest.mark.asyncio
    async def test_force_end_without_session_returns_none(self, make_engine):
        engine = make_engine()

        assert await engine.force_end_session() is None

    @pytest.mark.asyncio
    async def test_lock_cannot_be_overridden(self, make_engine):
        engine = make_engine()
        await engine.start_session("role1")

        assert engine.can_override_lock() is False
        assert engine.get_lock_state().can_override is False

    @pytest.mark.asyncio
    async def test_end_session_clears_pending_transition(self, make_engine, timers):
        engine = make_engine(minimum_session_duration=0, transition_window_duration=30)
        await engine.start_session("role1")
        await engine.switch_role("role2")

        await engine.end_session()

        assert engine.get_state().is_in_transition is False
        assert not timers.has_job(TRANSITION_JOB_ID)


class TestSwitchRole:
    """Tests for immediate and deferred role switches."""

    @pytest.mark.asyncio
    async def test_switch_blocked_while_locked(self, make_engine):
        engine = make_engine(minimum_session_duration=300)
        await engine.start_session("role1")

        with pytest.raises(SessionLockedError) as exc_info:
            await engine.switch_role("role2")

        assert exc_info.value.message == "Cannot switch roles: session is locked"

    @pytest.mark.asyncio
    async def test_switch_to_same_role_rejected(self, make_engine, timers):
        engine = make_engine()
        await engine.start_session("role1")
        await timers.advance(300)
        before_state = engine.get_state()
        before_session = engine.get_current_session()

        with pytest.raises(SameRoleError):
            await engine.switch_role("role1")

        assert engine.get_state() == before_state
        assert engine.get_current_session() == before_session

    @pytest.mark.asyncio
    async def test_switch_unknown_role(self, make_engine, timers):
        engine = make_engine()
        await engine.start_session("role1")
        await timers.advance(300)

        with pytest.raises(RoleNotFoundError):
            await engine.switch_role("missing")

    @pytest.mark.asyncio
    async def test_switch_without_session_starts_one(self, make_engine):
        engine = make_engine()

        session = await engine.switch_role("role2")

        assert session.role_id == "role2"
        assert engine.get_current_session().id == session.id

    @pytest.mark.asyncio
    async def test_deferred_switch_completes_after_window(self, make_engine, timers, storage):
        engine = make_engine(minimum_session_duration=300, transition_window_duration=30)
        original = await engine.start_session("role1")
        await timers.advance(300)

        returned = await engine.switch_role("role2", note="standup")

        assert returned.id == original.id
        assert returned.role_id == "role1"
        state = engine.get_state()
        assert state.is_in_transition is True
        assert state.transition_target_role_id == "role2"
        assert state.transition_end_time == state.transition_start_time + timedelta(seconds=30)

        await timers.advance(30)

        current = engine.get_current_session()
        assert current.role_id == "role2"
        assert engine.get_state().is_in_transition is False
        closed = storage.sessions[original.id]
        assert closed.is_active is False
        assert closed.end_time == current.start_time
        assert closed.duration == 330_000
        switch = storage.events[-1]
        assert switch.type == EventType.SWITCH
        assert switch.role_id == "role2"
        assert switch.meta.previous_role_id == "role1"
        assert switch.meta.session_id == original.id
        assert switch.meta.note == "standup"

    @pytest.mark.asyncio
    async def test_completed_switch_arms_new_lock(self, make_engine, timers, clock):
        engine = make_engine(minimum_session_duration=300, transition_window_duration=30)
        await engine.start_session("role1")
        await timers.advance(300)
        await engine.switch_role("role2")
        await timers.advance(30)

        state = engine.get_state()
        assert state.is_locked is True
        assert state.lock_end_time == clock() + timedelta(seconds=300)

    @pytest.mark.asyncio
    async def test_second_switch_during_transition_rejected(self, make_engine, timers):
        engine = make_engine(minimum_session_duration=0, transition_window_duration=30)
        await engine.start_session("role1")
        await engine.switch_role("role2")

        with pytest.raises(TransitionInProgressError) as exc_info:
            await engine.switch_role("role3")

        assert exc_info.value.message == "Cannot switch roles: already in transition"
        assert engine.get_state().transition_target_role_id == "role2"

    @pytest.mark.asyncio
    async def test_immediate_switch_rearms_lock(self, make_engine, timers, clock, storage):
        engine = make_engine(minimum_session_duration=300, transition_window_duration=0)
        original = await engine.start_session("role1")
        await timers.advance(300)

        new_session = await engine.switch_role("role2")

        assert new_session.role_id == "role2"
        assert new_session.start_time == clock()
        assert new_session.events[0].type == EventType.SWITCH
        state = engine.get_state()
        assert state.is_locked is True
        assert state.lock_end_time == clock() + timedelta(seconds=300)
        assert timers.has_job(LOCK_JOB_ID)
        assert storage.sessions[original.id].end_time == new_session.start_time
        assert storage.sessions[new_session.id].is_active is True

    @pytest.mark.asyncio
    async def test_transition_to_deleted_role_is_abandoned(self, make_engine, timers, roles):
        engine = make_engine(minimum_session_duration=0, transition_window_duration=30)
        original = await engine.start_session("role1")
        await engine.switch_role("role2")

        roles.roles = [role for role in roles.roles if role.id != "role2"]
        await timers.advance(30)

        assert engine.get_current_session().id == original.id
        assert engine.get_state().is_in_transition is False


class TestCancelTransition:
    """Tests for abandoning a transition window."""

    @pytest.mark.asyncio
    async def test_cancel_keeps_current_role(self, make_engine, timers, storage):
        engine = make_engine(minimum_session_duration=300, transition_window_duration=30)
        original = await engine.start_session("role1")
        await timers.advance(300)
        await engine.switch_role("role2")
        await timers.advance(5)

        session = await engine.cancel_transition()

        assert session.id == original.id
        assert engine.get_state().is_in_transition is False
        assert engine.get_state().transition_target_role_id is None
        cancel = storage.events[-1]
        assert cancel.type == EventType.CANCEL_TRANSITION
        assert cancel.role_id == "role1"
        assert cancel.meta.previous_role_id == "role2"
        assert cancel.meta.reason == "transition_cancelled"

        await timers.advance(60)
        assert engine.get_current_session().role_id == "role1"

    @pytest.mark.asyncio
    async def test_cancel_twice_is_rejected_without_change(self, make_engine):
        engine = make_engine(minimum_session_duration=0, transition_window_duration=30)
        await engine.start_session("role1")
        await engine.switch_role("role2")
        await engine.cancel_transition()
        state = engine.get_state()

        with pytest.raises(NoTransitionActiveError) as exc_info:
            await engine.cancel_transition()

        assert exc_info.value.message == "No transition to cancel"
        assert engine.get_state() == state

    @pytest.mark.asyncio
    async def test_stale_transition_callback_is_ignored(self, make_engine, timers):
        engine = make_engine(minimum_session_duration=0, transition_window_duration=30)
        await engine.start_session("role1")
        await engine.switch_role("role2")
        stale_callback = timers.jobs[TRANSITION_JOB_ID]["func"]

        await engine.cancel_transition()
        await stale_callback()

        assert engine.get_current_session().role_id == "role1"
        assert engine.get_state().is_in_transition is False

    @pytest.mark.asyncio
    async def test_stale_lock_callback_is_ignored(self, make_engine, timers):
        engine = make_engine(minimum_session_duration=300, transition_window_duration=0)
        await engine.start_session("role1")
        stale_callback = timers.jobs[LOCK_JOB_ID]["func"]
        await engine.force_end_session()
        await engine.start_session("role2")

        await stale_callback()

        assert engine.get_state().is_locked is True


class TestNotesAndQueries:
    """Tests for notes and read-only views."""

    @pytest.mark.asyncio
    async def test_add_note_is_sanitized_and_allowed_while_locked(self, make_engine, storage):
        engine = make_engine(minimum_session_duration=300)
        session = await engine.start_session("role1")

        updated = await engine.add_session_note("  <b>review</b> ")

        assert updated.notes == ["breview/b"]
        assert storage.sessions[session.id].notes == ["breview/b"]

    @pytest.mark.asyncio
    async def test_add_note_without_session(self, make_engine):
        engine = make_engine()

        with pytest.raises(NoActiveSessionError) as exc_info:
            await engine.add_session_note("hello")

        assert exc_info.value.message == "No active session to add note to"

    @pytest.mark.asyncio
    async def test_queries_return_copies(self, make_engine):
        engine = make_engine()
        await engine.start_session("role1")

        session = engine.get_current_session()
        session.notes.append("tampered")
        state = engine.get_state()
        state.is_locked = False

        assert engine.get_current_session().notes == []
        assert engine.get_state().is_locked is True

    @pytest.mark.asyncio
    async def test_lock_state_rounds_remaining_up(self, make_engine, clock):
        engine = make_engine(minimum_session_duration=300)
        await engine.start_session("role1")

        clock.advance(0.5)
        lock = engine.get_lock_state()

        assert lock.is_locked is True
        assert lock.current_role_id == "role1"
        assert lock.remaining_time == 300

    @pytest.mark.asyncio
    async def test_transition_state_view(self, make_engine):
        engine = make_engine(minimum_session_duration=0, transition_window_duration=45)
        assert engine.get_transition_state().is_transitioning is False
        assert engine.get_transition_state().duration == 45

        await engine.start_session("role1")
        await engine.switch_role("role3")
        view = engine.get_transition_state()

        assert view.is_transitioning is True
        assert view.target_role_id == "role3"
        assert view.duration == 45
        assert view.can_cancel is True

    @pytest.mark.asyncio
    async def test_timer_ticks_while_session_runs(self, make_engine, timers):
        engine = make_engine()
        ticks = []
        engine.timer_tick.subscribe(ticks.append)
        await engine.start_session("role1")

        await timers.advance(3)

        assert [t.current_duration for t in ticks] == [1000, 2000, 3000]
        assert all(t.is_running for t in ticks)

    @pytest.mark.asyncio
    async def test_timer_state_idle(self, make_engine):
        engine = make_engine()

        timer = engine.get_timer_state()

        assert timer.is_running is False
        assert timer.current_duration == 0

    @pytest.mark.asyncio
    async def test_update_settings_applies_to_next_session(self, make_engine):
        engine = make_engine(minimum_session_duration=300)
        engine.update_settings(EngineSettings(minimum_session_duration=0))

        await engine.start_session("role1")

        assert engine.get_settings().minimum_session_duration == 0
        assert engine.get_state().is_locked is False


class TestStorageFailures:
    """Writes are optimistic: failures surface but memory keeps the change."""

    @pytest.mark.asyncio
    async def test_failed_write_keeps_in_memory_change(self, make_engine, storage):
        engine = make_engine()
        seen = []
        engine.session_changed.subscribe(seen.append)
        storage.fail_on.add("save_state")

        with pytest.raises(StorageError):
            await engine.start_session("role1")

        assert engine.get_current_session() is not None
        assert engine.get_current_session().role_id == "role1"
        assert len(seen) == 1


class TestRestore:
    """Tests for crash recovery."""

    @pytest.fixture
    def active_session(self, clock):
        return Session(id="s1", role_id="role1", start_time=clock() - timedelta(minutes=10))

    @pytest.mark.asyncio
    async def test_restore_drops_expired_lock(self, make_engine, storage, clock, timers, active_session):
        storage.current_session = active_session
        storage.state = SystemState(
            is_locked=True,
            lock_end_time=clock() - timedelta(seconds=10),
            last_active_time=clock() - timedelta(seconds=20),
        )
        engine = make_engine()

        await engine.restore()

        assert engine.get_current_session().id == "s1"
        assert engine.get_state().is_locked is False
        assert not timers.has_job(LOCK_JOB_ID)
        assert timers.has_job(TICK_JOB_ID)
        assert storage.state.is_locked is False

    @pytest.mark.asyncio
    async def test_restore_rearms_live_lock(self, make_engine, storage, clock, timers, active_session):
        lock_end = clock() + timedelta(seconds=100)
        storage.current_session = active_session
        storage.state = SystemState(is_locked=True, lock_end_time=lock_end, last_active_time=clock())
        engine = make_engine()

        await engine.restore()

        assert engine.get_state().is_locked is True
        assert timers.run_time(LOCK_JOB_ID) == lock_end

        await timers.advance(100)
        assert engine.get_state().is_locked is False

    @pytest.mark.asyncio
    async def test_restore_completes_expired_transition(self, make_engine, storage, clock, active_session):
        storage.current_session = active_session
        storage.state = SystemState(
            is_in_transition=True,
            transition_target_role_id="role2",
            transition_start_time=clock() - timedelta(seconds=31),
            transition_end_time=clock() - timedelta(seconds=1),
            last_active_time=clock() - timedelta(seconds=31),
        )
        engine = make_engine()

        await engine.restore()

        current = engine.get_current_session()
        assert current.role_id == "role2"
        assert current.start_time == clock()
        assert engine.get_state().is_in_transition is False
        assert storage.sessions["s1"].is_active is False

    @pytest.mark.asyncio
    async def test_restore_rearms_live_transition(self, make_engine, storage, clock, timers, active_session):
        storage.current_session = active_session
        storage.state = SystemState(
            is_in_transition=True,
            transition_target_role_id="role2",
            transition_start_time=clock() - timedelta(seconds=20),
            transition_end_time=clock() + timedelta(seconds=10),
            last_active_time=clock(),
        )
        engine = make_engine()

        await engine.restore()
        assert engine.get_current_session().role_id == "role1"
        assert timers.has_job(TRANSITION_JOB_ID)

        await timers.advance(10)
        assert engine.get_current_session().role_id == "role2"

    @pytest.mark.asyncio
    async def test_restore_clears_flags_without_session(self, make_engine, storage, clock):
        storage.state = SystemState(
            is_locked=True,
            lock_end_time=clock() + timedelta(seconds=100),
            is_in_transition=True,
            transition_target_role_id="role2",
            transition_end_time=clock() + timedelta(seconds=10),
            last_active_time=clock(),
        )
        engine = make_engine()

        await engine.restore()

        state = engine.get_state()
        assert state.is_locked is False
        assert state.lock_end_time is None
        assert state.is_in_transition is False
        assert state.transition_target_role_id is None

    @pytest.mark.asyncio
    async def test_restore_survives_storage_failure(self, make_engine, storage):
        storage.fail_on.add("load_state")
        engine = make_engine()

        await engine.restore()

        assert engine.get_current_session() is None
        assert engine.get_state().is_locked is False

    @pytest.mark.asyncio
    async def test_shutdown_cancels_timers(self, make_engine, timers):
        engine = make_engine(minimum_session_duration=300, transition_window_duration=30)
        await engine.start_session("role1")

        engine.shutdown()

        assert not timers.has_job(LOCK_JOB_ID)
        assert not timers.has_job(TICK_JOB_ID)

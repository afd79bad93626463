"""Pytest configuration and shared fakes."""

from collections.abc import Awaitable, Callable
from datetime import UTC, datetime, timedelta
from typing import Any

import pytest

from roleswitch.core.exceptions import StorageError
from roleswitch.schemas import EngineSettings, Event, EventType, Role, Session, SystemState
from roleswitch.services.session_engine import SessionEngine

START_TIME = datetime(2026, 1, 15, 9, 0, tzinfo=UTC)


@pytest.fixture(autouse=True)
def mock_settings(monkeypatch):
    """Keep tests independent of the developer's environment."""
    monkeypatch.setenv("ROLESWITCH_ENVIRONMENT", "test")
    monkeypatch.setenv("ROLESWITCH_RUN_MIGRATIONS", "false")
    monkeypatch.delenv("ROLESWITCH_DATABASE_URL", raising=False)


# ===========================================
# FAKES
# ===========================================


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: datetime = START_TIME) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)

    def set(self, value: datetime) -> None:
        self.now = value


class ManualScheduler:
    """Timer scheduler whose jobs run only inside ``advance``."""

    def __init__(self, clock: FakeClock) -> None:
        self.clock = clock
        self.jobs: dict[str, dict[str, Any]] = {}
        self.running = False

    def start(self) -> None:
        self.running = True

    def shutdown(self) -> None:
        self.running = False

    def call_at(self, job_id: str, run_at: datetime, func: Callable[[], Awaitable[None]]) -> None:
        self.jobs[job_id] = {"run_at": run_at, "interval": None, "func": func}

    def call_every(self, job_id: str, seconds: float, func: Callable[[], Awaitable[None]]) -> None:
        interval = timedelta(seconds=seconds)
        self.jobs[job_id] = {"run_at": self.clock() + interval, "interval": interval, "func": func}

    def call_cron(self, job_id: str, func: Callable[[], Awaitable[None]], **cron_fields: Any) -> None:
        self.jobs[job_id] = {"run_at": None, "interval": None, "func": func, "cron": cron_fields}

    def cancel(self, job_id: str) -> bool:
        return self.jobs.pop(job_id, None) is not None

    def has_job(self, job_id: str) -> bool:
        return job_id in self.jobs

    def run_time(self, job_id: str) -> datetime:
        return self.jobs[job_id]["run_at"]

    async def advance(self, seconds: float) -> None:
        """Move the clock forward, running every job that falls due on the way."""
        target = self.clock() + timedelta(seconds=seconds)
        while True:
            due = [
                (job["run_at"], job_id)
                for job_id, job in self.jobs.items()
                if job["run_at"] is not None and job["run_at"] <= target
            ]
            if not due:
                break

            run_at, job_id = min(due)
            job = self.jobs[job_id]
            if run_at > self.clock():
                self.clock.set(run_at)
            if job["interval"] is None:
                del self.jobs[job_id]
            else:
                job["run_at"] = run_at + job["interval"]
            await job["func"]()

        self.clock.set(target)


class InMemoryStorage:
    """Storage double with the same coroutine surface as ``StorageService``.

    Add an operation name to ``fail_on`` to make that call raise ``StorageError``.
    """

    def __init__(self) -> None:
        self.current_session: Session | None = None
        self.state: SystemState | None = None
        self.sessions: dict[str, Session] = {}
        self.events: list[Event] = []
        self.roles: dict[str, Role] = {}
        self.settings: dict[str, Any] | None = None
        self.fail_on: set[str] = set()
        self.calls: list[str] = []

    def _check(self, operation: str) -> None:
        self.calls.append(operation)
        if operation in self.fail_on:
            raise StorageError(operation, RuntimeError("injected failure"))

    async def ping(self) -> None:
        self._check("ping")

    async def load_current_session(self) -> Session | None:
        self._check("load_current_session")
        return self.current_session.model_copy(deep=True) if self.current_session else None

    async def save_current_session(self, session: Session | None) -> None:
        self._check("save_current_session")
        self.current_session = session.model_copy(deep=True) if session else None

    async def load_state(self) -> SystemState | None:
        self._check("load_state")
        return self.state.model_copy(deep=True) if self.state else None

    async def save_state(self, state: SystemState) -> None:
        self._check("save_state")
        self.state = state.model_copy(deep=True)

    async def append_session_history(self, session: Session) -> None:
        self._check("append_session_history")
        self.sessions[session.id] = session.model_copy(deep=True)

    async def has_session(self, session_id: str) -> bool:
        self._check("has_session")
        return session_id in self.sessions

    async def append_event(self, event: Event) -> None:
        self._check("append_event")
        self.events.append(event)

    async def has_event(self, event_id: str) -> bool:
        self._check("has_event")
        return any(event.id == event_id for event in self.events)

    async def get_all_events(self) -> list[Event]:
        self._check("get_all_events")
        return sorted(self.events, key=lambda e: e.at)

    async def get_events_in_range(self, start: datetime, end: datetime) -> list[Event]:
        self._check("get_events_in_range")
        return [e for e in sorted(self.events, key=lambda e: e.at) if start <= e.at <= end]

    async def get_events_by_type(self, event_type: EventType) -> list[Event]:
        self._check("get_events_by_type")
        return [e for e in self.events if e.type == event_type]

    async def get_all_sessions(self) -> list[Session]:
        self._check("get_all_sessions")
        ordered = sorted(self.sessions.values(), key=lambda s: s.start_time, reverse=True)
        return [s.model_copy(deep=True) for s in ordered]

    async def get_recent_sessions(self, limit: int = 100, offset: int = 0) -> list[Session]:
        sessions = await self.get_all_sessions()
        return sessions[offset:offset + limit]

    async def get_sessions_in_range(self, start: datetime, end: datetime) -> list[Session]:
        self._check("get_sessions_in_range")
        ordered = sorted(self.sessions.values(), key=lambda s: s.start_time)
        return [s.model_copy(deep=True) for s in ordered if start <= s.start_time <= end]

    async def get_sessions_by_role(self, role_id: str) -> list[Session]:
        self._check("get_sessions_by_role")
        return [s.model_copy(deep=True) for s in self.sessions.values() if s.role_id == role_id]

    async def get_all_roles(self) -> list[Role]:
        self._check("get_all_roles")
        return [role.model_copy() for role in self.roles.values()]

    async def save_role(self, role: Role) -> None:
        self._check("save_role")
        self.roles[role.id] = role.model_copy()

    async def delete_role(self, role_id: str) -> bool:
        self._check("delete_role")
        return self.roles.pop(role_id, None) is not None

    async def clear_roles(self) -> None:
        self._check("clear_roles")
        self.roles.clear()

    async def load_settings(self) -> dict[str, Any] | None:
        self._check("load_settings")
        return dict(self.settings) if self.settings else None

    async def save_settings(self, settings: dict[str, Any]) -> None:
        self._check("save_settings")
        self.settings = dict(settings)

    async def prune_history(self, max_sessions: int, max_events: int) -> dict[str, int]:
        self._check("prune_history")
        return {"sessions_deleted": 0, "events_deleted": 0}

    async def clear_history(self) -> None:
        self._check("clear_history")
        self.sessions = {k: v for k, v in self.sessions.items() if v.is_active}
        self.events.clear()


class StaticRoles:
    """Role lookup over a fixed, editable list."""

    def __init__(self, roles: list[Role]) -> None:
        self.roles = list(roles)

    def get_role_by_id(self, role_id: str) -> Role | None:
        return next((role for role in self.roles if role.id == role_id), None)

    def get_all_roles(self) -> list[Role]:
        return list(self.roles)


def make_role(role_id: str, name: str, color_hex: str = "#4ECDC4", icon: str | None = None) -> Role:
    return Role(
        id=role_id,
        name=name,
        color_hex=color_hex,
        icon=icon,
        created_at=START_TIME,
        updated_at=START_TIME,
    )


# ===========================================
# FIXTURES
# ===========================================


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def timers(clock: FakeClock) -> ManualScheduler:
    scheduler = ManualScheduler(clock)
    scheduler.start()
    return scheduler


@pytest.fixture
def storage() -> InMemoryStorage:
    return InMemoryStorage()


@pytest.fixture
def roles() -> StaticRoles:
    return StaticRoles([
        make_role("role1", "Development"),
        make_role("role2", "Learning", "#45B7D1"),
        make_role("role3", "Planning", "#96CEB4"),
    ])


@pytest.fixture
def make_engine(roles, storage, timers, clock):
    """Factory for engines with specific lock/transition durations."""

    def factory(minimum_session_duration: int = 300, transition_window_duration: int = 30) -> SessionEngine:
        settings = EngineSettings(
            minimum_session_duration=minimum_session_duration,
            transition_window_duration=transition_window_duration,
        )
        return SessionEngine(roles, storage, settings, timers, clock=clock)

    return factory

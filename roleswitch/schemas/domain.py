"""Role, session, event and state records."""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

DATA_VERSION = "1.0.0"

DEFAULT_ROLE_COLORS = [
    "#FF6B6B", "#4ECDC4", "#45B7D1", "#96CEB4", "#FFEAA7",
    "#DDA0DD", "#98D8C8", "#F7DC6F", "#BB8FCE", "#85C1E9",
    "#F8C471", "#82E0AA", "#F1948A", "#85929E", "#D2B4DE",
]


class EventType(str, Enum):
    """Lifecycle transitions recorded in the event log."""

    START = "start"
    END = "end"
    SWITCH = "switch"
    CANCEL_TRANSITION = "cancelTransition"
    PAUSE = "pause"
    RESUME = "resume"


class Role(BaseModel):
    """A named activity context."""

    id: str
    name: str
    color_hex: str
    description: str | None = None
    icon: str | None = None
    created_at: datetime
    updated_at: datetime


class RoleInput(BaseModel):
    """Role form data. Constraints are checked by the registry so all failures are reported together."""

    name: str = ""
    color_hex: str = ""
    description: str | None = None
    icon: str | None = None


class RoleUpdate(BaseModel):
    """Partial role changes; unset fields keep their current value."""

    name: str | None = None
    color_hex: str | None = None
    description: str | None = None
    icon: str | None = None


class EventMeta(BaseModel):
    model_config = ConfigDict(frozen=True)

    previous_role_id: str | None = None
    note: str | None = None
    duration: int | None = None
    session_id: str | None = None
    reason: str | None = None


class Event(BaseModel):
    """Immutable audit record of a lifecycle transition."""

    model_config = ConfigDict(frozen=True)

    id: str
    type: EventType
    role_id: str
    at: datetime
    meta: EventMeta | None = None


class Session(BaseModel):
    """One contiguous interval during which a single role was active."""

    id: str
    role_id: str
    start_time: datetime
    end_time: datetime | None = None
    duration: int | None = None
    notes: list[str] = Field(default_factory=list)
    events: list[Event] = Field(default_factory=list)
    is_active: bool = True


class SystemState(BaseModel):
    """Lock and transition flags owned by the session engine."""

    is_locked: bool = False
    lock_end_time: datetime | None = None
    is_in_transition: bool = False
    transition_start_time: datetime | None = None
    transition_end_time: datetime | None = None
    transition_target_role_id: str | None = None
    transition_note: str | None = None
    last_active_time: datetime


class TimerState(BaseModel):
    """Derived view of the running session timer; never persisted."""

    is_running: bool = False
    current_duration: int = 0
    last_update_time: datetime


class LockState(BaseModel):
    is_locked: bool
    end_time: datetime | None = None
    current_role_id: str | None = None
    remaining_time: int = 0
    can_override: bool = False


class TransitionState(BaseModel):
    is_transitioning: bool
    target_role_id: str | None = None
    start_time: datetime | None = None
    end_time: datetime | None = None
    duration: int = 0
    can_cancel: bool = False


class EngineSettings(BaseModel):
    """Runtime settings consumed by the session engine."""

    model_config = ConfigDict(extra="forbid")

    minimum_session_duration: int = Field(
        default=300,
        ge=0,
        le=3600,
        description="Seconds before a session can be switched or ended (0 disables the lock)",
    )
    transition_window_duration: int = Field(
        default=30,
        ge=0,
        le=600,
        description="Delay in seconds between requesting a switch and it taking effect (0 switches immediately)",
    )
    status_bar_visibility: bool = True
    panel_auto_open: bool = False
    enable_notifications: bool = True
    auto_save_interval: int = Field(default=30, ge=10, le=300)


class ExportBundle(BaseModel):
    """JSON-serializable snapshot of everything the service stores."""

    roles: list[Role] = Field(default_factory=list)
    sessions: list[Session] = Field(default_factory=list)
    events: list[Event] = Field(default_factory=list)
    state: SystemState | None = None
    settings: EngineSettings | None = None
    version: str = DATA_VERSION
    exported_at: datetime | None = None


class ImportResult(BaseModel):
    success: bool
    message: str
    imported: dict[str, int] = Field(default_factory=dict)
    errors: list[str] = Field(default_factory=list)

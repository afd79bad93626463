"""Domain records and report schemas."""

from roleswitch.schemas.analytics import (
    AnalyticsReport,
    DailyStatistics,
    DateRange,
    HourlyBreakdown,
    ProductivityInsights,
    RoleTimeBreakdown,
    RoleUsage,
    RoleUsageStats,
    StreakInfo,
)
from roleswitch.schemas.domain import (
    DATA_VERSION,
    DEFAULT_ROLE_COLORS,
    EngineSettings,
    Event,
    EventMeta,
    EventType,
    ExportBundle,
    ImportResult,
    LockState,
    Role,
    RoleInput,
    RoleUpdate,
    Session,
    SystemState,
    TimerState,
    TransitionState,
)

__all__ = [
    "AnalyticsReport",
    "DATA_VERSION",
    "DEFAULT_ROLE_COLORS",
    "DailyStatistics",
    "DateRange",
    "EngineSettings",
    "Event",
    "EventMeta",
    "EventType",
    "ExportBundle",
    "HourlyBreakdown",
    "ImportResult",
    "LockState",
    "ProductivityInsights",
    "Role",
    "RoleInput",
    "RoleTimeBreakdown",
    "RoleUpdate",
    "RoleUsage",
    "RoleUsageStats",
    "Session",
    "StreakInfo",
    "SystemState",
    "TimerState",
    "TransitionState",
]

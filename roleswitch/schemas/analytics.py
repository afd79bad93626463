"""Analytics report shapes. All durations are milliseconds."""

from datetime import datetime

from pydantic import BaseModel, Field

from roleswitch.schemas.domain import Session


class RoleTimeBreakdown(BaseModel):
    role_id: str
    role_name: str
    total_duration: int
    sessions_count: int
    average_session_length: float
    percentage: int


class HourlyBreakdown(BaseModel):
    hour: int = Field(..., ge=0, le=23)
    total_duration: int
    sessions_count: int


class DailyStatistics(BaseModel):
    date: str = Field(..., description="Date in YYYY-MM-DD format")
    total_duration: int
    sessions_count: int
    role_breakdown: list[RoleTimeBreakdown] = Field(default_factory=list)
    average_session_length: float
    switch_count: int


class DateRange(BaseModel):
    start: datetime
    end: datetime


class AnalyticsReport(BaseModel):
    date_range: DateRange
    total_duration: int
    total_sessions: int
    total_switches: int
    average_session_length: float
    daily_stats: list[DailyStatistics] = Field(default_factory=list)
    role_breakdown: list[RoleTimeBreakdown] = Field(default_factory=list)
    most_productive_hours: list[HourlyBreakdown] = Field(default_factory=list)
    longest_sessions: list[Session] = Field(default_factory=list)


class StreakInfo(BaseModel):
    current_streak: int
    longest_streak: int
    last_session_date: str | None = None


class ProductivityInsights(BaseModel):
    most_productive_role: RoleTimeBreakdown | None = None
    most_productive_hour: HourlyBreakdown | None = None
    average_daily_time: float
    longest_session: Session | None = None
    total_sessions_this_week: int
    focus_score: int = Field(..., ge=0, le=100)


class RoleUsage(BaseModel):
    name: str
    usage: int


class RoleUsageStats(BaseModel):
    total_roles: int
    active_roles: int
    unused_roles: int
    most_used_role: RoleUsage | None = None
    least_used_role: RoleUsage | None = None

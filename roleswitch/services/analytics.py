"""Time-usage analytics over stored sessions and events.

The ``calculate_*`` functions are pure and take an explicit ``now``; the
``AnalyticsService`` fetches from storage and assembles reports. Nothing here
mutates state. Hours and dates are bucketed in UTC.
"""

import csv
import io
import math
from collections import Counter, defaultdict
from collections.abc import Callable, Iterable
from datetime import date, datetime, timedelta
from typing import Any

from roleswitch.core.datetime_utils import (
    MINUTE_MS,
    duration_ms,
    end_of_day,
    format_duration,
    start_of_day,
    utc_now,
)
from roleswitch.core.logging import get_logger
from roleswitch.schemas import (
    AnalyticsReport,
    DailyStatistics,
    DateRange,
    Event,
    EventType,
    HourlyBreakdown,
    ProductivityInsights,
    RoleTimeBreakdown,
    RoleUsage,
    RoleUsageStats,
    Session,
    StreakInfo,
)

logger = get_logger(__name__)

UNKNOWN_ROLE_NAME = "Unknown Role"
FOCUS_SESSION_TARGET_MS = 30 * MINUTE_MS
EXPORT_FORMATS = ("json", "csv")


def round_half_up(value: float) -> int:
    return math.floor(value + 0.5)


def calculate_percentage(value: float, total: float) -> int:
    return 0 if total == 0 else round_half_up(value / total * 100)


def session_duration(session: Session, now: datetime) -> int:
    """Milliseconds attributed to a session; active sessions count up to ``now``."""
    if session.is_active:
        return max(0, duration_ms(session.start_time, now))
    if session.duration is not None:
        return session.duration
    if session.end_time is not None:
        return duration_ms(session.start_time, session.end_time)
    return 0


def calculate_total_duration(sessions: Iterable[Session], now: datetime) -> int:
    return sum(session_duration(s, now) for s in sessions)


def calculate_role_breakdown(
    sessions: Iterable[Session],
    role_names: dict[str, str],
    now: datetime,
) -> list[RoleTimeBreakdown]:
    """Per-role totals sorted by time spent, most first."""
    totals: dict[str, int] = defaultdict(int)
    counts: dict[str, int] = defaultdict(int)
    for session in sessions:
        totals[session.role_id] += session_duration(session, now)
        counts[session.role_id] += 1

    grand_total = sum(totals.values())
    breakdown = [
        RoleTimeBreakdown(
            role_id=role_id,
            role_name=role_names.get(role_id, UNKNOWN_ROLE_NAME),
            total_duration=total,
            sessions_count=counts[role_id],
            average_session_length=total / counts[role_id],
            percentage=calculate_percentage(total, grand_total),
        )
        for role_id, total in totals.items()
    ]
    return sorted(breakdown, key=lambda item: item.total_duration, reverse=True)


def calculate_hourly_breakdown(sessions: Iterable[Session], now: datetime) -> list[HourlyBreakdown]:
    """All 24 start-hour buckets, busiest first."""
    totals = [0] * 24
    counts = [0] * 24
    for session in sessions:
        hour = session.start_time.hour
        totals[hour] += session_duration(session, now)
        counts[hour] += 1

    hours = [
        HourlyBreakdown(hour=hour, total_duration=totals[hour], sessions_count=counts[hour])
        for hour in range(24)
    ]
    return sorted(hours, key=lambda item: item.total_duration, reverse=True)


def get_longest_sessions(sessions: Iterable[Session], now: datetime, limit: int = 5) -> list[Session]:
    ranked = sorted(sessions, key=lambda s: session_duration(s, now), reverse=True)
    return ranked[:limit]


def count_switches(events: Iterable[Event]) -> int:
    return sum(1 for event in events if event.type == EventType.SWITCH)


def calculate_streaks(session_dates: Iterable[date], today: date) -> StreakInfo:
    """
    Consecutive-day streaks over the days that have at least one session.

    The current streak only counts if the latest day is today or yesterday.
    """
    days = sorted(set(session_dates), reverse=True)
    if not days:
        return StreakInfo(current_streak=0, longest_streak=0, last_session_date=None)

    day_set = set(days)
    current = 0
    latest = days[0]
    if latest in (today, today - timedelta(days=1)):
        check = latest
        while check in day_set:
            current += 1
            check -= timedelta(days=1)

    longest = 0
    run = 0
    previous: date | None = None
    for day in days:
        if previous is not None and previous - day == timedelta(days=1):
            run += 1
        else:
            run = 1
        longest = max(longest, run)
        previous = day

    return StreakInfo(
        current_streak=current,
        longest_streak=longest,
        last_session_date=latest.isoformat(),
    )


def calculate_focus_score(average_session_ms: float, total_switches: int, total_sessions: int) -> int:
    """
    0-100 score: up to 50 points for session length, up to 50 for few switches.

    A 30 minute average earns 50 length points (capped at 100 before the
    switch score is added); two or more switches per session earn nothing.
    """
    if total_sessions == 0:
        return 0

    length_score = min(100.0, average_session_ms / FOCUS_SESSION_TARGET_MS * 50)
    switch_score = max(0.0, 50 - (total_switches / total_sessions) * 25)
    return min(100, round_half_up(length_score + switch_score))


class AnalyticsService:
    """Builds reports from storage. Read-only."""

    def __init__(
        self,
        storage: Any,
        roles: Any,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._storage = storage
        self._roles = roles
        self._clock = clock

    def _role_names(self) -> dict[str, str]:
        return {role.id: role.name for role in self._roles.get_all_roles()}

    def _daily_stats(
        self,
        day: date,
        sessions: list[Session],
        events: list[Event],
        role_names: dict[str, str],
        now: datetime,
    ) -> DailyStatistics:
        day_sessions = [s for s in sessions if s.start_time.date() == day]
        day_events = [e for e in events if e.at.date() == day]
        total = calculate_total_duration(day_sessions, now)
        count = len(day_sessions)

        return DailyStatistics(
            date=day.isoformat(),
            total_duration=total,
            sessions_count=count,
            role_breakdown=calculate_role_breakdown(day_sessions, role_names, now),
            average_session_length=total / count if count else 0,
            switch_count=count_switches(day_events),
        )

    async def generate_daily_report(self, day: date) -> DailyStatistics:
        start, end = start_of_day(day), end_of_day(day)
        sessions = await self._storage.get_sessions_in_range(start, end)
        events = await self._storage.get_events_in_range(start, end)
        return self._daily_stats(day, sessions, events, self._role_names(), self._clock())

    async def generate_report(self, start: datetime, end: datetime) -> AnalyticsReport:
        """Totals, per-day statistics and breakdowns for sessions started in [start, end]."""
        now = self._clock()
        sessions = await self._storage.get_sessions_in_range(start, end)
        events = await self._storage.get_events_in_range(start, end)
        role_names = self._role_names()

        total = calculate_total_duration(sessions, now)
        daily_stats = []
        day = start.date()
        while day <= end.date():
            daily_stats.append(self._daily_stats(day, sessions, events, role_names, now))
            day += timedelta(days=1)

        return AnalyticsReport(
            date_range=DateRange(start=start, end=end),
            total_duration=total,
            total_sessions=len(sessions),
            total_switches=count_switches(events),
            average_session_length=total / len(sessions) if sessions else 0,
            daily_stats=daily_stats,
            role_breakdown=calculate_role_breakdown(sessions, role_names, now),
            most_productive_hours=calculate_hourly_breakdown(sessions, now),
            longest_sessions=get_longest_sessions(sessions, now, limit=5),
        )

    async def get_todays_report(self) -> DailyStatistics:
        return await self.generate_daily_report(self._clock().date())

    async def _report_for_last_days(self, days: int) -> AnalyticsReport:
        now = self._clock()
        first_day = now.date() - timedelta(days=days - 1)
        return await self.generate_report(start_of_day(first_day), end_of_day(now.date()))

    async def get_weekly_report(self) -> AnalyticsReport:
        return await self._report_for_last_days(7)

    async def get_monthly_report(self) -> AnalyticsReport:
        return await self._report_for_last_days(30)

    async def get_productivity_insights(self) -> ProductivityInsights:
        weekly = await self.get_weekly_report()
        daily_totals = [stat.total_duration for stat in weekly.daily_stats]

        return ProductivityInsights(
            most_productive_role=weekly.role_breakdown[0] if weekly.role_breakdown else None,
            most_productive_hour=weekly.most_productive_hours[0] if weekly.most_productive_hours else None,
            average_daily_time=sum(daily_totals) / len(daily_totals) if daily_totals else 0,
            longest_session=weekly.longest_sessions[0] if weekly.longest_sessions else None,
            total_sessions_this_week=weekly.total_sessions,
            focus_score=calculate_focus_score(
                weekly.average_session_length,
                weekly.total_switches,
                weekly.total_sessions,
            ),
        )

    async def get_session_streak(self) -> StreakInfo:
        sessions = await self._storage.get_all_sessions()
        return calculate_streaks((s.start_time.date() for s in sessions), self._clock().date())

    async def get_role_usage_stats(self) -> RoleUsageStats:
        """Role usage over the last 7 days."""
        now = self._clock()
        recent = await self._storage.get_sessions_in_range(now - timedelta(days=7), now)
        usage = Counter(session.role_id for session in recent)
        role_names = self._role_names()

        most_used = least_used = None
        ranked = usage.most_common()
        if ranked:
            top_id, top_count = ranked[0]
            if top_id in role_names:
                most_used = RoleUsage(name=role_names[top_id], usage=top_count)
            bottom_id, bottom_count = ranked[-1]
            if bottom_id in role_names:
                least_used = RoleUsage(name=role_names[bottom_id], usage=bottom_count)

        return RoleUsageStats(
            total_roles=len(role_names),
            active_roles=len(usage),
            unused_roles=max(0, len(role_names) - len(usage)),
            most_used_role=most_used,
            least_used_role=least_used,
        )

    async def export_analytics(
        self,
        export_format: str = "json",
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> str:
        """Render a report as JSON or CSV. Defaults to the last 30 days."""
        if export_format not in EXPORT_FORMATS:
            raise ValueError(f"Unsupported export format: {export_format}")

        end = end or self._clock()
        start = start or end - timedelta(days=30)
        report = await self.generate_report(start, end)

        logger.info(
            "Exporting analytics",
            extra={"format": export_format, "start": start.isoformat(), "end": end.isoformat()},
        )
        if export_format == "json":
            return report.model_dump_json(indent=2)
        return _report_to_csv(report)


def _report_to_csv(report: AnalyticsReport) -> str:
    fieldnames = [
        "Type", "Date", "Name", "Duration", "Sessions",
        "Average Session", "Switches", "Percentage",
    ]
    rows: list[dict[str, Any]] = [
        {
            "Type": "Daily",
            "Date": stat.date,
            "Duration": format_duration(stat.total_duration),
            "Sessions": stat.sessions_count,
            "Average Session": format_duration(stat.average_session_length),
            "Switches": stat.switch_count,
        }
        for stat in report.daily_stats
    ]
    rows.extend(
        {
            "Type": "Role",
            "Name": role.role_name,
            "Duration": format_duration(role.total_duration),
            "Sessions": role.sessions_count,
            "Average Session": format_duration(role.average_session_length),
            "Percentage": f"{role.percentage}%",
        }
        for role in report.role_breakdown
    )

    buffer = io.StringIO()
    writer = csv.DictWriter(buffer, fieldnames=fieldnames, lineterminator="\n")
    writer.writeheader()
    writer.writerows(rows)
    return buffer.getvalue()

"""Analytics endpoints."""

from datetime import date, datetime
from typing import Literal

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import PlainTextResponse

from roleswitch.api.deps import get_analytics
from roleswitch.core.datetime_utils import ensure_utc
from roleswitch.schemas import (
    AnalyticsReport,
    DailyStatistics,
    ProductivityInsights,
    RoleUsageStats,
    StreakInfo,
)
from roleswitch.services.analytics import AnalyticsService

router = APIRouter()


def _validate_range(start: datetime, end: datetime) -> tuple[datetime, datetime]:
    start, end = ensure_utc(start), ensure_utc(end)
    if start > end:
        raise HTTPException(status_code=400, detail="start must not be after end")
    return start, end


@router.get("/today", response_model=DailyStatistics)
async def get_today(analytics: AnalyticsService = Depends(get_analytics)) -> DailyStatistics:
    return await analytics.get_todays_report()


@router.get("/daily", response_model=DailyStatistics)
async def get_daily(
    day: date = Query(..., description="Day in YYYY-MM-DD format (UTC)"),
    analytics: AnalyticsService = Depends(get_analytics),
) -> DailyStatistics:
    return await analytics.generate_daily_report(day)


@router.get("/report", response_model=AnalyticsReport)
async def get_report(
    start: datetime = Query(..., description="Range start (ISO 8601)"),
    end: datetime = Query(..., description="Range end (ISO 8601)"),
    analytics: AnalyticsService = Depends(get_analytics),
) -> AnalyticsReport:
    """Report for sessions started within [start, end]."""
    start, end = _validate_range(start, end)
    return await analytics.generate_report(start, end)


@router.get("/weekly", response_model=AnalyticsReport)
async def get_weekly(analytics: AnalyticsService = Depends(get_analytics)) -> AnalyticsReport:
    return await analytics.get_weekly_report()


@router.get("/monthly", response_model=AnalyticsReport)
async def get_monthly(analytics: AnalyticsService = Depends(get_analytics)) -> AnalyticsReport:
    return await analytics.get_monthly_report()


@router.get("/insights", response_model=ProductivityInsights)
async def get_insights(analytics: AnalyticsService = Depends(get_analytics)) -> ProductivityInsights:
    """Weekly insights including the 0-100 focus score."""
    return await analytics.get_productivity_insights()


@router.get("/streak", response_model=StreakInfo)
async def get_streak(analytics: AnalyticsService = Depends(get_analytics)) -> StreakInfo:
    return await analytics.get_session_streak()


@router.get("/role-usage", response_model=RoleUsageStats)
async def get_role_usage(analytics: AnalyticsService = Depends(get_analytics)) -> RoleUsageStats:
    return await analytics.get_role_usage_stats()


@router.get("/export")
async def export_analytics(
    format: Literal["json", "csv"] = Query(default="json"),
    start: datetime | None = Query(default=None),
    end: datetime | None = Query(default=None),
    analytics: AnalyticsService = Depends(get_analytics),
) -> PlainTextResponse:
    """Export a report (last 30 days by default) as JSON or CSV."""
    if start is not None and end is not None:
        start, end = _validate_range(start, end)
    content = await analytics.export_analytics(format, ensure_utc(start), ensure_utc(end))

    media_type = "application/json" if format == "json" else "text/csv"
    return PlainTextResponse(
        content,
        media_type=media_type,
        headers={"Content-Disposition": f'attachment; filename="analytics-export.{format}"'},
    )

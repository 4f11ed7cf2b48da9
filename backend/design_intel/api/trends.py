"""Trend API routes."""
from fastapi import APIRouter, Depends
from typing import Optional

from design_intel.api.deps import get_trends
from design_intel.services.trends import TrendAnalyzer

router = APIRouter()


@router.get("")
def analyze_trends(window_days: Optional[int] = None, trends: TrendAnalyzer = Depends(get_trends)):
    return [trend.as_dict() for trend in trends.analyze_trends(window_days=window_days)]


@router.get("/breaking")
def breaking_trends(
    min_growth_rate: Optional[float] = None,
    window_days: Optional[int] = None,
    trends: TrendAnalyzer = Depends(get_trends),
):
    return [
        trend.as_dict()
        for trend in trends.detect_breaking_trends(min_growth_rate=min_growth_rate, window_days=window_days)
    ]


@router.get("/report")
def trend_report(trends: TrendAnalyzer = Depends(get_trends)):
    return trends.generate_trend_report()


@router.get("/{trend_id}/trajectory")
def trend_trajectory(
    trend_id: str,
    window_days: Optional[int] = None,
    trends: TrendAnalyzer = Depends(get_trends),
):
    return trends.predict_trajectory(trend_id, window_days=window_days).as_dict()

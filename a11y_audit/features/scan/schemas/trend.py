from datetime import date
from typing import List, Optional

from pydantic import BaseModel


class Trend(BaseModel):
    """Comparison of the two most recent reports for a URL."""
    previous_score: int
    current_score: int
    compliance_score_delta: int
    total_issues_delta: int
    trend: str  # "improving" | "declining" | "stable"


class WeeklyTrend(BaseModel):
    week_start: date
    analysis_count: int
    total_violations: int
    average_compliance_score: float


class HistoricalComparison(BaseModel):
    url: str
    analysis_count: int
    comparison: Optional[Trend] = None
    weekly: List[WeeklyTrend] = []

from typing import Dict, List, Literal

from swingscore.schemas.base import CamelModel

Trend = Literal["improving", "declining", "stable", "neutral"]


class AccuracyPoint(CamelModel):
    period: str  # "2026-Q3" or "2026-W07"
    accuracy_rate: float
    total_feedback: int


class MetricAccuracy(CamelModel):
    accuracy_rate: float
    total_feedback: int


class AccuracyReport(CamelModel):
    range_days: int
    bucket: Literal["quarter", "week"]
    time_series: List[AccuracyPoint]
    metric_accuracy: Dict[str, MetricAccuracy]
    trend: Trend
    current_accuracy: float

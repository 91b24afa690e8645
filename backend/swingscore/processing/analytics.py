"""
Model accuracy analytics computed on demand from the feedback ledger.
"""
import logging
import re
from collections import defaultdict
from datetime import datetime, timedelta, timezone
from typing import Dict, Iterable, List, Optional

from swingscore.schemas.analytics import AccuracyPoint, AccuracyReport, MetricAccuracy, Trend
from swingscore.schemas.feedback import FeedbackEvent, Verdict
from swingscore.services.feedback_ledger import FeedbackLedger

logger = logging.getLogger(__name__)

NAMED_RANGES = {"7d": 7, "30d": 30, "1y": 365}
MAX_RANGE_DAYS = 365
MIN_METRIC_FEEDBACK = 3
TREND_THRESHOLD = 5.0

_DAYS_PATTERN = re.compile(r"^(\d+)d?$")


def parse_range(value: str) -> int:
    """
    "7d", "30d", "1y", or a day count up to 365 ("90", "90d").

    Raises:
        ValueError: unknown range or out of bounds
    """
    value = value.strip().lower()
    if value in NAMED_RANGES:
        return NAMED_RANGES[value]
    match = _DAYS_PATTERN.match(value)
    if not match:
        raise ValueError(f"Unsupported range: {value!r}")
    days = int(match.group(1))
    if not 1 <= days <= MAX_RANGE_DAYS:
        raise ValueError(f"Range must be between 1 and {MAX_RANGE_DAYS} days")
    return days


def period_key(timestamp: datetime, bucket: str = "quarter") -> str:
    if bucket == "week":
        year, week, _ = timestamp.isocalendar()
        return f"{year}-W{week:02d}"
    return f"{timestamp.year}-Q{(timestamp.month - 1) // 3 + 1}"


def accuracy_rate(accurate: int, total: int) -> float:
    return round(accurate / total * 100, 1) if total else 0.0


def calculate_trend(points: List[AccuracyPoint]) -> Trend:
    if len(points) < 2:
        return "neutral"
    change = points[-1].accuracy_rate - points[0].accuracy_rate
    if change > TREND_THRESHOLD:
        return "improving"
    if change < -TREND_THRESHOLD:
        return "declining"
    return "stable" if len(points) > 2 else "neutral"


def accuracy_report(events: Iterable[FeedbackEvent], range_days: int, bucket: str = "quarter") -> AccuracyReport:
    """Accuracy time series, per-metric accuracy and trend over already-filtered events."""
    periods: Dict[str, List[int]] = defaultdict(lambda: [0, 0])  # [accurate, total]
    metrics: Dict[str, List[int]] = defaultdict(lambda: [0, 0])

    for event in events:
        counts = periods[period_key(event.timestamp, bucket)]
        counts[0] += event.verdict.collapsed() == Verdict.ACCURATE
        counts[1] += 1
        for metric, verdict in event.metric_verdict.items():
            metrics[metric][0] += verdict.collapsed() == Verdict.ACCURATE
            metrics[metric][1] += 1

    time_series = [
        AccuracyPoint(period=period, accuracy_rate=accuracy_rate(accurate, total), total_feedback=total)
        for period, (accurate, total) in sorted(periods.items())
    ]
    metric_accuracy = {
        metric: MetricAccuracy(accuracy_rate=accuracy_rate(accurate, total), total_feedback=total)
        for metric, (accurate, total) in sorted(metrics.items())
        if total >= MIN_METRIC_FEEDBACK
    }
    return AccuracyReport(
        range_days=range_days,
        bucket=bucket,
        time_series=time_series,
        metric_accuracy=metric_accuracy,
        trend=calculate_trend(time_series),
        current_accuracy=time_series[-1].accuracy_rate if time_series else 0.0,
    )


def track_model_improvement(
    store, range_value: str = "30d", bucket: str = "quarter", now: Optional[datetime] = None
) -> AccuracyReport:
    range_days = parse_range(range_value)
    if bucket not in ("quarter", "week"):
        raise ValueError(f"Unsupported bucket: {bucket!r}")
    now = now or datetime.now(timezone.utc)
    events = FeedbackLedger(store).window(now - timedelta(days=range_days))
    logger.info(f"Computing accuracy over {len(events)} feedback event(s) ({range_days}d, {bucket})")
    return accuracy_report(events, range_days, bucket)

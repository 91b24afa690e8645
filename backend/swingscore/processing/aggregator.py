"""
Feedback aggregator.

Reduces a window of feedback ledger documents into a new AdjustmentFactors
document. Counting is weighted by confidence and skill level; each slice
(global, skill level, metric, metric x skill level) emits a bounded additive
correction once its weighted total reaches the slice minimum.
"""
import logging
from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional

from pydantic import ValidationError

from swingscore.core.config import settings
from swingscore.core.errors import AggregationAborted
from swingscore.core.metrics import clamp, round_half_up
from swingscore.schemas.adjustment import AdjustmentFactors, SliceFactors
from swingscore.schemas.feedback import FeedbackEvent, SkillLevel, Verdict

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AggregatorConfig:
    window_days: int = 14
    max_overall: int = 3
    max_metric: int = 5
    max_skipped_fraction: float = 0.10

    # Minimum weighted total before a slice emits a factor
    min_global: float = 5
    min_skill: float = 3
    min_metric: float = 3
    min_metric_skill: float = 2

    # Factor rule
    balance_threshold: float = 0.2
    majority: float = 0.5
    dominance: float = 1.5
    boosted_skill_weight: float = 1.2

    # Max magnitude (M) per slice
    global_magnitude: int = 3
    skill_magnitude: int = 3
    pro_skill_magnitude: int = 2
    metric_magnitude: int = 4
    metric_skill_magnitude: int = 4
    boosted_metric_skill_magnitude: int = 5
    pro_metric_skill_magnitude: int = 2

    @classmethod
    def from_settings(cls) -> "AggregatorConfig":
        return cls(
            window_days=settings.feedback_window_days,
            max_overall=settings.max_overall_adjustment,
            max_metric=settings.max_metric_adjustment,
            max_skipped_fraction=settings.feedback_max_skipped_fraction,
        )


BOOSTED_LEVELS = (SkillLevel.AMATEUR, SkillLevel.BEGINNER)


class VerdictCounts:
    """Weighted verdict counts for one slice."""

    def __init__(self):
        self.too_high = 0.0
        self.too_low = 0.0
        self.accurate = 0.0
        self.total = 0.0

    def add(self, verdict: Verdict, weight: float) -> None:
        verdict = verdict.collapsed()
        if verdict == Verdict.TOO_HIGH:
            self.too_high += weight
        elif verdict == Verdict.TOO_LOW:
            self.too_low += weight
        else:
            self.accurate += weight
        self.total += weight


def adjustment_value(too_high: float, too_low: float, total: float, magnitude: int, config: AggregatorConfig) -> int:
    """
    Turn a verdict distribution into a signed correction of at most `magnitude`.
    Positive means scores were judged too low and should be raised.
    """
    if total <= 0:
        return 0
    hp = too_high / total
    lp = too_low / total

    if abs(hp - lp) < config.balance_threshold:
        return 0
    if hp > config.majority and hp > config.dominance * lp:
        return -round_half_up(magnitude * min(1.0, 2 * (hp - config.majority)))
    if lp > config.majority and lp > config.dominance * hp:
        return round_half_up(magnitude * min(1.0, 2 * (lp - config.majority)))
    return 0


def _skill_magnitude(level: SkillLevel, config: AggregatorConfig) -> int:
    return config.pro_skill_magnitude if level == SkillLevel.PRO else config.skill_magnitude


def _metric_skill_magnitude(level: SkillLevel, config: AggregatorConfig) -> int:
    if level == SkillLevel.PRO:
        return config.pro_metric_skill_magnitude
    if level in BOOSTED_LEVELS:
        return config.boosted_metric_skill_magnitude
    return config.metric_skill_magnitude


def event_weight(event: FeedbackEvent, config: AggregatorConfig) -> float:
    boost = config.boosted_skill_weight if event.skill_level in BOOSTED_LEVELS else 1.0
    return event.confidence * boost


def decode_events(docs: Iterable[Dict[str, Any]], config: AggregatorConfig) -> List[FeedbackEvent]:
    """
    Decode ledger documents, skipping the ones that fail validation.

    Raises:
        AggregationAborted: more than max_skipped_fraction of the documents failed
    """
    docs = list(docs)
    events = []
    skipped = 0
    for doc in docs:
        try:
            events.append(FeedbackEvent.model_validate(doc))
        except ValidationError as e:
            skipped += 1
            logger.warning(f"Skipping undecodable feedback {doc.get('id')}: {e.error_count()} error(s)")

    if docs and skipped / len(docs) > config.max_skipped_fraction:
        raise AggregationAborted(f"{skipped} of {len(docs)} feedback events could not be decoded")
    return events


def aggregate(
    events: Iterable[FeedbackEvent],
    config: Optional[AggregatorConfig] = None,
    now: Optional[datetime] = None,
) -> AdjustmentFactors:
    """
    Reduce feedback events into adjustment factors.

    Events with adjustmentPriority "never" are ignored. The result depends only
    on the multiset of events (plus `now` for updatedAt).
    """
    config = config or AggregatorConfig.from_settings()

    overall = VerdictCounts()
    by_skill: Dict[SkillLevel, VerdictCounts] = defaultdict(VerdictCounts)
    by_metric: Dict[str, VerdictCounts] = defaultdict(VerdictCounts)
    by_metric_skill: Dict[str, Dict[SkillLevel, VerdictCounts]] = defaultdict(lambda: defaultdict(VerdictCounts))

    used = 0
    for event in events:
        if event.excluded_from_aggregation:
            continue
        used += 1
        weight = event_weight(event, config)
        overall.add(event.verdict, weight)
        by_skill[event.skill_level].add(event.verdict, weight)
        for metric, verdict in event.metric_verdict.items():
            by_metric[metric].add(verdict, weight)
            by_metric_skill[metric][event.skill_level].add(verdict, weight)

    factors = AdjustmentFactors(updated_at=now or datetime.now(timezone.utc))

    def bounded(value: int, bound: int) -> int:
        return int(clamp(value, -bound, bound))

    # Levels without a qualifying factor get no slice and fall back to the global factors
    def level_slice(level: SkillLevel) -> SliceFactors:
        return factors.by_skill_level.setdefault(level, SliceFactors())

    if overall.total >= config.min_global:
        factors.overall = bounded(
            adjustment_value(overall.too_high, overall.too_low, overall.total, config.global_magnitude, config),
            config.max_overall,
        )

    for level in SkillLevel:
        counts = by_skill.get(level)
        if counts is None or counts.total < config.min_skill:
            continue
        level_slice(level).overall = bounded(
            adjustment_value(counts.too_high, counts.too_low, counts.total, _skill_magnitude(level, config), config),
            config.max_overall,
        )

    for metric in sorted(by_metric):
        counts = by_metric[metric]
        if counts.total < config.min_metric:
            continue
        factors.metrics[metric] = bounded(
            adjustment_value(counts.too_high, counts.too_low, counts.total, config.metric_magnitude, config),
            config.max_metric,
        )
        # Skill-specific metric factors only for metrics with enough data overall
        for level in SkillLevel:
            level_counts = by_metric_skill[metric].get(level)
            if level_counts is None or level_counts.total < config.min_metric_skill:
                continue
            level_slice(level).metrics[metric] = bounded(
                adjustment_value(
                    level_counts.too_high,
                    level_counts.too_low,
                    level_counts.total,
                    _metric_skill_magnitude(level, config),
                    config,
                ),
                config.max_metric,
            )

    logger.info(
        f"Aggregated {used} feedback event(s): overall={factors.overall}, "
        f"{len(factors.metrics)} metric factor(s)"
    )
    return factors

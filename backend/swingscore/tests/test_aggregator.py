"""
Tests for the feedback aggregator.
"""
import random
import uuid
from datetime import datetime, timedelta, timezone

import pytest

from swingscore.core.errors import AggregationAborted
from swingscore.processing.aggregator import AggregatorConfig, adjustment_value, aggregate, decode_events
from swingscore.schemas.feedback import AdjustmentPriority, FeedbackEvent, SkillLevel, Verdict

NOW = datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)
CONFIG = AggregatorConfig()


def make_event(verdict, confidence=4, skill=SkillLevel.AMATEUR, metric_verdict=None, priority=None):
    return FeedbackEvent(
        id=uuid.uuid4().hex,
        timestamp=NOW - timedelta(days=1),
        verdict=verdict,
        confidence=confidence,
        skill_level=skill,
        metric_verdict=metric_verdict or {},
        adjustment_priority=priority,
    )


def make_doc(verdict="accurate", **extra):
    return {
        "id": uuid.uuid4().hex,
        "timestamp": (NOW - timedelta(days=1)).isoformat(),
        "verdict": verdict,
        "confidence": 3,
        "skillLevel": "advanced",
        "metricVerdict": {},
        **extra,
    }


def without_timestamp(factors):
    document = factors.to_document()
    document.pop("updatedAt")
    return document


@pytest.mark.parametrize(
    "too_high,too_low,total,magnitude,expected",
    [
        (8, 0, 10, 3, -2),
        (0, 10, 10, 4, 4),
        (5, 5, 10, 3, 0),
        (6, 4, 10, 3, 0),
        (7, 0, 10, 3, -1),
        (0, 7, 10, 5, 2),
        (0, 0, 0, 3, 0),
    ],
)
def test_adjustment_value(too_high, too_low, total, magnitude, expected):
    assert adjustment_value(too_high, too_low, total, magnitude, CONFIG) == expected


def test_mostly_too_high_lowers_amateur_scores():
    """Test 8 too_high and 2 accurate amateur events at confidence 4."""
    events = [make_event(Verdict.TOO_HIGH) for _ in range(8)] + [make_event(Verdict.ACCURATE) for _ in range(2)]

    factors = aggregate(events, CONFIG, now=NOW)

    assert factors.overall == -2
    assert factors.by_skill_level[SkillLevel.AMATEUR].overall == -2
    assert SkillLevel.PRO not in factors.by_skill_level
    assert factors.updated_at == NOW


def test_aggregate_is_deterministic():
    rng = random.Random(11)
    verdicts = list(Verdict)
    events = [
        make_event(
            rng.choice(verdicts),
            confidence=rng.randint(1, 5),
            skill=rng.choice([SkillLevel.PRO, SkillLevel.ADVANCED]),
            metric_verdict={"grip": rng.choice(verdicts)},
        )
        for _ in range(40)
    ]

    first = aggregate(events, CONFIG, now=NOW)
    second = aggregate(list(reversed(events)), CONFIG, now=NOW + timedelta(hours=1))

    assert without_timestamp(first) == without_timestamp(second)


def test_never_priority_events_are_ignored():
    base = [make_event(Verdict.TOO_HIGH) for _ in range(6)]
    never = [
        make_event(Verdict.TOO_LOW, metric_verdict={"grip": Verdict.TOO_LOW}, priority=AdjustmentPriority.NEVER)
        for _ in range(10)
    ]

    assert without_timestamp(aggregate(base, CONFIG, now=NOW)) == without_timestamp(
        aggregate(base + never, CONFIG, now=NOW)
    )


def test_factors_stay_within_bounds():
    rng = random.Random(5)
    verdicts = list(Verdict)
    for _ in range(30):
        events = [
            make_event(
                rng.choice(verdicts),
                confidence=rng.randint(1, 5),
                skill=rng.choice(list(SkillLevel)),
                metric_verdict={key: rng.choice(verdicts) for key in rng.sample(["grip", "stance", "pacing"], 2)},
            )
            for _ in range(rng.randint(0, 30))
        ]

        factors = aggregate(events, CONFIG, now=NOW)

        slices = [factors, *factors.by_skill_level.values()]
        assert all(abs(s.overall) <= 3 for s in slices)
        assert all(abs(value) <= 5 for s in slices for value in s.metrics.values())


def test_qualitative_verdicts_count_as_too_low():
    events = [make_event(Verdict.FORM_ISSUE) for _ in range(3)] + [make_event(Verdict.PACING_ISSUE) for _ in range(2)]
    assert aggregate(events, CONFIG, now=NOW).overall == 3


def test_minimums_use_weighted_totals():
    """Test two confident beginner events weigh 12, enough for global and skill factors."""
    events = [make_event(Verdict.TOO_HIGH, confidence=5, skill=SkillLevel.BEGINNER) for _ in range(2)]

    factors = aggregate(events, CONFIG, now=NOW)

    assert factors.overall == -3
    assert factors.by_skill_level[SkillLevel.BEGINNER].overall == -3


def test_four_amateur_events_reach_the_global_minimum():
    events = [make_event(Verdict.TOO_HIGH) for _ in range(4)]

    factors = aggregate(events, CONFIG, now=NOW)

    assert factors.overall == -3
    assert factors.by_skill_level[SkillLevel.AMATEUR].overall == -3


def test_low_confidence_events_below_the_minimums():
    """Test advanced events at confidence 1 and 2 weigh 3: a skill factor but no global one."""
    events = [
        make_event(Verdict.TOO_HIGH, confidence=1, skill=SkillLevel.ADVANCED),
        make_event(Verdict.TOO_HIGH, confidence=2, skill=SkillLevel.ADVANCED),
    ]

    factors = aggregate(events, CONFIG, now=NOW)

    assert factors.overall == 0
    assert factors.by_skill_level[SkillLevel.ADVANCED].overall == -3


def test_single_low_confidence_event_emits_nothing():
    factors = aggregate([make_event(Verdict.TOO_HIGH, confidence=1, skill=SkillLevel.ADVANCED)], CONFIG, now=NOW)

    assert factors.overall == 0
    assert factors.by_skill_level == {}
    assert factors.is_zero()


def test_metric_factors():
    events = [make_event(Verdict.ACCURATE, metric_verdict={"grip": Verdict.TOO_HIGH}) for _ in range(3)]

    factors = aggregate(events, CONFIG, now=NOW)

    assert factors.metrics == {"grip": -4}
    assert factors.by_skill_level[SkillLevel.AMATEUR].metrics == {"grip": -5}
    assert SkillLevel.PRO not in factors.by_skill_level


def test_pro_metric_factors_use_smaller_magnitude():
    events = [
        make_event(Verdict.ACCURATE, skill=SkillLevel.PRO, metric_verdict={"stance": Verdict.TOO_LOW})
        for _ in range(3)
    ]

    factors = aggregate(events, CONFIG, now=NOW)

    assert factors.metrics["stance"] == 4
    assert factors.by_skill_level[SkillLevel.PRO].metrics["stance"] == 2


def test_metric_with_too_little_weight_has_no_factor():
    """Test two amateur events at confidence 1 weigh 2.4, under the per-metric minimum of 3."""
    events = [
        make_event(Verdict.ACCURATE, confidence=1, metric_verdict={"grip": Verdict.TOO_HIGH}) for _ in range(2)
    ]

    factors = aggregate(events, CONFIG, now=NOW)

    assert "grip" not in factors.metrics
    assert SkillLevel.AMATEUR not in factors.by_skill_level


def test_metric_aliases_are_merged():
    events = [make_event(Verdict.ACCURATE, metric_verdict={"swingBack": Verdict.TOO_LOW}) for _ in range(3)]
    assert aggregate(events, CONFIG, now=NOW).metrics == {"backswing": 4}


def test_empty_window_gives_zero_factors():
    assert aggregate([], CONFIG, now=NOW).is_zero()


def test_decode_events_skips_a_few_bad_documents():
    docs = [make_doc() for _ in range(9)] + [make_doc(verdict="bogus")]
    assert len(decode_events(docs, CONFIG)) == 9


def test_decode_events_aborts_on_too_many_bad_documents():
    docs = [make_doc() for _ in range(8)] + [make_doc(verdict="bogus"), make_doc(confidence=9)]

    with pytest.raises(AggregationAborted):
        decode_events(docs, CONFIG)

"""
Score normalizer.

The external analyzer tends to collapse every metric toward the midpoint.
normalize() clamps its output, keeps the overall score within a bounded
distance of the weighted metric mean, spreads collapsed metric values and
breaks ties between metrics and the overall score. All functions are pure.
"""
import hashlib
from typing import Dict, Mapping

import numpy as np

from swingscore.core.metrics import (
    DEFAULT_METRIC_SCORE,
    METRIC_KEYS,
    SCORE_MAX,
    SCORE_MIN,
    canonical_metric_key,
    clamp_score,
)
from swingscore.core.weights import weight_for, weighted_overall
from swingscore.schemas.score import ScoreVector

# Max allowed distance between overallScore and the weighted metric mean
OVERALL_TOLERANCE = 5

# Spread is applied only to vectors this collapsed
SPREAD_MAX_STD = 5.0
SPREAD_MIN_COUNT = 4
SPREAD_MAX_RANGE = 15
SPREAD_TARGET_STD = 8.0


def complete_metrics(vector: ScoreVector) -> ScoreVector:
    """
    Resolve metric aliases and default any missing closed-set metric to 50.

    Defaulted keys are recorded in missing_metrics. Unknown keys are kept and
    scored through the default-weight path.
    """
    metrics: Dict[str, int] = {}
    for key, value in vector.metrics.items():
        canonical = canonical_metric_key(key)
        # The canonical key wins over its alias when both are present
        if canonical in metrics and key != canonical:
            continue
        metrics[canonical] = value

    missing = [key for key in METRIC_KEYS if key not in metrics]
    for key in missing:
        metrics[key] = DEFAULT_METRIC_SCORE

    return vector.model_copy(
        update={
            "metrics": metrics,
            "missing_metrics": sorted(set(vector.missing_metrics) | set(missing)),
        }
    )


def reconcile_overall(overall: int, metrics: Mapping[str, int]) -> int:
    """Replace overall with the rounded weighted mean when they drift apart by more than 5."""
    if not metrics:
        return overall
    weighted = weighted_overall(metrics)
    if abs(overall - weighted) > OVERALL_TOLERANCE:
        return clamp_score(weighted)
    return overall


def _balanced_signs(keys) -> Dict[str, int]:
    """Assign +1/-1 to keys so the total weight on each side stays balanced."""
    plus = 0.0
    minus = 0.0
    signs = {}
    for key in sorted(keys, key=lambda k: (-weight_for(k), k)):
        weight = weight_for(key)
        if plus <= minus:
            signs[key] = 1
            plus += weight
        else:
            signs[key] = -1
            minus += weight
    return signs


def spread_metrics(metrics: Mapping[str, int]) -> Dict[str, int]:
    """
    Stretch metric values around their mean when the analyzer returned an
    almost flat vector.

    Returns:
        A new mapping; unchanged values when the vector is already varied
        enough or too small to judge
    """
    if len(metrics) < SPREAD_MIN_COUNT:
        return dict(metrics)

    values = np.array(list(metrics.values()), dtype=float)
    std = float(np.std(values))
    if std >= SPREAD_MAX_STD or values.max() - values.min() >= SPREAD_MAX_RANGE:
        return dict(metrics)

    mean = float(values.mean())
    if std == 0.0:
        # Nothing to stretch: seed a deterministic, weight-balanced deviation
        signs = _balanced_signs(metrics.keys())
        return {key: clamp_score(mean + signs[key] * SPREAD_TARGET_STD) for key in metrics}

    factor = SPREAD_TARGET_STD / max(1.0, std)
    return {key: clamp_score(mean + (value - mean) * factor) for key, value in metrics.items()}


def tie_direction(metric_key: str) -> int:
    """Stable +1/-1 per metric key (independent of PYTHONHASHSEED)."""
    digest = hashlib.sha1(metric_key.encode("utf-8")).digest()
    return 1 if digest[0] % 2 == 0 else -1


def break_ties(metrics: Mapping[str, int], overall: int) -> Dict[str, int]:
    """Nudge metrics that equal the overall score by one point, unless all of them do."""
    if not metrics or all(value == overall for value in metrics.values()):
        return dict(metrics)

    result = {}
    for key, value in metrics.items():
        if value == overall:
            step = tie_direction(key)
            if not SCORE_MIN <= value + step <= SCORE_MAX:
                step = -step
            value += step
        result[key] = value
    return result


def normalize(vector: ScoreVector) -> ScoreVector:
    """
    Normalize a raw score vector.

    Steps:
        1. Clamp and round every metric and the overall score to [0, 100]
        2. Reconcile the overall score with the weighted metric mean
        3. Spread collapsed metric values, then reconcile again
        4. Break ties between metrics and the overall score

    Returns:
        A new ScoreVector; the input is not modified
    """
    metrics = {key: clamp_score(value) for key, value in vector.metrics.items()}
    overall = reconcile_overall(clamp_score(vector.overall_score), metrics)

    spread = spread_metrics(metrics)
    if spread != metrics:
        metrics = spread
        overall = reconcile_overall(overall, metrics)

    metrics = break_ties(metrics, overall)
    overall = reconcile_overall(overall, metrics)

    return vector.model_copy(update={"overall_score": overall, "metrics": metrics})

"""
Weight table for the overall swing score.
Weights are static configuration; the weighted mean is normalized by the
weights actually used, so unknown metric keys fold in at DEFAULT_WEIGHT.
"""
from typing import Dict, Mapping

from swingscore.core.metrics import canonical_metric_key

DEFAULT_WEIGHT = 0.05

# Format: {metric_key: weight}. Sums to 1.00.
METRIC_WEIGHTS: Dict[str, float] = {
    # Setup (0.20)
    "stance": 0.07,
    "grip": 0.07,
    "ballPosition": 0.06,
    # Swing (0.42)
    "backswing": 0.10,
    "swingForward": 0.08,
    "swingSpeed": 0.08,
    "shallowing": 0.08,
    "impactPosition": 0.08,
    # Body (0.28)
    "stiffness": 0.04,
    "hipRotation": 0.04,
    "pacing": 0.04,
    "followThrough": 0.04,
    "headPosition": 0.04,
    "shoulderPosition": 0.04,
    "armPosition": 0.04,
    # Mental (0.10)
    "confidence": 0.05,
    "focus": 0.05,
}


def weight_for(metric_key: str) -> float:
    """
    Get the overall-score weight for a metric.

    Args:
        metric_key: Metric key; aliases such as "swingBack" are resolved

    Returns:
        The static weight, or DEFAULT_WEIGHT for keys outside the table
    """
    return METRIC_WEIGHTS.get(canonical_metric_key(metric_key), DEFAULT_WEIGHT)


def weighted_overall(metrics: Mapping[str, float]) -> float:
    """
    Compute the weighted mean of metric scores.

    Returns:
        sum(score * weight) / sum(weight), or 0.0 for an empty mapping
    """
    total_weight = 0.0
    total = 0.0
    for key, value in metrics.items():
        weight = weight_for(key)
        total += value * weight
        total_weight += weight
    if total_weight == 0.0:
        return 0.0
    return total / total_weight

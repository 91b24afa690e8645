"""
Metric key set and small numeric helpers shared by the scoring modules.
"""
import math
from typing import Dict, List, Optional

# Closed set of swing evaluation axes, in display order
METRIC_KEYS: List[str] = [
    "confidence",
    "focus",
    "stiffness",
    "stance",
    "grip",
    "ballPosition",
    "backswing",
    "swingForward",
    "swingSpeed",
    "shallowing",
    "impactPosition",
    "hipRotation",
    "pacing",
    "followThrough",
    "headPosition",
    "shoulderPosition",
    "armPosition",
]

METRIC_CATEGORIES: Dict[str, List[str]] = {
    "Setup": ["stance", "grip", "ballPosition"],
    "Swing": ["backswing", "swingForward", "swingSpeed", "shallowing", "impactPosition"],
    "Body": [
        "stiffness",
        "hipRotation",
        "pacing",
        "followThrough",
        "headPosition",
        "shoulderPosition",
        "armPosition",
    ],
    "Mental": ["confidence", "focus"],
}

# Historical names accepted on input
METRIC_ALIASES: Dict[str, str] = {
    "swingBack": "backswing",
}

DEFAULT_METRIC_SCORE = 50
SCORE_MIN = 0
SCORE_MAX = 100


def canonical_metric_key(key: str) -> str:
    """Map an input metric key to its canonical form (aliases resolved)."""
    return METRIC_ALIASES.get(key, key)


def is_known_metric(key: str) -> bool:
    return canonical_metric_key(key) in METRIC_KEYS


def metric_category(key: str) -> Optional[str]:
    key = canonical_metric_key(key)
    for category, keys in METRIC_CATEGORIES.items():
        if key in keys:
            return category
    return None


def humanize_metric_key(key: str) -> str:
    """'ballPosition' -> 'ball position'."""
    words = []
    current = ""
    for ch in key:
        if ch.isupper() and current:
            words.append(current)
            current = ch.lower()
        else:
            current += ch.lower()
    if current:
        words.append(current)
    return " ".join(words)


def round_half_up(value: float) -> int:
    """Round to the nearest integer with .5 going up (towards +inf)."""
    return int(math.floor(value + 0.5))


def clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def clamp_score(value: float) -> int:
    """Round and clamp a score into [0, 100]."""
    return int(clamp(round_half_up(value), SCORE_MIN, SCORE_MAX))

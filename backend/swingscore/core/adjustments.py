"""
Adjustment applier.
Applies the learned additive corrections to a freshly normalized score vector.
"""
import logging
import random
from typing import Optional

from swingscore.core.config import settings
from swingscore.core.metrics import canonical_metric_key, clamp, clamp_score
from swingscore.core.normalizer import reconcile_overall
from swingscore.schemas.adjustment import AdjustmentFactors
from swingscore.schemas.feedback import SkillLevel
from swingscore.schemas.score import ScoreVector

logger = logging.getLogger(__name__)


def apply_adjustments(
    vector: ScoreVector,
    factors: AdjustmentFactors,
    skill_level: Optional[SkillLevel] = None,
    rng: Optional[random.Random] = None,
    jitter: Optional[bool] = None,
) -> ScoreVector:
    """
    Apply adjustment factors to a normalized score vector.

    Args:
        vector: Output of normalize()
        factors: Factors snapshot, read once by the caller for this request
        skill_level: Golfer skill level; selects the per-level slice when known
        rng: Random source for the overall jitter
        jitter: Override settings.score_jitter_enabled

    Returns:
        A new ScoreVector
    """
    if jitter is None:
        jitter = settings.score_jitter_enabled
    max_overall = settings.max_overall_adjustment
    max_metric = settings.max_metric_adjustment

    slice_factors = factors.slice_for(skill_level)
    overall_factor = int(clamp(slice_factors.overall, -max_overall, max_overall))

    metrics = dict(vector.metrics)
    metric_adjusted = False
    for key, factor in sorted(slice_factors.metrics.items()):
        key = canonical_metric_key(key)
        factor = int(clamp(factor, -max_metric, max_metric))
        if factor == 0 or key not in metrics:
            continue
        metrics[key] = clamp_score(metrics[key] + factor)
        metric_adjusted = True

    overall = clamp_score(vector.overall_score + overall_factor)
    if metric_adjusted:
        overall = reconcile_overall(overall, metrics)

    if not metric_adjusted and overall_factor == 0 and jitter:
        rng = rng or random
        overall = clamp_score(overall + rng.randint(-1, 1))

    if metric_adjusted or overall_factor:
        logger.debug(
            f"Applied adjustments (skill={skill_level.value if skill_level else 'global'}): "
            f"overall {vector.overall_score} -> {overall}"
        )

    return vector.model_copy(update={"overall_score": overall, "metrics": metrics})

"""
Per-video score history used to damp drift between re-uploads of the same file.
History is advisory: storage failures are logged and the unblended vector is returned.
"""
import logging
from datetime import datetime, timezone
from typing import Dict, List, Optional, Tuple

from swingscore.core.config import settings
from swingscore.core.errors import PermanentStorage, TransientStorage
from swingscore.core.metrics import round_half_up
from swingscore.schemas.score import ScoreVector

logger = logging.getLogger(__name__)

COLLECTION = "consistency_history"


class ConsistencyStore:
    def __init__(
        self,
        store,
        history_size: Optional[int] = None,
        overall_threshold: Optional[int] = None,
        metric_threshold: Optional[int] = None,
        blend_weight: Optional[float] = None,
    ):
        self.store = store
        self.history_size = history_size or settings.consistency_history_size
        self.overall_threshold = overall_threshold if overall_threshold is not None else settings.consistency_overall_threshold
        self.metric_threshold = metric_threshold if metric_threshold is not None else settings.consistency_metric_threshold
        self.blend_weight = blend_weight if blend_weight is not None else settings.consistency_blend_weight

    def _blend(self, new: int, last: int, threshold: int) -> int:
        if abs(new - last) > threshold:
            return round_half_up(self.blend_weight * new + (1 - self.blend_weight) * last)
        return new

    def blend(self, vector: ScoreVector, last: Dict) -> Tuple[ScoreVector, bool]:
        """
        Blend a vector against the latest history entry.

        Returns:
            (vector, blended) where blended tells whether any value changed
        """
        overall = self._blend(vector.overall_score, int(last["overallScore"]), self.overall_threshold)
        last_metrics = last.get("metrics") or {}
        metrics = {}
        for key, value in vector.metrics.items():
            if key in last_metrics:
                metrics[key] = self._blend(value, int(last_metrics[key]), self.metric_threshold)
            else:
                metrics[key] = value

        blended = overall != vector.overall_score or metrics != vector.metrics
        if not blended:
            return vector, False
        return vector.model_copy(update={"overall_score": overall, "metrics": metrics}), True

    def history(self, fingerprint: str) -> List[Dict]:
        doc = self.store.get(COLLECTION, fingerprint)
        return list(doc.get("entries", [])) if doc else []

    def commit(
        self, fingerprint: Optional[str], vector: ScoreVector, now: Optional[datetime] = None
    ) -> Tuple[ScoreVector, bool]:
        """
        Blend a new vector against the video's history and record it.

        The first vector for a fingerprint is stored and returned unchanged.
        At most history_size entries are kept; the oldest is evicted.
        """
        if not fingerprint:
            return vector, False

        now = now or datetime.now(timezone.utc)
        try:
            entries = self.history(fingerprint)
            result, blended = vector, False
            if entries:
                result, blended = self.blend(vector, entries[-1])
                if blended:
                    logger.info(
                        f"Blended scores for {fingerprint[:12]}: overall "
                        f"{vector.overall_score} -> {result.overall_score} (last {entries[-1]['overallScore']})"
                    )

            entries.append({
                "timestamp": now.isoformat(),
                "overallScore": result.overall_score,
                "metrics": dict(result.metrics),
            })
            self.store.set(COLLECTION, fingerprint, {"entries": entries[-self.history_size:]})
            return result, blended
        except (TransientStorage, PermanentStorage, KeyError, TypeError, ValueError) as e:
            logger.error(f"Consistency history unavailable for {fingerprint[:12]}: {e}")
            return vector, False

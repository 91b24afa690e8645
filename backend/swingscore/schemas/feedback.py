from datetime import datetime
from enum import Enum
from typing import Dict, Optional

from pydantic import Field, field_validator

from swingscore.core.metrics import canonical_metric_key
from swingscore.schemas.base import CamelModel
from swingscore.schemas.score import ScoreVector


class Verdict(str, Enum):
    ACCURATE = "accurate"
    TOO_HIGH = "too_high"
    TOO_LOW = "too_low"
    FORM_ISSUE = "form_issue"
    PACING_ISSUE = "pacing_issue"
    NOT_HELPFUL = "not_helpful"

    def collapsed(self) -> "Verdict":
        """Verdict as counted by aggregation: qualitative complaints count as too_low."""
        if self in (Verdict.FORM_ISSUE, Verdict.PACING_ISSUE, Verdict.NOT_HELPFUL):
            return Verdict.TOO_LOW
        return self


class SkillLevel(str, Enum):
    PRO = "pro"
    ADVANCED = "advanced"
    AMATEUR = "amateur"
    BEGINNER = "beginner"


class AdjustmentPriority(str, Enum):
    AS_NEEDED = "as-needed"
    ALWAYS = "always"
    NEVER = "never"


class FeedbackCreate(CamelModel):
    """Feedback as submitted by a client."""
    swing_id: Optional[str] = None
    user_id: Optional[str] = None
    verdict: Verdict
    metric_verdict: Dict[str, Verdict] = {}
    confidence: int = Field(default=3, ge=1, le=5)
    skill_level: SkillLevel = SkillLevel.AMATEUR
    is_pro_swing: bool = False
    adjustment_priority: Optional[AdjustmentPriority] = None
    original_scores: Optional[ScoreVector] = None
    notes: Optional[str] = None

    @field_validator("metric_verdict")
    @classmethod
    def _canonical_keys(cls, value: Dict[str, Verdict]) -> Dict[str, Verdict]:
        return {canonical_metric_key(key): verdict for key, verdict in value.items()}


class FeedbackEvent(FeedbackCreate):
    """Ledger entry. Immutable once written."""
    id: str
    timestamp: datetime

    @property
    def excluded_from_aggregation(self) -> bool:
        return self.adjustment_priority == AdjustmentPriority.NEVER

from datetime import datetime
from typing import Dict, Optional

from swingscore.schemas.base import CamelModel
from swingscore.schemas.feedback import SkillLevel


class SliceFactors(CamelModel):
    overall: int = 0
    metrics: Dict[str, int] = {}


class AdjustmentFactors(CamelModel):
    overall: int = 0
    metrics: Dict[str, int] = {}
    # Only levels with their own factors; the others use the global factors
    by_skill_level: Dict[SkillLevel, SliceFactors] = {}
    updated_at: Optional[datetime] = None

    def slice_for(self, skill_level: Optional[SkillLevel]) -> SliceFactors:
        """The skill level's own slice when it has one, else the global factors."""
        if skill_level is not None and skill_level in self.by_skill_level:
            return self.by_skill_level[skill_level]
        return SliceFactors(overall=self.overall, metrics=self.metrics)

    def is_zero(self) -> bool:
        slices = [SliceFactors(overall=self.overall, metrics=self.metrics), *self.by_skill_level.values()]
        return all(s.overall == 0 and not any(s.metrics.values()) for s in slices)

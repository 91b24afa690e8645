from datetime import datetime
from typing import Dict, List, Optional

from pydantic import Field

from swingscore.schemas.base import CamelModel

SCORING_BANDS = ["90+", "70-89", "50-69", "<50"]


class ReferenceRubric(CamelModel):
    technical_guidelines: List[str]
    ideal_form: List[str]
    common_mistakes: List[str]
    coaching_cues: List[str]
    scoring_rubric: Dict[str, str]


class ReferenceModelRecord(CamelModel):
    """Stored under reference_models/{metricKey}."""
    metric_key: str
    youtube_url: str
    youtube_video_id: str
    reference_analysis: ReferenceRubric
    analyzed_at: datetime


class MetricDescriptor(CamelModel):
    title: str
    description: str = ""
    category: str = "General"
    difficulty: int = Field(default=5, ge=1, le=10)
    weighting: str = ""
    example_url: Optional[str] = None
    embed_url: Optional[str] = None
    youtube_video_id: Optional[str] = None


class TechnicalPatterns(CamelModel):
    technical_patterns: List[str] = []
    common_mistakes: List[str] = []
    coaching_approaches: List[str] = []
    updated_at: Optional[datetime] = None


class MetricInsights(CamelModel):
    good_aspects: List[str]
    improvement_areas: List[str]
    technical_breakdown: List[str]
    recommendations: List[str]
    feel_tips: List[str] = []

from typing import Dict, List

from pydantic import field_validator

from swingscore.core.metrics import round_half_up
from swingscore.schemas.base import CamelModel


def _coerce_score(value):
    if isinstance(value, bool):
        raise ValueError("score must be numeric")
    if isinstance(value, float):
        return round_half_up(value)
    return value


class ScoreVector(CamelModel):
    overall_score: int
    metrics: Dict[str, int]
    recommendations: List[str] = []
    missing_metrics: List[str] = []  # Keys defaulted to 50 because the analyzer omitted them

    @field_validator("overall_score", mode="before")
    @classmethod
    def _round_overall(cls, value):
        return _coerce_score(value)

    @field_validator("metrics", mode="before")
    @classmethod
    def _round_metrics(cls, value):
        if isinstance(value, dict):
            return {key: _coerce_score(score) for key, score in value.items()}
        return value

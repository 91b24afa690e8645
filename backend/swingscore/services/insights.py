"""
Per-metric coaching insights for a scored swing.
"""
import logging
from typing import Optional

from pydantic import ValidationError

from swingscore.core.config import settings
from swingscore.core.errors import AnalyzerTimeout, MalformedResponse
from swingscore.core.metrics import canonical_metric_key, humanize_metric_key
from swingscore.schemas.rubric import MetricDescriptor, MetricInsights, ReferenceRubric
from swingscore.schemas.swing import SwingRecord
from swingscore.services.analyzer import MediaRef, extract_json

logger = logging.getLogger(__name__)


def default_insights(metric_key: str, score: int) -> MetricInsights:
    """Deterministic insights used when the analyzer cannot provide them."""
    name = humanize_metric_key(canonical_metric_key(metric_key))

    if score >= 80:
        good = [f"Your {name} is a clear strength of your swing", f"Your {name} is consistent with sound fundamentals"]
        improve = [f"Keep your {name} repeatable under pressure"]
        recommendations = [
            f"Maintain your {name} with regular practice",
            f"Use your {name} as a reference point when working on other areas",
        ]
    elif score >= 60:
        good = [f"Your {name} shows a solid foundation"]
        improve = [f"Your {name} has some inconsistencies that cost you control"]
        recommendations = [
            f"Dedicate part of each practice session to your {name}",
            f"Film your swing regularly to check your {name}",
        ]
    else:
        good = [f"You have identified {name} as an area to build"]
        improve = [
            f"Your {name} needs fundamental work",
            f"Issues with your {name} are likely affecting other parts of your swing",
        ]
        recommendations = [
            f"Work with a coach on the basics of your {name}",
            f"Practice {name} drills at slow speed before adding power",
        ]

    return MetricInsights(
        good_aspects=good,
        improvement_areas=improve,
        technical_breakdown=[f"Your {name} scored {score} out of 100"],
        recommendations=recommendations,
        feel_tips=[f"Focus on how your {name} feels in slow-motion practice swings"],
    )


def build_insights_prompt(
    metric_key: str,
    score: int,
    descriptor: Optional[MetricDescriptor] = None,
    rubric: Optional[ReferenceRubric] = None,
    swing: Optional[SwingRecord] = None,
) -> str:
    name = humanize_metric_key(metric_key)
    prompt_parts = [
        "You are a professional golf coach. Give detailed, specific feedback on one aspect of this golf swing.",
        "",
        f"Aspect: {descriptor.title if descriptor else name} ({metric_key})",
        f"Score: {score}/100",
    ]
    if descriptor and descriptor.description:
        prompt_parts.append(f"Definition: {descriptor.description}")
    if swing is not None:
        if swing.metadata.club_name:
            prompt_parts.append(f"Club: {swing.metadata.club_name}")
        prompt_parts.append(f"Overall swing score: {swing.scores.overall_score}/100")
    if rubric is not None:
        prompt_parts.append("")
        prompt_parts.append("Reference standard:")
        prompt_parts.extend(f"- {guideline}" for guideline in rubric.technical_guidelines)
        for band, description in rubric.scoring_rubric.items():
            prompt_parts.append(f"  {band}: {description}")
    prompt_parts.extend([
        "",
        "Format your response ONLY as a JSON object with this exact structure:",
        "{",
        '  "goodAspects": ["..."],',
        '  "improvementAreas": ["..."],',
        '  "technicalBreakdown": ["..."],',
        '  "recommendations": ["..."],',
        '  "feelTips": ["..."]',
        "}",
    ])
    return "\n".join(prompt_parts)


class InsightService:
    def __init__(self, analyzer, catalog=None, rubrics=None):
        self.analyzer = analyzer
        self.catalog = catalog
        self.rubrics = rubrics

    def generate_metric_insights(
        self,
        metric_key: str,
        score: int,
        swing: Optional[SwingRecord] = None,
        media: Optional[MediaRef] = None,
    ) -> MetricInsights:
        """
        Ask the analyzer for insights on one metric.
        Timeouts and malformed replies fall back to default_insights().
        """
        metric_key = canonical_metric_key(metric_key)
        if self.analyzer is None:
            logger.warning("Analyzer not configured, using default insights")
            return default_insights(metric_key, score)

        descriptor = self.catalog.get_metric(metric_key) if self.catalog else None
        reference = self.rubrics.get_rubric(metric_key) if self.rubrics else None
        prompt = build_insights_prompt(
            metric_key,
            score,
            descriptor=descriptor,
            rubric=reference.reference_analysis if reference else None,
            swing=swing,
        )

        try:
            text = self.analyzer.analyze(prompt, media, timeout=settings.insight_timeout_s)
            data = extract_json(text)
            try:
                return MetricInsights.model_validate(data)
            except ValidationError as e:
                raise MalformedResponse(f"Insights response failed validation: {e.error_count()} error(s)") from e
        except (AnalyzerTimeout, MalformedResponse) as e:
            logger.warning(f"Using default insights for {metric_key}: {e.code}")
            return default_insights(metric_key, score)

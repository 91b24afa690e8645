"""
Swing scoring prompt, reply parsing and the deterministic mock generator.
"""
import logging
import math
import random
from typing import Any, Dict, List, Mapping, Optional

from pydantic import ValidationError

from swingscore.core.errors import MalformedResponse
from swingscore.core.metrics import METRIC_KEYS, SCORE_MAX
from swingscore.core.normalizer import complete_metrics
from swingscore.schemas.rubric import ReferenceRubric
from swingscore.schemas.score import ScoreVector
from swingscore.services.analyzer import extract_json

logger = logging.getLogger(__name__)

MAX_RECOMMENDATIONS = 3

DEFAULT_RECOMMENDATIONS = [
    "Work on your overall swing mechanics",
    "Practice your timing and rhythm",
    "Focus on maintaining proper form throughout your swing",
]

METRIC_PROMPT_HINTS = {
    "confidence": "Assess the decisiveness and commitment to the swing",
    "focus": "Evaluate setup routine and swing execution",
    "stiffness": "Assess tension and freedom of movement through the swing",
    "stance": "Assess foot position, width, weight distribution, and posture",
    "grip": "Evaluate hand placement, pressure, and wrist position",
    "ballPosition": "Evaluate where the ball sits relative to the stance for this club",
    "backswing": "Evaluate the takeaway, wrist position, rotation and position at the top",
    "swingForward": "Evaluate the downswing path, transition, and follow through",
    "swingSpeed": "Rate the tempo and acceleration through the ball",
    "shallowing": "Evaluate club path and shaft position in the downswing",
    "impactPosition": "Evaluate body and club position at impact",
    "hipRotation": "Assess the hip turn both in backswing and through impact",
    "pacing": "Rate the overall rhythm and timing of the swing",
    "followThrough": "Evaluate balance and extension through the finish",
    "headPosition": "Evaluate head stability throughout the swing",
    "shoulderPosition": "Evaluate shoulder turn and tilt",
    "armPosition": "Evaluate lead arm structure and arm-body connection",
}


def summarize_rubrics(rubrics: Mapping[str, ReferenceRubric], per_field: int = 2) -> str:
    """Condense stored reference rubrics into prompt text, one block per metric."""
    lines = []
    for key in sorted(rubrics):
        rubric = rubrics[key]
        lines.append(f"- {key}:")
        for guideline in rubric.technical_guidelines[:per_field]:
            lines.append(f"    guideline: {guideline}")
        for cue in rubric.coaching_cues[:per_field]:
            lines.append(f"    cue: {cue}")
        if "90+" in rubric.scoring_rubric:
            lines.append(f"    90+: {rubric.scoring_rubric['90+']}")
    return "\n".join(lines)


def build_score_prompt(
    club_name: Optional[str] = None,
    rubrics: Optional[Mapping[str, ReferenceRubric]] = None,
) -> str:
    """Build the scoring prompt. Same inputs always produce the same prompt."""
    prompt_parts = [
        "You are a professional golf coach with expertise in swing analysis. "
        "Analyze this golf swing video in detail and provide the following information:",
        "",
        "1. Overall swing score (0-100) based on proper form, mechanics, and effectiveness.",
        "",
        "2. Score each of the following metrics from 0-100:",
    ]
    for key in METRIC_KEYS:
        prompt_parts.append(f"   - {key}: {METRIC_PROMPT_HINTS[key]}")
    prompt_parts.extend([
        "",
        "3. Provide three specific, actionable recommendations for improvement.",
    ])

    if club_name:
        prompt_parts.extend([
            "",
            f"This swing was performed with a {club_name}. Take this into account in your analysis.",
        ])

    if rubrics:
        prompt_parts.extend([
            "",
            "Score against these reference standards taken from professional instruction:",
            summarize_rubrics(rubrics),
        ])

    example_metrics = ",\n".join(f'    "{key}": 70' for key in METRIC_KEYS)
    prompt_parts.extend([
        "",
        "Format your response ONLY as a valid JSON object with this exact structure:",
        "{",
        '  "overallScore": 75,',
        '  "metrics": {',
        example_metrics,
        "  },",
        '  "recommendations": ["...", "...", "..."]',
        "}",
    ])
    return "\n".join(prompt_parts)


def parse_score_response(text: Optional[str]) -> ScoreVector:
    """
    Parse an analyzer reply into a ScoreVector.

    Missing closed-set metrics default to 50 and are listed in missingMetrics.

    Raises:
        MalformedResponse: no JSON, or the JSON does not have the score shape
    """
    data = extract_json(text)

    if not isinstance(data.get("metrics"), dict) or "overallScore" not in data:
        raise MalformedResponse("Score response is missing overallScore or metrics")

    recommendations = data.get("recommendations")
    if not isinstance(recommendations, list):
        recommendations = []
    recommendations = [str(r) for r in recommendations if r][:MAX_RECOMMENDATIONS]
    if not recommendations:
        recommendations = list(DEFAULT_RECOMMENDATIONS)

    try:
        vector = ScoreVector(
            overall_score=data["overallScore"],
            metrics=data["metrics"],
            recommendations=recommendations,
        )
    except ValidationError as e:
        raise MalformedResponse(f"Score response failed validation: {e.errors()[0]['msg']}") from e

    vector = complete_metrics(vector)
    if vector.missing_metrics:
        logger.warning(f"Analyzer omitted metrics, defaulted to 50: {vector.missing_metrics}")
    return vector


def mock_score_vector(fingerprint: Optional[str], club_type: Optional[str] = None) -> ScoreVector:
    """
    Deterministic stand-in for an analyzer result, seeded by the video fingerprint.
    The same video always yields the same mock scores.
    """
    rng = random.Random(fingerprint or "swingscore-mock")
    metrics: Dict[str, Any] = {key: rng.randint(60, 99) for key in METRIC_KEYS}

    recommendations: List[str] = [
        "Try to keep your left arm straight throughout your swing",
        "Your grip appears to be too tight, which may be affecting your control",
        "Focus on rotating your hips more during the downswing",
    ]

    if club_type == "Wood":
        metrics["swingSpeed"] = min(SCORE_MAX, metrics["swingSpeed"] + 10)
        recommendations[0] = "Focus on maintaining a consistent swing path with your wood"
    elif club_type == "Iron":
        metrics["shallowing"] = min(SCORE_MAX, metrics["shallowing"] + 5)
        recommendations[1] = "Work on hitting down on the ball with your iron"
    elif club_type == "Wedge":
        metrics["stance"] = min(SCORE_MAX, metrics["stance"] + 8)
        recommendations[2] = "Practice opening your stance slightly with your wedge"
    elif club_type == "Putter":
        metrics["pacing"] = min(SCORE_MAX, metrics["pacing"] + 15)
        metrics["focus"] = min(SCORE_MAX, metrics["focus"] + 10)
        recommendations = [
            "Keep your head still throughout your putting stroke",
            "Focus on a smooth, pendulum-like motion",
            "Maintain consistent tempo in your putting stroke",
        ]

    overall = math.floor(sum(metrics.values()) / len(metrics))
    logger.info(f"Generated mock analysis (club={club_type or 'unknown'}, overall={overall})")
    return ScoreVector(overall_score=overall, metrics=metrics, recommendations=recommendations)

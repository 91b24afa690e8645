"""
Reference rubric pipeline.

Turns an instructional YouTube video into a per-metric scoring rubric
(collection reference_models/{metricKey}) and unions the stored rubrics into
system/technical_patterns.
"""
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from pydantic import ValidationError

from swingscore.core.config import settings
from swingscore.core.errors import AnalyzerUnavailable, InvalidReference, InvalidRubric, SwingScoreError
from swingscore.core.metrics import canonical_metric_key, humanize_metric_key
from swingscore.core.youtube import extract_youtube_video_id, short_url
from swingscore.schemas.rubric import (
    SCORING_BANDS,
    MetricDescriptor,
    ReferenceModelRecord,
    ReferenceRubric,
    TechnicalPatterns,
)
from swingscore.services.analyzer import MediaRef, extract_json
from swingscore.services.metric_catalog import MetricCatalog, load_catalog

logger = logging.getLogger(__name__)

COLLECTION = "reference_models"
PATTERNS_COLLECTION = "system"
PATTERNS_DOC_ID = "technical_patterns"

REQUIRED_FIELDS = ["technicalGuidelines", "idealForm", "commonMistakes", "coachingCues", "scoringRubric"]


def build_rubric_prompt(metric_key: str, descriptor: MetricDescriptor) -> str:
    """Rubric extraction prompt. Same metric and descriptor always produce the same prompt."""
    name = humanize_metric_key(metric_key)
    return "\n".join([
        "You are a PGA Master Professional with 30 years experience in golf swing analysis.",
        f"Watch this instructional YouTube video about {name} in the golf swing.",
        "",
        f"Metric: {descriptor.title} (key: {metric_key})",
        f"Category: {descriptor.category}",
        f"Difficulty: {descriptor.difficulty}/10",
        f"Weighting in the overall score: {descriptor.weighting}",
        "",
        f"Your task is to create a reference model for the {name} aspect of the golf swing. "
        "This model will be used to evaluate and score other golfers' swings.",
        "",
        "Analyze the video for:",
        f"1. Technical Guidelines: What are the precise technical elements that define proper {name}?",
        "2. Ideal Form: What does perfect execution of this element look like?",
        "3. Common Mistakes: What are the most frequent errors golfers make with this aspect?",
        "4. Coaching Cues: What verbal cues would help a golfer improve this aspect?",
        "5. Scoring Rubric: Define specific criteria for scoring this element on a 0-100 scale, "
        "with detailed descriptions for these ranges:",
        "   - 90+: Perfect technique",
        "   - 70-89: Good technique with minor flaws",
        "   - 50-69: Developing technique with clear issues",
        "   - <50: Significant flaws requiring fundamental correction",
        "",
        "Format your response ONLY as a JSON object with exactly this structure:",
        "{",
        '  "technicalGuidelines": ["guideline1", "guideline2"],',
        '  "idealForm": ["aspect1", "aspect2"],',
        '  "commonMistakes": ["mistake1", "mistake2"],',
        '  "coachingCues": ["cue1", "cue2"],',
        '  "scoringRubric": {',
        '    "90+": "detailed description",',
        '    "70-89": "detailed description",',
        '    "50-69": "detailed description",',
        '    "<50": "detailed description"',
        "  }",
        "}",
    ])


def validate_rubric(data: Dict[str, Any]) -> ReferenceRubric:
    """
    Check the five rubric fields and the four scoring bands.

    Raises:
        InvalidRubric: a field or band is missing or has the wrong shape
    """
    missing = [field for field in REQUIRED_FIELDS if not data.get(field)]
    if missing:
        raise InvalidRubric(f"Rubric is missing required fields: {', '.join(missing)}")

    scoring_rubric = data["scoringRubric"]
    if not isinstance(scoring_rubric, dict):
        raise InvalidRubric("scoringRubric must be an object keyed by score band")
    missing_bands = [band for band in SCORING_BANDS if not scoring_rubric.get(band)]
    if missing_bands:
        raise InvalidRubric(f"scoringRubric is missing bands: {', '.join(missing_bands)}")

    try:
        return ReferenceRubric.model_validate({field: data[field] for field in REQUIRED_FIELDS})
    except ValidationError as e:
        raise InvalidRubric(f"Rubric has invalid field types: {e.errors()[0]['loc']}") from e


class ReferenceRubricService:
    def __init__(self, store, analyzer):
        self.store = store
        self.analyzer = analyzer
        self.catalog = MetricCatalog(store)

    def analyze_reference_video(
        self, metric_key: str, youtube_url: str, now: Optional[datetime] = None
    ) -> ReferenceModelRecord:
        """
        Extract and store the rubric for one metric.
        Nothing is written unless the rubric validates.

        Raises:
            InvalidReference, MalformedResponse, InvalidRubric, AnalyzerTimeout, AnalyzerUnavailable
        """
        metric_key = canonical_metric_key(metric_key)
        video_id = extract_youtube_video_id(youtube_url)
        if not video_id:
            raise InvalidReference(f"Invalid YouTube URL: {youtube_url!r}")
        if self.analyzer is None:
            raise AnalyzerUnavailable("Analyzer API key not configured")

        descriptor = self.catalog.get_metric(metric_key)
        prompt = build_rubric_prompt(metric_key, descriptor)

        logger.info(f"Analyzing reference video {video_id} for {metric_key}")
        text = self.analyzer.analyze(
            prompt,
            MediaRef.from_url(short_url(video_id)),
            timeout=settings.rubric_timeout_s,
            model=settings.analyzer_rubric_model,
        )
        rubric = validate_rubric(extract_json(text))

        record = ReferenceModelRecord(
            metric_key=metric_key,
            youtube_url=youtube_url,
            youtube_video_id=video_id,
            reference_analysis=rubric,
            analyzed_at=now or datetime.now(timezone.utc),
        )
        self.store.set(COLLECTION, metric_key, record.to_document())
        logger.info(f"Stored reference rubric for {metric_key}")
        return record

    def process_reference_video(self, metric_key: str) -> ReferenceModelRecord:
        """Analyze the metric's current reference video."""
        descriptor = self.catalog.get_metric(metric_key)
        if not descriptor.example_url:
            raise InvalidReference(f"No reference video found for {metric_key}")
        return self.analyze_reference_video(metric_key, descriptor.example_url)

    def process_all(self, metric_keys: Optional[List[str]] = None) -> Dict[str, Any]:
        """
        Process reference videos one metric at a time.
        Per-metric failures are recorded; the batch itself never fails.
        """
        keys = metric_keys or list(load_catalog())
        results: Dict[str, Any] = {"processed": [], "failed": [], "total": len(keys)}
        logger.info(f"Starting to process {len(keys)} reference videos...")

        for key in keys:
            try:
                self.process_reference_video(key)
                results["processed"].append(key)
            except SwingScoreError as e:
                logger.error(f"Error processing reference video for {key}: {e.detail}")
                results["failed"].append({"metricKey": key, "code": e.code, "error": e.detail})

        logger.info(
            f"Completed processing. Successful: {len(results['processed'])}, Failed: {len(results['failed'])}"
        )
        return results

    def load_rubrics(self) -> Dict[str, ReferenceRubric]:
        """Stored rubrics keyed by metric; unreadable records are skipped."""
        rubrics = {}
        for doc in self.store.query(COLLECTION):
            try:
                record = ReferenceModelRecord.model_validate(doc)
            except ValidationError as e:
                logger.warning(f"Skipping invalid reference model {doc.get('id')}: {e.error_count()} error(s)")
                continue
            rubrics[record.metric_key] = record.reference_analysis
        return rubrics

    def get_rubric(self, metric_key: str) -> Optional[ReferenceModelRecord]:
        doc = self.store.get(COLLECTION, canonical_metric_key(metric_key))
        return ReferenceModelRecord.model_validate(doc) if doc else None

    def extract_technical_patterns(self, now: Optional[datetime] = None) -> Optional[TechnicalPatterns]:
        """
        Union guidelines, mistakes and cues across all stored rubrics.

        Returns:
            The stored patterns, or None when no rubric exists yet
        """
        rubrics = self.load_rubrics()
        if not rubrics:
            return None

        patterns = TechnicalPatterns(updated_at=now or datetime.now(timezone.utc))
        for key in sorted(rubrics):
            rubric = rubrics[key]
            for guideline in rubric.technical_guidelines:
                if guideline not in patterns.technical_patterns:
                    patterns.technical_patterns.append(guideline)
            for mistake in rubric.common_mistakes:
                if mistake not in patterns.common_mistakes:
                    patterns.common_mistakes.append(mistake)
            for cue in rubric.coaching_cues:
                if cue not in patterns.coaching_approaches:
                    patterns.coaching_approaches.append(cue)

        self.store.set(PATTERNS_COLLECTION, PATTERNS_DOC_ID, patterns.to_document())
        logger.info(
            f"Extracted technical patterns from {len(rubrics)} rubric(s): "
            f"{len(patterns.technical_patterns)} guidelines, {len(patterns.common_mistakes)} mistakes"
        )
        return patterns

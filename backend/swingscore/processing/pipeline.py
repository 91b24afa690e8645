"""
Swing scoring pipeline.

RECEIVED -> NORMALIZED -> ADJUSTED -> BLENDED -> PERSISTED

The analyzer's raw score vector is normalized, corrected with the current
adjustment factors, blended against earlier scores of the same video and
persisted as a SwingRecord. A failure before PERSISTED writes no record and
removes any video uploaded for it.
"""
import logging
import random
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from io import BytesIO
from typing import Dict, Optional, Tuple

from pydantic import ValidationError

from swingscore.core.adjustments import apply_adjustments
from swingscore.core.config import settings
from swingscore.core.errors import AnalyzerTimeout, MalformedResponse, PermanentStorage, TransientStorage
from swingscore.core.fingerprint import video_fingerprint
from swingscore.core.normalizer import complete_metrics, normalize
from swingscore.schemas.feedback import SkillLevel
from swingscore.schemas.rubric import ReferenceRubric
from swingscore.schemas.score import ScoreVector
from swingscore.schemas.swing import SwingMetadata, SwingRecord, VideoRef
from swingscore.services.adjustment_store import AdjustmentStore
from swingscore.services.analyzer import MediaRef
from swingscore.services.consistency_store import ConsistencyStore
from swingscore.services.reference_rubrics import ReferenceRubricService
from swingscore.services.score_analysis import build_score_prompt, mock_score_vector, parse_score_response

logger = logging.getLogger(__name__)

COLLECTION = "swings"


class ScoringState(str, Enum):
    RECEIVED = "received"
    NORMALIZED = "normalized"
    ADJUSTED = "adjusted"
    BLENDED = "blended"
    PERSISTED = "persisted"


@dataclass
class VideoUpload:
    filename: str
    size: int
    content_type: str
    data: bytes
    last_modified_ms: Optional[int] = None


class ScoringPipeline:
    def __init__(self, store, analyzer=None, object_store=None, rng: Optional[random.Random] = None):
        self.store = store
        self.analyzer = analyzer
        self.object_store = object_store
        self.rng = rng
        self.adjustments = AdjustmentStore(store)
        self.consistency = ConsistencyStore(store)
        self.rubrics = ReferenceRubricService(store, analyzer)

    def _load_rubrics(self) -> Dict[str, ReferenceRubric]:
        try:
            return self.rubrics.load_rubrics()
        except (TransientStorage, PermanentStorage) as e:
            logger.warning(f"Scoring without reference rubrics: {e.detail}")
            return {}

    def analyze(self, upload: VideoUpload, metadata, fingerprint: str) -> Tuple[ScoreVector, bool]:
        """
        Get a raw score vector for the video.

        Returns:
            (vector, is_mock); timeouts and malformed replies fall back to the mock generator
        """
        if self.analyzer is None:
            logger.warning("Analyzer API key not configured, using mock analysis")
            return mock_score_vector(fingerprint, metadata.club_type), True

        prompt = build_score_prompt(metadata.club_name, self._load_rubrics())
        try:
            text = self.analyzer.analyze(
                prompt,
                MediaRef.inline(upload.data, upload.content_type),
                timeout=settings.score_timeout_s,
            )
            return parse_score_response(text), False
        except (AnalyzerTimeout, MalformedResponse) as e:
            logger.warning(f"Falling back to mock analysis ({e.code}): {e.detail}")
            return mock_score_vector(fingerprint, metadata.club_type), True

    def score_swing(
        self,
        upload: VideoUpload,
        metadata: SwingMetadata,
        user_id: Optional[str] = None,
        skill_level: Optional[SkillLevel] = None,
        recorded_at: Optional[datetime] = None,
        now: Optional[datetime] = None,
    ) -> SwingRecord:
        """
        Score an uploaded swing video and persist the SwingRecord.

        Raises:
            InvalidReference: the video cannot be fingerprinted
            AnalyzerUnavailable, TransientStorage, PermanentStorage: surfaced as-is
        """
        now = now or datetime.now(timezone.utc)
        fingerprint = video_fingerprint(upload.filename, upload.size, upload.last_modified_ms)
        # Read once per request
        factors = self.adjustments.load()

        raw, is_mock = self.analyze(upload, metadata, fingerprint)
        raw = complete_metrics(raw)
        vector = normalize(raw)
        vector = apply_adjustments(vector, factors, skill_level=skill_level, rng=self.rng)

        vector, blended = self.consistency.commit(fingerprint, vector, now=now)
        logger.debug(f"Scoring {fingerprint[:12]} reached {ScoringState.BLENDED.value}")

        swing_id = uuid.uuid4().hex
        uploaded_path = None
        if metadata.ownership == "self" and self.object_store is not None:
            uploaded_path = f"swings/{user_id or 'anonymous'}/{swing_id}/{upload.filename}"
            self.object_store.put(uploaded_path, BytesIO(upload.data), upload.content_type)
            metadata = metadata.model_copy(update={"video_ref": VideoRef(kind="durable", locator=uploaded_path)})

        try:
            record = SwingRecord(
                id=swing_id,
                user_id=user_id,
                recorded_at=recorded_at or now,
                analyzed_at=now,
                scores=vector,
                metadata=metadata,
                fingerprint=fingerprint,
                blended=blended,
                is_mock_data=is_mock,
            )
            self.store.set(COLLECTION, swing_id, record.to_document())
        except (TransientStorage, PermanentStorage, ValidationError):
            if uploaded_path:
                self._discard_upload(uploaded_path)
            raise

        logger.info(
            f"Swing {swing_id} {ScoringState.PERSISTED.value}: overall={vector.overall_score}, "
            f"mock={is_mock}, blended={blended}"
        )
        return record

    def _discard_upload(self, path: str) -> None:
        try:
            self.object_store.delete(path)
        except (TransientStorage, PermanentStorage) as e:
            logger.error(f"Failed to delete orphaned upload {path}: {e.detail}")

    def get_swing(self, swing_id: str) -> Optional[SwingRecord]:
        doc = self.store.get(COLLECTION, swing_id)
        return SwingRecord.model_validate(doc) if doc else None

    def video_url(self, record: SwingRecord) -> Optional[str]:
        """Playable URL: presigned for durable refs, the locator itself for ephemeral ones."""
        ref = record.metadata.video_ref
        if ref is None:
            return None
        if ref.kind == "durable" and self.object_store is not None:
            return self.object_store.url(ref.locator)
        return ref.locator

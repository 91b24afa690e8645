"""
Admin actions. Every route requires the X-Admin-Token header.
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from swingscore.api.dependencies import get_analyzer_client, get_document_store, require_admin
from swingscore.processing.scheduler import FeedbackScheduler
from swingscore.services.metric_catalog import MetricCatalog
from swingscore.services.reference_rubrics import ReferenceRubricService

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/admin", tags=["admin"], dependencies=[Depends(require_admin)])


class ReferenceVideoUpdate(BaseModel):
    url: str


@router.post("/initialize-metrics")
def initialize_metrics(store=Depends(get_document_store)):
    return MetricCatalog(store).initialize_metrics()


@router.post("/process-feedback")
def process_feedback(force: bool = True, store=Depends(get_document_store)):
    """Run the feedback aggregator; forced by default."""
    result = FeedbackScheduler(store).maybe_run(force=force)
    return result.to_dict()


@router.put("/metrics/{metric_key}/reference-video")
def set_reference_video(metric_key: str, body: ReferenceVideoUpdate, store=Depends(get_document_store)):
    descriptor = MetricCatalog(store).set_reference_video(metric_key, body.url)
    return descriptor.to_document()


@router.post("/reference-models")
def process_all_reference_videos(store=Depends(get_document_store), analyzer=Depends(get_analyzer_client)):
    return ReferenceRubricService(store, analyzer).process_all()


@router.post("/reference-models/{metric_key}")
def process_reference_video(
    metric_key: str,
    url: Optional[str] = None,
    store=Depends(get_document_store),
    analyzer=Depends(get_analyzer_client),
):
    """Analyze one metric's reference video, or the given URL instead."""
    service = ReferenceRubricService(store, analyzer)
    if url:
        record = service.analyze_reference_video(metric_key, url)
    else:
        record = service.process_reference_video(metric_key)
    return record.to_document()


@router.post("/technical-patterns")
def extract_technical_patterns(store=Depends(get_document_store)):
    patterns = ReferenceRubricService(store, None).extract_technical_patterns()
    return patterns.to_document() if patterns else {"technicalPatterns": [], "commonMistakes": [], "coachingApproaches": []}

import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile, status
from fastapi.concurrency import run_in_threadpool
from pydantic import TypeAdapter, ValidationError

from swingscore.api.dependencies import get_analyzer_client, get_document_store, get_object_store
from swingscore.core.metrics import canonical_metric_key
from swingscore.processing.pipeline import ScoringPipeline, VideoUpload
from swingscore.schemas.feedback import SkillLevel
from swingscore.schemas.swing import SwingMetadata
from swingscore.services.analyzer import MediaRef
from swingscore.services.insights import InsightService
from swingscore.services.metric_catalog import MetricCatalog
from swingscore.services.reference_rubrics import ReferenceRubricService

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/swings", tags=["swings"])

ALLOWED_MIME_TYPES = ["video/mp4", "video/quicktime", "video/webm"]
MAX_FILE_SIZE = 100 * 1024 * 1024  # 100MB

_metadata_adapter = TypeAdapter(SwingMetadata)


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_swing(
    file: UploadFile = File(...),
    ownership: str = Form("self"),
    club_type: Optional[str] = Form(None),
    club_name: Optional[str] = Form(None),
    pro_name: Optional[str] = Form(None),
    video_locator: Optional[str] = Form(None),
    user_id: Optional[str] = Form(None),
    skill_level: Optional[SkillLevel] = Form(None),
    last_modified_ms: Optional[int] = Form(None),
    recorded_at: Optional[datetime] = Form(None),
    store=Depends(get_document_store),
    analyzer=Depends(get_analyzer_client),
    object_store=Depends(get_object_store),
):
    """Upload a swing video, score it and persist the SwingRecord."""
    logger.info(f"Swing upload: {file.filename} (ownership={ownership})")

    if file.content_type not in ALLOWED_MIME_TYPES:
        logger.warning(f"Invalid MIME type: {file.content_type}")
        raise HTTPException(
            status_code=status.HTTP_415_UNSUPPORTED_MEDIA_TYPE,
            detail=f"Unsupported media type. Allowed: {', '.join(ALLOWED_MIME_TYPES)}",
        )

    content = await file.read()
    if len(content) > MAX_FILE_SIZE:
        logger.warning(f"File too large: {len(content)} bytes")
        raise HTTPException(
            status_code=status.HTTP_413_CONTENT_TOO_LARGE,
            detail=f"File size exceeds {MAX_FILE_SIZE // (1024*1024)}MB",
        )
    if not content:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="File is empty")

    raw_metadata = {
        "ownership": ownership,
        "clubType": club_type,
        "clubName": club_name,
    }
    if pro_name is not None:
        raw_metadata["proName"] = pro_name
    if video_locator and ownership != "self":
        raw_metadata["videoRef"] = {"kind": "ephemeral", "locator": video_locator}
    try:
        metadata = _metadata_adapter.validate_python(raw_metadata)
    except ValidationError as e:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=e.errors(include_url=False, include_context=False))

    upload = VideoUpload(
        filename=file.filename,
        size=len(content),
        content_type=file.content_type,
        data=content,
        last_modified_ms=last_modified_ms,
    )
    # Self-owned videos only go to durable storage
    pipeline = ScoringPipeline(store, analyzer, object_store if ownership == "self" else None)
    record = await run_in_threadpool(
        pipeline.score_swing,
        upload,
        metadata,
        user_id=user_id,
        skill_level=skill_level,
        recorded_at=recorded_at,
    )
    return record.to_document()


@router.get("/{swing_id}")
def get_swing(swing_id: str, store=Depends(get_document_store), object_store=Depends(get_object_store)):
    pipeline = ScoringPipeline(store, object_store=object_store)
    record = pipeline.get_swing(swing_id)
    if record is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Swing {swing_id} not found")
    return {**record.to_document(), "videoUrl": pipeline.video_url(record)}


@router.get("/{swing_id}/insights/{metric_key}")
def get_metric_insights(
    swing_id: str,
    metric_key: str,
    store=Depends(get_document_store),
    analyzer=Depends(get_analyzer_client),
    object_store=Depends(get_object_store),
):
    """Detailed coaching insights for one metric of a stored swing."""
    pipeline = ScoringPipeline(store, object_store=object_store)
    record = pipeline.get_swing(swing_id)
    if record is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Swing {swing_id} not found")

    metric_key = canonical_metric_key(metric_key)
    if metric_key not in record.scores.metrics:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Metric {metric_key} not scored")

    video_url = pipeline.video_url(record)
    media = MediaRef.from_url(video_url) if video_url and video_url.startswith("http") else None

    service = InsightService(analyzer, MetricCatalog(store), ReferenceRubricService(store, analyzer))
    insights = service.generate_metric_insights(metric_key, record.scores.metrics[metric_key], record, media)
    return insights.to_document()

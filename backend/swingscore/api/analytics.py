from fastapi import APIRouter, Depends, HTTPException, Query, status

from swingscore.api.dependencies import get_document_store
from swingscore.processing.analytics import track_model_improvement

router = APIRouter(prefix="/analytics", tags=["analytics"])


@router.get("/accuracy")
def get_accuracy(
    range_value: str = Query("30d", alias="range"),
    bucket: str = Query("quarter"),
    store=Depends(get_document_store),
):
    """Model accuracy over time as judged by user feedback."""
    try:
        report = track_model_improvement(store, range_value, bucket)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    return report.to_document()

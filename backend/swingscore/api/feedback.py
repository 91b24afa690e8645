import logging

from fastapi import APIRouter, Depends, status

from swingscore.api.dependencies import get_document_store
from swingscore.processing.pipeline import ScoringPipeline
from swingscore.schemas.feedback import FeedbackCreate
from swingscore.services.feedback_ledger import FeedbackLedger

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/feedback", tags=["feedback"])


@router.post("", status_code=status.HTTP_201_CREATED)
def submit_feedback(feedback: FeedbackCreate, store=Depends(get_document_store)):
    """Record a user's judgment of a past score. Events are immutable once written."""
    if feedback.swing_id and feedback.original_scores is None:
        # Snapshot the scores the user is judging
        record = ScoringPipeline(store).get_swing(feedback.swing_id)
        if record is not None:
            feedback = feedback.model_copy(update={"original_scores": record.scores})
        else:
            logger.warning(f"Feedback references unknown swing {feedback.swing_id}")
    event = FeedbackLedger(store).append(feedback)
    return event.to_document()

"""
Read side of the singleton adjustment factors document.
Writes go through the feedback scheduler only (see replace_ops).
"""
import logging
from datetime import datetime
from typing import List, Optional

from pydantic import ValidationError

from swingscore.schemas.adjustment import AdjustmentFactors
from swingscore.services.document_store import WriteOp, parse_timestamp

logger = logging.getLogger(__name__)

SYSTEM_COLLECTION = "system"
FACTORS_DOC_ID = "adjustment_factors"
PROCESSING_DOC_ID = "feedback_processing"


class AdjustmentStore:
    def __init__(self, store):
        self.store = store

    def load(self) -> AdjustmentFactors:
        """Current factors; zero factors when none were ever computed or the document is unreadable."""
        doc = self.store.get(SYSTEM_COLLECTION, FACTORS_DOC_ID)
        if not doc:
            return AdjustmentFactors()
        # Older documents wrapped the factors as {"factors": {...}, "updatedAt": ...}
        if "factors" in doc and isinstance(doc["factors"], dict):
            doc = {**doc["factors"], "updatedAt": doc.get("updatedAt")}
        try:
            return AdjustmentFactors.model_validate(doc)
        except ValidationError as e:
            logger.error(f"Stored adjustment factors are invalid, using zero factors: {e}")
            return AdjustmentFactors()

    def last_processed_at(self) -> Optional[datetime]:
        doc = self.store.get(SYSTEM_COLLECTION, PROCESSING_DOC_ID)
        if not doc or not doc.get("lastProcessedAt"):
            return None
        return parse_timestamp(doc["lastProcessedAt"])

    @staticmethod
    def replace_ops(factors: AdjustmentFactors, processed_at: datetime) -> List[WriteOp]:
        """Write ops replacing the factors and lastProcessedAt; meant for one atomic batch."""
        return [
            WriteOp(SYSTEM_COLLECTION, FACTORS_DOC_ID, factors.to_document()),
            WriteOp(SYSTEM_COLLECTION, PROCESSING_DOC_ID, {"lastProcessedAt": processed_at.isoformat()}),
        ]

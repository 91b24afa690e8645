"""
Append-only ledger of feedback events (collection analysis_feedback).
"""
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from pydantic import ValidationError

from swingscore.schemas.feedback import FeedbackCreate, FeedbackEvent

logger = logging.getLogger(__name__)

COLLECTION = "analysis_feedback"


class FeedbackLedger:
    def __init__(self, store):
        self.store = store

    def append(self, feedback: FeedbackCreate, now: Optional[datetime] = None) -> FeedbackEvent:
        timestamp = now or datetime.now(timezone.utc)
        data = feedback.to_document()
        data["timestamp"] = timestamp.isoformat()
        event_id = self.store.append(COLLECTION, data)
        logger.info(f"Recorded feedback {event_id} (verdict={feedback.verdict.value}, skill={feedback.skill_level.value})")
        return FeedbackEvent(id=event_id, timestamp=timestamp, **feedback.model_dump())

    def raw_window(self, since: datetime) -> List[Dict[str, Any]]:
        """Undecoded ledger documents with timestamp >= since, oldest first."""
        return self.store.query(
            COLLECTION,
            where=[("timestamp", ">=", since)],
            order_by=("timestamp", "asc"),
        )

    def window(self, since: datetime) -> List[FeedbackEvent]:
        """Decoded events since a point in time. Undecodable documents are logged and dropped."""
        events = []
        for doc in self.raw_window(since):
            try:
                events.append(FeedbackEvent.model_validate(doc))
            except ValidationError as e:
                logger.warning(f"Skipping undecodable feedback {doc.get('id')}: {e.error_count()} error(s)")
        return events

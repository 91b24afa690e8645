"""
Feedback processing scheduler.

The only writer of system/adjustment_factors and system/feedback_processing.
Runs the aggregator at most once per cooldown (unless forced) and never
concurrently within a process.
"""
import logging
import threading
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Dict, Optional

from swingscore.core.config import settings
from swingscore.core.errors import AggregationAborted
from swingscore.processing.aggregator import AggregatorConfig, aggregate, decode_events
from swingscore.schemas.adjustment import AdjustmentFactors
from swingscore.services.adjustment_store import AdjustmentStore
from swingscore.services.feedback_ledger import FeedbackLedger

logger = logging.getLogger(__name__)


class AggregatorState(str, Enum):
    IDLE = "idle"
    READING = "reading"
    REDUCING = "reducing"
    WRITING = "writing"


# Process-wide: one aggregator run at a time
_run_lock = threading.Lock()
_state = AggregatorState.IDLE
background_thread = None


def current_state() -> AggregatorState:
    return _state


def _set_state(state: AggregatorState) -> None:
    global _state
    _state = state
    logger.debug(f"Aggregator state: {state.value}")


@dataclass
class RunResult:
    ran: bool
    skipped: bool
    reason: Optional[str] = None
    factors: Optional[AdjustmentFactors] = None

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {"ran": self.ran, "skipped": self.skipped}
        if self.reason:
            result["reason"] = self.reason
        if self.factors is not None:
            result["adjustmentFactors"] = self.factors.to_document()
        return result


class FeedbackScheduler:
    def __init__(self, store, config: Optional[AggregatorConfig] = None, cooldown: Optional[timedelta] = None):
        self.store = store
        self.adjustments = AdjustmentStore(store)
        self.ledger = FeedbackLedger(store)
        self.config = config or AggregatorConfig.from_settings()
        self.cooldown = cooldown if cooldown is not None else timedelta(hours=settings.feedback_cooldown_hours)

    def maybe_run(self, force: bool = False, now: Optional[datetime] = None) -> RunResult:
        """
        Run the aggregator if the cooldown elapsed (or force=True) and no run is in progress.

        Returns:
            RunResult with ran/skipped; factors are set when a run happened

        Raises:
            AggregationAborted: too many undecodable events; nothing was written
        """
        now = now or datetime.now(timezone.utc)

        if not _run_lock.acquire(blocking=False):
            logger.info("Skipping feedback processing: a run is already in progress")
            return RunResult(ran=False, skipped=True, reason="in_progress")

        try:
            if not force:
                last = self.adjustments.last_processed_at()
                if last is not None and now - last < self.cooldown:
                    hours = (now - last).total_seconds() / 3600
                    logger.info(f"Skipping feedback processing (last run {hours:.1f} hours ago)")
                    return RunResult(ran=False, skipped=True, reason="cooldown")

            logger.info("Processing feedback...")
            _set_state(AggregatorState.READING)
            docs = self.ledger.raw_window(now - timedelta(days=self.config.window_days))

            _set_state(AggregatorState.REDUCING)
            events = decode_events(docs, self.config)
            factors = aggregate(events, self.config, now=now)

            _set_state(AggregatorState.WRITING)
            self.store.batch_write(AdjustmentStore.replace_ops(factors, now))
            logger.info("Feedback processing complete")
            return RunResult(ran=True, skipped=False, factors=factors)
        except AggregationAborted as e:
            logger.error(f"Feedback processing aborted: {e.detail}")
            raise
        finally:
            _set_state(AggregatorState.IDLE)
            _run_lock.release()


def _run_in_background(store):
    try:
        result = FeedbackScheduler(store).maybe_run()
        logger.info(f"Startup feedback processing: {result.to_dict()}")
    except Exception as e:
        logger.error(f"Startup feedback processing failed: {e}", exc_info=True)


def start_background_run(store):
    """Kick off a non-forced aggregator run without blocking startup."""
    global background_thread
    background_thread = threading.Thread(target=_run_in_background, args=(store,), daemon=True)
    background_thread.start()
    logger.info("Feedback processing started in background")

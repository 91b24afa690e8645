"""
Operator CLI.

    swingscore-admin initialize-metrics
    swingscore-admin process-feedback [--if-due]
    swingscore-admin process-reference-videos [--metric KEY ...]

Exit codes: 0 success, 2 validation failure, 3 external analyzer failure, 1 anything else.
"""
import argparse
import json
import logging
import sys
from typing import List, Optional

from pydantic import ValidationError

from swingscore.core.config import settings
from swingscore.core.database import get_session_local
from swingscore.core.errors import (
    AnalyzerTimeout,
    AnalyzerUnavailable,
    InvalidReference,
    InvalidRubric,
    MalformedResponse,
    SwingScoreError,
)
from swingscore.processing.scheduler import FeedbackScheduler
from swingscore.services.analyzer import get_analyzer
from swingscore.services.document_store import DocumentStore
from swingscore.services.metric_catalog import MetricCatalog
from swingscore.services.reference_rubrics import ReferenceRubricService

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_ERROR = 1
EXIT_VALIDATION = 2
EXIT_ANALYZER = 3

VALIDATION_ERRORS = (InvalidReference, InvalidRubric, ValidationError)
ANALYZER_ERRORS = (AnalyzerTimeout, MalformedResponse, AnalyzerUnavailable)


def _initialize_metrics(store, args) -> dict:
    return MetricCatalog(store).initialize_metrics()


def _process_feedback(store, args) -> dict:
    return FeedbackScheduler(store).maybe_run(force=not args.if_due).to_dict()


def _process_reference_videos(store, args) -> dict:
    analyzer = get_analyzer()
    if analyzer is None:
        raise AnalyzerUnavailable("Analyzer API key not configured")
    return ReferenceRubricService(store, analyzer).process_all(args.metric)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="swingscore-admin", description="SwingScore admin actions")
    subparsers = parser.add_subparsers(dest="command", required=True)

    init = subparsers.add_parser("initialize-metrics", help="Seed the metric catalog")
    init.set_defaults(handler=_initialize_metrics)

    feedback = subparsers.add_parser("process-feedback", help="Recompute adjustment factors from feedback")
    feedback.add_argument("--if-due", action="store_true", help="Respect the cooldown instead of forcing a run")
    feedback.set_defaults(handler=_process_feedback)

    references = subparsers.add_parser("process-reference-videos", help="Extract rubrics from reference videos")
    references.add_argument("--metric", action="append", help="Metric key (repeatable); default is all metrics")
    references.set_defaults(handler=_process_reference_videos)

    return parser


def main(argv: Optional[List[str]] = None, store=None) -> int:
    args = build_parser().parse_args(argv)

    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper()),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    try:
        store = store or DocumentStore(get_session_local())
        result = args.handler(store, args)
    except VALIDATION_ERRORS as e:
        logger.error(f"Validation failed: {e}")
        return EXIT_VALIDATION
    except ANALYZER_ERRORS as e:
        logger.error(f"Analyzer failed: {e}")
        return EXIT_ANALYZER
    except SwingScoreError as e:
        logger.error(f"{args.command} failed: {e.code} {e.detail}")
        return EXIT_ERROR

    print(json.dumps(result, indent=2, default=str))
    if isinstance(result, dict) and result.get("failed"):
        # Batch ran but some metrics failed; report the most specific cause
        codes = {failure["code"] for failure in result["failed"]}
        if codes & {cls.code for cls in ANALYZER_ERRORS}:
            return EXIT_ANALYZER
        if codes & {InvalidReference.code, InvalidRubric.code}:
            return EXIT_VALIDATION
        return EXIT_ERROR
    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())

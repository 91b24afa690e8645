"""
Metric catalog: descriptors for the 17 metrics (collection metrics/{metricKey}).
The packaged catalog seeds the collection; admins can swap reference videos later.
"""
import json
import logging
from datetime import datetime, timezone
from functools import lru_cache
from pathlib import Path
from typing import Dict, Optional

from pydantic import ValidationError

from swingscore.core.errors import InvalidReference
from swingscore.core.metrics import canonical_metric_key, humanize_metric_key
from swingscore.core.weights import weight_for
from swingscore.core.youtube import embed_url, extract_youtube_video_id
from swingscore.schemas.rubric import MetricDescriptor
from swingscore.services.document_store import WriteOp

logger = logging.getLogger(__name__)

COLLECTION = "metrics"
CATALOG_PATH = Path(__file__).parent.parent / "data" / "metric_catalog.json"


def weighting_label(metric_key: str) -> str:
    return f"{weight_for(metric_key) * 100:.0f}%"


@lru_cache(maxsize=1)
def load_catalog() -> Dict[str, MetricDescriptor]:
    """Packaged metric descriptors keyed by metric key, in display order."""
    with open(CATALOG_PATH, "r", encoding="utf-8") as f:
        raw = json.load(f)

    catalog = {}
    for key, entry in raw.items():
        video_id = extract_youtube_video_id(entry.get("exampleUrl"))
        catalog[key] = MetricDescriptor.model_validate({
            **entry,
            "weighting": weighting_label(key),
            "embedUrl": embed_url(video_id) if video_id else None,
            "youtubeVideoId": video_id,
        })
    return catalog


def default_descriptor(metric_key: str) -> MetricDescriptor:
    name = humanize_metric_key(metric_key)
    return MetricDescriptor(
        title=name.title(),
        description=f"The {name} aspect of the golf swing.",
        weighting=weighting_label(metric_key),
    )


class MetricCatalog:
    def __init__(self, store):
        self.store = store

    def initialize_metrics(self, now: Optional[datetime] = None) -> Dict:
        """Seed every catalog metric in one atomic batch. Existing descriptors are replaced."""
        initialized = (now or datetime.now(timezone.utc)).isoformat()
        catalog = load_catalog()
        ops = []
        for key, descriptor in catalog.items():
            ops.append(WriteOp(COLLECTION, key, {**descriptor.to_document(), "initialized": initialized}))
            logger.info(f"Added {key} to batch with reference: {descriptor.example_url}")
        self.store.batch_write(ops)
        logger.info(f"Initialized {len(ops)} metrics")
        return {"success": True, "metrics": len(ops)}

    def get_metric(self, metric_key: str) -> MetricDescriptor:
        """Stored descriptor, else the packaged one, else a generic descriptor."""
        metric_key = canonical_metric_key(metric_key)
        doc = self.store.get(COLLECTION, metric_key)
        if doc:
            try:
                return MetricDescriptor.model_validate(doc)
            except ValidationError as e:
                logger.warning(f"Stored descriptor for {metric_key} is invalid: {e.error_count()} error(s)")
        return load_catalog().get(metric_key) or default_descriptor(metric_key)

    def get_all_metrics(self) -> Dict[str, MetricDescriptor]:
        return {key: self.get_metric(key) for key in load_catalog()}

    def set_reference_video(self, metric_key: str, youtube_url: str, now: Optional[datetime] = None) -> MetricDescriptor:
        """
        Point a metric at a new reference video.

        Raises:
            InvalidReference: no YouTube video id in the URL
        """
        metric_key = canonical_metric_key(metric_key)
        video_id = extract_youtube_video_id(youtube_url)
        if not video_id:
            raise InvalidReference(f"Invalid YouTube URL: {youtube_url!r}")

        existing = self.store.get(COLLECTION, metric_key)
        update = {
            "exampleUrl": youtube_url,
            "embedUrl": embed_url(video_id),
            "youtubeVideoId": video_id,
            "lastUpdated": (now or datetime.now(timezone.utc)).isoformat(),
        }
        if existing is None:
            # Keep the document a complete descriptor
            update = {**self.get_metric(metric_key).to_document(), **update}
        self.store.set(COLLECTION, metric_key, update, merge=True)
        logger.info(f"Reference video for {metric_key} updated to {video_id}")
        return self.get_metric(metric_key)

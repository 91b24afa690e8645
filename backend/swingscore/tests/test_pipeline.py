"""
Tests for the swing scoring pipeline.
"""
import random
from datetime import datetime, timezone
from unittest.mock import MagicMock

import pytest

from swingscore.core.errors import (
    AnalyzerTimeout,
    AnalyzerUnavailable,
    InvalidReference,
    MalformedResponse,
    TransientStorage,
)
from swingscore.core.adjustments import apply_adjustments
from swingscore.core.metrics import METRIC_KEYS
from swingscore.core.normalizer import normalize
from swingscore.processing.pipeline import COLLECTION, ScoringPipeline, VideoUpload
from swingscore.schemas.adjustment import AdjustmentFactors
from swingscore.schemas.swing import FriendSwingMetadata, SelfSwingMetadata, VideoRef
from swingscore.services.adjustment_store import FACTORS_DOC_ID, SYSTEM_COLLECTION
from swingscore.services.score_analysis import parse_score_response

NOW = datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)


def make_upload(name="swing.mp4", size=1234):
    return VideoUpload(
        filename=name,
        size=size,
        content_type="video/mp4",
        data=b"fake video bytes",
        last_modified_ms=1700000000000,
    )


def assert_valid_scores(record):
    values = [record.scores.overall_score, *record.scores.metrics.values()]
    assert set(record.scores.metrics) == set(METRIC_KEYS)
    assert all(0 <= value <= 100 for value in values)


def test_score_without_analyzer_uses_mock(store):
    pipeline = ScoringPipeline(store, rng=random.Random(1))

    record = pipeline.score_swing(make_upload(), SelfSwingMetadata(club_type="Iron"), user_id="user-1", now=NOW)

    assert record.is_mock_data is True
    assert_valid_scores(record)
    stored = store.get(COLLECTION, record.id)
    assert stored["_isMockData"] is True
    assert stored["userId"] == "user-1"
    assert stored["metadata"]["ownership"] == "self"


def test_score_with_analyzer(store, fake_analyzer, make_score_reply):
    analyzer = fake_analyzer([make_score_reply(overall=78, value=75, grip=60, backswing=90)])
    pipeline = ScoringPipeline(store, analyzer, rng=random.Random(1))

    record = pipeline.score_swing(make_upload(), SelfSwingMetadata(club_name="Driver"), now=NOW)

    assert record.is_mock_data is False
    assert record.scores.metrics["grip"] == 60
    assert record.scores.metrics["backswing"] == 90
    assert_valid_scores(record)
    call = analyzer.calls[0]
    assert call["media"].mime_type == "video/mp4"
    assert "Driver" in call["prompt"]


@pytest.mark.parametrize("error", [AnalyzerTimeout("slow"), MalformedResponse("garbled")])
def test_analyzer_failures_fall_back_to_mock(store, fake_analyzer, error):
    pipeline = ScoringPipeline(store, fake_analyzer(error=error), rng=random.Random(1))

    record = pipeline.score_swing(make_upload(), SelfSwingMetadata(), now=NOW)

    assert record.is_mock_data is True
    assert_valid_scores(record)


def test_malformed_reply_falls_back_to_mock(store, fake_analyzer):
    pipeline = ScoringPipeline(store, fake_analyzer(["I can't score this video"]), rng=random.Random(1))

    record = pipeline.score_swing(make_upload(), SelfSwingMetadata(), now=NOW)

    assert record.is_mock_data is True


def test_unavailable_analyzer_fails_without_record(store, fake_analyzer):
    pipeline = ScoringPipeline(store, fake_analyzer(error=AnalyzerUnavailable("down")))

    with pytest.raises(AnalyzerUnavailable):
        pipeline.score_swing(make_upload(), SelfSwingMetadata(), now=NOW)

    assert store.query(COLLECTION) == []


def test_unfingerprintable_upload(store):
    with pytest.raises(InvalidReference):
        ScoringPipeline(store).score_swing(make_upload(name=""), SelfSwingMetadata(), now=NOW)
    assert store.query(COLLECTION) == []


def test_adjustment_factors_are_applied(store, fake_analyzer, make_score_reply):
    reply = make_score_reply(overall=70, value=70, grip=55, backswing=85, stance=62)
    store.set(SYSTEM_COLLECTION, FACTORS_DOC_ID, AdjustmentFactors(metrics={"grip": 4}).to_document())
    pipeline = ScoringPipeline(store, fake_analyzer([reply]), rng=random.Random(1))

    record = pipeline.score_swing(make_upload(), SelfSwingMetadata(), now=NOW)

    expected = apply_adjustments(normalize(parse_score_response(reply)), AdjustmentFactors(metrics={"grip": 4}))
    assert record.scores.metrics == expected.metrics
    assert record.scores.metrics["grip"] == 59


def test_rescoring_same_video_is_blended(store, fake_analyzer, make_score_reply):
    analyzer = fake_analyzer([make_score_reply(overall=40, value=40), make_score_reply(overall=90, value=90)])
    pipeline = ScoringPipeline(store, analyzer, rng=random.Random(1))

    first = pipeline.score_swing(make_upload(), SelfSwingMetadata(), now=NOW)
    second = pipeline.score_swing(make_upload(), SelfSwingMetadata(), now=NOW)

    assert first.blended is False
    assert second.blended is True
    assert first.fingerprint == second.fingerprint
    assert second.scores.overall_score < 90


def test_self_upload_gets_durable_reference(store, object_store):
    pipeline = ScoringPipeline(store, object_store=object_store, rng=random.Random(1))

    record = pipeline.score_swing(make_upload(), SelfSwingMetadata(), user_id="user-1", now=NOW)

    object_store.put.assert_called_once()
    path = object_store.put.call_args.args[0]
    assert path == f"swings/user-1/{record.id}/swing.mp4"
    assert record.metadata.video_ref == VideoRef(kind="durable", locator=path)
    assert pipeline.video_url(record) == "https://s3.example.test/presigned"


def test_friend_upload_is_not_stored(store, object_store):
    metadata = FriendSwingMetadata(video_ref=VideoRef(kind="ephemeral", locator="https://example.test/clip.mp4"))
    pipeline = ScoringPipeline(store, object_store=object_store, rng=random.Random(1))

    record = pipeline.score_swing(make_upload(), metadata, now=NOW)

    object_store.put.assert_not_called()
    assert record.metadata.video_ref.kind == "ephemeral"
    assert pipeline.video_url(record) == "https://example.test/clip.mp4"


def test_persist_failure_removes_uploaded_video(object_store):
    """Test a failed record write deletes the uploaded object and surfaces the error."""
    failing_store = MagicMock()
    failing_store.get.return_value = None
    failing_store.query.return_value = []

    def set_document(collection, doc_id, data, merge=False):
        if collection == COLLECTION:
            raise TransientStorage("write failed")

    failing_store.set.side_effect = set_document
    pipeline = ScoringPipeline(failing_store, object_store=object_store, rng=random.Random(1))

    with pytest.raises(TransientStorage):
        pipeline.score_swing(make_upload(), SelfSwingMetadata(), user_id="user-1", now=NOW)

    uploaded_path = object_store.put.call_args.args[0]
    object_store.delete.assert_called_once_with(uploaded_path)


def test_get_swing_roundtrip(store):
    pipeline = ScoringPipeline(store, rng=random.Random(1))
    record = pipeline.score_swing(make_upload(), SelfSwingMetadata(club_type="Wood"), now=NOW)

    loaded = pipeline.get_swing(record.id)

    assert loaded == record
    assert pipeline.get_swing("missing") is None

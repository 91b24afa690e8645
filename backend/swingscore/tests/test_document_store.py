"""
Tests for the SQLAlchemy-backed document store.
"""
from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock, patch

import pytest
from sqlalchemy import event
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm import Session

from swingscore.core.errors import PermanentStorage, TransientStorage
from swingscore.models.document import Document
from swingscore.services.document_store import DocumentStore, WriteOp, parse_timestamp

NOW = datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)


def test_set_and_get(store):
    store.set("swings", "s1", {"overallScore": 70, "metadata": {"ownership": "self"}})

    assert store.get("swings", "s1") == {"overallScore": 70, "metadata": {"ownership": "self"}}
    assert store.get("swings", "missing") is None
    assert store.get("other", "s1") is None


def test_get_returns_a_copy(store):
    store.set("swings", "s1", {"metrics": {"grip": 70}})

    doc = store.get("swings", "s1")
    doc["metrics"]["grip"] = 0

    assert store.get("swings", "s1")["metrics"]["grip"] == 70


def test_set_replaces_and_merges(store):
    store.set("metrics", "grip", {"title": "Grip", "exampleUrl": "a"})

    store.set("metrics", "grip", {"exampleUrl": "b"}, merge=True)
    assert store.get("metrics", "grip") == {"title": "Grip", "exampleUrl": "b"}

    store.set("metrics", "grip", {"exampleUrl": "c"})
    assert store.get("metrics", "grip") == {"exampleUrl": "c"}


def test_delete(store):
    store.set("swings", "s1", {"a": 1})
    store.delete("swings", "s1")
    store.delete("swings", "never-existed")
    assert store.get("swings", "s1") is None


def test_append_generates_ids(store):
    first = store.append("analysis_feedback", {"verdict": "accurate"})
    second = store.append("analysis_feedback", {"verdict": "too_high"})

    assert first != second
    assert store.get("analysis_feedback", first) == {"verdict": "accurate"}


def test_query_filters_orders_and_limits(store):
    for i in range(5):
        store.set("feedback", f"f{i}", {
            "timestamp": (NOW - timedelta(days=i)).isoformat(),
            "confidence": i + 1,
            "skill": {"level": "pro" if i % 2 else "amateur"},
        })

    recent = store.query("feedback", where=[("timestamp", ">=", NOW - timedelta(days=2))], order_by=("timestamp", "asc"))
    assert [doc["id"] for doc in recent] == ["f2", "f1", "f0"]

    pros = store.query("feedback", where=[("skill.level", "==", "pro")])
    assert sorted(doc["id"] for doc in pros) == ["f1", "f3"]

    top = store.query("feedback", order_by=("confidence", "desc"), limit=2)
    assert [doc["confidence"] for doc in top] == [5, 4]

    chosen = store.query("feedback", where=[("confidence", "in", [1, 5]), ("confidence", "!=", 5)])
    assert [doc["id"] for doc in chosen] == ["f0"]


def test_query_handles_missing_fields(store):
    store.set("feedback", "a", {"confidence": 3})
    store.set("feedback", "b", {})

    assert [doc["id"] for doc in store.query("feedback", where=[("confidence", ">", 1)])] == ["a"]
    assert [doc["id"] for doc in store.query("feedback", order_by=("confidence", "asc"))] == ["a", "b"]


def test_timestamp_column_follows_the_document(store, engine):
    store.set("feedback", "a", {"timestamp": "2026-10-19T14:00:00+02:00"})
    store.set("feedback", "b", {"timestamp": "not a date"})
    store.set("feedback", "a", {"timestamp": (NOW - timedelta(days=3)).isoformat()}, merge=True)

    with Session(engine) as session:
        assert session.get(Document, ("feedback", "a")).timestamp == datetime(2026, 10, 16, 12, 0)
        assert session.get(Document, ("feedback", "b")).timestamp is None

    since = store.query("feedback", where=[("timestamp", ">=", NOW - timedelta(days=4))])
    assert [doc["id"] for doc in since] == ["a"]


def test_query_filters_orders_and_limits_in_sql(store, engine):
    for i in range(3):
        store.append("feedback", {"timestamp": (NOW - timedelta(days=i)).isoformat(), "skill": {"level": "pro"}})
    statements = []

    def capture(conn, cursor, statement, parameters, context, executemany):
        statements.append(statement)

    event.listen(engine, "before_cursor_execute", capture)
    try:
        docs = store.query(
            "feedback",
            where=[("timestamp", ">=", NOW - timedelta(days=1)), ("skill.level", "==", "pro")],
            order_by=("timestamp", "desc"),
            limit=1,
        )
    finally:
        event.remove(engine, "before_cursor_execute", capture)

    assert docs[0]["timestamp"] == NOW.isoformat()
    assert len(docs) == 1
    sql = next(statement for statement in statements if "FROM documents" in statement)
    assert "documents.timestamp >=" in sql
    assert "ORDER BY" in sql
    assert "LIMIT" in sql


def test_query_rejects_unknown_operator(store):
    store.set("feedback", "a", {"confidence": 3})
    with pytest.raises(ValueError):
        store.query("feedback", where=[("confidence", "~", 3)])


def test_batch_write(store):
    store.set("system", "old", {"a": 1})

    store.batch_write([
        WriteOp("system", "adjustment_factors", {"overall": -2}),
        WriteOp("system", "adjustment_factors", {"metrics": {}}, merge=True),
        WriteOp("system", "old", None),
    ])

    assert store.get("system", "adjustment_factors") == {"overall": -2, "metrics": {}}
    assert store.get("system", "old") is None


def test_batch_write_is_atomic(store):
    """Test a failure part way through a batch commits none of its ops."""
    original_write = DocumentStore._write
    calls = []

    def failing_write(session, op):
        calls.append(op)
        if len(calls) == 2:
            raise RuntimeError("boom")
        original_write(session, op)

    with patch.object(DocumentStore, "_write", side_effect=failing_write):
        with pytest.raises(RuntimeError):
            store.batch_write([WriteOp("system", "a", {"x": 1}), WriteOp("system", "b", {"x": 2})])

    assert store.get("system", "a") is None
    assert store.get("system", "b") is None


def test_operational_errors_are_transient():
    session = MagicMock()
    session.get.side_effect = OperationalError("SELECT", {}, Exception("connection refused"))
    store = DocumentStore(lambda: session)

    with pytest.raises(TransientStorage):
        store.get("swings", "s1")
    session.rollback.assert_called_once()
    session.close.assert_called_once()


def test_integrity_errors_are_permanent():
    session = MagicMock()
    session.get.return_value = None
    session.commit.side_effect = IntegrityError("INSERT", {}, Exception("constraint"))
    store = DocumentStore(lambda: session)

    with pytest.raises(PermanentStorage):
        store.set("swings", "s1", {"a": 1})


def test_ping(store):
    assert store.ping() is True

    session = MagicMock()
    session.execute.side_effect = OperationalError("SELECT 1", {}, Exception("down"))
    assert DocumentStore(lambda: session).ping() is False


def test_parse_timestamp():
    assert parse_timestamp("2026-10-19T12:00:00Z") == NOW
    assert parse_timestamp("2026-10-19T12:00:00") == NOW
    assert parse_timestamp("not a date") is None

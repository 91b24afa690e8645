"""
Document store backed by a single SQLAlchemy table.

Documents are JSON objects addressed by (collection, id). Every public
operation runs in its own transaction; batch_write applies all of its ops in
one transaction. A document's "timestamp" field is mirrored into an indexed
column so time-window queries never scan a whole collection.
"""
import copy
import logging
import operator
import uuid
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from sqlalchemy import or_, select, text
from sqlalchemy.exc import DisconnectionError, OperationalError, SQLAlchemyError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError

from swingscore.core.errors import PermanentStorage, TransientStorage
from swingscore.models.document import Document

logger = logging.getLogger(__name__)

# (field, op, value)
Predicate = Tuple[str, str, Any]

_COMPARISONS = {
    "==": operator.eq,
    "!=": operator.ne,
    ">": operator.gt,
    ">=": operator.ge,
    "<": operator.lt,
    "<=": operator.le,
}

# Document fields backed by real columns
TIMESTAMP_FIELD = "timestamp"
ID_FIELD = "id"


@dataclass
class WriteOp:
    """One write inside a batch. data=None deletes the document."""
    collection: str
    doc_id: str
    data: Optional[Dict[str, Any]] = None
    merge: bool = False


def _storage_error(exc: SQLAlchemyError):
    if isinstance(exc, (OperationalError, PoolTimeoutError, DisconnectionError)):
        return TransientStorage(f"Document store unavailable: {exc}")
    return PermanentStorage(f"Document store error: {exc}")


def parse_timestamp(value: str) -> Optional[datetime]:
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _naive_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def _column_timestamp(value: Any) -> Optional[datetime]:
    """Value for the timestamp column from a datetime or an ISO string."""
    if isinstance(value, str):
        value = parse_timestamp(value)
    if isinstance(value, datetime):
        return _naive_utc(value)
    return None


def _json_field(path: str):
    """JSON expression for a field path, e.g. "metadata.ownership"."""
    parts = tuple(path.split("."))
    return Document.data[parts] if len(parts) > 1 else Document.data[path]


def _typed_field(path: str, sample: Any):
    """JSON field extracted as the SQL type of the value it is compared with."""
    field = _json_field(path)
    if isinstance(sample, bool):
        return field.as_boolean()
    if isinstance(sample, (int, float)):
        return field.as_float()
    return field.as_string()


def _bind_value(value: Any) -> Any:
    if isinstance(value, datetime):
        return _naive_utc(value).isoformat()
    return value


def _clause(field: str, op: str, value: Any):
    if op != "in" and op not in _COMPARISONS:
        raise ValueError(f"Unsupported query operator: {op}")

    if field == TIMESTAMP_FIELD:
        column, convert = Document.timestamp, _column_timestamp
    elif field == ID_FIELD:
        column, convert = Document.doc_id, str
    else:
        sample = next(iter(value), None) if op == "in" else value
        column, convert = _typed_field(field, sample), _bind_value

    if op == "in":
        return column.in_([convert(v) for v in value])
    if value is None:
        return column.is_(None) if op == "==" else column.is_not(None)
    clause = _COMPARISONS[op](column, convert(value))
    if op == "!=":
        # A missing field differs from every value
        clause = or_(column.is_(None), clause)
    return clause


def _order_column(field: str):
    if field == TIMESTAMP_FIELD:
        return Document.timestamp
    if field == ID_FIELD:
        return Document.doc_id
    return _json_field(field).as_float()


class DocumentStore:
    def __init__(self, session_factory):
        self._session_factory = session_factory

    @contextmanager
    def _session(self):
        session = self._session_factory()
        try:
            yield session
            session.commit()
        except SQLAlchemyError as e:
            session.rollback()
            logger.error(f"Document store operation failed: {e}")
            raise _storage_error(e) from e
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def get(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
        """Return a copy of the document data, or None."""
        with self._session() as session:
            doc = session.get(Document, (collection, doc_id))
            return copy.deepcopy(doc.data) if doc is not None else None

    def set(self, collection: str, doc_id: str, data: Dict[str, Any], merge: bool = False) -> None:
        """Create or replace a document. With merge=True, top-level fields are merged into the existing one."""
        with self._session() as session:
            self._write(session, WriteOp(collection, doc_id, data, merge))

    def delete(self, collection: str, doc_id: str) -> None:
        with self._session() as session:
            self._write(session, WriteOp(collection, doc_id, None))

    def append(self, collection: str, data: Dict[str, Any]) -> str:
        """Insert a document under a generated id and return the id."""
        doc_id = uuid.uuid4().hex
        with self._session() as session:
            session.add(Document(
                collection=collection,
                doc_id=doc_id,
                data=copy.deepcopy(data),
                timestamp=_column_timestamp(data.get(TIMESTAMP_FIELD)),
            ))
        return doc_id

    def query(
        self,
        collection: str,
        where: Optional[Iterable[Predicate]] = None,
        order_by: Optional[Tuple[str, str]] = None,
        limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        """
        Query documents of one collection. Filtering, ordering and the limit
        all run in SQL.

        Args:
            collection: Collection name
            where: Predicates ANDed together; ops are ==, !=, >, >=, <, <=, in.
                "timestamp" and "id" use indexed columns, other fields are
                read from the JSON data (dotted paths allowed) and compared
                as the type of the given value
            order_by: (field, "asc" | "desc"); fields other than timestamp and
                id sort numerically. Documents missing the field come last
            limit: Max number of documents returned

        Returns:
            Document data dicts with the document id under "id"
        """
        stmt = select(Document).where(Document.collection == collection)
        for field, op, value in where or []:
            stmt = stmt.where(_clause(field, op, value))
        if order_by is not None:
            field, direction = order_by
            column = _order_column(field)
            stmt = stmt.order_by(column.is_(None), column.desc() if direction == "desc" else column.asc())
        stmt = stmt.order_by(Document.doc_id)
        if limit is not None:
            stmt = stmt.limit(limit)

        with self._session() as session:
            rows = session.execute(stmt).scalars().all()
            return [{"id": row.doc_id, **copy.deepcopy(row.data)} for row in rows]

    def batch_write(self, ops: Sequence[WriteOp]) -> None:
        """Apply all ops atomically: either every op is committed or none is."""
        with self._session() as session:
            for op in ops:
                self._write(session, op)
        logger.debug(f"Committed batch of {len(ops)} write(s)")

    def ping(self) -> bool:
        try:
            with self._session() as session:
                session.execute(text("SELECT 1"))
            return True
        except (TransientStorage, PermanentStorage):
            return False

    @staticmethod
    def _write(session, op: WriteOp) -> None:
        doc = session.get(Document, (op.collection, op.doc_id))
        if op.data is None:
            if doc is not None:
                session.delete(doc)
            return
        data = copy.deepcopy(op.data)
        if doc is None:
            session.add(Document(
                collection=op.collection,
                doc_id=op.doc_id,
                data=data,
                timestamp=_column_timestamp(data.get(TIMESTAMP_FIELD)),
            ))
            # Later ops in the same batch must see this document
            session.flush()
            return
        if op.merge:
            data = {**doc.data, **data}
        doc.data = data
        doc.timestamp = _column_timestamp(data.get(TIMESTAMP_FIELD))

from datetime import datetime, timezone

from sqlalchemy import JSON, Column, DateTime, Index, String
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import declarative_base
from sqlalchemy.types import TypeDecorator

Base = declarative_base()


class JSONBCompat(TypeDecorator):
    """A type that uses JSONB for PostgreSQL and JSON for SQLite."""
    impl = JSON
    cache_ok = True

    def load_dialect_impl(self, dialect):
        if dialect.name == 'postgresql':
            return dialect.type_descriptor(JSONB())
        else:
            return dialect.type_descriptor(JSON())


def _utcnow():
    return datetime.now(timezone.utc)


class Document(Base):
    """One JSON document, addressed as {collection}/{doc_id}."""
    __tablename__ = "documents"

    collection = Column(String, primary_key=True)
    doc_id = Column(String, primary_key=True)
    data = Column(JSONBCompat, nullable=False)
    # data["timestamp"] as naive UTC, so time windows are filtered in SQL
    timestamp = Column(DateTime, nullable=True)
    created_at = Column(DateTime, nullable=False, default=_utcnow)
    updated_at = Column(DateTime, nullable=False, default=_utcnow, onupdate=_utcnow)

    __table_args__ = (Index("ix_documents_collection_timestamp", "collection", "timestamp"),)

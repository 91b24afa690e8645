"""
Database engine and session factory (lazy initialization).
"""
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from swingscore.core.config import settings
from swingscore.models.document import Base

_engine = None
_SessionLocal = None


def get_engine():
    global _engine
    if _engine is None:
        _engine = create_engine(settings.db_url, pool_pre_ping=True, pool_recycle=3600)
        Base.metadata.create_all(bind=_engine)
    return _engine


def get_session_local():
    global _SessionLocal
    if _SessionLocal is None:
        _SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=get_engine())
    return _SessionLocal

"""
FastAPI dependencies shared by the routers. Tests override these through
app.dependency_overrides.
"""
import logging
import threading
from typing import Optional

from fastapi import Header

from swingscore.core.config import settings
from swingscore.core.database import get_session_local
from swingscore.core.errors import PolicyDenied
from swingscore.services.analyzer import get_analyzer
from swingscore.services.document_store import DocumentStore
from swingscore.services.object_store import S3ObjectStore

logger = logging.getLogger(__name__)

_object_store: Optional[S3ObjectStore] = None
_object_store_lock = threading.Lock()


def get_document_store() -> DocumentStore:
    return DocumentStore(get_session_local())


def get_analyzer_client():
    return get_analyzer()


def get_object_store() -> Optional[S3ObjectStore]:
    global _object_store
    if _object_store is None:
        with _object_store_lock:
            if _object_store is None:
                _object_store = S3ObjectStore()
    return _object_store


def require_admin(x_admin_token: Optional[str] = Header(None)) -> None:
    """Admin actions need X-Admin-Token to match the configured token."""
    if not settings.admin_api_token or x_admin_token != settings.admin_api_token:
        logger.warning("Rejected admin request with missing or invalid token")
        raise PolicyDenied("Admin token missing or invalid")

"""Pytest configuration and fixtures."""
import json
import os
from unittest.mock import MagicMock

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

# Set TESTING environment variable to prevent background feedback processing
os.environ["TESTING"] = "1"

from swingscore.core.metrics import METRIC_KEYS
from swingscore.models.document import Base
from swingscore.services.document_store import DocumentStore


@pytest.fixture
def engine():
    """In-memory SQLite shared across threads (TestClient runs uploads in a threadpool)."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def store(engine):
    return DocumentStore(sessionmaker(autocommit=False, autoflush=False, bind=engine))


class FakeAnalyzer:
    """Stands in for AnalyzerClient: replays canned replies or raises a given error."""

    def __init__(self, responses=None, error=None):
        self.responses = list(responses or [])
        self.error = error
        self.calls = []

    def analyze(self, prompt, media=None, timeout=120.0, model=None):
        self.calls.append({"prompt": prompt, "media": media, "timeout": timeout, "model": model})
        if self.error is not None:
            raise self.error
        if len(self.responses) > 1:
            return self.responses.pop(0)
        return self.responses[0]


@pytest.fixture
def fake_analyzer():
    return FakeAnalyzer


@pytest.fixture
def object_store():
    mock = MagicMock()
    mock.put.side_effect = lambda path, blob, content_type="application/octet-stream": path
    mock.url.return_value = "https://s3.example.test/presigned"
    return mock


def score_reply(overall=75, value=70, **overrides):
    """Analyzer reply text with every metric set to `value` unless overridden."""
    metrics = {key: value for key in METRIC_KEYS}
    metrics.update(overrides)
    return json.dumps({
        "overallScore": overall,
        "metrics": metrics,
        "recommendations": ["Keep your head still", "Slow the takeaway", "Finish balanced"],
    })


def rubric_reply(**overrides):
    rubric = {
        "technicalGuidelines": ["Neutral grip with two knuckles visible"],
        "idealForm": ["Hands work as a unit"],
        "commonMistakes": ["Grip pressure too tight"],
        "coachingCues": ["Hold it like a tube of toothpaste"],
        "scoringRubric": {
            "90+": "Textbook grip",
            "70-89": "Minor pressure issues",
            "50-69": "Weak or strong grip",
            "<50": "Baseball grip",
        },
    }
    rubric.update(overrides)
    return json.dumps(rubric)


@pytest.fixture
def make_score_reply():
    return score_reply


@pytest.fixture
def make_rubric_reply():
    return rubric_reply

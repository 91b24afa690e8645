"""
Error types raised by the scoring core.
Every error carries a stable machine-readable code.
"""


class SwingScoreError(Exception):
    code = "SWINGSCORE_ERROR"

    def __init__(self, detail: str = ""):
        super().__init__(detail or self.code)
        self.detail = detail or self.code

    def to_dict(self) -> dict:
        return {"code": self.code, "detail": self.detail}


class InvalidReference(SwingScoreError):
    """A URL or video fingerprint could not be derived."""
    code = "INVALID_REFERENCE"


class MalformedResponse(SwingScoreError):
    """The external analyzer returned non-parsable or schema-invalid content."""
    code = "MALFORMED_RESPONSE"


class InvalidRubric(SwingScoreError):
    """Rubric JSON is missing required fields."""
    code = "INVALID_RUBRIC"


class TransientStorage(SwingScoreError):
    """A document/object store operation failed in a retriable way."""
    code = "TRANSIENT_STORAGE"


class PermanentStorage(SwingScoreError):
    """Schema or permission error on the store."""
    code = "PERMANENT_STORAGE"


class AnalyzerTimeout(SwingScoreError):
    """An external call exceeded its configured bound."""
    code = "TIMEOUT"


class PolicyDenied(SwingScoreError):
    code = "POLICY_DENIED"


class AnalyzerUnavailable(SwingScoreError):
    """The external analyzer could not be reached or rejected the request."""
    code = "ANALYZER_UNAVAILABLE"


class AggregationAborted(SwingScoreError):
    code = "AGGREGATION_ABORTED"

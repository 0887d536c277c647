"""
Query-level error taxonomy.

Only these propagate to the caller as a failed query. Per-candidate judge
failures are recorded on the candidate instead.
"""


class RankingError(Exception):
    """Base class for errors that fail a whole query."""

    code = "INTERNAL_ERROR"
    status_code = 500

    def __init__(self, message: str, code: str = None):
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code

    def to_dict(self) -> dict:
        return {"code": self.code, "message": self.message}


class InvalidQueryError(RankingError):
    """Raised before any phase runs when the request is unusable."""

    code = "MISSING_QUERY"
    status_code = 400


class CorpusUnavailableError(RankingError):
    """Raised when the corpus snapshot cannot be read."""

    code = "CORPUS_UNAVAILABLE"
    status_code = 503


class QueryCancelledError(RankingError):
    """Raised when a query is cancelled under the fail policy."""

    code = "QUERY_CANCELLED"
    status_code = 499

"""Error taxonomy for the scoring pipeline and aggregation engine."""


class PaperScoreError(Exception):
    """Base class for all domain errors."""

    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(PaperScoreError):
    """Malformed request, empty roster or empty question set."""

    status_code = 400


class AuthorizationError(PaperScoreError):
    """The caller does not own the exam."""

    status_code = 403


class NotFoundError(PaperScoreError):
    status_code = 404


class ConflictError(PaperScoreError):
    """Another analysis run already holds the exam's lease."""

    status_code = 409


class UpstreamServiceError(PaperScoreError):
    """The recognition service call failed or returned an unusable response."""

    status_code = 502


class ConsistencyError(PaperScoreError):
    """Recognized identity does not match the expected student."""

    status_code = 409


class PersistenceError(PaperScoreError):
    """A score store write or delete failed."""

    status_code = 500

    # Counts of the run that was interrupted, set by the analysis driver
    partial_result = None

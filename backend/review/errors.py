"""Error taxonomy for review sessions."""

from typing import Optional


class ReviewError(Exception):
    """Base class for errors surfaced by a review session."""
    pass


class ValidationError(ReviewError):
    """Reviewer input cannot be submitted as is.

    Recovered locally: nothing is sent and the reviewer corrects and retries.
    """

    MISSING_MAIN_KEYWORD = "missing_main_keyword"
    INVALID_JSON = "invalid_json"
    UNSAVED_CHANGES = "unsaved_changes"
    NOTHING_TO_MODIFY = "nothing_to_modify"
    KEYWORD_SELECTION_ONLY = "keyword_selection_only"

    def __init__(self, code: str, message: str):
        super().__init__(message)
        self.code = code


class ConflictError(ReviewError):
    """The approval was already decided (locally known or reported by the backend)."""
    pass


class TransportError(ReviewError):
    """A network or backend failure on one of the review API calls."""

    def __init__(self, operation: str, message: str, status_code: Optional[int] = None):
        super().__init__(f"{operation} failed: {message}")
        self.operation = operation
        self.status_code = status_code

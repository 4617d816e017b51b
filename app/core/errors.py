class ProgressServiceError(Exception):
    """Base exception for submission and progress errors."""


class InvalidReference(ProgressServiceError, ValueError):
    """Raised when a submission or filter references nothing usable.

    Covers a missing assignment reference, a submission owned by both a user
    and a group (or by neither), and an empty bulk-delete filter.
    """


class NotFound(ProgressServiceError, LookupError):
    """Raised when a referenced entity is absent or a lookup matches nothing."""


class StoreFailure(ProgressServiceError):
    """Raised when the entity store fails for any reason other than not-found."""

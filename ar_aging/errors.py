"""Exception types raised by the sync pipeline and the annotation store."""


class ConfigurationError(RuntimeError):
    """Required configuration is missing or invalid at startup."""


class SyncError(Exception):
    """Base class for failures that abort an invoice sync."""


class AuthenticationError(SyncError):
    """The caller identity could not be verified."""


class SyncInProgressError(SyncError):
    """Another sync is already running against the same store."""


class TransientFetchError(SyncError):
    """A single page or batch fetch from the invoicing API failed."""


class PersistenceWriteError(SyncError):
    """A batch delete or upsert against the store failed.

    Attributes:
        batch (int | None): 1-based upsert batch number, None for the delete step.
    """

    def __init__(self, message: str, batch=None):
        super().__init__(message)
        self.batch = batch


class MalformedInputError(ValueError):
    """An upstream record carried a value that could not be interpreted."""


class AnnotationError(Exception):
    """Base class for annotation store failures."""


class NotFoundError(AnnotationError):
    """The referenced note, follow-up, property note or invoice does not exist."""


class FollowUpStateError(AnnotationError):
    """The requested change is not allowed in the follow-up's current state."""

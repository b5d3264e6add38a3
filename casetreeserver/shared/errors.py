"""
Error taxonomy shared by the repository service and its outer surfaces.

Each error carries the HTTP status and the machine readable code that the
GraphQL payloads and JSON envelopes report back to the caller.
"""


class RepositoryError(Exception):
    """Base exception for test repository operations."""

    status_code = 500
    code = "STORAGE_ERROR"

    def __init__(self, message: str = ""):
        super().__init__(message)
        self.message = message or self.__class__.__doc__ or ""


class InputValidationError(RepositoryError):
    """Missing or malformed request fields."""

    status_code = 400
    code = "VALIDATION_ERROR"


class AccessDeniedError(RepositoryError):
    """Caller lacks the required project role."""

    status_code = 403
    code = "FORBIDDEN"


class NotFoundError(RepositoryError):
    """Referenced project or record does not exist."""

    status_code = 404
    code = "NOT_FOUND"


class StorageError(RepositoryError):
    """The record store failed while handling the request."""

    pass

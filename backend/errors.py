# Error taxonomy shared by the server collaborators and the sync core


class ValidationError(ValueError):
    """Malformed stage descriptor. Surfaced to the user, never retried."""


class NetworkError(Exception):
    """Remote collaborator unreachable or answered with a non-2xx status."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class RequestTimeout(NetworkError):
    """Remote collaborator did not answer within the configured timeout."""


class StorageError(Exception):
    """Local storage refused a read or write (quota exceeded, disabled, I/O)."""

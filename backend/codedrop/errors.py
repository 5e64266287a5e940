"""Error taxonomy shared by the stores, the handlers and the HTTP layer.

Each error carries the HTTP status it maps to. ``public_message`` is what the
client sees; for server-side failures it is deliberately generic and the
detailed ``message`` only goes to the logs.
"""
from typing import Optional


class ShareError(Exception):
    """Base class for every error the core raises."""

    status_code: int = 500
    default_public_message: str = "Internal server error"

    def __init__(self, message: str, public_message: Optional[str] = None):
        self.message = message
        self._public_message = public_message
        super().__init__(message)

    @property
    def public_message(self) -> str:
        if self._public_message:
            return self._public_message
        if self.status_code < 500:
            return self.message
        return self.default_public_message


class ValidationError(ShareError):
    """Missing or malformed input."""

    status_code = 400


class UnauthorizedError(ShareError):
    status_code = 401


class NotFoundError(ShareError):
    """No record exists for the sharing code."""

    status_code = 404


class ExpiredError(ShareError):
    """The code is known but the retention window has elapsed."""

    status_code = 410


class StorageError(ShareError):
    """Blob store call failed. Carries the HTTP status of the store when known."""

    default_public_message = "Error saving file"

    def __init__(self, message: str, status: int = 0, url: str = ""):
        self.status = status
        self.url = url
        super().__init__(message)

    def __str__(self) -> str:
        if self.status:
            return f"HTTP {self.status} from {self.url}: {self.message}"
        if self.url:
            return f"Blob store error for {self.url}: {self.message}"
        return self.message


class PersistenceError(ShareError):
    """Metadata medium could not be written."""

    default_public_message = "Error saving metadata"


class InternalError(ShareError):
    default_public_message = "Error processing request"

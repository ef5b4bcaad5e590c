"""Error kinds raised by the gateway. Each maps to exactly one HTTP status."""
from typing import Dict, Optional


class FsBucketError(Exception):
    status_code = 500
    default_message = "Internal error"

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)

    @property
    def headers(self) -> Dict[str, str]:
        return {}


class AuthorizationError(FsBucketError):
    """Bad or missing query parameters, unsafe path, or an invalid/expired signature."""
    status_code = 403
    default_message = "Access denied"

    def __init__(self, message: Optional[str] = None, reason=None):
        super().__init__(message)
        self.reason = reason


class NotFoundError(FsBucketError):
    status_code = 404
    default_message = "File does not exist"


class ConflictError(FsBucketError):
    status_code = 409
    default_message = "File already exists"


class RangeNotSatisfiableError(FsBucketError):
    status_code = 416
    default_message = "Requested range not satisfiable"

    def __init__(self, size: int, message: Optional[str] = None):
        super().__init__(message)
        self.size = size

    @property
    def headers(self) -> Dict[str, str]:
        return {"Content-Range": f"bytes */{self.size}"}


class StorageIOError(FsBucketError):
    """Read, write or stream failure against the filesystem."""
    status_code = 500
    default_message = "Storage error"

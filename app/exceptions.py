"""Errors raised by the file share services.

Each error carries the HTTP status the API layer answers with, so handlers
never need to translate them one by one.
"""


class FileShareError(Exception):
    status_code = 500
    default_detail = "Internal server error"

    def __init__(self, detail: str = None):
        self.detail = detail or self.default_detail
        super().__init__(self.detail)


class NotFound(FileShareError):
    status_code = 404
    default_detail = "File not found"


class Unauthorized(FileShareError):
    status_code = 401
    default_detail = "Password required"


class Expired(FileShareError):
    status_code = 410
    default_detail = "File expired"


class LimitReached(FileShareError):
    status_code = 403
    default_detail = "Download limit reached"


class InvalidInput(FileShareError):
    status_code = 400
    default_detail = "Invalid request"


class FileTooLarge(InvalidInput):
    status_code = 413
    default_detail = "File too large"


class StorageFailure(FileShareError):
    status_code = 500
    default_detail = "Storage error"


class PersistenceFailure(FileShareError):
    status_code = 500
    default_detail = "Could not persist metadata"


class DuplicateID(FileShareError):
    """Raised when a record id is already live or was issued before."""
    status_code = 500
    default_detail = "Duplicate file id"

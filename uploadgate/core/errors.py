# uploadgate/core/errors.py
from typing import Any, Dict, Optional


class UploadError(Exception):
    """Base class for every failure the coordinator surfaces to a caller."""

    status_code: int = 500
    code: str = "upload_error"

    def __init__(
        self,
        message: str = "",
        *,
        code: Optional[str] = None,
        status_code: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message or self.code)
        self.message = message or self.code
        if code is not None:
            self.code = code
        if status_code is not None:
            self.status_code = status_code
        self.details = details or {}

    def to_body(self) -> Dict[str, Any]:
        return {
            "ok": False,
            "error": {
                "type": type(self).__name__,
                "code": self.code,
                "message": self.message,
                **self.details,
            },
        }


class Forbidden(UploadError):
    status_code = 403
    code = "forbidden"


class NotFound(UploadError):
    status_code = 404
    code = "not_found"


class InvalidState(UploadError):
    status_code = 409
    code = "invalid_state"


class InvalidParts(UploadError):
    status_code = 400
    code = "invalid_parts"


class InvalidPartNumber(UploadError):
    status_code = 400
    code = "invalid_part_number"


class BackendError(UploadError):
    status_code = 502
    code = "backend_error"

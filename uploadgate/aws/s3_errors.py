# uploadgate/aws/s3_errors.py
import logging
from typing import Any, Dict, Optional

from botocore.exceptions import ClientError

from uploadgate.core.errors import BackendError, InvalidParts, NotFound, UploadError

logger = logging.getLogger(__name__)

_NOT_FOUND_CODES = {"NoSuchUpload", "NoSuchKey", "NotFound", "NoSuchBucket"}
_INVALID_PARTS_CODES = {"InvalidPart", "InvalidPartOrder", "EntityTooSmall"}


def client_error_code(e: ClientError) -> str:
    return (e.response.get("Error", {}) or {}).get("Code", "") or ""


def _hint_for(code: str, http_status: int) -> Optional[str]:
    if code in {"AccessDenied"}:
        return "Controleer IAM/bucket policy (s3:PutObject, s3:AbortMultipartUpload, s3:ListMultipartUploadParts)."
    if code in {"SignatureDoesNotMatch", "AuthorizationHeaderMalformed"}:
        return "Controleer regio van de disk vs bucket-regio en tijdsync (NTP)."
    if code in {"RequestTimeout", "SlowDown", "Throttling"}:
        return "S3 throttling/timeout; probeer zo opnieuw."
    if 500 <= http_status < 600:
        return "Tijdelijke S3-storing; probeer zo opnieuw."
    return None


def map_s3_client_error(e: ClientError, operation: str) -> UploadError:
    err = e.response.get("Error", {}) or {}
    meta = e.response.get("ResponseMetadata", {}) or {}

    code: str = err.get("Code", "") or ""
    msg: str = err.get("Message", "") or str(e)
    http_status: int = int(meta.get("HTTPStatusCode", 500) or 500)

    details: Dict[str, Any] = {
        "operation": operation,
        "aws_code": code,
        "aws_request_id": meta.get("RequestId"),
        "aws_http": http_status,
    }

    if code in _NOT_FOUND_CODES:
        return NotFound(msg, details=details)
    if code in _INVALID_PARTS_CODES:
        return InvalidParts(msg, details=details)

    status = 502
    if code in {"AccessDenied", "SignatureDoesNotMatch"}:
        status = 403
    elif code in {"RequestTimeout", "SlowDown", "Throttling"}:
        status = 429
    elif code in {"InvalidRequest", "InvalidArgument"} or http_status == 400:
        status = 400

    details["hint"] = _hint_for(code, http_status)
    logger.warning("S3 %s failed (code=%s, http=%s)", operation, code, http_status)
    return BackendError(msg, status_code=status, details=details)


def map_boto_error(e: Exception, operation: str) -> UploadError:
    """Vertaal een SDK-fout (ClientError of BotoCoreError) naar een UploadError."""
    if isinstance(e, ClientError):
        return map_s3_client_error(e, operation)
    logger.warning("S3 %s failed (exc=%s)", operation, type(e).__name__)
    return BackendError(str(e), details={"operation": operation, "aws_code": type(e).__name__})

# uploadgate/services/multipart.py
from contextlib import contextmanager
from time import perf_counter
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Union

from botocore.exceptions import BotoCoreError, ClientError

from uploadgate.aws.s3_errors import client_error_code, map_boto_error
from uploadgate.core.errors import Forbidden, InvalidPartNumber, InvalidState, UploadError
from uploadgate.core.logging_config import logger
from uploadgate.domain.models import (
    BatchSignResult,
    CompletedPart,
    PartAuthorization,
    SessionState,
    UploadedPart,
    UploadSession,
)
from uploadgate.infra.s3_client import S3ClientPool
from uploadgate.observability.metrics import latency_hist, mpu_counter, signed_parts_counter
from uploadgate.services.s3_keys import generate_file_key
from uploadgate.services.session_store import SessionStore
from uploadgate.services.upload_fields import AuthorizationContext

_SDK_ERRORS = (ClientError, BotoCoreError)


def _clean_metadata(metadata: Optional[Mapping[str, Any]]) -> Dict[str, str]:
    # S3 user metadata is str -> str
    if not metadata:
        return {}
    return {str(k): str(v) for k, v in metadata.items() if v is not None}


class MultipartCoordinator:
    """
    Brokers browser-driven S3 multipart uploads.

    Every operation authorizes the caller against the resolved upload field
    before it touches the storage backend. Backend failures are mapped onto
    ``UploadError`` subclasses and never retried here.
    """

    def __init__(
        self,
        clients: S3ClientPool,
        sessions: SessionStore,
        *,
        presign_expires: int = 1200,
        max_part_number: int = 10_000,
        verify_session_on_sign: bool = True,
    ):
        self._clients = clients
        self._sessions = sessions
        self._presign_expires = presign_expires
        self._max_part_number = max_part_number
        self._verify_on_sign = verify_session_on_sign

    # ------------------------------------------------------------------
    # helpers
    # ------------------------------------------------------------------
    @contextmanager
    def _track(self, operation: str):
        t0 = perf_counter()
        try:
            yield
        except UploadError as e:
            mpu_counter.labels(operation=operation, result=e.code).inc()
            raise
        except Exception:
            mpu_counter.labels(operation=operation, result="error").inc()
            raise
        else:
            mpu_counter.labels(operation=operation, result="success").inc()
        finally:
            latency_hist.labels(operation=operation).observe(perf_counter() - t0)

    def _authorize(self, ctx: AuthorizationContext, operation: str):
        if not ctx.is_allowed():
            logger.warning(
                "mpu_forbidden",
                operation=operation,
                resource=ctx.resource,
                resource_id=ctx.resource_id,
                field=ctx.field.field,
                principal=ctx.principal.id,
            )
            raise Forbidden("not allowed to upload to this field")
        return self._clients.get(ctx.disk_name)

    def _check_part_number(self, raw: Union[int, str]) -> int:
        try:
            n = int(str(raw).strip())
        except (TypeError, ValueError):
            raise InvalidPartNumber(f"part number must be an integer, got {raw!r}") from None
        if n < 1 or n > self._max_part_number:
            raise InvalidPartNumber(f"part number must be between 1 and {self._max_part_number}, got {n}")
        return n

    def _reject_terminal(self, ctx: AuthorizationContext, key: str, upload_id: str) -> Optional[SessionState]:
        state = self._sessions.state_of(ctx.bucket, key, upload_id)
        if state is not None and state.is_terminal:
            raise InvalidState(f"upload session is {state.value}", details={"state": state.value})
        return state

    def _ensure_open(self, s3, ctx: AuthorizationContext, key: str, upload_id: str) -> None:
        state = self._reject_terminal(ctx, key, upload_id)
        if state is not None or not self._verify_on_sign:
            return

        # onbekend in dit proces: vraag de backend of de sessie nog open is
        try:
            s3.list_parts(Bucket=ctx.bucket, Key=key, UploadId=upload_id, MaxParts=1)
        except ClientError as e:
            if client_error_code(e) == "NoSuchUpload":
                raise InvalidState("upload session is not open", details={"state": "unknown"}) from e
            raise map_boto_error(e, "ListParts") from e
        except BotoCoreError as e:
            raise map_boto_error(e, "ListParts") from e

    def _presign(self, s3, bucket: str, key: str, upload_id: str, part_number: int) -> PartAuthorization:
        url = s3.generate_presigned_url(
            "upload_part",
            Params={"Bucket": bucket, "Key": key, "UploadId": upload_id, "PartNumber": part_number},
            ExpiresIn=self._presign_expires,
        )
        signed_parts_counter.inc()
        return PartAuthorization(part_number=part_number, url=url, expires_in=self._presign_expires)

    @staticmethod
    def _fallback_location(ctx: AuthorizationContext, key: str) -> str:
        if ctx.disk.endpoint_url:
            return f"{ctx.disk.endpoint_url.rstrip('/')}/{ctx.bucket}/{key}"
        return f"https://{ctx.bucket}.s3.{ctx.disk.region}.amazonaws.com/{key}"

    # ------------------------------------------------------------------
    # operations
    # ------------------------------------------------------------------
    def create(
        self,
        ctx: AuthorizationContext,
        filename: str,
        content_type: Optional[str] = None,
        metadata: Optional[Mapping[str, Any]] = None,
    ) -> UploadSession:
        with self._track("create"):
            s3 = self._authorize(ctx, "create")
            key = generate_file_key(
                filename,
                storage_path=ctx.storage_prefix,
                keep_original_name=ctx.keep_original_name,
            )
            usermeta = _clean_metadata(metadata)

            params: Dict[str, Any] = {"Bucket": ctx.bucket, "Key": key, "Metadata": usermeta}
            if content_type:
                params["ContentType"] = content_type
            try:
                resp = s3.create_multipart_upload(**params)
            except _SDK_ERRORS as e:
                raise map_boto_error(e, "CreateMultipartUpload") from e

            session = UploadSession(
                bucket=ctx.bucket,
                storage_key=resp.get("Key") or key,
                upload_id=resp["UploadId"],
                content_type=content_type,
                metadata=usermeta,
            )
            self._sessions.add(session)
            logger.info(
                "mpu_create",
                disk=ctx.disk_name,
                bucket=session.bucket,
                key=session.storage_key,
                upload_id=session.upload_id,
                content_type=content_type,
                principal=ctx.principal.id,
            )
            return session

    def list_parts(self, ctx: AuthorizationContext, key: str, upload_id: str) -> List[UploadedPart]:
        with self._track("list_parts"):
            s3 = self._authorize(ctx, "list_parts")
            parts: List[UploadedPart] = []
            marker = 0
            while True:
                try:
                    resp = s3.list_parts(Bucket=ctx.bucket, Key=key, UploadId=upload_id, PartNumberMarker=marker)
                except _SDK_ERRORS as e:
                    raise map_boto_error(e, "ListParts") from e

                for p in resp.get("Parts") or []:
                    parts.append(
                        UploadedPart(
                            part_number=int(p["PartNumber"]),
                            size=int(p.get("Size", 0)),
                            etag=p.get("ETag", ""),
                            last_modified=p.get("LastModified"),
                        )
                    )
                if not resp.get("IsTruncated"):
                    break
                next_marker = int(resp.get("NextPartNumberMarker") or 0)
                if next_marker <= marker:
                    break
                marker = next_marker

            logger.info("mpu_list_parts", bucket=ctx.bucket, key=key, upload_id=upload_id, parts=len(parts))
            return parts

    def sign_part(
        self, ctx: AuthorizationContext, key: str, upload_id: str, part_number: Union[int, str]
    ) -> PartAuthorization:
        with self._track("sign"):
            s3 = self._authorize(ctx, "sign")
            n = self._check_part_number(part_number)
            self._ensure_open(s3, ctx, key, upload_id)
            try:
                auth = self._presign(s3, ctx.bucket, key, upload_id, n)
            except _SDK_ERRORS as e:
                raise map_boto_error(e, "UploadPart") from e
            logger.info("mpu_sign", bucket=ctx.bucket, key=key, upload_id=upload_id, part_number=n)
            return auth

    def sign_parts(
        self,
        ctx: AuthorizationContext,
        key: str,
        upload_id: str,
        part_numbers: Iterable[Union[int, str]],
    ) -> BatchSignResult:
        """
        Sign a batch of parts. Session-level failures (forbidden, not open)
        fail the whole batch; a bad part number or a failed signature only
        lands in ``errors`` for that part.
        """
        with self._track("sign_batch"):
            s3 = self._authorize(ctx, "sign_batch")
            self._ensure_open(s3, ctx, key, upload_id)

            result = BatchSignResult()
            for raw in part_numbers:
                label = str(raw).strip()
                try:
                    n = self._check_part_number(raw)
                except InvalidPartNumber as e:
                    result.errors[label] = e.message
                    continue
                label = str(n)
                if label in result.presigned_urls:
                    continue
                try:
                    result.presigned_urls[label] = self._presign(s3, ctx.bucket, key, upload_id, n)
                except _SDK_ERRORS as e:
                    result.errors[label] = map_boto_error(e, "UploadPart").message

            logger.info(
                "mpu_sign_batch",
                bucket=ctx.bucket,
                key=key,
                upload_id=upload_id,
                signed=len(result.presigned_urls),
                failed=len(result.errors),
            )
            return result

    def complete(
        self, ctx: AuthorizationContext, key: str, upload_id: str, parts: Sequence[CompletedPart]
    ) -> str:
        with self._track("complete"):
            s3 = self._authorize(ctx, "complete")
            self._reject_terminal(ctx, key, upload_id)

            ordered = sorted(parts, key=lambda p: p.part_number)
            try:
                resp = s3.complete_multipart_upload(
                    Bucket=ctx.bucket,
                    Key=key,
                    UploadId=upload_id,
                    MultipartUpload={"Parts": [{"ETag": p.etag, "PartNumber": p.part_number} for p in ordered]},
                )
            except _SDK_ERRORS as e:
                # sessie blijft open: client mag opnieuw proberen of afbreken
                raise map_boto_error(e, "CompleteMultipartUpload") from e

            self._sessions.mark_completed(ctx.bucket, key, upload_id, list(ordered))
            location = resp.get("Location") or self._fallback_location(ctx, key)
            logger.info(
                "mpu_complete",
                bucket=ctx.bucket,
                key=key,
                upload_id=upload_id,
                parts=len(ordered),
                location=location,
            )
            return location

    def abort(self, ctx: AuthorizationContext, key: str, upload_id: str) -> None:
        with self._track("abort"):
            s3 = self._authorize(ctx, "abort")
            state = self._sessions.state_of(ctx.bucket, key, upload_id)
            if state is SessionState.COMPLETED:
                raise InvalidState("upload session is completed", details={"state": state.value})
            if state is SessionState.ABORTED:
                logger.warning("mpu_abort_noop", reason="already_aborted", bucket=ctx.bucket, key=key, upload_id=upload_id)
                return

            try:
                s3.abort_multipart_upload(Bucket=ctx.bucket, Key=key, UploadId=upload_id)
            except ClientError as e:
                if client_error_code(e) != "NoSuchUpload":
                    raise map_boto_error(e, "AbortMultipartUpload") from e
                logger.warning("mpu_abort_noop", reason="no_such_upload", bucket=ctx.bucket, key=key, upload_id=upload_id)
                # alleen sessies die we al kennen; verzonnen upload ids komen niet in de store
                self._sessions.mark_aborted(ctx.bucket, key, upload_id, known_only=True)
                return
            except BotoCoreError as e:
                raise map_boto_error(e, "AbortMultipartUpload") from e

            logger.info("mpu_abort", bucket=ctx.bucket, key=key, upload_id=upload_id)
            self._sessions.mark_aborted(ctx.bucket, key, upload_id)

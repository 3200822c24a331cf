import itertools
import os

# Dummy env zodat boto3 niet zeurt (er gaat nooit iets over het netwerk)
os.environ.setdefault("AWS_ACCESS_KEY_ID", "test")
os.environ.setdefault("AWS_SECRET_ACCESS_KEY", "test")
os.environ.setdefault("AWS_DEFAULT_REGION", "eu-west-1")

import pytest
from botocore.exceptions import ClientError, ParamValidationError
from fastapi.testclient import TestClient

from uploadgate.auth.deps import Principal
from uploadgate.auth.jwt import create_access_token
from uploadgate.core.settings import Settings, StorageDisk, UploadFieldConfig
from uploadgate.infra.s3_client import S3ClientPool
from uploadgate.main import create_app
from uploadgate.services.multipart import MultipartCoordinator
from uploadgate.services.session_store import SessionStore
from uploadgate.services.upload_fields import UploadFieldRegistry


class FakeS3:
    """In-memory stand-in for the boto3 S3 client's multipart API."""

    host = "s3.example.test"

    def __init__(self):
        self.uploads = {}
        self.objects = {}
        self.calls = []
        self.page_size = 1000
        self.fail_presign_for = set()
        self._ids = itertools.count(1)

    def _err(self, code, operation, status=404, message=None):
        return ClientError(
            {
                "Error": {"Code": code, "Message": message or code},
                "ResponseMetadata": {"HTTPStatusCode": status, "RequestId": "req-123"},
            },
            operation,
        )

    def _get(self, bucket, key, upload_id, operation):
        up = self.uploads.get(upload_id)
        if up is None or up["Bucket"] != bucket or up["Key"] != key:
            raise self._err("NoSuchUpload", operation, message="The specified upload does not exist.")
        return up

    # --- simulatie van de browser die een part PUT ---
    def put_part(self, upload_id, part_number, etag, size=5 * 1024 * 1024):
        self.uploads[upload_id]["Parts"][part_number] = {"ETag": etag, "Size": size}

    # --- boto3 surface ---
    def create_multipart_upload(self, Bucket, Key, Metadata=None, ContentType=None):
        self.calls.append("create_multipart_upload")
        upload_id = f"upload-{next(self._ids)}"
        self.uploads[upload_id] = {
            "Bucket": Bucket,
            "Key": Key,
            "ContentType": ContentType,
            "Metadata": dict(Metadata or {}),
            "Parts": {},
        }
        return {"Bucket": Bucket, "Key": Key, "UploadId": upload_id}

    def list_parts(self, Bucket, Key, UploadId, PartNumberMarker=0, MaxParts=1000):
        self.calls.append("list_parts")
        up = self._get(Bucket, Key, UploadId, "ListParts")
        numbers = sorted(n for n in up["Parts"] if n > PartNumberMarker)
        limit = min(MaxParts, self.page_size)
        page = numbers[:limit]
        resp = {
            "Bucket": Bucket,
            "Key": Key,
            "UploadId": UploadId,
            "Parts": [{"PartNumber": n, **up["Parts"][n]} for n in page],
            "IsTruncated": len(numbers) > limit,
        }
        if resp["IsTruncated"]:
            resp["NextPartNumberMarker"] = page[-1]
        return resp

    def generate_presigned_url(self, ClientMethod, Params=None, ExpiresIn=3600):
        self.calls.append("generate_presigned_url")
        if Params["PartNumber"] in self.fail_presign_for:
            raise ParamValidationError(report="signing failed")
        return (
            f"https://{Params['Bucket']}.{self.host}/{Params['Key']}"
            f"?partNumber={Params['PartNumber']}&uploadId={Params['UploadId']}&X-Amz-Expires={ExpiresIn}"
        )

    def complete_multipart_upload(self, Bucket, Key, UploadId, MultipartUpload):
        self.calls.append("complete_multipart_upload")
        up = self._get(Bucket, Key, UploadId, "CompleteMultipartUpload")
        for p in MultipartUpload["Parts"]:
            stored = up["Parts"].get(p["PartNumber"])
            if stored is None or stored["ETag"] != p["ETag"]:
                raise self._err(
                    "InvalidPart",
                    "CompleteMultipartUpload",
                    status=400,
                    message="One or more of the specified parts could not be found.",
                )
        del self.uploads[UploadId]
        self.objects[Key] = [p["PartNumber"] for p in MultipartUpload["Parts"]]
        return {"Location": f"https://{Bucket}.{self.host}/{Key}", "Bucket": Bucket, "Key": Key, "ETag": '"abc-1"'}

    def abort_multipart_upload(self, Bucket, Key, UploadId):
        self.calls.append("abort_multipart_upload")
        self._get(Bucket, Key, UploadId, "AbortMultipartUpload")
        del self.uploads[UploadId]
        return {}


@pytest.fixture
def settings():
    return Settings(
        _env_file=None,
        STORAGE_DISKS={"s3": StorageDisk(bucket="test-bucket", region="eu-west-1")},
        UPLOAD_FIELDS=[
            UploadFieldConfig(resource="videos", field="file", storage_path="videos/{resource_id}"),
            UploadFieldConfig(resource="documents", field="attachment", keep_original_name=True),
            UploadFieldConfig(resource="videos", field="locked", can_upload=False),
            UploadFieldConfig(resource="reports", field="pdf", allowed_roles=["editor"]),
        ],
        JWT_SECRET="test-secret",
        CORS_ALLOW_ORIGINS=["https://admin.example.test"],
        RATE_LIMIT_ENABLED=False,
    )


@pytest.fixture
def fake_s3():
    return FakeS3()


@pytest.fixture
def sessions():
    return SessionStore()


@pytest.fixture
def client_pool(settings, fake_s3):
    return S3ClientPool(settings.STORAGE_DISKS, factory=lambda disk: fake_s3)


@pytest.fixture
def coordinator(settings, client_pool, sessions):
    return MultipartCoordinator(
        client_pool,
        sessions,
        presign_expires=settings.PRESIGN_EXPIRES_SECONDS,
        max_part_number=settings.MAX_PART_NUMBER,
        verify_session_on_sign=settings.VERIFY_SESSION_ON_SIGN,
    )


@pytest.fixture
def registry(settings):
    return UploadFieldRegistry(settings.UPLOAD_FIELDS, settings.STORAGE_DISKS)


@pytest.fixture
def make_ctx(registry):
    def _make(resource="documents", field="attachment", roles=(), resource_id="42"):
        principal = Principal(id="u1", roles=frozenset(roles))
        return registry.resolve(principal, resource, resource_id, field)

    return _make


@pytest.fixture
def app(settings, client_pool, sessions):
    return create_app(settings, client_pool=client_pool, sessions=sessions)


@pytest.fixture
def client(app):
    return TestClient(app)


@pytest.fixture
def auth_headers(settings):
    return {"Authorization": f"Bearer {create_access_token(settings, user_id='u1')}"}


@pytest.fixture
def editor_headers(settings):
    token = create_access_token(settings, user_id="u2", roles=["editor"])
    return {"Authorization": f"Bearer {token}"}

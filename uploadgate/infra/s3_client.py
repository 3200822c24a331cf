# uploadgate/infra/s3_client.py
import logging
import threading
from typing import Any, Callable, Dict, Mapping, Optional

import boto3
from botocore.config import Config

from uploadgate.core.settings import StorageDisk

logger = logging.getLogger(__name__)


def make_s3_client(disk: StorageDisk):
    """Bouw een boto3 S3 client voor een disk met standaardconfig."""
    cfg = Config(
        region_name=disk.region,
        signature_version="s3v4",
        s3={"addressing_style": disk.addressing_style},
        retries={"max_attempts": 5, "mode": "standard"},
        connect_timeout=3,
        read_timeout=10,
    )
    kwargs: Dict[str, Any] = {"config": cfg, "region_name": disk.region}
    if disk.key and disk.secret:
        kwargs["aws_access_key_id"] = disk.key
        kwargs["aws_secret_access_key"] = disk.secret
        if disk.session_token:
            kwargs["aws_session_token"] = disk.session_token
    if disk.endpoint_url:
        kwargs["endpoint_url"] = disk.endpoint_url
    return boto3.client("s3", **kwargs)


class S3ClientPool:
    """Lazy, thread-safe pool: one reusable S3 client per storage disk."""

    def __init__(
        self,
        disks: Mapping[str, StorageDisk],
        factory: Optional[Callable[[StorageDisk], Any]] = None,
    ):
        self._disks = dict(disks)
        self._factory = factory or make_s3_client
        self._clients: Dict[str, Any] = {}
        self._lock = threading.Lock()

    def disk(self, name: str) -> StorageDisk:
        try:
            return self._disks[name]
        except KeyError:
            raise KeyError(f"unknown storage disk: {name}") from None

    def get(self, name: str):
        client = self._clients.get(name)
        if client is not None:
            return client
        with self._lock:
            client = self._clients.get(name)
            if client is None:
                disk = self.disk(name)
                client = self._factory(disk)
                self._clients[name] = client
                logger.info("S3 client initialized disk=%s region=%s bucket=%s", name, disk.region, disk.bucket)
        return client

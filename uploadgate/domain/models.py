# uploadgate/domain/models.py
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional


class SessionState(str, Enum):
    OPEN = "open"
    COMPLETED = "completed"
    ABORTED = "aborted"

    @property
    def is_terminal(self) -> bool:
        return self is not SessionState.OPEN


@dataclass(frozen=True)
class CompletedPart:
    part_number: int
    etag: str


@dataclass(frozen=True)
class UploadedPart:
    part_number: int
    size: int
    etag: str
    last_modified: Optional[datetime] = None


@dataclass(frozen=True)
class PartAuthorization:
    part_number: int
    url: str
    expires_in: int


@dataclass
class UploadSession:
    bucket: str
    storage_key: str
    upload_id: str
    content_type: Optional[str] = None
    metadata: Dict[str, str] = field(default_factory=dict)
    state: SessionState = SessionState.OPEN
    parts: List[CompletedPart] = field(default_factory=list)


@dataclass
class BatchSignResult:
    # keys zijn part numbers als string (zoals de upload-widget ze verwacht)
    presigned_urls: Dict[str, PartAuthorization] = field(default_factory=dict)
    errors: Dict[str, str] = field(default_factory=dict)

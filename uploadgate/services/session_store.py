# uploadgate/services/session_store.py
import threading
import time
from collections import OrderedDict
from dataclasses import replace
from typing import Callable, List, Optional, Tuple

from uploadgate.domain.models import CompletedPart, SessionState, UploadSession

SessionKey = Tuple[str, str, str]  # (bucket, key, upload_id)


def _copy(session: UploadSession) -> UploadSession:
    return replace(session, metadata=dict(session.metadata), parts=list(session.parts))


class SessionStore:
    """
    Proceslokaal lifecycle-register van multipart sessies.

    Only the state transition is tracked here; the storage backend stays the
    source of truth for parts. Records are kept in write order, so stale ones
    (older than ``retention_seconds``) are popped from the front, and the
    oldest are evicted once ``max_entries`` is reached.
    """

    def __init__(
        self,
        retention_seconds: int = 24 * 3600,
        clock: Callable[[], float] = time.monotonic,
        max_entries: int = 100_000,
    ):
        self._retention = retention_seconds
        self._clock = clock
        self._max_entries = max_entries
        self._records: "OrderedDict[SessionKey, Tuple[float, UploadSession]]" = OrderedDict()
        self._lock = threading.Lock()

    @staticmethod
    def _key(bucket: str, key: str, upload_id: str) -> SessionKey:
        return (bucket, key, upload_id)

    def _prune(self, now: float) -> None:
        cutoff = now - self._retention
        while self._records:
            ts, _ = next(iter(self._records.values()))
            if ts >= cutoff:
                break
            self._records.popitem(last=False)

    def _put(self, sk: SessionKey, now: float, session: UploadSession) -> None:
        self._records[sk] = (now, session)
        self._records.move_to_end(sk)
        while len(self._records) > self._max_entries:
            self._records.popitem(last=False)

    def add(self, session: UploadSession) -> None:
        now = self._clock()
        with self._lock:
            self._prune(now)
            self._put(self._key(session.bucket, session.storage_key, session.upload_id), now, _copy(session))

    def get(self, bucket: str, key: str, upload_id: str) -> Optional[UploadSession]:
        with self._lock:
            rec = self._records.get(self._key(bucket, key, upload_id))
            return _copy(rec[1]) if rec else None

    def state_of(self, bucket: str, key: str, upload_id: str) -> Optional[SessionState]:
        with self._lock:
            rec = self._records.get(self._key(bucket, key, upload_id))
            return rec[1].state if rec else None

    def mark_completed(self, bucket: str, key: str, upload_id: str, parts: List[CompletedPart]) -> None:
        self._transition(bucket, key, upload_id, SessionState.COMPLETED, parts)

    def mark_aborted(self, bucket: str, key: str, upload_id: str, *, known_only: bool = False) -> None:
        self._transition(bucket, key, upload_id, SessionState.ABORTED, known_only=known_only)

    def _transition(
        self,
        bucket: str,
        key: str,
        upload_id: str,
        state: SessionState,
        parts: Optional[List[CompletedPart]] = None,
        *,
        known_only: bool = False,
    ) -> None:
        now = self._clock()
        sk = self._key(bucket, key, upload_id)
        with self._lock:
            self._prune(now)
            rec = self._records.get(sk)
            if rec is None and known_only:
                return
            # sessies van een andere worker kennen we niet; leg alleen de eindstatus vast
            session = rec[1] if rec else UploadSession(bucket=bucket, storage_key=key, upload_id=upload_id)
            session = replace(
                session,
                state=state,
                metadata=dict(session.metadata),
                parts=list(parts) if parts is not None else list(session.parts),
            )
            self._put(sk, now, session)

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)

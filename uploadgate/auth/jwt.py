from datetime import datetime, timedelta, timezone
from typing import Iterable

import jwt

from uploadgate.core.settings import Settings


def create_access_token(settings: Settings, *, user_id: str, roles: Iterable[str] = (), exp_hours: int = 24) -> str:
    now = datetime.now(timezone.utc)
    payload = {
        "sub": user_id,
        "roles": list(roles),
        "iat": int(now.timestamp()),
        "exp": int((now + timedelta(hours=exp_hours)).timestamp()),
    }
    return jwt.encode(payload, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


def decode_token(settings: Settings, token: str) -> dict:
    return jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALGORITHM])

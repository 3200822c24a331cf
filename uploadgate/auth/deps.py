from dataclasses import dataclass, field
from typing import FrozenSet

import jwt
from fastapi import Depends, HTTPException, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from uploadgate.auth.jwt import decode_token

security = HTTPBearer(auto_error=False)  # <- belangrijk: niet auto-error


@dataclass(frozen=True)
class Principal:
    id: str
    roles: FrozenSet[str] = field(default_factory=frozenset)


def _extract_token(
    request: Request, creds: HTTPAuthorizationCredentials | None
) -> str | None:
    # 1) cookie
    cookie_token = request.cookies.get("access_token")
    if cookie_token:
        return cookie_token

    # 2) Authorization header
    if creds and creds.credentials:
        return creds.credentials

    return None


def get_current_principal(
    request: Request,
    creds: HTTPAuthorizationCredentials | None = Depends(security),
) -> Principal:
    token = _extract_token(request, creds)
    if not token:
        raise HTTPException(status_code=401, detail="Not authenticated")

    try:
        payload = decode_token(request.app.state.settings, token)
    except jwt.PyJWTError:
        raise HTTPException(status_code=401, detail="Invalid token")

    user_id = payload.get("sub")
    if not user_id:
        raise HTTPException(status_code=401, detail="Invalid token payload")

    roles = payload.get("roles") or []
    return Principal(id=str(user_id), roles=frozenset(str(r) for r in roles))

# uploadgate/core/rate_limit.py
from slowapi import Limiter
from slowapi.util import get_remote_address

from uploadgate.core.settings import Settings


def build_limiter(settings: Settings) -> Limiter:
    # 1 gedeelde Limiter voor de hele app
    return Limiter(
        key_func=lambda req: f"{get_remote_address(req)}:{req.headers.get('authorization', 'anon')[-16:]}",
        default_limits=[settings.RATE_LIMIT_DEFAULT],
        enabled=settings.RATE_LIMIT_ENABLED,
    )

"""
Login rate limiting (slowapi), keyed by client IP.

Each app builds its own ``Limiter`` with its own in-memory counters, so two
apps in one process never share a budget or an on/off switch.  The login
route checks it through ``enforce_login_rate_limit`` instead of the
``@limiter.limit`` decorator, which binds to one module-level instance.
"""

from __future__ import annotations

import logging

from fastapi import Request
from limits import RateLimitItem, parse
from slowapi import Limiter
from slowapi.util import get_remote_address

from warden.core.config import Settings
from warden.core.exceptions import RateLimitedError

logger = logging.getLogger(__name__)

LOGIN_SCOPE = "login"


def parse_login_limit(app_settings: Settings) -> RateLimitItem:
    return parse(app_settings.LOGIN_RATE_LIMIT)


def build_limiter(app_settings: Settings) -> Limiter:
    return Limiter(
        key_func=get_remote_address,
        enabled=app_settings.RATE_LIMIT_ENABLED,
        storage_uri="memory://",
    )


async def enforce_login_rate_limit(request: Request) -> None:
    limiter: Limiter = request.app.state.limiter
    if not limiter.enabled:
        return
    client = get_remote_address(request)
    if not limiter.limiter.hit(request.app.state.login_rate_limit, LOGIN_SCOPE, client):
        logger.warning("Login rate limit exceeded for %s", client)
        raise RateLimitedError("Too many login attempts, try again later")

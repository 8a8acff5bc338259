"""
Password hashing (bcrypt through passlib).

bcrypt is salted and adaptive: the cost is embedded in every stored hash,
so verification re-derives it and ``BCRYPT_ROUNDS`` can be raised without
invalidating existing accounts.  Hashes below the configured cost are
reported by ``needs_rehash`` and upgraded at the next successful login.
"""

from __future__ import annotations

import logging
import secrets

from passlib.context import CryptContext
from passlib.exc import PasswordValueError
from starlette.concurrency import run_in_threadpool

from warden.core.config import SecurityConfig
from warden.core.exceptions import HashingError, ValidationError

logger = logging.getLogger(__name__)

# bcrypt ignores everything past this many bytes and rejects NUL outright
MAX_SECRET_BYTES = 72


def secret_problem(secret: str) -> str | None:
    """Return why bcrypt cannot faithfully hash ``secret``, or None."""
    if "\x00" in secret:
        return "must not contain NUL characters"
    if len(secret.encode("utf-8")) > MAX_SECRET_BYTES:
        return f"must not exceed {MAX_SECRET_BYTES} bytes"
    return None


class PasswordVault:
    def __init__(self, config: SecurityConfig) -> None:
        self._context = CryptContext(
            schemes=["bcrypt"],
            deprecated="auto",
            bcrypt__default_rounds=config.bcrypt_rounds,
            bcrypt__min_rounds=config.bcrypt_rounds,
        )
        # Verified against when the username is unknown, so a miss costs
        # the same as a wrong password.
        self._dummy_hash = self.hash(secrets.token_urlsafe(16))

    # ── Sync API ────────────────────────────────────────────────────
    def hash(self, secret: str) -> str:
        problem = secret_problem(secret)
        if problem:
            raise ValidationError(f"password {problem}")
        try:
            return self._context.hash(secret)
        except PasswordValueError as exc:
            raise ValidationError(str(exc)) from exc
        except (ValueError, TypeError, OSError) as exc:
            raise HashingError("Password hashing failed") from exc

    def verify(self, secret: str, hashed: str) -> bool:
        if secret_problem(secret):
            return False
        try:
            return self._context.verify(secret, hashed)
        except (ValueError, TypeError):
            logger.warning("Stored password hash could not be parsed")
            return False

    def needs_rehash(self, hashed: str) -> bool:
        try:
            return self._context.needs_update(hashed)
        except (ValueError, TypeError):
            return False

    def dummy_verify(self, secret: str) -> bool:
        try:
            self._context.verify(secret, self._dummy_hash)
        except (ValueError, TypeError):
            pass
        return False

    # ── Async API (runs on the threadpool) ──────────────────────────
    async def hash_async(self, secret: str) -> str:
        return await run_in_threadpool(self.hash, secret)

    async def verify_async(self, secret: str, hashed: str) -> bool:
        return await run_in_threadpool(self.verify, secret, hashed)

    async def dummy_verify_async(self, secret: str) -> bool:
        return await run_in_threadpool(self.dummy_verify, secret)

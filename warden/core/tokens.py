"""
JWT access-token issuance and verification (python-jose).

Tokens carry exactly one trusted claim, ``user_id``, plus ``iat`` / ``exp``
in Unix seconds.  Nothing is stored server-side: a token is valid when its
signature verifies and ``exp`` is still in the future.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime, timezone

from jose import JWTError, jwt
from jose.utils import base64url_decode, base64url_encode

from warden.core.config import SecurityConfig
from warden.core.exceptions import CredentialRejected, RejectionKind

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]

USER_ID_CLAIM = "user_id"
# Some clients serialise a missing token as the string "null".
NULL_TOKEN = "null"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _is_canonical_segment(segment: str) -> bool:
    """True when ``segment`` is the one base64url spelling of its bytes.

    The decoder ignores the unused low bits of the final character, so
    several spellings decode to the same signature.
    """
    try:
        raw = base64url_decode(segment.encode("ascii"))
    except ValueError:
        return False
    return base64url_encode(raw).decode("ascii") == segment


class CredentialIssuer:
    def __init__(self, config: SecurityConfig, clock: Clock = utcnow) -> None:
        self._key = config.secret_key
        self._algorithm = config.algorithm
        self._ttl = config.token_ttl
        self._clock = clock

    @property
    def ttl_seconds(self) -> int:
        return int(self._ttl.total_seconds())

    def issue(self, user_id: str) -> str:
        if not user_id:
            raise ValueError("user_id is required to issue a credential")
        issued_at = self._clock()
        claims = {
            USER_ID_CLAIM: str(user_id),
            "iat": int(issued_at.timestamp()),
            "exp": int((issued_at + self._ttl).timestamp()),
        }
        return jwt.encode(claims, self._key, algorithm=self._algorithm)


class CredentialVerifier:
    """Validate a bearer token and return the ``user_id`` it carries.

    Checks run in a fixed order and the first failure raises
    ``CredentialRejected`` tagged with its ``RejectionKind``:

    1. MISSING           -- nothing presented
    2. MALFORMED         -- ``"null"`` or not a decodable JWS
    3. INVALID_SIGNATURE -- signature does not match key/algorithm, or is
                            not canonically encoded
    4. EXPIRED           -- now >= exp (MALFORMED if exp is not numeric)
    5. NO_CLAIM          -- no ``user_id`` in the payload
    """

    def __init__(self, config: SecurityConfig, clock: Clock = utcnow) -> None:
        self._key = config.secret_key
        self._algorithm = config.algorithm
        self._clock = clock

    def verify(self, token: str | None) -> str:
        if not token:
            raise CredentialRejected(RejectionKind.MISSING)
        if token == NULL_TOKEN:
            raise CredentialRejected(RejectionKind.MALFORMED)

        try:
            jwt.get_unverified_claims(token)
        except JWTError:
            raise CredentialRejected(RejectionKind.MALFORMED) from None

        try:
            payload = jwt.decode(
                token,
                self._key,
                algorithms=[self._algorithm],
                options={"verify_exp": False},
            )
        except JWTError:
            raise CredentialRejected(RejectionKind.INVALID_SIGNATURE) from None

        if not _is_canonical_segment(token.rsplit(".", 1)[1]):
            raise CredentialRejected(RejectionKind.INVALID_SIGNATURE)

        exp = payload.get("exp")
        if isinstance(exp, bool) or not isinstance(exp, (int, float)):
            raise CredentialRejected(RejectionKind.MALFORMED)
        if self._clock().timestamp() >= exp:
            raise CredentialRejected(RejectionKind.EXPIRED)

        user_id = payload.get(USER_ID_CLAIM)
        if not isinstance(user_id, str) or not user_id:
            raise CredentialRejected(RejectionKind.NO_CLAIM)
        return user_id

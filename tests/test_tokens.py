"""Tests for credential issuance and the verifier's rejection taxonomy."""

import json
from dataclasses import replace
from datetime import datetime, timedelta, timezone

import pytest
from jose import jwt
from jose.utils import base64url_encode

from warden.core.exceptions import AuthError, CredentialRejected, RejectionKind
from warden.core.tokens import CredentialIssuer, CredentialVerifier

ISSUED_AT = datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


def at(moment: datetime):
    return lambda: moment


@pytest.fixture
def issuer(security_config) -> CredentialIssuer:
    return CredentialIssuer(security_config, clock=at(ISSUED_AT))


@pytest.fixture
def verifier(security_config) -> CredentialVerifier:
    return CredentialVerifier(security_config, clock=at(ISSUED_AT))


def rejection_of(verifier: CredentialVerifier, token) -> RejectionKind:
    with pytest.raises(CredentialRejected) as excinfo:
        verifier.verify(token)
    return excinfo.value.rejection


BASE64URL_ALPHABET = "ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz0123456789-_"


def flip_signature_char(token: str, idx: int | None = None) -> str:
    """Swap one signature character for its neighbour in the base64url alphabet."""
    header, claims, signature = token.split(".")
    if idx is None:
        idx = len(signature) // 2
    idx %= len(signature)
    replacement = BASE64URL_ALPHABET[BASE64URL_ALPHABET.index(signature[idx]) ^ 1]
    return ".".join([header, claims, signature[:idx] + replacement + signature[idx + 1 :]])


# ── Issuance ────────────────────────────────────────────────────────
@pytest.mark.parametrize("user_id", ["1", "5f0c3a9e2b6d4c1e8f7a9b0c1d2e3f40", "user-ñ"])
def test_round_trip(issuer, verifier, user_id):
    assert verifier.verify(issuer.issue(user_id)) == user_id


def test_payload_carries_user_id_and_expiry(issuer, security_config):
    claims = jwt.get_unverified_claims(issuer.issue("abc"))
    assert claims["user_id"] == "abc"
    assert claims["iat"] == int(ISSUED_AT.timestamp())
    assert claims["exp"] == int((ISSUED_AT + security_config.token_ttl).timestamp())


def test_ttl_comes_from_config(security_config):
    short = CredentialIssuer(replace(security_config, token_ttl=timedelta(seconds=90)), clock=at(ISSUED_AT))
    claims = jwt.get_unverified_claims(short.issue("abc"))
    assert claims["exp"] - claims["iat"] == 90
    assert short.ttl_seconds == 90


def test_issue_requires_user_id(issuer):
    with pytest.raises(ValueError):
        issuer.issue("")


# ── Expiry ──────────────────────────────────────────────────────────
def test_expiry_boundary(issuer, security_config):
    token = issuer.issue("abc")
    window = security_config.token_ttl

    just_before = CredentialVerifier(security_config, clock=at(ISSUED_AT + window - timedelta(seconds=1)))
    assert just_before.verify(token) == "abc"

    exactly = CredentialVerifier(security_config, clock=at(ISSUED_AT + window))
    assert rejection_of(exactly, token) is RejectionKind.EXPIRED

    just_after = CredentialVerifier(security_config, clock=at(ISSUED_AT + window + timedelta(seconds=1)))
    assert rejection_of(just_after, token) is RejectionKind.EXPIRED


def test_signature_checked_before_expiry(security_config):
    """An expired token with a bad signature reports the signature first."""
    stale = CredentialIssuer(security_config, clock=at(ISSUED_AT - timedelta(days=1)))
    token = flip_signature_char(stale.issue("abc"))
    assert rejection_of(CredentialVerifier(security_config, clock=at(ISSUED_AT)), token) is (
        RejectionKind.INVALID_SIGNATURE
    )


# ── Rejection taxonomy ──────────────────────────────────────────────
@pytest.mark.parametrize("token", [None, ""])
def test_missing(verifier, token):
    assert rejection_of(verifier, token) is RejectionKind.MISSING


@pytest.mark.parametrize("token", ["null", "not-a-token", "abc.def", "a.b.c", "%%%.%%%.%%%"])
def test_malformed(verifier, token):
    assert rejection_of(verifier, token) is RejectionKind.MALFORMED


def test_tampered_signature(issuer, verifier):
    token = flip_signature_char(issuer.issue("abc"))
    assert rejection_of(verifier, token) is RejectionKind.INVALID_SIGNATURE


def test_every_signature_char_is_significant(issuer, verifier):
    token = issuer.issue("abc")
    signature = token.rsplit(".", 1)[1]
    for idx in range(len(signature)):
        flipped = flip_signature_char(token, idx)
        assert rejection_of(verifier, flipped) is RejectionKind.INVALID_SIGNATURE, idx


def test_non_canonical_last_char_is_rejected(issuer, verifier):
    # The final character of a 32-byte HS256 signature has unused low bits.
    flipped = flip_signature_char(issuer.issue("abc"), -1)
    assert rejection_of(verifier, flipped) is RejectionKind.INVALID_SIGNATURE


def test_tampered_claims(issuer, verifier):
    header, _claims, signature = issuer.issue("abc").split(".")
    forged = base64url_encode(
        json.dumps({"user_id": "mallory", "exp": int(ISSUED_AT.timestamp()) + 3600}).encode()
    ).decode()
    assert rejection_of(verifier, f"{header}.{forged}.{signature}") is RejectionKind.INVALID_SIGNATURE


def test_wrong_key(security_config, verifier):
    other = CredentialIssuer(replace(security_config, secret_key="another-key"), clock=at(ISSUED_AT))
    assert rejection_of(verifier, other.issue("abc")) is RejectionKind.INVALID_SIGNATURE


def test_unexpected_algorithm(security_config, verifier):
    exp = int(ISSUED_AT.timestamp()) + 60
    token = jwt.encode({"user_id": "abc", "exp": exp}, security_config.secret_key, algorithm="HS512")
    assert rejection_of(verifier, token) is RejectionKind.INVALID_SIGNATURE


def test_no_identity_claim(security_config, verifier):
    exp = int(ISSUED_AT.timestamp()) + 60
    token = jwt.encode({"exp": exp}, security_config.secret_key, algorithm=security_config.algorithm)
    assert rejection_of(verifier, token) is RejectionKind.NO_CLAIM


def test_empty_identity_claim(security_config, verifier):
    exp = int(ISSUED_AT.timestamp()) + 60
    token = jwt.encode({"user_id": "", "exp": exp}, security_config.secret_key, algorithm=security_config.algorithm)
    assert rejection_of(verifier, token) is RejectionKind.NO_CLAIM


def test_missing_expiry_is_malformed(security_config, verifier):
    token = jwt.encode({"user_id": "abc"}, security_config.secret_key, algorithm=security_config.algorithm)
    assert rejection_of(verifier, token) is RejectionKind.MALFORMED


def test_only_user_id_is_returned(security_config, verifier):
    exp = int(ISSUED_AT.timestamp()) + 60
    token = jwt.encode(
        {"user_id": "abc", "role": "ADMIN", "exp": exp},
        security_config.secret_key,
        algorithm=security_config.algorithm,
    )
    assert verifier.verify(token) == "abc"


def test_rejection_is_a_generic_auth_error(verifier):
    with pytest.raises(AuthError) as excinfo:
        verifier.verify("null")
    assert excinfo.value.status_code == 401
    assert excinfo.value.message == "Could not validate credentials"

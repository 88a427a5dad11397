"""Tests for password hashing, access tokens and logout revocation."""

import uuid
from datetime import timedelta

import pytest
from jose import jwt

from meditrap.core.config import get_settings
from meditrap.core.errors import AuthenticationError
from meditrap.core.identity import Principal, PrincipalKind
from meditrap.core.kv_store import MemoryKeyValueStore
from meditrap.core.security import (
    BLACKLIST_PREFIX,
    create_access_token,
    decode_token,
    generate_secure_token,
    get_password_hash,
    hash_token,
    revoke_token,
    verify_password,
)


@pytest.fixture
def store():
    return MemoryKeyValueStore()


@pytest.fixture
def principal():
    return Principal(kind=PrincipalKind.STOCKIST, id=uuid.uuid4(), email="s@example.com")


def test_password_hash_round_trip():
    hashed = get_password_hash("s3cret-pass")
    assert hashed != "s3cret-pass"
    assert verify_password("s3cret-pass", hashed)
    assert not verify_password("wrong", hashed)


def test_verify_password_without_hash():
    assert verify_password("anything", None) is False
    assert verify_password("anything", "") is False


def test_secure_tokens_are_unique():
    tokens = {generate_secure_token() for _ in range(100)}
    assert len(tokens) == 100
    assert all(len(t) == 32 for t in tokens)


def test_hash_token_is_sha256_hex():
    digest = hash_token("abc")
    assert len(digest) == 64
    assert digest == hash_token("abc")
    assert digest != hash_token("abd")


def test_token_carries_principal_kind(principal, store):
    claims = decode_token(create_access_token(principal), store)
    assert claims["sub"] == str(principal.id)
    assert claims["kind"] == "stockist"
    assert claims["type"] == "access"
    assert claims["jti"]


def test_expired_token(principal, store):
    token = create_access_token(principal, expires_delta=timedelta(seconds=-5))
    with pytest.raises(AuthenticationError):
        decode_token(token, store)


def test_garbage_token(store):
    with pytest.raises(AuthenticationError):
        decode_token("not.a.jwt", store)


def test_token_with_unknown_kind(store):
    settings = get_settings()
    token = jwt.encode(
        {"sub": str(uuid.uuid4()), "kind": "robot", "jti": "x", "type": "access"},
        settings.secret_key,
        algorithm=settings.algorithm,
    )
    with pytest.raises(AuthenticationError):
        decode_token(token, store)


def test_token_signed_with_other_key(principal, store):
    token = jwt.encode({"sub": str(principal.id), "kind": "user", "jti": "x", "type": "access"}, "other-key")
    with pytest.raises(AuthenticationError):
        decode_token(token, store)


def test_revoked_token_is_refused(principal, store):
    token = create_access_token(principal)
    claims = decode_token(token, store)

    revoke_token(claims, store)

    assert store.exists(BLACKLIST_PREFIX + claims["jti"])
    with pytest.raises(AuthenticationError, match="revoked"):
        decode_token(token, store)


def test_revocation_is_per_token(principal, store):
    first = create_access_token(principal)
    second = create_access_token(principal)
    revoke_token(decode_token(first, store), store)

    assert decode_token(second, store)["sub"] == str(principal.id)

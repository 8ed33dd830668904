"""Tests for the Redis-backed credential cache."""

from __future__ import annotations

import fakeredis
import pytest

from account_service.cache import RedisCredentialCache
from account_service.domain.account import Credential, CredentialStatus
from account_service.errors import DependencyError


def _credential(account_id: str = "acc-1") -> Credential:
    return Credential(
        account_id=account_id,
        password_hash="$argon2id$digest",
        status=CredentialStatus.ACTIVE,
        credential_id="cred-1",
    )


def test_set_then_get_returns_credential(cache):
    cache.set(_credential())
    cached = cache.get("acc-1")
    assert cached == _credential()


def test_get_miss_returns_none(cache):
    assert cache.get("missing") is None


def test_entries_expire_with_ttl(cache, redis_client):
    cache.set(_credential())
    ttl = redis_client.ttl("test-credential:acc-1")
    assert 0 < ttl <= 60


def test_delete_removes_entry_and_ignores_misses(cache):
    cache.set(_credential())
    cache.delete("acc-1")
    assert cache.get("acc-1") is None
    cache.delete("acc-1")


def test_corrupt_entry_raises_dependency_error(cache, redis_client):
    redis_client.set("test-credential:acc-1", "{not json")
    with pytest.raises(DependencyError):
        cache.get("acc-1")


def test_connection_failures_raise_dependency_error():
    server = fakeredis.FakeServer()
    server.connected = False
    cache = RedisCredentialCache(fakeredis.FakeStrictRedis(server=server), ttl_seconds=60)
    with pytest.raises(DependencyError):
        cache.get("acc-1")
    with pytest.raises(DependencyError):
        cache.set(_credential())
    with pytest.raises(DependencyError):
        cache.delete("acc-1")

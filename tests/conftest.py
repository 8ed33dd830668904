from __future__ import annotations

import fakeredis
import pytest

from account_service.cache import RedisCredentialCache
from account_service.domain.account import Account
from account_service.domain.credentials import CredentialCoordinator
from account_service.domain.service import AccountService
from account_service.security.passwords import CredentialHasher

from fakes import FakeRepository, RecordingAudit


@pytest.fixture(scope="session")
def hasher() -> CredentialHasher:
    return CredentialHasher()


@pytest.fixture()
def repository() -> FakeRepository:
    return FakeRepository()


@pytest.fixture()
def redis_client() -> fakeredis.FakeStrictRedis:
    client = fakeredis.FakeStrictRedis()
    client.flushall()
    return client


@pytest.fixture()
def cache(redis_client) -> RedisCredentialCache:
    return RedisCredentialCache(redis_client, ttl_seconds=60, key_prefix="test-credential")


@pytest.fixture()
def coordinator(repository, cache) -> CredentialCoordinator:
    return CredentialCoordinator(repository, cache)


@pytest.fixture()
def audit() -> RecordingAudit:
    return RecordingAudit()


@pytest.fixture()
def service(repository, coordinator, hasher, audit) -> AccountService:
    return AccountService(repository, coordinator, hasher, audit)


@pytest.fixture()
def make_account(service):
    """Create accounts through the service with sensible defaults."""

    def _make(username: str = "jane.doe1", email: str = "jane@example.com", **fields) -> Account:
        return service.create_account(Account(username=username, email=email, **fields))

    return _make

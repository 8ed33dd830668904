"""Cache-aside behaviour of the credential coordinator."""

from __future__ import annotations

import pytest

from account_service.domain.account import Account, Credential, CredentialStatus
from account_service.domain.credentials import CredentialCoordinator
from account_service.errors import CredentialNotFound, DependencyError

from fakes import FailingCache


@pytest.fixture()
def owner(repository) -> Account:
    return repository.save(Account(username="owner.one", email="owner@example.com"))


def _active(account_id: str, digest: str = "digest-1") -> Credential:
    return Credential(account_id=account_id, password_hash=digest, status=CredentialStatus.ACTIVE)


def test_second_lookup_is_served_from_cache(coordinator, repository, owner):
    repository.save_credential(_active(owner.account_id))

    first = coordinator.get_active_credential(owner.account_id)
    second = coordinator.get_active_credential(owner.account_id)

    assert first == second
    assert repository.calls["get_active_credential"] == 1


def test_cached_entry_for_another_account_is_ignored(repository, owner):
    repository.save_credential(_active(owner.account_id, "store-digest"))
    cache = FailingCache()
    # mis-keyed entry: stored under this account but owned by another
    cache.entries[owner.account_id] = _active("someone-else", "foreign-digest")
    coordinator = CredentialCoordinator(repository, cache)

    credential = coordinator.get_active_credential(owner.account_id)

    assert credential.password_hash == "store-digest"
    assert repository.calls["get_active_credential"] == 1
    assert cache.entries[owner.account_id].account_id == owner.account_id


def test_store_errors_propagate_unchanged(coordinator, repository, owner):
    with pytest.raises(CredentialNotFound):
        coordinator.get_active_credential(owner.account_id)

    repository.failing.add("get_active_credential")
    with pytest.raises(DependencyError):
        coordinator.get_active_credential(owner.account_id)


def test_cache_read_failure_falls_back_to_store(repository, owner):
    repository.save_credential(_active(owner.account_id))
    coordinator = CredentialCoordinator(repository, FailingCache("get"))

    assert coordinator.get_active_credential(owner.account_id).password_hash == "digest-1"
    assert repository.calls["get_active_credential"] == 1


def test_cache_warm_failure_is_not_propagated(repository, owner):
    repository.save_credential(_active(owner.account_id))
    cache = FailingCache("set")
    coordinator = CredentialCoordinator(repository, cache)

    assert coordinator.get_active_credential(owner.account_id).password_hash == "digest-1"
    assert cache.calls["set"] == 1


def test_set_credential_writes_store_then_cache(coordinator, repository, cache, owner):
    stored = coordinator.set_credential(_active(owner.account_id))

    assert stored.credential_id
    assert repository.credentials[owner.account_id].password_hash == "digest-1"
    assert cache.get(owner.account_id) == stored


def test_set_credential_store_failure_leaves_cache_untouched(repository, owner):
    cache = FailingCache()
    cache.entries[owner.account_id] = _active(owner.account_id, "old-digest")
    repository.failing.add("save_credential")
    coordinator = CredentialCoordinator(repository, cache)

    with pytest.raises(DependencyError):
        coordinator.set_credential(_active(owner.account_id, "new-digest"))

    assert cache.calls["set"] == 0
    assert cache.entries[owner.account_id].password_hash == "old-digest"


def test_set_credential_cache_failure_propagates_and_drops_stale_entry(repository, owner):
    cache = FailingCache("set")
    cache.entries[owner.account_id] = _active(owner.account_id, "old-digest")
    coordinator = CredentialCoordinator(repository, cache)

    with pytest.raises(DependencyError):
        coordinator.set_credential(_active(owner.account_id, "new-digest"))

    assert repository.credentials[owner.account_id].password_hash == "new-digest"
    assert owner.account_id not in cache.entries


def test_evict_missing_entry_is_not_an_error(coordinator):
    coordinator.evict("never-cached")


def test_evict_failure_propagates(repository):
    coordinator = CredentialCoordinator(repository, FailingCache("delete"))
    with pytest.raises(DependencyError):
        coordinator.evict("acc-1")

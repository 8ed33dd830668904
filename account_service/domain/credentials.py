"""Cache-aside access to credential records.

The Postgres store is the only source of truth. Redis sits in front of it to
keep the authentication path fast, so a flushed or unreachable cache costs
latency and never correctness.
"""

from __future__ import annotations

import logging

from .account import Credential
from ..cache import RedisCredentialCache
from ..errors import DependencyError
from ..repository import AccountRepository

logger = logging.getLogger(__name__)


class CredentialCoordinator:
    """Serve active credentials cache-first and write them store-first."""

    def __init__(self, repository: AccountRepository, cache: RedisCredentialCache) -> None:
        self._repository = repository
        self._cache = cache

    def get_active_credential(self, account_id: str) -> Credential:
        """Return the active credential for ``account_id``.

        A cache hit whose embedded account id matches is returned without a
        store call. Otherwise the store is queried and its errors propagate
        unchanged; the result is then written back to the cache best-effort.
        """
        try:
            cached = self._cache.get(account_id)
        except DependencyError as exc:
            logger.warning("credential cache read failed for %s, treating as miss: %s", account_id, exc)
            cached = None
        if cached is not None and cached.account_id == account_id:
            return cached

        credential = self._repository.get_active_credential(account_id)
        try:
            self._cache.set(credential)
        except DependencyError as exc:
            logger.warning("credential cache warm failed for %s: %s", account_id, exc)
        return credential

    def set_credential(self, credential: Credential) -> Credential:
        """Persist ``credential`` then mirror it into the cache.

        A store failure leaves the cache untouched. A cache failure after a
        successful store write propagates, after trying to drop the now
        stale cached entry.
        """
        stored = self._repository.save_credential(credential)
        try:
            self._cache.set(stored)
        except DependencyError:
            logger.error("credential cache write failed for %s after store write", stored.account_id)
            try:
                self._cache.delete(stored.account_id)
            except DependencyError as exc:
                logger.error("stale credential for %s may remain cached: %s", stored.account_id, exc)
            raise
        return stored

    def evict(self, account_id: str) -> None:
        self._cache.delete(account_id)

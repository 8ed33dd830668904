"""Redis-backed cache of active credentials keyed by account id."""

from __future__ import annotations

import json

from redis import Redis
from redis.exceptions import RedisError, TimeoutError as RedisTimeoutError

from .domain.account import Credential, CredentialStatus
from .errors import DependencyError, DependencyTimeout


class RedisCredentialCache:
    """Stores credential records as JSON strings with a fixed TTL.

    The cache has no eviction policy of its own beyond the TTL; callers evict
    explicitly when an account is deleted.
    """

    def __init__(
        self,
        client: Redis,
        *,
        ttl_seconds: int,
        key_prefix: str = "credential"
    ) -> None:
        """Store the Redis client, entry TTL, and key namespace."""
        self._client = client
        self._ttl_seconds = ttl_seconds
        self._key_prefix = key_prefix

    def _key(self, account_id: str) -> str:
        return f"{self._key_prefix}:{account_id}"

    def get(self, account_id: str) -> Credential | None:
        """Return the cached credential, or ``None`` on a miss."""
        try:
            raw = self._client.get(self._key(account_id))
        except RedisTimeoutError as exc:
            raise DependencyTimeout("credential cache timed out") from exc
        except RedisError as exc:
            raise DependencyError("credential cache unavailable") from exc
        if raw is None:
            return None
        try:
            data = json.loads(raw)
            return Credential(
                account_id=data["account_id"],
                password_hash=data["password_hash"],
                status=CredentialStatus(data["status"]),
                credential_id=data.get("credential_id", ""),
            )
        except (ValueError, KeyError, TypeError) as exc:
            raise DependencyError("credential cache entry is corrupt") from exc

    def set(self, credential: Credential) -> None:
        """Write ``credential`` under its account id, replacing any previous entry."""
        payload = json.dumps(
            {
                "credential_id": credential.credential_id,
                "account_id": credential.account_id,
                "password_hash": credential.password_hash,
                "status": credential.status.value,
            }
        )
        try:
            self._client.set(self._key(credential.account_id), payload, ex=self._ttl_seconds)
        except RedisTimeoutError as exc:
            raise DependencyTimeout("credential cache timed out") from exc
        except RedisError as exc:
            raise DependencyError("credential cache unavailable") from exc

    def delete(self, account_id: str) -> None:
        """Remove the cached entry; deleting a missing key is not an error."""
        try:
            self._client.delete(self._key(account_id))
        except RedisTimeoutError as exc:
            raise DependencyTimeout("credential cache timed out") from exc
        except RedisError as exc:
            raise DependencyError("credential cache unavailable") from exc

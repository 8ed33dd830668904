"""Salted one-way password hashing backed by Argon2id."""

from __future__ import annotations

from argon2 import PasswordHasher
from argon2.exceptions import InvalidHashError, VerificationError


class CredentialHasher:
    """Hash and verify plaintext passwords.

    The default cost parameters are deliberately low; raising them changes
    neither the digest format nor the verification contract, since Argon2
    encodes its parameters inside every digest.
    """

    def __init__(self, *, time_cost: int = 1, memory_cost: int = 8192, parallelism: int = 1) -> None:
        self._hasher = PasswordHasher(
            time_cost=time_cost,
            memory_cost=memory_cost,
            parallelism=parallelism,
        )

    def hash(self, plaintext: str) -> str:
        """Return a salted digest for ``plaintext``.

        Parameters
        ----------
        plaintext:
            Password as supplied by the user. It is not retained.

        Returns
        -------
        str
            Encoded Argon2id digest including salt and cost parameters.
        """
        return self._hasher.hash(plaintext)

    def verify(self, digest: str, plaintext: str) -> bool:
        """Return ``True`` when ``plaintext`` matches ``digest``.

        Malformed, empty or non-ASCII digests yield ``False`` rather than an
        exception, as does a plaintext that cannot be encoded as UTF-8.
        """
        if not digest or not isinstance(digest, str):
            return False
        try:
            return self._hasher.verify(digest, plaintext)
        except (VerificationError, InvalidHashError, ValueError):
            return False

"""Error taxonomy shared by the account domain, its adapters and the HTTP layer."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .domain.rules import Violation


class AccountError(Exception):
    """Base class for every failure raised by the account service."""


class ValidationError(AccountError):
    """A field failed a structural or business rule."""

    def __init__(self, violation: "Violation") -> None:
        super().__init__(violation.message)
        self.violation = violation


class ConflictError(AccountError):
    """A unique field is already taken by another account."""


class EmailAlreadyExists(ConflictError):
    def __init__(self) -> None:
        super().__init__("email already exists")


class UsernameAlreadyExists(ConflictError):
    def __init__(self) -> None:
        super().__init__("username already exists")


class NotFoundError(AccountError):
    """The requested id does not resolve to a record."""


class AccountNotFound(NotFoundError):
    def __init__(self) -> None:
        super().__init__("account not found")


class CredentialNotFound(NotFoundError):
    def __init__(self) -> None:
        super().__init__("credential not found")


class PreconditionError(AccountError):
    """The request is missing an id or another mandatory discriminator."""


class AuthenticationFailed(AccountError):
    """Generic authentication failure; the specific reason is only logged."""

    def __init__(self) -> None:
        super().__init__("authentication failed")


class DependencyError(AccountError):
    """The durable store or the cache failed; callers may retry."""


class DependencyTimeout(DependencyError):
    """A store or cache call exceeded its configured deadline."""


class InternalConsistencyError(AccountError):
    """A store-level invariant is broken (e.g. a unique filter matched twice)."""

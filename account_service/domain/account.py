"""Account and credential aggregates plus the query descriptors used to find them."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum


class AccountType(str, Enum):
    NONE = "none"
    USER = "user"
    ADMIN = "admin"


class AccountStatus(str, Enum):
    NONE = "none"
    ACTIVE = "active"
    INACTIVE = "inactive"


class CredentialStatus(str, Enum):
    NONE = "none"
    ACTIVE = "active"
    INACTIVE = "inactive"


@dataclass(slots=True)
class Account:
    """Aggregate root for a user identity.

    ``account_id`` stays empty until the store assigns one on first save.
    """

    username: str
    email: str
    role: str = ""
    account_type: AccountType = AccountType.NONE
    status: AccountStatus = AccountStatus.NONE
    first_name: str = ""
    last_name: str = ""
    tags: list[str] = field(default_factory=list)
    account_id: str = ""
    created_at: datetime | None = None
    updated_at: datetime | None = None


@dataclass(slots=True)
class Credential:
    """Password hash owned by exactly one account."""

    account_id: str
    password_hash: str = field(repr=False)
    status: CredentialStatus = CredentialStatus.NONE
    credential_id: str = ""


@dataclass(slots=True)
class AccountFilter:
    """Optional-field lookup descriptor; unset fields do not constrain the query."""

    account_id: str | None = None
    username: str | None = None
    email: str | None = None
    status: AccountStatus | None = None
    role: str | None = None
    limit: int = 50
    offset: int = 0

    def is_empty(self) -> bool:
        """Return ``True`` when no discriminating field is set."""
        return not any(
            value
            for value in (self.account_id, self.username, self.email, self.status, self.role)
        )


@dataclass(slots=True)
class AccountResultSet:
    accounts: list[Account] = field(default_factory=list)
    total: int = 0

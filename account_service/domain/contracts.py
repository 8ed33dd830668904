"""Domain-level request contracts shared by multiple layers."""

from __future__ import annotations

from dataclasses import dataclass, field

from .account import AccountStatus


@dataclass(slots=True)
class AccountBaseUpdate:
    """Profile fields replaced by a base-info update."""

    account_id: str
    tags: list[str] = field(default_factory=list)
    first_name: str = ""
    last_name: str = ""


@dataclass(slots=True)
class AccountStatusUpdate:
    account_id: str
    status: AccountStatus


@dataclass(slots=True)
class AccountRoleUpdate:
    account_id: str
    role: str


@dataclass(slots=True)
class PasswordChange:
    """New plaintext password for an account; never rendered by ``repr``."""

    account_id: str
    password: str = field(repr=False)


@dataclass(slots=True)
class IdentityHint:
    """Identity supplied at login; the username wins when both are given."""

    username: str = ""
    email: str = ""

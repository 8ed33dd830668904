"""Field rules for usernames, emails and passwords, plus structural record checks.

Every ``check_*`` function is pure: it returns ``None`` when the value is
acceptable and a :class:`Violation` describing the first broken rule otherwise.
The ``validate_*`` functions check record shape (types, enum membership, id
format, bounded lengths) and run before the business rules.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from enum import Enum
from typing import Any

from .account import Account, AccountStatus, AccountType, Credential, CredentialStatus
from .contracts import PasswordChange

MIN_LENGTH = 8
MAX_LENGTH = 20
MAX_NAME_LENGTH = 64
MAX_EMAIL_LENGTH = 254
MAX_TAGS = 32

_USERNAME_PUNCTUATION = frozenset("_.")


class ViolationCode(str, Enum):
    EMPTY = "empty"
    TOO_SHORT = "too_short"
    TOO_LONG = "too_long"
    CONTAINS_SPACE = "contains_space"
    DISALLOWED_CHARACTER = "disallowed_character"
    MISSING_AT_OR_DOT = "missing_at_or_dot"
    INVALID_TYPE = "invalid_type"
    INVALID_FORMAT = "invalid_format"


@dataclass(frozen=True, slots=True)
class Violation:
    field: str
    code: ViolationCode
    message: str


def check_username(value: str) -> Violation | None:
    if not value:
        return Violation("username", ViolationCode.EMPTY, "username is empty")
    if len(value) < MIN_LENGTH:
        return Violation("username", ViolationCode.TOO_SHORT, "username is too short")
    if len(value) > MAX_LENGTH:
        return Violation("username", ViolationCode.TOO_LONG, "username is too long")
    if " " in value:
        return Violation("username", ViolationCode.CONTAINS_SPACE, "username contains a space")
    if not _has_allowed_username_characters(value):
        return Violation(
            "username",
            ViolationCode.DISALLOWED_CHARACTER,
            "username may only contain letters, digits, '_' and '.'",
        )
    return None


def _has_allowed_username_characters(value: str) -> bool:
    has_alphanumeric = False
    for ch in value:
        if ch.isalpha() or ch.isdigit():
            has_alphanumeric = True
        elif ch not in _USERNAME_PUNCTUATION:
            return False
    # "____" and "...." use only allowed characters but are still rejected
    return has_alphanumeric


def check_email(value: str) -> Violation | None:
    """Coarse syntactic email check: contains ``@`` and ``.``, and no space."""
    if not value:
        return Violation("email", ViolationCode.EMPTY, "email is empty")
    if "@" not in value or "." not in value:
        return Violation("email", ViolationCode.MISSING_AT_OR_DOT, "email is not valid")
    if " " in value:
        return Violation("email", ViolationCode.CONTAINS_SPACE, "email contains a space")
    return None


def check_password(value: str) -> Violation | None:
    if not value:
        return Violation("password", ViolationCode.EMPTY, "password is empty")
    if len(value) < MIN_LENGTH:
        return Violation("password", ViolationCode.TOO_SHORT, "password is too short")
    if len(value) > MAX_LENGTH:
        return Violation("password", ViolationCode.TOO_LONG, "password is too long")
    if " " in value:
        return Violation("password", ViolationCode.CONTAINS_SPACE, "password contains a space")
    return None


def validate_account(account: Account) -> Violation | None:
    """Check the shape of an account record before any business rule runs."""
    for name in ("username", "email", "role", "first_name", "last_name"):
        limit = MAX_EMAIL_LENGTH if name == "email" else MAX_NAME_LENGTH
        violation = _check_text(name, getattr(account, name), limit)
        if violation:
            return violation
    if account.account_id and not is_uuid(account.account_id):
        return Violation("account_id", ViolationCode.INVALID_FORMAT, "account id is not a UUID")
    if not isinstance(account.account_type, AccountType):
        return Violation("account_type", ViolationCode.INVALID_TYPE, "unknown account type")
    if not isinstance(account.status, AccountStatus):
        return Violation("status", ViolationCode.INVALID_TYPE, "unknown account status")
    if not isinstance(account.tags, list):
        return Violation("tags", ViolationCode.INVALID_TYPE, "tags must be a list")
    if len(account.tags) > MAX_TAGS:
        return Violation("tags", ViolationCode.TOO_LONG, "too many tags")
    for tag in account.tags:
        violation = _check_text("tags", tag)
        if violation:
            return violation
    return None


def validate_credential(credential: Credential) -> Violation | None:
    if not is_uuid(credential.account_id):
        return Violation("account_id", ViolationCode.INVALID_FORMAT, "account id is not a UUID")
    if not isinstance(credential.password_hash, str) or not credential.password_hash:
        return Violation("password_hash", ViolationCode.INVALID_TYPE, "password hash is missing")
    if not isinstance(credential.status, CredentialStatus):
        return Violation("status", ViolationCode.INVALID_TYPE, "unknown credential status")
    return None


def validate_password_change(change: PasswordChange) -> Violation | None:
    if not is_uuid(change.account_id):
        return Violation("account_id", ViolationCode.INVALID_FORMAT, "account id is not a UUID")
    if not isinstance(change.password, str):
        return Violation("password", ViolationCode.INVALID_TYPE, "password must be a string")
    try:
        change.password.encode("utf-8")
    except UnicodeEncodeError:
        return Violation("password", ViolationCode.INVALID_FORMAT, "password is not valid UTF-8")
    return None


def _check_text(name: str, value: Any, limit: int = MAX_NAME_LENGTH) -> Violation | None:
    if not isinstance(value, str):
        return Violation(name, ViolationCode.INVALID_TYPE, f"{name} must be a string")
    if len(value) > limit:
        return Violation(name, ViolationCode.TOO_LONG, f"{name} is too long")
    return None


def is_uuid(value: Any) -> bool:
    if not isinstance(value, str):
        return False
    try:
        uuid.UUID(value)
    except ValueError:
        return False
    return True

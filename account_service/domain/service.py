"""Account service orchestrating validation, uniqueness, persistence and auditing."""

from __future__ import annotations

from contextlib import contextmanager
from dataclasses import replace
import logging
from typing import Callable, Iterator

from prometheus_client import Counter

from .account import (
    Account,
    AccountFilter,
    AccountResultSet,
    AccountStatus,
    Credential,
    CredentialStatus,
)
from .contracts import (
    AccountBaseUpdate,
    AccountRoleUpdate,
    AccountStatusUpdate,
    IdentityHint,
    PasswordChange,
)
from .credentials import CredentialCoordinator
from .rules import (
    Violation,
    check_email,
    check_password,
    check_username,
    is_uuid,
    validate_account,
    validate_credential,
    validate_password_change,
)
from ..audit import AuditDispatcher, AuditLevel
from ..errors import (
    AccountError,
    AccountNotFound,
    AuthenticationFailed,
    EmailAlreadyExists,
    InternalConsistencyError,
    PreconditionError,
    UsernameAlreadyExists,
    ValidationError,
)
from ..repository import AccountRepository
from ..security.passwords import CredentialHasher

logger = logging.getLogger(__name__)

AUTHENTICATION_ATTEMPTS = Counter(
    "account_authentication_attempts_total",
    "Authentication attempts grouped by outcome.",
    ["outcome"],
)


class CredentialRejected(AccountError):
    """Internal authentication failure reason; never surfaced to callers."""


class AccountService:
    """Account workflows backed by Postgres storage and a Redis credential cache.

    Every public operation takes the requesting ``actor_id`` explicitly. It is
    used only for the audit trail.
    """

    def __init__(
        self,
        repository: AccountRepository,
        credentials: CredentialCoordinator,
        hasher: CredentialHasher,
        audit: AuditDispatcher,
    ) -> None:
        """Store dependencies used to orchestrate validation, persistence and auditing."""
        self._repository = repository
        self._credentials = credentials
        self._hasher = hasher
        self._audit = audit

    def find_accounts(self, account_filter: AccountFilter, *, actor_id: str = "") -> AccountResultSet:
        """Return the accounts matching ``account_filter``."""
        with self._audit_failures("FindAccounts", actor_id):
            return self._repository.find_by_filter(account_filter)

    def get_account(self, account_id: str, *, actor_id: str = "") -> Account:
        """Retrieve a single account by identifier."""
        with self._audit_failures("GetAccount", actor_id):
            return self._get_by_id(account_id)

    def create_account(self, draft: Account, *, actor_id: str = "") -> Account:
        """Validate ``draft``, enforce uniqueness and persist it as a new account.

        Any caller-supplied id or timestamp is discarded; the store assigns
        them. Email conflicts are reported before username conflicts.
        """
        with self._audit_failures("CreateAccount", actor_id):
            account = replace(draft, account_id="", created_at=None, updated_at=None)
            self._check(validate_account(account))
            self._check(check_username(account.username))
            self._check(check_email(account.email))

            if self._repository.find_by_filter(AccountFilter(email=account.email)).total > 0:
                raise EmailAlreadyExists()
            if self._repository.find_by_filter(AccountFilter(username=account.username)).total > 0:
                raise UsernameAlreadyExists()

            if account.status == AccountStatus.NONE:
                account.status = AccountStatus.ACTIVE
            created = self._repository.save(account)

        self._emit(AuditLevel.INFO, "CreateAccount", actor_id, f"account {created.account_id} created")
        return created

    def update_account_base(self, update: AccountBaseUpdate, *, actor_id: str = "") -> Account:
        """Replace the tags and display names of an existing account."""

        def apply(account: Account) -> None:
            account.tags = list(update.tags)
            account.first_name = update.first_name
            account.last_name = update.last_name

        return self._update("UpdateAccountBase", update.account_id, actor_id, apply)

    def update_account_status(self, update: AccountStatusUpdate, *, actor_id: str = "") -> Account:
        def apply(account: Account) -> None:
            account.status = update.status

        return self._update("UpdateAccountStatus", update.account_id, actor_id, apply)

    def update_account_role(self, update: AccountRoleUpdate, *, actor_id: str = "") -> Account:
        def apply(account: Account) -> None:
            account.role = update.role

        return self._update("UpdateAccountRole", update.account_id, actor_id, apply)

    def _update(
        self,
        operation: str,
        account_id: str,
        actor_id: str,
        apply: Callable[[Account], None],
    ) -> Account:
        """Re-read the stored account, apply one field group and persist the merge.

        Username and email are not touched here, so uniqueness is not re-checked.
        """
        with self._audit_failures(operation, actor_id):
            current = self._get_by_id(account_id)
            apply(current)
            self._check(validate_account(current))
            updated = self._repository.save(current)

        self._emit(AuditLevel.INFO, operation, actor_id, f"account {updated.account_id} updated")
        return updated

    def delete_account(self, account: Account, *, actor_id: str = "") -> Account:
        """Delete the account and its credential, then evict the cached credential.

        Eviction is skipped when the store delete fails and propagates its own
        failure, since a cached credential for a deleted account stays usable.
        """
        with self._audit_failures("DeleteAccount", actor_id):
            self._require_id(account.account_id)
            deleted = self._repository.delete(account)
            self._repository.delete_credential(deleted.account_id)
            self._credentials.evict(deleted.account_id)

        self._emit(AuditLevel.INFO, "DeleteAccount", actor_id, f"account {deleted.account_id} deleted")
        return deleted

    def change_password(self, change: PasswordChange, *, actor_id: str = "") -> None:
        """Hash the new password and write it through the store and the cache."""
        with self._audit_failures("ChangePassword", actor_id):
            if not change.account_id:
                raise PreconditionError("account id is empty")
            self._check(validate_password_change(change))
            self._check(check_password(change.password))

            credential = Credential(
                account_id=change.account_id,
                password_hash=self._hasher.hash(change.password),
                status=CredentialStatus.ACTIVE,
            )
            self._check(validate_credential(credential))
            self._credentials.set_credential(credential)

        self._emit(AuditLevel.INFO, "ChangePassword", actor_id, f"password changed for {change.account_id}")

    def get_active_credential(self, account_id: str, *, actor_id: str = "") -> Credential:
        """Return the active credential of an account, cache first."""
        with self._audit_failures("GetActiveCredential", actor_id):
            self._require_id(account_id)
            return self._credentials.get_active_credential(account_id)

    def authenticate(self, identity: IdentityHint, password: str, *, actor_id: str = "") -> Account:
        """Verify ``password`` for the account named by ``identity``.

        Every failure, whatever its cause, reaches the caller as
        :class:`AuthenticationFailed`; the specific reason is only logged and
        audited so callers cannot tell which identities exist.
        """
        try:
            account = self._resolve_identity(identity)
            credential = self._credentials.get_active_credential(account.account_id)
            if credential.status != CredentialStatus.ACTIVE:
                raise CredentialRejected(f"credential of {account.account_id} is not active")
            if not self._hasher.verify(credential.password_hash, password):
                raise CredentialRejected(f"password mismatch for {account.account_id}")
        except AccountError as exc:
            logger.info("authentication rejected: %s", exc)
            self._reject(actor_id, str(exc))
            raise AuthenticationFailed() from None
        except Exception as exc:
            logger.exception("authentication aborted by unexpected error")
            self._reject(actor_id, f"unexpected {type(exc).__name__}")
            raise AuthenticationFailed() from None

        AUTHENTICATION_ATTEMPTS.labels(outcome="success").inc()
        self._emit(AuditLevel.INFO, "Authenticate", actor_id, f"account {account.account_id} authenticated")
        return account

    def _reject(self, actor_id: str, reason: str) -> None:
        AUTHENTICATION_ATTEMPTS.labels(outcome="rejected").inc()
        self._emit(AuditLevel.ERROR, "Authenticate", actor_id, reason)

    def _resolve_identity(self, identity: IdentityHint) -> Account:
        # Username takes precedence; the email is only consulted without one.
        if identity.username:
            account_filter = AccountFilter(username=identity.username)
        elif identity.email:
            account_filter = AccountFilter(email=identity.email)
        else:
            raise PreconditionError("identity has neither username nor email")

        result = self._repository.find_by_filter(account_filter)
        if result.total == 0 or not result.accounts:
            raise AccountNotFound()
        if result.total > 1:
            logger.error(
                "uniqueness invariant violated: %d accounts match %s", result.total, account_filter
            )
            raise InternalConsistencyError(f"{result.total} accounts match a unique identity")
        account = result.accounts[0]
        if not account.account_id:
            raise PreconditionError("resolved account has no id")
        return account

    def _get_by_id(self, account_id: str) -> Account:
        self._require_id(account_id)
        result = self._repository.find_by_filter(AccountFilter(account_id=account_id))
        if result.total != 1 or not result.accounts:
            raise AccountNotFound()
        return result.accounts[0]

    def _require_id(self, account_id: str) -> None:
        if not account_id:
            raise PreconditionError("account id is empty")
        if not is_uuid(account_id):
            raise PreconditionError("account id is malformed")

    def _check(self, violation: Violation | None) -> None:
        if violation is not None:
            raise ValidationError(violation)

    @contextmanager
    def _audit_failures(self, operation: str, actor_id: str) -> Iterator[None]:
        """Record one error-level audit event for any failure leaving the block."""
        try:
            yield
        except Exception as exc:
            self._emit(AuditLevel.ERROR, operation, actor_id, str(exc) or type(exc).__name__)
            raise

    def _emit(self, level: AuditLevel, operation: str, actor_id: str, message: str) -> None:
        try:
            self._audit.record(level, operation, actor_id, message)
        except Exception as exc:
            logger.warning("audit dispatch failed for %s: %s", operation, exc)

"""Driver error translation and row mapping in the Postgres repository."""

from __future__ import annotations

import uuid
from contextlib import contextmanager
from datetime import datetime, timezone

import pytest
from psycopg import errors as pg_errors
from psycopg.pq import DiagnosticField
from psycopg_pool import PoolTimeout

from account_service.domain.account import Account, AccountFilter, AccountStatus, AccountType
from account_service.errors import (
    AccountNotFound,
    DependencyError,
    DependencyTimeout,
    EmailAlreadyExists,
    PreconditionError,
    UsernameAlreadyExists,
)
from account_service.repository import AccountRepository


class StubCursor:
    def __init__(self, conn: "StubConnection") -> None:
        self._conn = conn

    def __enter__(self) -> "StubCursor":
        return self

    def __exit__(self, *exc) -> bool:
        return False

    def execute(self, query, params=None) -> None:
        self._conn.executed.append((query, params))
        if self._conn.error is not None:
            raise self._conn.error

    def fetchone(self):
        return self._conn.rows.pop(0) if self._conn.rows else None

    def fetchall(self):
        rows, self._conn.rows = self._conn.rows, []
        return rows


class StubConnection:
    def __init__(self, rows=None, error=None) -> None:
        self.rows = list(rows or [])
        self.error = error
        self.executed: list = []
        self.commits = 0

    def cursor(self, row_factory=None) -> StubCursor:
        return StubCursor(self)

    def commit(self) -> None:
        self.commits += 1

    def rollback(self) -> None:
        pass


class StubPool:
    """Hands out one connection, or fails the checkout with ``checkout_error``."""

    def __init__(self, conn: StubConnection | None = None, checkout_error: Exception | None = None) -> None:
        self.conn = conn or StubConnection()
        self.checkout_error = checkout_error
        self.timeouts: list = []

    @contextmanager
    def connection(self, timeout=None):
        self.timeouts.append(timeout)
        if self.checkout_error is not None:
            raise self.checkout_error
        yield self.conn


def _unique_violation(constraint: str) -> pg_errors.UniqueViolation:
    return pg_errors.UniqueViolation(
        "duplicate key value violates unique constraint",
        info={DiagnosticField.CONSTRAINT_NAME: constraint.encode()},
    )


def _draft() -> Account:
    return Account(username="jane.doe1", email="jane@example.com", status=AccountStatus.ACTIVE)


def test_pool_exhaustion_maps_to_timeout():
    pool = StubPool(checkout_error=PoolTimeout("couldn't get a connection after 5.00 sec"))
    repository = AccountRepository(pool, connect_timeout=5)

    with pytest.raises(DependencyTimeout):
        repository.find_by_filter(AccountFilter(username="jane.doe1"))
    assert pool.timeouts == [5]


def test_statement_timeout_maps_to_timeout():
    conn = StubConnection(error=pg_errors.QueryCanceled("canceling statement due to statement timeout"))
    repository = AccountRepository(StubPool(conn))

    with pytest.raises(DependencyTimeout):
        repository.save(_draft())
    assert conn.commits == 0


def test_timeout_is_a_dependency_error():
    conn = StubConnection(error=pg_errors.QueryCanceled("canceling statement"))
    with pytest.raises(DependencyError):
        AccountRepository(StubPool(conn)).delete(Account(username="a", email="b", account_id=str(uuid.uuid4())))


@pytest.mark.parametrize(
    "constraint, expected",
    [
        ("accounts_email_key", EmailAlreadyExists),
        ("accounts_username_key", UsernameAlreadyExists),
    ],
)
def test_unique_violation_maps_to_matching_conflict(constraint, expected):
    repository = AccountRepository(StubPool(StubConnection(error=_unique_violation(constraint))))
    with pytest.raises(expected):
        repository.save(_draft())


def test_unrelated_unique_violation_is_not_a_conflict():
    repository = AccountRepository(StubPool(StubConnection(error=_unique_violation("credentials_pkey"))))
    with pytest.raises(DependencyError) as excinfo:
        repository.save(_draft())
    assert not isinstance(excinfo.value, (EmailAlreadyExists, UsernameAlreadyExists))
    assert "credentials_pkey" in str(excinfo.value)


def test_other_driver_errors_map_to_dependency_error():
    repository = AccountRepository(StubPool(StubConnection(error=pg_errors.OperationalError("server closed"))))
    with pytest.raises(DependencyError) as excinfo:
        repository.find_by_filter(AccountFilter(email="jane@example.com"))
    assert not isinstance(excinfo.value, DependencyTimeout)


def test_find_by_filter_rejects_empty_filter_without_touching_the_pool():
    pool = StubPool()
    with pytest.raises(PreconditionError):
        AccountRepository(pool).find_by_filter(AccountFilter())
    assert pool.timeouts == []


def test_find_by_filter_maps_rows_and_clamps_limit():
    account_id = uuid.uuid4()
    created = datetime(2024, 5, 1, tzinfo=timezone.utc)
    row = (
        account_id, "jane.doe1", "jane@example.com", "member", "user", "active",
        "Jane", "Doe", ["vip"], created, created,
    )
    conn = StubConnection(rows=[(1,), row])
    repository = AccountRepository(StubPool(conn))

    result = repository.find_by_filter(AccountFilter(role="member", status=AccountStatus.ACTIVE, limit=500))

    assert result.total == 1
    [account] = result.accounts
    assert account.account_id == str(account_id)
    assert account.account_type == AccountType.USER
    assert account.tags == ["vip"]
    _, select_params = conn.executed[1]
    assert select_params == ["active", "member", 100, 0]


def test_update_of_missing_row_is_not_found():
    conn = StubConnection(rows=[])
    account = _draft()
    account.account_id = str(uuid.uuid4())

    with pytest.raises(AccountNotFound):
        AccountRepository(StubPool(conn)).save(account)
    assert conn.commits == 0

"""Database repository for account, credential and audit data."""

from __future__ import annotations

import uuid
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Iterator

from psycopg import errors as pg_errors
from psycopg import Error as PsycopgError
from psycopg.rows import tuple_row
from psycopg_pool import ConnectionPool, PoolTimeout

from .audit import AuditEvent
from .domain.account import (
    Account,
    AccountFilter,
    AccountResultSet,
    AccountStatus,
    AccountType,
    Credential,
    CredentialStatus,
)
from .errors import (
    AccountNotFound,
    CredentialNotFound,
    DependencyError,
    DependencyTimeout,
    EmailAlreadyExists,
    PreconditionError,
    UsernameAlreadyExists,
)

_ACCOUNT_COLUMNS = (
    "account_id, username, email, role, account_type, status, "
    "first_name, last_name, tags, created_at, updated_at"
)
_CREDENTIAL_COLUMNS = "credential_id, account_id, password_hash, status"

# UNIQUE constraint names from migrations/0001_accounts.sql
EMAIL_CONSTRAINT = "accounts_email_key"
USERNAME_CONSTRAINT = "accounts_username_key"


class AccountRepository:
    """Postgres-backed account and credential persistence.

    Tables are defined in ``migrations/0001_accounts.sql``. The UNIQUE
    constraints on ``accounts.username`` and ``accounts.email`` back the
    service-level uniqueness checks, and ``credentials.account_id`` is unique
    so each account owns at most one credential row.
    """

    def __init__(self, pool: ConnectionPool, *, connect_timeout: float | None = None) -> None:
        """Store the connection pool and the deadline for checking out a connection."""
        self._pool = pool
        self._connect_timeout = connect_timeout

    @contextmanager
    def _connection(self) -> Iterator[Any]:
        """Yield a pooled connection, translating driver failures into domain errors."""
        try:
            with self._pool.connection(timeout=self._connect_timeout) as conn:
                yield conn
        except PoolTimeout as exc:
            raise DependencyTimeout("database connection pool exhausted") from exc
        except pg_errors.QueryCanceled as exc:
            raise DependencyTimeout("database statement timed out") from exc
        except pg_errors.UniqueViolation as exc:
            constraint = exc.diag.constraint_name
            if constraint == EMAIL_CONSTRAINT:
                raise EmailAlreadyExists() from exc
            if constraint == USERNAME_CONSTRAINT:
                raise UsernameAlreadyExists() from exc
            raise DependencyError(f"database constraint {constraint} violated") from exc
        except pg_errors.ForeignKeyViolation as exc:
            raise AccountNotFound() from exc
        except PsycopgError as exc:
            raise DependencyError("database unavailable") from exc

    def find_by_filter(self, account_filter: AccountFilter) -> AccountResultSet:
        """Return accounts matching every set field of ``account_filter``.

        An empty filter is rejected rather than treated as "match all".
        """
        if account_filter.is_empty():
            raise PreconditionError("account filter has no discriminating field")

        clauses: list[str] = []
        params: list[Any] = []
        if account_filter.account_id:
            clauses.append("account_id = %s")
            params.append(account_filter.account_id)
        if account_filter.username:
            clauses.append("username = %s")
            params.append(account_filter.username)
        if account_filter.email:
            clauses.append("email = %s")
            params.append(account_filter.email)
        if account_filter.status:
            clauses.append("status = %s")
            params.append(account_filter.status.value)
        if account_filter.role:
            clauses.append("role = %s")
            params.append(account_filter.role)

        where_sql = " AND ".join(clauses)
        limit = max(1, min(account_filter.limit, 100))
        offset = max(0, account_filter.offset)

        with self._connection() as conn:
            with conn.cursor(row_factory=tuple_row) as cur:
                cur.execute(f"SELECT COUNT(*) FROM accounts WHERE {where_sql}", params)
                total = cur.fetchone()[0]
                cur.execute(
                    f"""
                    SELECT {_ACCOUNT_COLUMNS}
                    FROM accounts
                    WHERE {where_sql}
                    ORDER BY created_at, account_id
                    LIMIT %s OFFSET %s
                    """,
                    [*params, limit, offset],
                )
                rows = cur.fetchall()
        return AccountResultSet(accounts=[self._map_account(row) for row in rows], total=total)

    def save(self, account: Account) -> Account:
        """Insert a new account (assigning its id) or update an existing one."""
        now = datetime.now(timezone.utc)
        values = (
            account.username,
            account.email,
            account.role,
            account.account_type.value,
            account.status.value,
            account.first_name,
            account.last_name,
            list(account.tags),
        )
        with self._connection() as conn:
            with conn.cursor(row_factory=tuple_row) as cur:
                if not account.account_id:
                    cur.execute(
                        f"""
                        INSERT INTO accounts ({_ACCOUNT_COLUMNS})
                        VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
                        RETURNING {_ACCOUNT_COLUMNS}
                        """,
                        (str(uuid.uuid4()), *values, now, now),
                    )
                else:
                    cur.execute(
                        f"""
                        UPDATE accounts
                        SET username = %s, email = %s, role = %s, account_type = %s, status = %s,
                            first_name = %s, last_name = %s, tags = %s, updated_at = %s
                        WHERE account_id = %s
                        RETURNING {_ACCOUNT_COLUMNS}
                        """,
                        (*values, now, account.account_id),
                    )
                row = cur.fetchone()
                if row is None:
                    conn.rollback()
                    raise AccountNotFound()
                conn.commit()
        return self._map_account(row)

    def delete(self, account: Account) -> Account:
        """Delete the account row and return it as it was stored."""
        with self._connection() as conn:
            with conn.cursor(row_factory=tuple_row) as cur:
                cur.execute(
                    f"DELETE FROM accounts WHERE account_id = %s RETURNING {_ACCOUNT_COLUMNS}",
                    (account.account_id,),
                )
                row = cur.fetchone()
                if row is None:
                    conn.rollback()
                    raise AccountNotFound()
                conn.commit()
        return self._map_account(row)

    def get_active_credential(self, account_id: str) -> Credential:
        with self._connection() as conn:
            with conn.cursor(row_factory=tuple_row) as cur:
                cur.execute(
                    f"""
                    SELECT {_CREDENTIAL_COLUMNS}
                    FROM credentials
                    WHERE account_id = %s AND status = %s
                    """,
                    (account_id, CredentialStatus.ACTIVE.value),
                )
                row = cur.fetchone()
        if row is None:
            raise CredentialNotFound()
        return self._map_credential(row)

    def save_credential(self, credential: Credential) -> Credential:
        """Replace the account's credential wholesale; the previous hash is discarded."""
        now = datetime.now(timezone.utc)
        with self._connection() as conn:
            with conn.cursor(row_factory=tuple_row) as cur:
                cur.execute(
                    f"""
                    INSERT INTO credentials ({_CREDENTIAL_COLUMNS}, created_at, updated_at)
                    VALUES (%s, %s, %s, %s, %s, %s)
                    ON CONFLICT (account_id) DO UPDATE
                    SET password_hash = EXCLUDED.password_hash,
                        status = EXCLUDED.status,
                        updated_at = EXCLUDED.updated_at
                    RETURNING {_CREDENTIAL_COLUMNS}
                    """,
                    (
                        credential.credential_id or str(uuid.uuid4()),
                        credential.account_id,
                        credential.password_hash,
                        credential.status.value,
                        now,
                        now,
                    ),
                )
                row = cur.fetchone()
                conn.commit()
        return self._map_credential(row)

    def delete_credential(self, account_id: str) -> None:
        """Remove the account's credential row if one exists."""
        with self._connection() as conn:
            with conn.cursor() as cur:
                cur.execute("DELETE FROM credentials WHERE account_id = %s", (account_id,))
                conn.commit()

    def _map_account(self, row: tuple) -> Account:
        """Convert a raw database tuple into the domain ``Account`` dataclass."""
        return Account(
            account_id=str(row[0]),
            username=row[1],
            email=row[2],
            role=row[3],
            account_type=AccountType(row[4]),
            status=AccountStatus(row[5]),
            first_name=row[6],
            last_name=row[7],
            tags=list(row[8] or []),
            created_at=row[9],
            updated_at=row[10],
        )

    def _map_credential(self, row: tuple) -> Credential:
        return Credential(
            credential_id=str(row[0]),
            account_id=str(row[1]),
            password_hash=row[2],
            status=CredentialStatus(row[3]),
        )

    def write_audit_event(self, event: AuditEvent) -> None:
        """Record an audit trail entry capturing account workflow activity."""
        with self._connection() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    INSERT INTO account_audit_log (level, operation, actor_id, message, created_at)
                    VALUES (%s, %s, %s, %s, %s)
                    """,
                    (event.level.value, event.operation, event.actor_id or None, event.message, event.created_at),
                )
                conn.commit()

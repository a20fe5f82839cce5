"""Postgres-backed credential store for TryLog accounts.

Expected schema::

    accounts(account_id text primary key, email text unique (stored lower-case),
             full_name text, password_hash text, email_confirmed boolean,
             deleted boolean, created_at timestamptz, updated_at timestamptz)
    security_tokens(token_hash text primary key, account_id text references accounts,
                    purpose text, expires_at timestamptz, consumed_at timestamptz null)
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any

from psycopg import Cursor
from psycopg.rows import tuple_row
from psycopg_pool import ConnectionPool

from .domain.account import Account
from .domain.contracts import CreateAccountInput, StoreOutcome, TokenPurpose
from .security.lockout import FailedAttemptTracker
from .security.passwords import hash_password, password_policy_errors, verify_password
from .security.redis_lockout import RedisFailedAttemptTracker
from .security.tokens import generate_security_token, hash_security_token

logger = logging.getLogger(__name__)

_ACCOUNT_COLUMNS = "account_id, email, full_name, created_at, updated_at, email_confirmed, deleted"


class PostgresCredentialStore:
    """Account persistence, password hashing and single-use tokens on Postgres."""

    def __init__(
        self,
        pool: ConnectionPool,
        tracker: FailedAttemptTracker | RedisFailedAttemptTracker,
        *,
        token_ttl_seconds: int = 86400,
    ) -> None:
        """Store the connection pool and lockout tracker used for all interactions."""
        self._pool = pool
        self._tracker = tracker
        self._token_ttl = timedelta(seconds=token_ttl_seconds)

    def create_account(
        self, payload: CreateAccountInput, password: str
    ) -> tuple[Account | None, StoreOutcome]:
        """Insert a new, inactive account or report why it was rejected."""
        errors = password_policy_errors(password)
        if errors:
            return None, StoreOutcome.failed(*errors)

        account_id = str(uuid.uuid4())
        now = datetime.now(timezone.utc)
        with self._pool.connection() as conn:
            with conn.cursor(row_factory=tuple_row) as cur:
                cur.execute(
                    f"""
                    INSERT INTO accounts (account_id, email, full_name, password_hash,
                                          email_confirmed, deleted, created_at, updated_at)
                    VALUES (%s, %s, %s, %s, FALSE, TRUE, %s, %s)
                    ON CONFLICT (email) DO NOTHING
                    RETURNING {_ACCOUNT_COLUMNS}
                    """,
                    (
                        account_id,
                        payload.email.lower(),
                        payload.full_name,
                        hash_password(password),
                        now,
                        now,
                    ),
                )
                row = cur.fetchone()
                conn.commit()
        if row is None:
            return None, StoreOutcome.failed("DuplicateEmail")
        return self._map_record(row), StoreOutcome.success()

    def find_by_email(self, email: str) -> Account | None:
        return self._find_one("email = %s", email.lower())

    def find_by_id(self, account_id: str) -> Account | None:
        return self._find_one("account_id = %s", account_id)

    def _find_one(self, clause: str, value: str) -> Account | None:
        with self._pool.connection() as conn:
            with conn.cursor(row_factory=tuple_row) as cur:
                cur.execute(f"SELECT {_ACCOUNT_COLUMNS} FROM accounts WHERE {clause}", (value,))
                row = cur.fetchone()
                if not row:
                    return None
        return self._map_record(row)

    def _map_record(self, row: tuple) -> Account:
        """Convert a raw database tuple into the domain ``Account`` dataclass."""
        return Account(
            account_id=row[0],
            email=row[1],
            full_name=row[2],
            created_at=row[3],
            updated_at=row[4],
            email_confirmed=row[5],
            deleted=row[6],
        )

    def _password_hash(self, cur: Cursor[Any], account_id: str) -> str | None:
        cur.execute("SELECT password_hash FROM accounts WHERE account_id = %s", (account_id,))
        row = cur.fetchone()
        return row[0] if row else None

    def check_password(self, account: Account, password: str) -> bool:
        with self._pool.connection() as conn:
            with conn.cursor(row_factory=tuple_row) as cur:
                stored = self._password_hash(cur, account.account_id)
        return stored is not None and verify_password(password, stored)

    def change_password(self, account: Account, current: str, new: str) -> StoreOutcome:
        """Replace the password hash after re-validating ``current``."""
        errors = password_policy_errors(new)
        if errors:
            return StoreOutcome.failed(*errors)
        with self._pool.connection() as conn:
            with conn.cursor(row_factory=tuple_row) as cur:
                cur.execute(
                    "SELECT password_hash FROM accounts WHERE account_id = %s FOR UPDATE",
                    (account.account_id,),
                )
                row = cur.fetchone()
                if row is None or not verify_password(current, row[0]):
                    conn.rollback()
                    return StoreOutcome.failed("PasswordMismatch")
                self._set_password(cur, account.account_id, new)
                conn.commit()
        return StoreOutcome.success()

    def _set_password(self, cur: Cursor[Any], account_id: str, password: str) -> None:
        cur.execute(
            "UPDATE accounts SET password_hash = %s, updated_at = NOW() WHERE account_id = %s",
            (hash_password(password), account_id),
        )

    def generate_confirmation_token(self, account: Account) -> str:
        return self._issue_token(account, TokenPurpose.email_confirmation)

    def generate_reset_token(self, account: Account) -> str:
        return self._issue_token(account, TokenPurpose.password_reset)

    def _issue_token(self, account: Account, purpose: TokenPurpose) -> str:
        token, token_hash = generate_security_token()
        expires_at = datetime.now(timezone.utc) + self._token_ttl
        with self._pool.connection() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    INSERT INTO security_tokens (token_hash, account_id, purpose, expires_at)
                    VALUES (%s, %s, %s, %s)
                    """,
                    (token_hash, account.account_id, purpose.value, expires_at),
                )
                conn.commit()
        return token

    def _consume_token(
        self, cur: Cursor[Any], account: Account, token: str, purpose: TokenPurpose
    ) -> bool:
        """Mark the token consumed; only one concurrent caller can see a returned row."""
        cur.execute(
            """
            UPDATE security_tokens
            SET consumed_at = NOW()
            WHERE token_hash = %s AND account_id = %s AND purpose = %s
              AND consumed_at IS NULL AND expires_at > NOW()
            RETURNING token_hash
            """,
            (hash_security_token(token), account.account_id, purpose.value),
        )
        return cur.fetchone() is not None

    def confirm_email(self, account: Account, token: str) -> StoreOutcome:
        """Consume a confirmation token, confirm the email and reactivate in one transaction."""
        with self._pool.connection() as conn:
            with conn.cursor(row_factory=tuple_row) as cur:
                if not self._consume_token(cur, account, token, TokenPurpose.email_confirmation):
                    conn.rollback()
                    return StoreOutcome.failed("InvalidToken")
                cur.execute(
                    """
                    UPDATE accounts
                    SET email_confirmed = TRUE, deleted = FALSE, updated_at = NOW()
                    WHERE account_id = %s
                    """,
                    (account.account_id,),
                )
                conn.commit()
        return StoreOutcome.success()

    def reset_password(self, account: Account, token: str, new_password: str) -> StoreOutcome:
        """Consume a reset token and set the new password in one transaction."""
        errors = password_policy_errors(new_password)
        if errors:
            return StoreOutcome.failed(*errors)
        with self._pool.connection() as conn:
            with conn.cursor(row_factory=tuple_row) as cur:
                if not self._consume_token(cur, account, token, TokenPurpose.password_reset):
                    conn.rollback()
                    return StoreOutcome.failed("InvalidToken")
                self._set_password(cur, account.account_id, new_password)
                cur.execute(
                    """
                    UPDATE security_tokens
                    SET consumed_at = NOW()
                    WHERE account_id = %s AND purpose = %s AND consumed_at IS NULL
                    """,
                    (account.account_id, TokenPurpose.password_reset.value),
                )
                conn.commit()
        return StoreOutcome.success()

    def sign_in(self, email: str, password: str, lockout_on_failure: bool) -> StoreOutcome:
        """Verify credentials, counting failures towards a temporary lockout."""
        key = email.lower()
        if self._tracker.is_locked_out(key):
            logger.warning("sign-in refused for locked out login")
            return StoreOutcome.failed("LockedOut")

        with self._pool.connection() as conn:
            with conn.cursor(row_factory=tuple_row) as cur:
                cur.execute("SELECT password_hash FROM accounts WHERE email = %s", (key,))
                row = cur.fetchone()

        if row is not None and verify_password(password, row[0]):
            self._tracker.reset(key)
            return StoreOutcome.success()

        if lockout_on_failure and self._tracker.register_failure(key):
            logger.warning("login locked out after repeated failures")
        return StoreOutcome.failed("InvalidCredentials")

    def update_account(self, account: Account) -> StoreOutcome:
        with self._pool.connection() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    UPDATE accounts
                    SET full_name = %s, email_confirmed = %s, deleted = %s, updated_at = %s
                    WHERE account_id = %s
                    """,
                    (
                        account.full_name,
                        account.email_confirmed,
                        account.deleted,
                        account.updated_at,
                        account.account_id,
                    ),
                )
                updated = cur.rowcount
                conn.commit()
        if updated == 0:
            return StoreOutcome.failed("AccountNotFound")
        return StoreOutcome.success()

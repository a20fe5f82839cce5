from __future__ import annotations

import re
import uuid
from dataclasses import dataclass, replace
from datetime import datetime, timedelta, timezone
from threading import Lock

import pytest

from trylog_identity.config import get_settings
from trylog_identity.domain.account import Account
from trylog_identity.domain.contracts import CreateAccountInput, StoreOutcome, TokenPurpose
from trylog_identity.domain.service import AccountLifecycleService
from trylog_identity.mail import LogEmailNotifier
from trylog_identity.security.lockout import FailedAttemptTracker
from trylog_identity.security.passwords import hash_password, password_policy_errors, verify_password
from trylog_identity.security.tokens import generate_security_token, hash_security_token


@dataclass
class FakeSecurityToken:
    account_id: str
    purpose: TokenPurpose
    expires_at: datetime
    consumed_at: datetime | None = None


class FakeCredentialStore:
    """In-memory credential store mimicking Postgres-backed behaviors."""

    def __init__(self, tracker: FailedAttemptTracker | None = None) -> None:
        self._accounts: dict[str, Account] = {}
        self._hashes: dict[str, str] = {}
        self.tokens: dict[str, FakeSecurityToken] = {}
        self.tracker = tracker or FailedAttemptTracker(max_failures=5, window_seconds=300)
        self.update_calls = 0
        self._lock = Lock()

    def create_account(self, payload: CreateAccountInput, password: str):
        errors = password_policy_errors(password)
        if errors:
            return None, StoreOutcome.failed(*errors)
        if self.find_by_email(payload.email) is not None:
            return None, StoreOutcome.failed("DuplicateEmail")
        now = datetime.now(timezone.utc)
        account = Account(
            account_id=str(uuid.uuid4()),
            email=payload.email.lower(),
            full_name=payload.full_name,
            created_at=now,
            updated_at=now,
        )
        self._accounts[account.account_id] = account
        self._hashes[account.account_id] = hash_password(password)
        return replace(account), StoreOutcome.success()

    def find_by_email(self, email: str):
        for account in self._accounts.values():
            if account.email == email.lower():
                return replace(account)
        return None

    def find_by_id(self, account_id: str):
        account = self._accounts.get(account_id)
        return replace(account) if account else None

    def check_password(self, account: Account, password: str) -> bool:
        stored = self._hashes.get(account.account_id)
        return stored is not None and verify_password(password, stored)

    def change_password(self, account: Account, current: str, new: str) -> StoreOutcome:
        errors = password_policy_errors(new)
        if errors:
            return StoreOutcome.failed(*errors)
        if not self.check_password(account, current):
            return StoreOutcome.failed("PasswordMismatch")
        self._hashes[account.account_id] = hash_password(new)
        return StoreOutcome.success()

    def _issue(self, account: Account, purpose: TokenPurpose) -> str:
        token, token_hash = generate_security_token()
        self.tokens[token_hash] = FakeSecurityToken(
            account_id=account.account_id,
            purpose=purpose,
            expires_at=datetime.now(timezone.utc) + timedelta(days=1),
        )
        return token

    def generate_confirmation_token(self, account: Account) -> str:
        return self._issue(account, TokenPurpose.email_confirmation)

    def generate_reset_token(self, account: Account) -> str:
        return self._issue(account, TokenPurpose.password_reset)

    def _consume(self, account: Account, token: str, purpose: TokenPurpose) -> bool:
        with self._lock:
            record = self.tokens.get(hash_security_token(token))
            now = datetime.now(timezone.utc)
            if (
                record is None
                or record.account_id != account.account_id
                or record.purpose != purpose
                or record.consumed_at is not None
                or record.expires_at <= now
            ):
                return False
            record.consumed_at = now
            return True

    def confirm_email(self, account: Account, token: str) -> StoreOutcome:
        if not self._consume(account, token, TokenPurpose.email_confirmation):
            return StoreOutcome.failed("InvalidToken")
        stored = self._accounts[account.account_id]
        stored.email_confirmed = True
        stored.deleted = False
        stored.updated_at = datetime.now(timezone.utc)
        return StoreOutcome.success()

    def reset_password(self, account: Account, token: str, new_password: str) -> StoreOutcome:
        errors = password_policy_errors(new_password)
        if errors:
            return StoreOutcome.failed(*errors)
        if not self._consume(account, token, TokenPurpose.password_reset):
            return StoreOutcome.failed("InvalidToken")
        self._hashes[account.account_id] = hash_password(new_password)
        for record in self.tokens.values():
            if record.account_id == account.account_id and record.purpose == TokenPurpose.password_reset:
                record.consumed_at = record.consumed_at or datetime.now(timezone.utc)
        return StoreOutcome.success()

    def sign_in(self, email: str, password: str, lockout_on_failure: bool) -> StoreOutcome:
        key = email.lower()
        if self.tracker.is_locked_out(key):
            return StoreOutcome.failed("LockedOut")
        account = self.find_by_email(email)
        if account is not None and self.check_password(account, password):
            self.tracker.reset(key)
            return StoreOutcome.success()
        if lockout_on_failure:
            self.tracker.register_failure(key)
        return StoreOutcome.failed("InvalidCredentials")

    def update_account(self, account: Account) -> StoreOutcome:
        if account.account_id not in self._accounts:
            return StoreOutcome.failed("AccountNotFound")
        self.update_calls += 1
        self._accounts[account.account_id] = replace(account)
        return StoreOutcome.success()


CODE_PATTERN = re.compile(r"code=([A-Za-z0-9_-]+)")
NEW_PASSWORD_PATTERN = re.compile(r"Your new password is: (\S+)")


def last_code(notifier: LogEmailNotifier) -> str:
    """Return the transport-encoded token from the most recent email."""
    match = CODE_PATTERN.search(notifier.outbox[-1].get_content())
    assert match is not None
    return match.group(1)


@pytest.fixture
def store() -> FakeCredentialStore:
    return FakeCredentialStore()


@pytest.fixture
def notifier() -> LogEmailNotifier:
    return LogEmailNotifier()


@pytest.fixture
def settings():
    return replace(get_settings(), jwt_secret="test-secret-0123456789abcdef0123456789", jwt_hours=2)


@pytest.fixture
def service(store, notifier, settings) -> AccountLifecycleService:
    return AccountLifecycleService(store, notifier, settings)

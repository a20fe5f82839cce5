"""Account lifecycle service orchestrating the credential store, tokens and notifications."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone

from . import messages
from .account import Account
from .contracts import (
    CallerSession,
    CreateAccountInput,
    CredentialStore,
    EmailNotifier,
    ProfileUpdateInput,
)
from .exceptions import (
    AccountStateError,
    AccountValidationError,
    NotAuthenticatedError,
    TokenFormatError,
)
from ..config import Settings, get_settings
from ..security.codec import decode_from_transport, encode_for_transport
from ..security.passwords import generate_random_password
from ..security.tokens import issue_access_token

logger = logging.getLogger(__name__)

WAITING_FOR_ACTIVATION = "Waiting for activation."
ALREADY_AUTHENTICATED = "User already authenticated."
INACTIVE_ACCOUNT = "Inactive status account."
WRONG_CREDENTIALS = "Wrong email or password."
SAME_PASSWORD = "New password should be different than current password."
PASSWORD_NOT_CHANGED = "Could not change password."
PASSWORD_CHANGED = "New password registered."


@dataclass(slots=True)
class RegistrationResult:
    status: int
    message: str


@dataclass(slots=True)
class LoginResult:
    """Outcome of a login attempt; ``result`` holds the bearer token on success."""

    result: str
    message: str

    @property
    def succeeded(self) -> bool:
        return self.result != "Failed"


@dataclass(slots=True)
class ChangePasswordResult:
    code: int
    description: str


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _local_time(value: datetime) -> str:
    return f"{value.astimezone():%Y-%m-%d %H:%M:%S %Z}"


def _validate_full_name(full_name: str) -> None:
    if not full_name or not full_name.strip():
        raise AccountValidationError("Full name is required.")
    if len(full_name) > 200:
        raise AccountValidationError("Full name must be at most 200 characters.")


class AccountLifecycleService:
    """Registration, activation, authentication and recovery workflows for TryLog accounts."""

    def __init__(
        self,
        store: CredentialStore,
        notifier: EmailNotifier,
        settings: Settings | None = None,
    ) -> None:
        """Store dependencies used to orchestrate persistence, tokens and email."""
        self._store = store
        self._notifier = notifier
        self._settings = settings or get_settings()

    def register(
        self, email: str, password: str, full_name: str, activation_callback: str
    ) -> RegistrationResult:
        """Create an inactive account and email its activation link."""
        try:
            _validate_full_name(full_name)
        except AccountValidationError as exc:
            return RegistrationResult(400, str(exc))
        account, outcome = self._store.create_account(
            CreateAccountInput(email=email, full_name=full_name), password
        )
        if not outcome.succeeded or account is None:
            logger.warning("account registration rejected: %s", outcome)
            return RegistrationResult(400, str(outcome))

        token = self._confirmation_token(account)
        body = messages.render(
            messages.ACCOUNT_EMAIL_ACTIVATION,
            account.full_name,
            activation_callback,
            account.email,
            token,
        )
        self._notifier.send(account.display_name, account.email, "Account activation.", body)
        logger.info("account %s registered, activation pending", account.account_id)
        return RegistrationResult(201, WAITING_FOR_ACTIVATION)

    def activate(self, email: str, encoded_token: str) -> bool:
        """Confirm the account email and lift the deactivation flag."""
        account = self._store.find_by_email(email)
        if account is None:
            return False
        if account.email_confirmed and not account.deleted:
            return True

        token = self._decode(encoded_token)
        if token is None:
            return False
        # the store consumes the token and clears ``deleted`` in one transaction
        outcome = self._store.confirm_email(account, token)
        if not outcome.succeeded:
            logger.info("activation token rejected for %s: %s", account.account_id, outcome)
            return False

        logger.info("account %s activated", account.account_id)
        return True

    def send_reactivation_email(
        self, email: str, password: str, callback: str, session: CallerSession
    ) -> bool:
        """Email a fresh activation link to a deactivated account.

        Returns ``True`` once the account guards pass, whether or not the
        password matched, so callers cannot test passwords through this call.
        """
        if self._signed_in_account(session) is not None:
            return False
        account = self._store.find_by_email(email)
        if account is None or not account.deleted:
            return False

        if self._store.check_password(account, password):
            token = self._confirmation_token(account)
            body = messages.render(
                messages.ACCOUNT_REACTIVATION,
                account.full_name,
                callback,
                account.email,
                token,
            )
            self._notifier.send(
                account.display_name, account.email, "Account Re-activation.", body
            )
            logger.info("reactivation email sent for %s", account.account_id)
        else:
            logger.info("reactivation requested for %s with wrong password", account.account_id)
        return True

    def login(self, email: str, password: str, session: CallerSession) -> LoginResult:
        """Check credentials and issue a bearer token."""
        if self._signed_in_account(session) is not None:
            return LoginResult("Success", ALREADY_AUTHENTICATED)

        account = self._store.find_by_email(email)
        if account is not None and account.deleted:
            return LoginResult("Failed", INACTIVE_ACCOUNT)

        outcome = self._store.sign_in(email, password, lockout_on_failure=True)
        if not outcome.succeeded or account is None:
            logger.info("sign-in failed: %s", outcome)
            return LoginResult("Failed", WRONG_CREDENTIALS)

        issued = issue_access_token(account, self._settings)
        return LoginResult(issued.token, issued.expiry_message)

    def update(self, profile_edits: ProfileUpdateInput, session: CallerSession) -> bool:
        _validate_full_name(profile_edits.full_name)
        account = self._current_account(session)
        account.full_name = profile_edits.full_name
        account.updated_at = _now()
        outcome = self._store.update_account(account)
        if not outcome.succeeded:
            logger.warning("profile update failed for %s: %s", account.account_id, outcome)
        return outcome.succeeded

    def get(self, session: CallerSession) -> Account:
        return self._current_account(session)

    def change_password(
        self, current: str, new: str, session: CallerSession
    ) -> ChangePasswordResult:
        """Replace the caller's password after the store re-validates the current one."""
        if current == new:
            return ChangePasswordResult(409, SAME_PASSWORD)

        account = self._current_account(session)
        outcome = self._store.change_password(account, current, new)
        if not outcome.succeeded:
            logger.warning("password change failed for %s: %s", account.account_id, outcome)
            return ChangePasswordResult(400, PASSWORD_NOT_CHANGED)

        account.updated_at = _now()
        self._store.update_account(account)
        return ChangePasswordResult(200, PASSWORD_CHANGED)

    def confirm_token_password_reset(self, account_id: str, encoded_token: str) -> bool:
        """Consume a reset token, assign a random password and email it to the owner."""
        account = self._store.find_by_id(account_id)
        if account is None:
            return False
        token = self._decode(encoded_token)
        if token is None:
            return False

        new_password = generate_random_password()
        outcome = self._store.reset_password(account, token, new_password)
        if not outcome.succeeded:
            logger.info("password reset token rejected for %s: %s", account.account_id, outcome)
            return False

        body = messages.render(
            messages.PASSWORD_CHANGE_CONFIRMATION,
            account.email,
            new_password,
            _local_time(account.created_at),
        )
        self._notifier.send(
            account.display_name, account.email, "Password change confirmation.", body
        )
        logger.info("password reset completed for %s", account.account_id)
        return True

    def reset_password(self, email: str, callback: str) -> bool:
        """Email a password reset link; the password itself is untouched."""
        account = self._store.find_by_email(email)
        if account is None:
            return False

        token = encode_for_transport(self._store.generate_reset_token(account).encode("utf-8"))
        body = messages.render(
            messages.PASSWORD_RESET_CONFIRMATION,
            callback,
            account.account_id,
            token,
            _local_time(account.created_at),
            account.email,
        )
        self._notifier.send(
            account.display_name, account.email, "Password Reset Confirmation.", body
        )
        logger.info("password reset requested for %s", account.account_id)
        return True

    def delete(self, password: str, session: CallerSession) -> str | None:
        """Soft-delete the caller's account and end the session."""
        account = self._current_account(session)
        if not self._store.check_password(account, password):
            return None

        account.deleted = True
        account.email_confirmed = False
        account.updated_at = _now()
        outcome = self._store.update_account(account)
        session.end()
        logger.info("account %s deactivated: %s", account.account_id, outcome)
        return str(outcome)

    def _current_account(self, session: CallerSession) -> Account:
        if not session.is_authenticated or session.email is None:
            raise NotAuthenticatedError("an authenticated caller is required")
        account = self._store.find_by_email(session.email)
        if account is None:
            raise AccountStateError("authenticated caller has no account record")
        if account.deleted:
            raise NotAuthenticatedError("account is deactivated")
        return account

    def _signed_in_account(self, session: CallerSession) -> Account | None:
        """Return the caller's account when the session belongs to an active account."""
        if not session.is_authenticated or session.email is None:
            return None
        account = self._store.find_by_email(session.email)
        if account is None or account.deleted:
            return None
        return account

    def _confirmation_token(self, account: Account) -> str:
        token = self._store.generate_confirmation_token(account)
        return encode_for_transport(token.encode("utf-8"))

    @staticmethod
    def _decode(encoded_token: str) -> str | None:
        try:
            return decode_from_transport(encoded_token).decode("utf-8")
        except (TokenFormatError, UnicodeDecodeError):
            return None

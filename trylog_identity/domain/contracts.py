"""Domain-level request contracts shared by multiple layers."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Protocol

from .account import Account


class TokenPurpose(str, Enum):
    email_confirmation = "email-confirmation"
    password_reset = "password-reset"


@dataclass(slots=True)
class CreateAccountInput:
    """Profile values required to register an account."""

    email: str
    full_name: str


@dataclass(slots=True)
class ProfileUpdateInput:
    full_name: str


@dataclass(slots=True)
class StoreOutcome:
    """Result of a credential store mutation, modelled on identity result codes."""

    succeeded: bool
    errors: tuple[str, ...] = ()

    @classmethod
    def success(cls) -> "StoreOutcome":
        return cls(succeeded=True)

    @classmethod
    def failed(cls, *errors: str) -> "StoreOutcome":
        return cls(succeeded=False, errors=tuple(errors))

    def __str__(self) -> str:
        if self.succeeded:
            return "Succeeded"
        return "Failed : " + ",".join(self.errors)


@dataclass(slots=True)
class CallerSession:
    """Identity of the caller for a single request.

    Bearer tokens are stateless, so ending a session only marks it ended for the
    remainder of the request; the HTTP layer tells the client to drop its token.
    """

    email: str | None = None
    ended: bool = field(default=False)

    @property
    def is_authenticated(self) -> bool:
        return self.email is not None and not self.ended

    def end(self) -> None:
        self.ended = True


class CredentialStore(Protocol):
    """Persistence and credential primitives consumed by the lifecycle service."""

    def create_account(
        self, payload: CreateAccountInput, password: str
    ) -> tuple[Account | None, StoreOutcome]: ...

    def find_by_email(self, email: str) -> Account | None: ...

    def find_by_id(self, account_id: str) -> Account | None: ...

    def check_password(self, account: Account, password: str) -> bool: ...

    def change_password(self, account: Account, current: str, new: str) -> StoreOutcome: ...

    def reset_password(self, account: Account, token: str, new_password: str) -> StoreOutcome: ...

    def generate_confirmation_token(self, account: Account) -> str: ...

    def confirm_email(self, account: Account, token: str) -> StoreOutcome:
        """Consume a confirmation token, then mark the email confirmed and clear ``deleted``."""
        ...

    def generate_reset_token(self, account: Account) -> str: ...

    def sign_in(self, email: str, password: str, lockout_on_failure: bool) -> StoreOutcome: ...

    def update_account(self, account: Account) -> StoreOutcome: ...


class EmailNotifier(Protocol):
    def send(self, display_name: str, address: str, subject: str, body: str) -> None: ...

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime


@dataclass(slots=True)
class Account:
    """Aggregate root for a TryLog user identity.

    The password hash is owned by the credential store and never travels on
    this object. Freshly registered accounts start out deleted and unconfirmed.
    """

    account_id: str
    email: str
    full_name: str
    created_at: datetime
    updated_at: datetime
    email_confirmed: bool = False
    deleted: bool = True

    @property
    def display_name(self) -> str:
        return self.full_name or self.email

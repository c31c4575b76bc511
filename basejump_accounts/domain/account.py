from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any


class AccountRole(str, Enum):
    owner = "owner"
    member = "member"


@dataclass(slots=True)
class Account:
    """Aggregate root for a personal or team account."""

    id: str
    primary_owner_user_id: str
    name: str | None = None
    slug: str | None = None
    personal_account: bool = False
    private_metadata: dict[str, Any] = field(default_factory=dict)
    public_metadata: dict[str, Any] = field(default_factory=dict)
    created_at: datetime | None = None
    updated_at: datetime | None = None
    created_by: str | None = None
    updated_by: str | None = None


@dataclass(slots=True)
class Membership:
    """Association of a user to an account with a single role."""

    user_id: str
    account_id: str
    account_role: AccountRole

    @property
    def key(self) -> tuple[str, str]:
        return self.user_id, self.account_id

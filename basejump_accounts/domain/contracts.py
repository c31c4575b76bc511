"""Domain-level request contracts shared by multiple layers."""

from __future__ import annotations

from collections.abc import Collection, Sequence
from dataclasses import dataclass, field
from typing import Any, Protocol

from .account import Account, AccountRole, Membership


@dataclass(frozen=True, slots=True)
class CallerContext:
    """Identity of the actor performing an operation.

    ``user_id`` is ``None`` for anonymous callers and for system actors that do
    not act on behalf of a user. ``privileged`` marks service-level callers that
    bypass role checks and may change protected account fields.
    """

    user_id: str | None = None
    privileged: bool = False

    @property
    def is_authenticated(self) -> bool:
        return self.user_id is not None or self.privileged

    @classmethod
    def anonymous(cls) -> "CallerContext":
        return cls()

    @classmethod
    def for_user(cls, user_id: str) -> "CallerContext":
        return cls(user_id=user_id)

    @classmethod
    def system(cls) -> "CallerContext":
        return cls(privileged=True)


@dataclass(slots=True)
class CreateAccountInput:
    """Validated inputs required to create an account."""

    name: str | None = None
    slug: str | None = None
    personal_account: bool = False
    primary_owner_user_id: str | None = None
    account_id: str | None = None
    created_by: str | None = None
    public_metadata: dict[str, Any] = field(default_factory=dict)
    private_metadata: dict[str, Any] = field(default_factory=dict)


class AccountPersistence(Protocol):
    """Storage operations the account store relies on.

    Implementations own uniqueness of account ids, slugs and
    ``(user_id, account_id)`` pairs, and cascade membership removal when an
    account is deleted.
    """

    def insert_account(self, account: Account, memberships: Sequence[Membership] = ()) -> Account:
        ...

    def fetch_account(self, account_id: str) -> Account | None:
        ...

    def fetch_accounts_for_user(self, user_id: str) -> list[Account]:
        ...

    def save_account(self, account: Account) -> Account | None:
        ...

    def delete_account(self, account_id: str) -> bool:
        ...

    def list_account_users(self, account_id: str) -> list[Membership]:
        ...

    def fetch_account_user(self, account_id: str, user_id: str) -> Membership | None:
        ...

    def insert_account_user(self, membership: Membership) -> Membership:
        ...

    def update_account_user(self, membership: Membership) -> Membership | None:
        ...

    def delete_account_user(self, account_id: str, user_id: str) -> bool:
        ...

    def has_role_on_account(
        self, account_id: str, user_id: str, roles: Collection[AccountRole]
    ) -> bool:
        ...

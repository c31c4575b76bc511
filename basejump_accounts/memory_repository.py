"""In-memory account persistence."""

from __future__ import annotations

from collections.abc import Collection, Sequence
from dataclasses import replace
from threading import Lock

from .domain.account import Account, AccountRole, Membership
from .domain.errors import (
    DuplicateAccountError,
    DuplicateMembershipError,
    DuplicateSlugError,
    NotFoundError,
)

_ROLE_ORDER = {AccountRole.owner: 0, AccountRole.member: 1}


def _member_sort_key(membership: Membership) -> tuple[int, str]:
    return _ROLE_ORDER[membership.account_role], membership.user_id


def _copy_account(account: Account) -> Account:
    return replace(
        account,
        private_metadata=dict(account.private_metadata),
        public_metadata=dict(account.public_metadata),
    )


class InMemoryAccountRepository:
    """Thread-safe store mirroring the constraints of the Postgres schema.

    A single lock serialises writes so that uniqueness checks and inserts are
    atomic; a failed multi-row insert leaves no rows behind.
    """

    def __init__(self) -> None:
        self._accounts: dict[str, Account] = {}
        self._members: dict[tuple[str, str], Membership] = {}
        self._lock = Lock()

    def _slug_taken(self, slug: str | None, exclude_id: str | None = None) -> bool:
        if slug is None:
            return False
        return any(
            account.slug == slug and account.id != exclude_id for account in self._accounts.values()
        )

    def insert_account(self, account: Account, memberships: Sequence[Membership] = ()) -> Account:
        with self._lock:
            if account.id in self._accounts:
                raise DuplicateAccountError(account.id)
            if self._slug_taken(account.slug):
                raise DuplicateSlugError(account.slug)
            keys: set[tuple[str, str]] = set()
            for membership in memberships:
                if membership.account_id != account.id:
                    raise NotFoundError(f"account not found: {membership.account_id}")
                if membership.key in keys:
                    raise DuplicateMembershipError(membership.user_id, membership.account_id)
                keys.add(membership.key)

            stored = _copy_account(account)
            self._accounts[stored.id] = stored
            for membership in memberships:
                self._members[membership.key] = replace(membership)
            return _copy_account(stored)

    def fetch_account(self, account_id: str) -> Account | None:
        with self._lock:
            account = self._accounts.get(account_id)
            return _copy_account(account) if account else None

    def fetch_accounts_for_user(self, user_id: str) -> list[Account]:
        with self._lock:
            ids = {account_id for (member, account_id) in self._members if member == user_id}
            accounts = [_copy_account(self._accounts[account_id]) for account_id in ids]
        # NULL names sort last, as ORDER BY a.name does in Postgres.
        accounts.sort(
            key=lambda account: (
                not account.personal_account,
                account.name is None,
                account.name or "",
                account.id,
            )
        )
        return accounts

    def save_account(self, account: Account) -> Account | None:
        with self._lock:
            if account.id not in self._accounts:
                return None
            if self._slug_taken(account.slug, exclude_id=account.id):
                raise DuplicateSlugError(account.slug)
            self._accounts[account.id] = _copy_account(account)
            return _copy_account(account)

    def delete_account(self, account_id: str) -> bool:
        with self._lock:
            if self._accounts.pop(account_id, None) is None:
                return False
            for key in [key for key in self._members if key[1] == account_id]:
                del self._members[key]
            return True

    def list_account_users(self, account_id: str) -> list[Membership]:
        with self._lock:
            members = [replace(m) for m in self._members.values() if m.account_id == account_id]
        members.sort(key=_member_sort_key)
        return members

    def fetch_account_user(self, account_id: str, user_id: str) -> Membership | None:
        with self._lock:
            membership = self._members.get((user_id, account_id))
            return replace(membership) if membership else None

    def insert_account_user(self, membership: Membership) -> Membership:
        with self._lock:
            if membership.account_id not in self._accounts:
                raise NotFoundError(f"account not found: {membership.account_id}")
            if membership.key in self._members:
                raise DuplicateMembershipError(membership.user_id, membership.account_id)
            self._members[membership.key] = replace(membership)
            return replace(membership)

    def update_account_user(self, membership: Membership) -> Membership | None:
        with self._lock:
            if membership.key not in self._members:
                return None
            self._members[membership.key] = replace(membership)
            return replace(membership)

    def delete_account_user(self, account_id: str, user_id: str) -> bool:
        with self._lock:
            return self._members.pop((user_id, account_id), None) is not None

    def has_role_on_account(
        self, account_id: str, user_id: str, roles: Collection[AccountRole]
    ) -> bool:
        with self._lock:
            membership = self._members.get((user_id, account_id))
        return membership is not None and membership.account_role in roles

"""Role-based access checks in front of the account store."""

from __future__ import annotations

import logging
from collections.abc import Collection, Mapping
from typing import Any

from .account import Account, AccountRole, Membership
from .contracts import CallerContext, CreateAccountInput
from .errors import AccountPermissionError
from .roles import ANY_ROLE, OWNER_ONLY, RoleResolver
from .store import AccountStore

logger = logging.getLogger(__name__)


class PolicyGate:
    """Evaluate the access policy for a caller before touching the store.

    Reads of an account or its member list require any role on the account.
    Updating the account and inserting, updating or deleting memberships
    require the owner role. Any authenticated caller may create an account.
    Privileged callers bypass every check. A denied call performs no mutation.
    """

    def __init__(
        self,
        store: AccountStore,
        resolver: RoleResolver,
        *,
        enable_team_accounts: bool = True,
    ) -> None:
        self._store = store
        self._resolver = resolver
        self._enable_team_accounts = enable_team_accounts

    def _require(
        self, ctx: CallerContext, account_id: str, roles: Collection[AccountRole], action: str
    ) -> None:
        if ctx.privileged:
            return
        if not self._resolver.has_role(account_id, ctx.user_id, roles):
            logger.warning(
                "access denied action=%s account=%s user=%s", action, account_id, ctx.user_id
            )
            raise AccountPermissionError(f"not allowed to {action} on account {account_id}")

    def create_account(self, ctx: CallerContext, payload: CreateAccountInput) -> Account:
        if not ctx.is_authenticated:
            raise AccountPermissionError("authentication required to create an account")
        if not ctx.privileged and not payload.personal_account and not self._enable_team_accounts:
            raise AccountPermissionError("team accounts are disabled")
        return self._store.create(payload, ctx)

    def get_account(self, ctx: CallerContext, account_id: str) -> Account:
        self._require(ctx, account_id, ANY_ROLE, "read account")
        return self._store.get(account_id)

    def list_accounts(self, ctx: CallerContext) -> list[Account]:
        """Return the accounts on which the caller holds any role."""
        if ctx.user_id is None:
            return []
        return self._store.list_accounts_for_user(ctx.user_id)

    def update_account(
        self, ctx: CallerContext, account_id: str, changes: Mapping[str, Any]
    ) -> Account:
        self._require(ctx, account_id, OWNER_ONLY, "update account")
        return self._store.update(account_id, changes, ctx)

    def delete_account(self, ctx: CallerContext, account_id: str) -> None:
        # no role grants deletion; only service callers may remove accounts
        if not ctx.privileged:
            raise AccountPermissionError(f"not allowed to delete account {account_id}")
        self._store.delete(account_id)

    def current_role(self, ctx: CallerContext, account_id: str) -> AccountRole | None:
        return self._resolver.role_of(account_id, ctx.user_id)

    def list_members(self, ctx: CallerContext, account_id: str) -> list[Membership]:
        self._require(ctx, account_id, ANY_ROLE, "list members")
        return self._store.list_members(account_id)

    def add_member(
        self, ctx: CallerContext, account_id: str, user_id: str, role: AccountRole
    ) -> Membership:
        self._require(ctx, account_id, OWNER_ONLY, "add member")
        return self._store.add_member(account_id, user_id, role)

    def update_member(
        self, ctx: CallerContext, account_id: str, user_id: str, role: AccountRole
    ) -> Membership:
        self._require(ctx, account_id, OWNER_ONLY, "update member")
        return self._store.update_member(account_id, user_id, role)

    def remove_member(self, ctx: CallerContext, account_id: str, user_id: str) -> None:
        self._require(ctx, account_id, OWNER_ONLY, "remove member")
        self._store.remove_member(account_id, user_id)

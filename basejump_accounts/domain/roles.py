from __future__ import annotations

from collections.abc import Collection

from .account import AccountRole
from .contracts import AccountPersistence

ANY_ROLE = frozenset({AccountRole.owner, AccountRole.member})
OWNER_ONLY = frozenset({AccountRole.owner})


class RoleResolver:
    """Answers whether a user holds one of a set of roles on an account."""

    def __init__(self, repository: AccountPersistence) -> None:
        self._repository = repository

    def has_role(
        self, account_id: str, user_id: str | None, allowed_roles: Collection[AccountRole]
    ) -> bool:
        """Return ``True`` iff a membership for the pair exists with a role in ``allowed_roles``.

        Missing accounts, missing memberships and anonymous users yield ``False``.
        """
        if user_id is None or not allowed_roles:
            return False
        roles = frozenset(AccountRole(role) for role in allowed_roles)
        return self._repository.has_role_on_account(account_id, user_id, roles)

    def role_of(self, account_id: str, user_id: str | None) -> AccountRole | None:
        if user_id is None:
            return None
        membership = self._repository.fetch_account_user(account_id, user_id)
        return membership.account_role if membership else None

"""Account lifecycle hooks: personal accounts at sign-up and first owners on creation."""

from __future__ import annotations

import logging

from .account import Account, AccountRole, Membership
from .contracts import CallerContext, CreateAccountInput
from .slug import name_from_email
from .store import AccountStore

logger = logging.getLogger(__name__)

OWNER_MEMBERSHIP_HOOK = "add_creator_as_owner"


class AccountLifecycle:
    """Creates the memberships and accounts that follow from identity events."""

    def __init__(self, store: AccountStore) -> None:
        self._store = store
        store.add_post_insert_hook(OWNER_MEMBERSHIP_HOOK, self.on_account_created)

    def on_user_registered(self, user_id: str, email: str | None) -> Account:
        """Create the personal account and owner membership for a new user.

        Both rows are written in one transaction. A replay for the same user
        raises :class:`~basejump_accounts.domain.errors.DuplicateAccountError`.
        A missing email leaves the account name empty.
        """
        payload = CreateAccountInput(
            name=name_from_email(email),
            personal_account=True,
            primary_owner_user_id=user_id,
            account_id=user_id,
            created_by=user_id,
        )
        owner = Membership(user_id=user_id, account_id=user_id, account_role=AccountRole.owner)
        account = self._store.create(payload, CallerContext.system(), memberships=[owner])
        logger.info("personal account provisioned user=%s", user_id)
        return account

    def on_account_created(self, account: Account, ctx: CallerContext) -> list[Membership]:
        """Return the owner membership when the creator is the declared primary owner."""
        if ctx.user_id is None or ctx.user_id != account.primary_owner_user_id:
            return []
        return [
            Membership(
                user_id=ctx.user_id,
                account_id=account.id,
                account_role=AccountRole.owner,
            )
        ]

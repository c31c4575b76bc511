"""Account store applying write hooks before delegating to persistence."""

from __future__ import annotations

import logging
import uuid
from collections.abc import Callable, Iterable, Mapping, Sequence
from dataclasses import replace
from datetime import datetime, timezone
from typing import Any

from .account import Account, AccountRole, Membership
from .contracts import AccountPersistence, CallerContext, CreateAccountInput
from .errors import AccountPermissionError, InvariantViolationError, NotFoundError
from .slug import normalize_slug

logger = logging.getLogger(__name__)

PostInsertHook = Callable[[Account, CallerContext], Iterable[Membership]]

_MUTABLE_FIELDS = frozenset({"name", "slug", "public_metadata", "private_metadata"})
_PROTECTED_FIELDS = frozenset({"id", "personal_account", "primary_owner_user_id"})


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def check_account_invariants(account: Account) -> None:
    """Raise when required columns are missing or the personal flag and slug disagree."""

    if account.primary_owner_user_id is None:
        raise InvariantViolationError("primary owner is required")
    if account.personal_account is None:
        raise InvariantViolationError("personal_account cannot be null")
    if account.personal_account and account.slug is not None:
        raise InvariantViolationError("personal accounts cannot have a slug")
    if not account.personal_account and account.slug is None:
        raise InvariantViolationError("team accounts require a slug")


class AccountStore:
    """Owns account and membership records.

    Every write runs the same hooks in a fixed order: slug normalization,
    invariant check, timestamps and user tracking, then persistence. Hooks
    registered with :meth:`add_post_insert_hook` contribute memberships that
    are written in the same transaction as the new account row. Hooks are keyed
    by name; registering a name again replaces the earlier hook.
    """

    def __init__(
        self,
        repository: AccountPersistence,
        *,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._repository = repository
        self._clock = clock or _utcnow
        self._post_insert_hooks: dict[str, PostInsertHook] = {}

    @property
    def repository(self) -> AccountPersistence:
        return self._repository

    def add_post_insert_hook(self, name: str, hook: PostInsertHook) -> None:
        self._post_insert_hooks[name] = hook

    def create(
        self,
        payload: CreateAccountInput,
        ctx: CallerContext,
        memberships: Sequence[Membership] = (),
    ) -> Account:
        """Insert a new account together with ``memberships`` and any hook-derived ones."""
        owner_id = payload.primary_owner_user_id or ctx.user_id
        if owner_id is None:
            raise InvariantViolationError("primary owner is required")

        now = self._clock()
        acting_user = payload.created_by or ctx.user_id
        account = Account(
            id=payload.account_id or str(uuid.uuid4()),
            primary_owner_user_id=owner_id,
            name=payload.name,
            slug=normalize_slug(payload.slug),
            personal_account=payload.personal_account,
            private_metadata=dict(payload.private_metadata),
            public_metadata=dict(payload.public_metadata),
            created_at=now,
            updated_at=now,
            created_by=acting_user,
            updated_by=acting_user,
        )
        check_account_invariants(account)

        pending = list(memberships)
        for hook in self._post_insert_hooks.values():
            pending.extend(hook(account, ctx))

        created = self._repository.insert_account(account, pending)
        logger.info(
            "account created id=%s personal=%s memberships=%d",
            created.id,
            created.personal_account,
            len(pending),
        )
        return created

    def get(self, account_id: str) -> Account:
        account = self._repository.fetch_account(account_id)
        if account is None:
            raise NotFoundError(f"account not found: {account_id}")
        return account

    def list_accounts_for_user(self, user_id: str) -> list[Account]:
        return self._repository.fetch_accounts_for_user(user_id)

    def update(self, account_id: str, changes: Mapping[str, Any], ctx: CallerContext) -> Account:
        """Apply a partial update to an account.

        Parameters
        ----------
        account_id:
            Identifier of the account to change.
        changes:
            Field name to new value. ``id``, ``personal_account`` and
            ``primary_owner_user_id`` may only change for privileged callers;
            ``id`` never changes.
        ctx:
            Acting caller, recorded as ``updated_by``.
        """
        unknown = set(changes) - _MUTABLE_FIELDS - _PROTECTED_FIELDS
        if unknown:
            raise InvariantViolationError(f"unknown account fields: {', '.join(sorted(unknown))}")

        current = self.get(account_id)
        touched = [
            name for name in _PROTECTED_FIELDS & set(changes) if changes[name] != getattr(current, name)
        ]
        if touched and not ctx.privileged:
            logger.warning(
                "protected account fields rejected id=%s fields=%s user=%s",
                account_id,
                sorted(touched),
                ctx.user_id,
            )
            raise AccountPermissionError("You do not have permission to update this field")
        if "id" in touched:
            raise InvariantViolationError("account id cannot be changed")

        values = {name: value for name, value in changes.items() if name != "id"}
        for name in ("public_metadata", "private_metadata"):
            if name in values:
                values[name] = dict(values[name] or {})
        updated = replace(current, **values)
        updated.slug = normalize_slug(updated.slug)
        check_account_invariants(updated)
        updated.updated_at = self._clock()
        updated.updated_by = ctx.user_id

        saved = self._repository.save_account(updated)
        if saved is None:
            raise NotFoundError(f"account not found: {account_id}")
        return saved

    def delete(self, account_id: str) -> None:
        if not self._repository.delete_account(account_id):
            raise NotFoundError(f"account not found: {account_id}")
        logger.info("account deleted id=%s", account_id)

    def list_members(self, account_id: str) -> list[Membership]:
        """Return memberships of an account, owners first then by user id."""
        return self._repository.list_account_users(account_id)

    def get_member(self, account_id: str, user_id: str) -> Membership:
        membership = self._repository.fetch_account_user(account_id, user_id)
        if membership is None:
            raise NotFoundError(f"membership not found: {user_id} on {account_id}")
        return membership

    def add_member(self, account_id: str, user_id: str, role: AccountRole) -> Membership:
        membership = self._repository.insert_account_user(
            Membership(user_id=user_id, account_id=account_id, account_role=AccountRole(role))
        )
        logger.info("member added account=%s user=%s role=%s", account_id, user_id, membership.account_role.value)
        return membership

    def update_member(self, account_id: str, user_id: str, role: AccountRole) -> Membership:
        membership = self._repository.update_account_user(
            Membership(user_id=user_id, account_id=account_id, account_role=AccountRole(role))
        )
        if membership is None:
            raise NotFoundError(f"membership not found: {user_id} on {account_id}")
        return membership

    def remove_member(self, account_id: str, user_id: str) -> None:
        if not self._repository.delete_account_user(account_id, user_id):
            raise NotFoundError(f"membership not found: {user_id} on {account_id}")
        logger.info("member removed account=%s user=%s", account_id, user_id)

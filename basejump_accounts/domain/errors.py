"""Error taxonomy raised by the account domain."""

from __future__ import annotations


class AccountsError(Exception):
    """Base class for every error raised by the accounts domain."""


class NotFoundError(AccountsError, LookupError):
    """Referenced account or membership does not exist."""


class DuplicateSlugError(AccountsError):
    """Another account already owns the normalized slug."""

    def __init__(self, slug: str | None) -> None:
        super().__init__(f"slug already in use: {slug}")
        self.slug = slug


class DuplicateAccountError(AccountsError):
    """An account with the same identifier already exists."""

    def __init__(self, account_id: str) -> None:
        super().__init__(f"account already exists: {account_id}")
        self.account_id = account_id


class DuplicateMembershipError(AccountsError):
    def __init__(self, user_id: str, account_id: str) -> None:
        super().__init__(f"user {user_id} already belongs to account {account_id}")
        self.user_id = user_id
        self.account_id = account_id


class AccountPermissionError(AccountsError, PermissionError):
    """Role check failed or a protected field was changed by a non-privileged caller."""


class InvariantViolationError(AccountsError, ValueError):
    """The requested state breaks an account invariant."""

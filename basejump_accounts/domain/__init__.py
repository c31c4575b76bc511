"""Domain layer: account aggregates, role checks and lifecycle hooks."""

from .account import Account, AccountRole, Membership
from .contracts import CallerContext, CreateAccountInput
from .errors import (
    AccountPermissionError,
    AccountsError,
    DuplicateAccountError,
    DuplicateMembershipError,
    DuplicateSlugError,
    InvariantViolationError,
    NotFoundError,
)

__all__ = [
    "Account",
    "AccountPermissionError",
    "AccountRole",
    "AccountsError",
    "CallerContext",
    "CreateAccountInput",
    "DuplicateAccountError",
    "DuplicateMembershipError",
    "DuplicateSlugError",
    "InvariantViolationError",
    "Membership",
    "NotFoundError",
]

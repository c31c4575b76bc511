"""Postgres repository for account and membership data."""

from __future__ import annotations

import logging
from collections.abc import Collection, Sequence
from contextlib import contextmanager

from psycopg import errors
from psycopg.rows import tuple_row
from psycopg.types.json import Json
from psycopg_pool import ConnectionPool

from .domain.account import Account, AccountRole, Membership
from .domain.errors import (
    DuplicateAccountError,
    DuplicateMembershipError,
    DuplicateSlugError,
    InvariantViolationError,
    NotFoundError,
)

logger = logging.getLogger(__name__)

_ACCOUNT_FIELDS = (
    "id",
    "primary_owner_user_id",
    "name",
    "slug",
    "personal_account",
    "private_metadata",
    "public_metadata",
    "created_at",
    "updated_at",
    "created_by",
    "updated_by",
)
_ACCOUNT_COLUMNS = ", ".join(_ACCOUNT_FIELDS)
_QUALIFIED_ACCOUNT_COLUMNS = ", ".join(f"a.{name}" for name in _ACCOUNT_FIELDS)


def _optional_str(value: object) -> str | None:
    return None if value is None else str(value)


def _map_unique_violation(
    exc: errors.UniqueViolation, account_id: str, slug: str | None, user_id: str | None = None
) -> Exception:
    """Translate a unique constraint failure into the matching domain error."""
    constraint = exc.diag.constraint_name or str(exc)
    if "slug" in constraint:
        return DuplicateSlugError(slug)
    if "account_user" in constraint:
        return DuplicateMembershipError(user_id or "", account_id)
    return DuplicateAccountError(account_id)


@contextmanager
def _translate_write_errors(account_id: str, slug: str | None = None, user_id: str | None = None):
    """Re-raise constraint and input failures of a write as domain errors."""
    try:
        yield
    except errors.UniqueViolation as exc:
        raise _map_unique_violation(exc, account_id, slug, user_id) from exc
    except errors.ForeignKeyViolation as exc:
        raise NotFoundError(f"account or user not found: {exc.diag.message_detail or exc}") from exc
    except errors.InvalidTextRepresentation as exc:
        raise NotFoundError(f"malformed identifier: {exc.diag.message_primary or exc}") from exc
    except (errors.CheckViolation, errors.NotNullViolation) as exc:
        raise InvariantViolationError(str(exc)) from exc


class AccountRepository:
    """Postgres-backed persistence for ``basejump.accounts`` and ``basejump.account_user``.

    Uniqueness, the personal/slug check constraint and membership cascade on
    account deletion are enforced by the schema; this class maps their
    violations onto domain errors. An identifier that is not a valid UUID can
    never match a row, so lookups and deletes treat it as absent and inserts
    raise :class:`NotFoundError`.
    """

    def __init__(self, pool: ConnectionPool) -> None:
        """Store the connection pool used for all database interactions."""
        self._pool = pool

    def insert_account(self, account: Account, memberships: Sequence[Membership] = ()) -> Account:
        """Insert an account and its initial memberships in one transaction."""
        with _translate_write_errors(account.id, account.slug):
            with self._pool.connection() as conn:
                with conn.transaction():
                    with conn.cursor(row_factory=tuple_row) as cur:
                        cur.execute(
                            f"""
                            INSERT INTO basejump.accounts ({_ACCOUNT_COLUMNS})
                            VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
                            RETURNING {_ACCOUNT_COLUMNS}
                            """,
                            (
                                account.id,
                                account.primary_owner_user_id,
                                account.name,
                                account.slug,
                                account.personal_account,
                                Json(account.private_metadata),
                                Json(account.public_metadata),
                                account.created_at,
                                account.updated_at,
                                account.created_by,
                                account.updated_by,
                            ),
                        )
                        record = cur.fetchone()
                        for membership in memberships:
                            cur.execute(
                                """
                                INSERT INTO basejump.account_user (user_id, account_id, account_role)
                                VALUES (%s, %s, %s)
                                """,
                                (
                                    membership.user_id,
                                    membership.account_id,
                                    membership.account_role.value,
                                ),
                            )
        return self._map_account(record)

    def fetch_account(self, account_id: str) -> Account | None:
        """Fetch an account by id or return ``None``."""
        with self._pool.connection() as conn:
            with conn.cursor(row_factory=tuple_row) as cur:
                try:
                    cur.execute(
                        f"SELECT {_ACCOUNT_COLUMNS} FROM basejump.accounts WHERE id = %s",
                        (account_id,),
                    )
                except errors.InvalidTextRepresentation:
                    return None
                row = cur.fetchone()
        return self._map_account(row) if row else None

    def fetch_accounts_for_user(self, user_id: str) -> list[Account]:
        with self._pool.connection() as conn:
            with conn.cursor(row_factory=tuple_row) as cur:
                try:
                    cur.execute(
                        f"""
                        SELECT {_QUALIFIED_ACCOUNT_COLUMNS}
                        FROM basejump.accounts a
                        JOIN basejump.account_user au ON au.account_id = a.id
                        WHERE au.user_id = %s
                        ORDER BY a.personal_account DESC, a.name, a.id
                        """,
                        (user_id,),
                    )
                except errors.InvalidTextRepresentation:
                    return []
                return [self._map_account(row) for row in cur.fetchall()]

    def save_account(self, account: Account) -> Account | None:
        """Write every mutable column of ``account``; ``None`` when the row is gone."""
        with _translate_write_errors(account.id, account.slug):
            with self._pool.connection() as conn:
                with conn.cursor(row_factory=tuple_row) as cur:
                    cur.execute(
                        f"""
                        UPDATE basejump.accounts
                        SET primary_owner_user_id = %s,
                            name = %s,
                            slug = %s,
                            personal_account = %s,
                            private_metadata = %s,
                            public_metadata = %s,
                            updated_at = %s,
                            updated_by = %s
                        WHERE id = %s
                        RETURNING {_ACCOUNT_COLUMNS}
                        """,
                        (
                            account.primary_owner_user_id,
                            account.name,
                            account.slug,
                            account.personal_account,
                            Json(account.private_metadata),
                            Json(account.public_metadata),
                            account.updated_at,
                            account.updated_by,
                            account.id,
                        ),
                    )
                    row = cur.fetchone()
                    conn.commit()
        return self._map_account(row) if row else None

    def delete_account(self, account_id: str) -> bool:
        """Delete an account; memberships go with it through ``ON DELETE CASCADE``."""
        with self._pool.connection() as conn:
            with conn.cursor() as cur:
                try:
                    cur.execute("DELETE FROM basejump.accounts WHERE id = %s", (account_id,))
                except errors.InvalidTextRepresentation:
                    logger.debug("malformed account id in delete id=%s", account_id)
                    return False
                deleted = cur.rowcount > 0
                conn.commit()
        return deleted

    def list_account_users(self, account_id: str) -> list[Membership]:
        with self._pool.connection() as conn:
            with conn.cursor(row_factory=tuple_row) as cur:
                try:
                    cur.execute(
                        """
                        SELECT user_id, account_id, account_role
                        FROM basejump.account_user
                        WHERE account_id = %s
                        ORDER BY account_role, user_id
                        """,
                        (account_id,),
                    )
                except errors.InvalidTextRepresentation:
                    return []
                return [self._map_membership(row) for row in cur.fetchall()]

    def fetch_account_user(self, account_id: str, user_id: str) -> Membership | None:
        with self._pool.connection() as conn:
            with conn.cursor(row_factory=tuple_row) as cur:
                try:
                    cur.execute(
                        """
                        SELECT user_id, account_id, account_role
                        FROM basejump.account_user
                        WHERE account_id = %s AND user_id = %s
                        """,
                        (account_id, user_id),
                    )
                except errors.InvalidTextRepresentation:
                    return None
                row = cur.fetchone()
        return self._map_membership(row) if row else None

    def insert_account_user(self, membership: Membership) -> Membership:
        with _translate_write_errors(membership.account_id, user_id=membership.user_id):
            with self._pool.connection() as conn:
                with conn.cursor(row_factory=tuple_row) as cur:
                    cur.execute(
                        """
                        INSERT INTO basejump.account_user (user_id, account_id, account_role)
                        VALUES (%s, %s, %s)
                        RETURNING user_id, account_id, account_role
                        """,
                        (membership.user_id, membership.account_id, membership.account_role.value),
                    )
                    row = cur.fetchone()
                    conn.commit()
        return self._map_membership(row)

    def update_account_user(self, membership: Membership) -> Membership | None:
        with self._pool.connection() as conn:
            with conn.cursor(row_factory=tuple_row) as cur:
                try:
                    cur.execute(
                        """
                        UPDATE basejump.account_user
                        SET account_role = %s
                        WHERE account_id = %s AND user_id = %s
                        RETURNING user_id, account_id, account_role
                        """,
                        (membership.account_role.value, membership.account_id, membership.user_id),
                    )
                except errors.InvalidTextRepresentation:
                    return None
                row = cur.fetchone()
                conn.commit()
        return self._map_membership(row) if row else None

    def delete_account_user(self, account_id: str, user_id: str) -> bool:
        with self._pool.connection() as conn:
            with conn.cursor() as cur:
                try:
                    cur.execute(
                        "DELETE FROM basejump.account_user WHERE account_id = %s AND user_id = %s",
                        (account_id, user_id),
                    )
                except errors.InvalidTextRepresentation:
                    return False
                deleted = cur.rowcount > 0
                conn.commit()
        return deleted

    def has_role_on_account(
        self, account_id: str, user_id: str, roles: Collection[AccountRole]
    ) -> bool:
        """Return whether a membership with one of ``roles`` exists for the pair."""
        with self._pool.connection() as conn:
            with conn.cursor(row_factory=tuple_row) as cur:
                try:
                    cur.execute(
                        """
                        SELECT EXISTS (
                            SELECT 1
                            FROM basejump.account_user
                            WHERE account_id = %s
                              AND user_id = %s
                              AND account_role::text = ANY(%s)
                        )
                        """,
                        (account_id, user_id, sorted(AccountRole(role).value for role in roles)),
                    )
                except errors.InvalidTextRepresentation:
                    logger.debug("malformed identifier in role lookup account=%s user=%s", account_id, user_id)
                    return False
                row = cur.fetchone()
        return bool(row and row[0])

    def _map_account(self, row: tuple) -> Account:
        """Convert a raw database tuple into the domain ``Account`` dataclass."""
        return Account(
            id=str(row[0]),
            primary_owner_user_id=str(row[1]),
            name=row[2],
            slug=row[3],
            personal_account=row[4],
            private_metadata=row[5] or {},
            public_metadata=row[6] or {},
            created_at=row[7],
            updated_at=row[8],
            created_by=_optional_str(row[9]),
            updated_by=_optional_str(row[10]),
        )

    def _map_membership(self, row: tuple) -> Membership:
        return Membership(
            user_id=str(row[0]),
            account_id=str(row[1]),
            account_role=AccountRole(row[2]),
        )

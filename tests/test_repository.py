"""Tests for the Postgres repository using a scripted connection pool."""

from __future__ import annotations

import uuid
from contextlib import contextmanager
from datetime import datetime, timezone

import pytest
from psycopg import errors

from basejump_accounts.domain.account import Account, AccountRole, Membership
from basejump_accounts.domain.errors import (
    DuplicateAccountError,
    DuplicateMembershipError,
    DuplicateSlugError,
    InvariantViolationError,
    NotFoundError,
)
from basejump_accounts.repository import AccountRepository

NOW = datetime(2024, 4, 14, tzinfo=timezone.utc)
ACCOUNT_ID = uuid.UUID("11111111-1111-1111-1111-111111111111")
USER_ID = uuid.UUID("22222222-2222-2222-2222-222222222222")


class FakeCursor:
    def __init__(self, conn: "FakeConnection") -> None:
        self._conn = conn
        self._rows: list[tuple] = []
        self.rowcount = 0

    def __enter__(self) -> "FakeCursor":
        return self

    def __exit__(self, *exc) -> None:
        return None

    def execute(self, query: str, params=None) -> None:
        self._conn.executed.append((" ".join(query.split()), params))
        outcome = self._conn.script.pop(0) if self._conn.script else []
        if isinstance(outcome, Exception):
            raise outcome
        self._rows = outcome
        self.rowcount = len(outcome)

    def fetchone(self):
        return self._rows[0] if self._rows else None

    def fetchall(self):
        return list(self._rows)


class FakeConnection:
    def __init__(self, script: list) -> None:
        self.script = script
        self.executed: list[tuple[str, object]] = []
        self.commits = 0
        self.transactions = 0

    def cursor(self, row_factory=None) -> FakeCursor:
        return FakeCursor(self)

    @contextmanager
    def transaction(self):
        self.transactions += 1
        yield

    def commit(self) -> None:
        self.commits += 1


class FakePool:
    def __init__(self, *script) -> None:
        self.conn = FakeConnection(list(script))

    @contextmanager
    def connection(self):
        yield self.conn


def _account_row(slug: str | None = "team") -> tuple:
    return (ACCOUNT_ID, USER_ID, "Team", slug, slug is None, {}, {"plan": "free"}, NOW, NOW, USER_ID, None)


def _account() -> Account:
    return Account(
        id=str(ACCOUNT_ID),
        primary_owner_user_id=str(USER_ID),
        name="Team",
        slug="team",
        created_at=NOW,
        updated_at=NOW,
        created_by=str(USER_ID),
        updated_by=str(USER_ID),
    )


def test_fetch_account_maps_row():
    pool = FakePool([_account_row()])
    account = AccountRepository(pool).fetch_account(str(ACCOUNT_ID))

    assert account is not None
    assert account.id == str(ACCOUNT_ID)
    assert account.primary_owner_user_id == str(USER_ID)
    assert account.public_metadata == {"plan": "free"}
    assert account.created_by == str(USER_ID)
    assert account.updated_by is None


def test_fetch_account_with_malformed_id_returns_none():
    pool = FakePool(errors.InvalidTextRepresentation("invalid input syntax for type uuid"))
    assert AccountRepository(pool).fetch_account("not-a-uuid") is None


def test_insert_account_writes_memberships_in_one_transaction():
    pool = FakePool([_account_row()], [])
    owner = Membership(user_id=str(USER_ID), account_id=str(ACCOUNT_ID), account_role=AccountRole.owner)

    created = AccountRepository(pool).insert_account(_account(), [owner])

    assert created.slug == "team"
    assert pool.conn.transactions == 1
    assert len(pool.conn.executed) == 2
    assert "INSERT INTO basejump.account_user" in pool.conn.executed[1][0]
    assert pool.conn.executed[1][1] == (str(USER_ID), str(ACCOUNT_ID), "owner")


@pytest.mark.parametrize(
    ("message", "expected"),
    [
        ('duplicate key value violates unique constraint "accounts_slug_key"', DuplicateSlugError),
        ('duplicate key value violates unique constraint "accounts_pkey"', DuplicateAccountError),
        ('duplicate key value violates unique constraint "account_user_pkey"', DuplicateMembershipError),
    ],
)
def test_insert_account_maps_unique_violations(message, expected):
    pool = FakePool(errors.UniqueViolation(message))
    with pytest.raises(expected):
        AccountRepository(pool).insert_account(_account())


def test_check_violation_becomes_invariant_error():
    pool = FakePool(errors.CheckViolation("basejump_accounts_slug_null_if_personal_account_true"))
    with pytest.raises(InvariantViolationError):
        AccountRepository(pool).save_account(_account())


def test_has_role_queries_role_names():
    pool = FakePool([(True,)])
    repo = AccountRepository(pool)

    assert repo.has_role_on_account(str(ACCOUNT_ID), str(USER_ID), {AccountRole.owner, AccountRole.member})
    query, params = pool.conn.executed[0]
    assert "account_role::text = ANY(%s)" in query
    assert params == (str(ACCOUNT_ID), str(USER_ID), ["member", "owner"])


def test_has_role_is_false_for_malformed_ids():
    pool = FakePool(errors.InvalidTextRepresentation("invalid input syntax for type uuid"))
    assert AccountRepository(pool).has_role_on_account("x", "y", {AccountRole.owner}) is False


def test_list_account_users_and_delete():
    pool = FakePool(
        [(USER_ID, ACCOUNT_ID, "owner"), ("33333333-3333-3333-3333-333333333333", ACCOUNT_ID, "member")],
        [],
    )
    repo = AccountRepository(pool)

    members = repo.list_account_users(str(ACCOUNT_ID))
    assert [m.account_role for m in members] == [AccountRole.owner, AccountRole.member]
    assert members[0].user_id == str(USER_ID)

    assert repo.delete_account(str(ACCOUNT_ID)) is False
    assert pool.conn.commits == 1


@pytest.mark.parametrize(
    "error",
    [
        errors.ForeignKeyViolation('insert violates foreign key constraint "accounts_primary_owner_user_id_fkey"'),
        errors.InvalidTextRepresentation("invalid input syntax for type uuid"),
    ],
    ids=["unknown-owner", "malformed-id"],
)
def test_insert_account_with_bad_references_is_not_found(error):
    pool = FakePool(error)
    with pytest.raises(NotFoundError):
        AccountRepository(pool).insert_account(_account())


def test_insert_account_user_with_malformed_user_is_not_found():
    pool = FakePool(errors.InvalidTextRepresentation("invalid input syntax for type uuid"))
    membership = Membership(user_id="bob", account_id=str(ACCOUNT_ID), account_role=AccountRole.member)
    with pytest.raises(NotFoundError):
        AccountRepository(pool).insert_account_user(membership)


def test_save_account_null_column_becomes_invariant_error():
    pool = FakePool(errors.NotNullViolation('null value in column "personal_account"'))
    with pytest.raises(InvariantViolationError):
        AccountRepository(pool).save_account(_account())


def test_malformed_ids_read_and_delete_as_absent():
    malformed = errors.InvalidTextRepresentation("invalid input syntax for type uuid")
    pool = FakePool(*[malformed] * 6)
    repo = AccountRepository(pool)
    membership = Membership(user_id="x", account_id="not-a-uuid", account_role=AccountRole.owner)

    assert repo.delete_account("not-a-uuid") is False
    assert repo.fetch_accounts_for_user("x") == []
    assert repo.list_account_users("not-a-uuid") == []
    assert repo.fetch_account_user("not-a-uuid", "x") is None
    assert repo.update_account_user(membership) is None
    assert repo.delete_account_user("not-a-uuid", "x") is False
    assert pool.conn.commits == 0

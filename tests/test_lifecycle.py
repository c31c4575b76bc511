from __future__ import annotations

import threading

import pytest

from basejump_accounts.domain.account import AccountRole, Membership
from basejump_accounts.domain.contracts import CallerContext, CreateAccountInput
from basejump_accounts.domain.errors import DuplicateAccountError
from basejump_accounts.domain.lifecycle import AccountLifecycle


def test_registration_creates_personal_account_and_owner(lifecycle, store):
    account = lifecycle.on_user_registered("u1", "alice@example.com")

    assert account.id == "u1"
    assert account.name == "alice"
    assert account.personal_account is True
    assert account.slug is None
    assert account.primary_owner_user_id == "u1"
    assert account.created_by == "u1"
    assert store.list_members("u1") == [
        Membership(user_id="u1", account_id="u1", account_role=AccountRole.owner)
    ]


def test_registration_without_email_leaves_name_empty(lifecycle):
    account = lifecycle.on_user_registered("u3", None)
    assert account.name is None
    assert account.personal_account is True


def test_registration_replay_is_reported(lifecycle, store):
    lifecycle.on_user_registered("u1", "alice@example.com")

    with pytest.raises(DuplicateAccountError):
        lifecycle.on_user_registered("u1", "alice@example.com")

    assert len(store.list_members("u1")) == 1
    assert [a.id for a in store.list_accounts_for_user("u1")] == ["u1"]


def test_concurrent_registration_commits_one_personal_account(lifecycle, store):
    attempts = 6
    barrier = threading.Barrier(attempts)
    outcomes: list[str] = []
    lock = threading.Lock()

    def register() -> None:
        barrier.wait()
        try:
            lifecycle.on_user_registered("u5", "eve@example.com")
        except DuplicateAccountError:
            result = "duplicate"
        else:
            result = "created"
        with lock:
            outcomes.append(result)

    threads = [threading.Thread(target=register) for _ in range(attempts)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert outcomes.count("created") == 1
    assert outcomes.count("duplicate") == attempts - 1
    personal = [a for a in store.list_accounts_for_user("u5") if a.personal_account]
    assert [a.id for a in personal] == ["u5"]


def test_creator_who_is_primary_owner_gets_owner_membership(lifecycle, store):
    account = store.create(CreateAccountInput(name="Team", slug="team"), CallerContext.for_user("u1"))

    members = store.list_members(account.id)
    assert members == [Membership(user_id="u1", account_id=account.id, account_role=AccountRole.owner)]


def test_creator_for_other_owner_gets_no_membership(lifecycle, store):
    account = store.create(
        CreateAccountInput(name="Gift", slug="gift", primary_owner_user_id="u2"),
        CallerContext.for_user("u1"),
    )
    assert store.list_members(account.id) == []


def test_system_creation_adds_no_membership(lifecycle, store):
    account = store.create(
        CreateAccountInput(name="Ops", slug="ops", primary_owner_user_id="u2"),
        CallerContext.system(),
    )
    assert store.list_members(account.id) == []


def test_on_account_created_hook_directly(lifecycle, store):
    account = store.create(CreateAccountInput(name="n", slug="n"), CallerContext.for_user("u1"))
    assert lifecycle.on_account_created(account, CallerContext.anonymous()) == []
    assert lifecycle.on_account_created(account, CallerContext.for_user("u2")) == []
    assert len(lifecycle.on_account_created(account, CallerContext.for_user("u1"))) == 1


def test_personal_flag_matches_missing_slug_everywhere(lifecycle, store):
    lifecycle.on_user_registered("u1", "alice@example.com")
    lifecycle.on_user_registered("u2", "bob@example.com")
    store.create(CreateAccountInput(name="Team", slug="Team!"), CallerContext.for_user("u1"))

    accounts = store.list_accounts_for_user("u1") + store.list_accounts_for_user("u2")
    assert len(accounts) == 3
    for account in accounts:
        assert account.personal_account == (account.slug is None)


def test_second_lifecycle_on_same_store_adds_one_owner(lifecycle, store):
    AccountLifecycle(store)
    account = store.create(CreateAccountInput(name="Team", slug="twice"), CallerContext.for_user("u1"))

    assert store.list_members(account.id) == [
        Membership(user_id="u1", account_id=account.id, account_role=AccountRole.owner)
    ]

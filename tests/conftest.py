from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from basejump_accounts.domain.lifecycle import AccountLifecycle
from basejump_accounts.domain.policy import PolicyGate
from basejump_accounts.domain.roles import RoleResolver
from basejump_accounts.domain.store import AccountStore
from basejump_accounts.memory_repository import InMemoryAccountRepository


class SteppingClock:
    """Deterministic clock advancing one second per reading."""

    def __init__(self, start: datetime | None = None) -> None:
        self.current = start or datetime(2024, 4, 14, 16, 19, 47, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        value = self.current
        self.current = self.current + timedelta(seconds=1)
        return value


@pytest.fixture
def repository() -> InMemoryAccountRepository:
    return InMemoryAccountRepository()


@pytest.fixture
def clock() -> SteppingClock:
    return SteppingClock()


@pytest.fixture
def store(repository, clock) -> AccountStore:
    """Account store without lifecycle hooks registered."""
    return AccountStore(repository, clock=clock)


@pytest.fixture
def lifecycle(store) -> AccountLifecycle:
    return AccountLifecycle(store)


@pytest.fixture
def resolver(repository) -> RoleResolver:
    return RoleResolver(repository)


@pytest.fixture
def policy(store, resolver, lifecycle) -> PolicyGate:
    return PolicyGate(store, resolver)

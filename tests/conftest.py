from typing import Iterator

import pytest

from kidledger import AccountSnapshot, Actor, KidLedger, NotificationCenter, Store, create_store

FAMILY = "smith"


@pytest.fixture
def store() -> Iterator[Store]:
    store = create_store("sqlite://")
    yield store
    store.dispose()


@pytest.fixture
def notifications() -> NotificationCenter:
    return NotificationCenter()


@pytest.fixture
def bank(store: Store, notifications: NotificationCenter) -> KidLedger:
    return KidLedger(store, notifier=notifications)


@pytest.fixture
def parent() -> Actor:
    return Actor.parent("mom", FAMILY)


@pytest.fixture
def outsider() -> Actor:
    return Actor.parent("stranger", "jones")


@pytest.fixture
def account(bank: KidLedger, parent: Actor) -> AccountSnapshot:
    return bank.open_account(parent, "Ava", starting_balance=50, weekly_allowance=15)


@pytest.fixture
def kid(account: AccountSnapshot) -> Actor:
    return Actor.child("ava", FAMILY, account.account_id)

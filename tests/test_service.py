import json
from datetime import datetime, timedelta
from decimal import Decimal
from pathlib import Path

import pytest

from kidledger import (
    Actor,
    CompletionStatus,
    ConcurrencyConflictError,
    KidLedger,
    Notification,
    NotificationCenter,
    Settings,
    Store,
    TransactionCategory,
    TransactionDirection,
    create_store,
    load_settings,
)
from kidledger.persistence import TaskCompletionRecord, commit, load_child

MONDAY = datetime(2024, 6, 3, 10, 0)


class _ExplodingNotifier:
    def send(self, notification: Notification) -> None:
        raise ConnectionError("push gateway unavailable")


def test_load_settings_from_mapping(tmp_path: Path) -> None:
    settings = load_settings(
        {
            "KIDLEDGER_DATABASE_URL": "sqlite://",
            "KIDLEDGER_SQL_ECHO": "yes",
            "KIDLEDGER_LOG_PATH": str(tmp_path / "events.jsonl"),
            "KIDLEDGER_BUDGET_ALERT_PERCENT": "75",
            "KIDLEDGER_ALLOWANCE_WINDOW_DAYS": "6",
            "KIDLEDGER_TRANSACTION_PAGE_SIZE": "",
        }
    )

    assert settings.database_url == "sqlite://"
    assert settings.sql_echo
    assert settings.log_path == tmp_path / "events.jsonl"
    assert settings.budget_alert_percent == 75
    assert settings.allowance_window == timedelta(days=6)
    assert settings.transaction_page_size == 20


def test_load_settings_defaults_and_validation() -> None:
    defaults = load_settings({})
    assert defaults == Settings()

    with pytest.raises(ValueError, match="must be an integer"):
        load_settings({"KIDLEDGER_ALLOWANCE_WINDOW_DAYS": "weekly"})
    with pytest.raises(ValueError, match="at most 100"):
        load_settings({"KIDLEDGER_BUDGET_ALERT_PERCENT": "150"})
    with pytest.raises(ValueError, match="at least 1"):
        load_settings({"KIDLEDGER_TRANSACTION_PAGE_SIZE": "0"})


def test_from_settings_wires_every_component(tmp_path: Path) -> None:
    log_path = tmp_path / "logs" / "events.jsonl"
    bank = KidLedger.from_settings(
        Settings(
            database_url="sqlite://",
            log_path=log_path,
            budget_alert_percent=50,
            allowance_window_days=1,
            transaction_page_size=2,
        )
    )
    parent = Actor.parent("dad", "lee")
    try:
        assert isinstance(bank.notifier, NotificationCenter)
        account = bank.open_account(parent, "Rin", weekly_allowance=5, starting_balance=1)

        budget = bank.set_budget(parent, account.account_id, TransactionCategory.TOYS, 10)
        assert budget.alert_threshold_percent == 50

        bank.pay_weekly_allowance(parent, account.account_id, at=MONDAY)
        bank.pay_weekly_allowance(parent, account.account_id, at=MONDAY + timedelta(days=1))
        assert bank.get_balance(parent, account.account_id) == Decimal("11.00")
        assert len(bank.get_account_transactions(parent, account.account_id)) == 2

        lines = log_path.read_text(encoding="utf-8").splitlines()
        events = [json.loads(line)["event"] for line in lines]
        assert events[0] == "account_opened"
        assert "allowance_paid" in events
        assert json.loads(lines[0])["balance"] == "1.00"
    finally:
        bank.store.dispose()


def test_notifier_failures_are_logged_not_raised(store: Store) -> None:
    bank = KidLedger(store, notifier=_ExplodingNotifier())
    parent = Actor.parent("mom", "smith")
    account = bank.open_account(parent, "Ava")

    entry = bank.create_transaction(
        parent, account.account_id, 5, TransactionDirection.CREDIT, TransactionCategory.GIFT, "Card from aunt"
    )

    assert entry.balance_after == Decimal("5.00")
    failures = bank.logger.entries(event="notification_failed", level="error")
    assert len(failures) == 1
    assert failures[0]["notification"] == "transaction_created"
    assert failures[0]["error"] == "push gateway unavailable"


def test_stale_writer_gets_a_conflict(tmp_path: Path) -> None:
    store = create_store(f"sqlite:///{tmp_path / 'ledger.db'}")
    bank = KidLedger(store)
    parent = Actor.parent("mom", "smith")
    account = bank.open_account(parent, "Ava", starting_balance=10)
    try:
        with store.session() as first, store.session() as second:
            ours = load_child(first, account.account_id)
            theirs = load_child(second, account.account_id)

            ours.spending_cents += 100
            first.add(ours)
            commit(first)

            theirs.spending_cents += 500
            second.add(theirs)
            with pytest.raises(ConcurrencyConflictError):
                commit(second)

        assert bank.get_balance(parent, account.account_id) == Decimal("11.00")
        assert bank.get_account(parent, account.account_id).version > account.version
    finally:
        store.dispose()


def test_concurrent_reviews_cannot_both_commit(tmp_path: Path) -> None:
    store = create_store(f"sqlite:///{tmp_path / 'ledger.db'}")
    bank = KidLedger(store)
    parent = Actor.parent("mom", "smith")
    account = bank.open_account(parent, "Ava", starting_balance=50)
    kid = Actor.child("ava", "smith", account.account_id)
    task = bank.create_task(parent, account.account_id, "Wash the car", 10)
    completion = bank.complete_task(kid, task.task_id)
    try:
        with store.session() as stale:
            pending = stale.get(TaskCompletionRecord, completion.completion_id)
            assert pending is not None

            bank.review_completion(parent, completion.completion_id, True)

            pending.status = CompletionStatus.REJECTED.value
            pending.rejection_reason = "Not clean"
            stale.add(pending)
            with pytest.raises(ConcurrencyConflictError):
                commit(stale)

        (stored,) = bank.get_task_completions(parent, task_id=task.task_id)
        assert stored.status is CompletionStatus.APPROVED
        assert stored.rejection_reason is None
        assert bank.get_balance(parent, account.account_id) == Decimal("60.00")
    finally:
        store.dispose()

from datetime import datetime, timedelta
from decimal import Decimal

import pytest

from kidledger import (
    AccountSnapshot,
    Actor,
    BudgetExceededError,
    BudgetNotFoundError,
    BudgetPeriod,
    BudgetStatus,
    KidLedger,
    NotificationCenter,
    NotificationType,
    TransactionCategory,
    TransactionDirection,
    UnauthorizedError,
)
from kidledger.budgets import classify_status, period_start

DEBIT = TransactionDirection.DEBIT
CANDY = TransactionCategory.CANDY


def _spend(bank: KidLedger, actor: Actor, account_id: int, amount: str, **kwargs) -> None:
    bank.create_transaction(actor, account_id, amount, DEBIT, CANDY, "Candy", **kwargs)


def test_enforced_budget_rejects_the_crossing_debit(bank: KidLedger, parent: Actor, account: AccountSnapshot) -> None:
    bank.set_budget(parent, account.account_id, CANDY, 10, enforce_limit=True)
    _spend(bank, parent, account.account_id, "6")

    with pytest.raises(BudgetExceededError) as excinfo:
        _spend(bank, parent, account.account_id, "5")

    error = excinfo.value
    assert error.category == "candy"
    assert error.current_spending == Decimal("6.00")
    assert error.limit == Decimal("10.00")
    assert error.overage == Decimal("1.00")
    assert bank.get_balance(parent, account.account_id) == Decimal("44.00")

    _spend(bank, parent, account.account_id, "4")
    assert bank.get_balance(parent, account.account_id) == Decimal("40.00")


def test_unenforced_budget_reports_but_allows(bank: KidLedger, parent: Actor, account: AccountSnapshot) -> None:
    bank.set_budget(parent, account.account_id, CANDY, 5)

    check = bank.check_budget(parent, account.account_id, CANDY, 7)
    assert check.allowed
    assert check.overage == Decimal("2.00")
    assert check.status_after is BudgetStatus.OVER_BUDGET

    _spend(bank, parent, account.account_id, "7")
    assert bank.get_balance(parent, account.account_id) == Decimal("43.00")


def test_categories_without_budget_and_income_are_unlimited(
    bank: KidLedger, parent: Actor, account: AccountSnapshot
) -> None:
    check = bank.check_budget(parent, account.account_id, TransactionCategory.TOYS, 1000)
    assert check.allowed
    assert check.limit is None
    assert bank.check_budget(parent, account.account_id, TransactionCategory.GIFT, 1000).allowed


def test_spending_outside_the_window_is_ignored(bank: KidLedger, parent: Actor, account: AccountSnapshot) -> None:
    _spend(bank, parent, account.account_id, "8", at=datetime.utcnow() - timedelta(days=8))
    bank.set_budget(parent, account.account_id, CANDY, 10, enforce_limit=True)

    _spend(bank, parent, account.account_id, "9")
    assert bank.get_balance(parent, account.account_id) == Decimal("33.00")


def test_period_start() -> None:
    moment = datetime(2024, 3, 31, 12, 0)
    assert period_start(BudgetPeriod.WEEKLY, moment) == datetime(2024, 3, 24, 12, 0)
    assert period_start(BudgetPeriod.MONTHLY, moment) == datetime(2024, 2, 29, 12, 0)
    assert period_start(BudgetPeriod.MONTHLY, datetime(2024, 1, 15)) == datetime(2023, 12, 15)


def test_classify_status_bands() -> None:
    limit = Decimal("10.00")
    assert classify_status(Decimal("7.99"), limit, 80) is BudgetStatus.SAFE
    assert classify_status(Decimal("8.00"), limit, 80) is BudgetStatus.WARNING
    assert classify_status(Decimal("10.00"), limit, 80) is BudgetStatus.AT_LIMIT
    assert classify_status(Decimal("10.01"), limit, 80) is BudgetStatus.OVER_BUDGET


def test_budget_statuses(bank: KidLedger, parent: Actor, account: AccountSnapshot) -> None:
    bank.set_budget(parent, account.account_id, CANDY, 10)
    bank.set_budget(parent, account.account_id, TransactionCategory.TOYS, 20, period=BudgetPeriod.MONTHLY)
    _spend(bank, parent, account.account_id, "8")

    reports = {report.category: report for report in bank.get_budget_statuses(parent, account.account_id)}
    candy = reports[CANDY]
    assert candy.current_spending == Decimal("8.00")
    assert candy.remaining == Decimal("2.00")
    assert candy.percent_used == 80
    assert candy.status is BudgetStatus.WARNING
    toys = reports[TransactionCategory.TOYS]
    assert toys.status is BudgetStatus.SAFE
    assert toys.period is BudgetPeriod.MONTHLY


def test_set_budget_upserts_and_delete(bank: KidLedger, parent: Actor, account: AccountSnapshot) -> None:
    bank.set_budget(parent, account.account_id, CANDY, 10)
    updated = bank.set_budget(parent, account.account_id, CANDY, 12, alert_threshold_percent=50, enforce_limit=True)

    budgets = bank.get_budgets(parent, account.account_id)
    assert len(budgets) == 1
    assert budgets[0].budget_id == updated.budget_id
    assert bank.get_budget(parent, account.account_id, CANDY).limit == Decimal("12.00")
    assert updated.alert_threshold_percent == 50
    assert updated.enforce_limit

    bank.delete_budget(parent, account.account_id, CANDY)
    with pytest.raises(BudgetNotFoundError):
        bank.get_budget(parent, account.account_id, CANDY)
    with pytest.raises(BudgetNotFoundError):
        bank.delete_budget(parent, account.account_id, CANDY)


def test_budget_validation_and_permissions(
    bank: KidLedger, parent: Actor, kid: Actor, account: AccountSnapshot
) -> None:
    with pytest.raises(ValueError):
        bank.set_budget(parent, account.account_id, TransactionCategory.ALLOWANCE, 10)
    with pytest.raises(ValueError):
        bank.set_budget(parent, account.account_id, CANDY, 10, alert_threshold_percent=120)
    with pytest.raises(ValueError):
        bank.set_budget(parent, account.account_id, CANDY, 0)
    with pytest.raises(UnauthorizedError):
        bank.set_budget(kid, account.account_id, CANDY, 10)
    assert bank.get_budgets(kid, account.account_id) == ()


def test_crossing_alert_threshold_sends_one_warning(
    bank: KidLedger, parent: Actor, account: AccountSnapshot, notifications: NotificationCenter
) -> None:
    bank.set_budget(parent, account.account_id, CANDY, 10)

    _spend(bank, parent, account.account_id, "5")
    assert notifications.pending(notification_type=NotificationType.BUDGET_WARNING) == ()

    _spend(bank, parent, account.account_id, "4")
    _spend(bank, parent, account.account_id, "0.50")
    warnings = notifications.pending(notification_type=NotificationType.BUDGET_WARNING)
    assert len(warnings) == 1
    assert warnings[0].data["status"] == "warning"

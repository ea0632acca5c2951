"""Category spending limits consulted by the ledger before debits commit."""

from __future__ import annotations

import calendar
from datetime import datetime, timedelta
from decimal import Decimal
from typing import List, Optional, Sequence

from sqlalchemy import func
from sqlmodel import Session, select

from .access import ensure_member, ensure_parent
from .exceptions import BudgetExceededError, BudgetNotFoundError
from .models import (
    Actor,
    BudgetCheckResult,
    BudgetPeriod,
    BudgetStatus,
    BudgetStatusReport,
    CategoryBudget,
    TransactionCategory,
    TransactionDirection,
)
from .money import ZERO, AmountLike, format_currency, from_cents, require_positive, to_cents, to_decimal
from .ops import StructuredLogger
from .persistence import CategoryBudgetRecord, LedgerEntryRecord, Store, commit, load_child


def period_start(period: BudgetPeriod, moment: datetime) -> datetime:
    """Return the start of the rolling window ending at ``moment``."""

    if period is BudgetPeriod.WEEKLY:
        return moment - timedelta(days=7)
    year, month = (moment.year, moment.month - 1) if moment.month > 1 else (moment.year - 1, 12)
    day = min(moment.day, calendar.monthrange(year, month)[1])
    return moment.replace(year=year, month=month, day=day)


def classify_status(spending: Decimal, limit: Decimal, alert_threshold_percent: int) -> BudgetStatus:
    if spending > limit:
        return BudgetStatus.OVER_BUDGET
    if spending == limit:
        return BudgetStatus.AT_LIMIT
    if spending * 100 >= limit * alert_threshold_percent:
        return BudgetStatus.WARNING
    return BudgetStatus.SAFE


def _percent_used(spending: Decimal, limit: Decimal) -> int:
    return int(spending * 100 / limit)


def _validate_threshold(value: int) -> int:
    if isinstance(value, bool) or not 0 <= int(value) <= 100:
        raise ValueError("Alert threshold must be between 0 and 100.")
    return int(value)


class BudgetGuard:
    """Evaluate and manage per-category spending limits."""

    def __init__(
        self,
        store: Store,
        *,
        logger: Optional[StructuredLogger] = None,
        default_alert_percent: int = 80,
    ) -> None:
        self._store = store
        self._logger = logger or StructuredLogger()
        self._default_alert_percent = _validate_threshold(default_alert_percent)

    # ------------------------------------------------------------------
    # Evaluation
    # ------------------------------------------------------------------
    def spending(
        self,
        session: Session,
        account_id: int,
        category: TransactionCategory,
        period: BudgetPeriod,
        moment: datetime,
    ) -> Decimal:
        statement = select(func.coalesce(func.sum(LedgerEntryRecord.amount_cents), 0)).where(
            LedgerEntryRecord.account_id == account_id,
            LedgerEntryRecord.category == category.value,
            LedgerEntryRecord.direction == TransactionDirection.DEBIT.value,
            LedgerEntryRecord.created_at >= period_start(period, moment),
            LedgerEntryRecord.created_at <= moment,
        )
        return from_cents(int(session.exec(statement).one()))

    def evaluate(
        self,
        session: Session,
        account_id: int,
        category: TransactionCategory,
        amount: Decimal,
        moment: datetime,
    ) -> BudgetCheckResult:
        """Check a prospective debit inside an open unit of work."""

        budget = self._find(session, account_id, category)
        if budget is None:
            return BudgetCheckResult(True, "No budget set for this category", category)
        limit = from_cents(budget.limit_cents)
        current = self.spending(session, account_id, category, BudgetPeriod(budget.period), moment)
        after = current + amount
        status_before = classify_status(current, limit, budget.alert_threshold_percent)
        status_after = classify_status(after, limit, budget.alert_threshold_percent)
        if after > limit:
            overage = after - limit
            return BudgetCheckResult(
                allowed=not budget.enforce_limit,
                message=(
                    f"This purchase would exceed the {category.display_name} budget "
                    f"by {format_currency(overage)}"
                ),
                category=category,
                current_spending=current,
                limit=limit,
                remaining_after=limit - after,
                overage=overage,
                status_before=status_before,
                status_after=status_after,
            )
        return BudgetCheckResult(
            allowed=True,
            message=f"{format_currency(limit - after)} left in the {category.display_name} budget",
            category=category,
            current_spending=current,
            limit=limit,
            remaining_after=limit - after,
            status_before=status_before,
            status_after=status_after,
        )

    @staticmethod
    def raise_for(result: BudgetCheckResult) -> None:
        if result.allowed:
            return
        assert result.limit is not None
        raise BudgetExceededError(
            result.message,
            category=result.category.value,
            current_spending=result.current_spending,
            limit=result.limit,
            overage=result.overage,
        )

    def check_budget(
        self,
        actor: Actor,
        account_id: int,
        category: TransactionCategory | str,
        amount: AmountLike,
        *,
        at: Optional[datetime] = None,
    ) -> BudgetCheckResult:
        category = TransactionCategory(category)
        value = require_positive(to_decimal(amount))
        moment = at or datetime.utcnow()
        with self._store.session() as session:
            child = load_child(session, account_id)
            ensure_member(actor, child)
            if category.is_income:
                return BudgetCheckResult(True, "Income is never limited", category)
            return self.evaluate(session, account_id, category, value, moment)

    # ------------------------------------------------------------------
    # Management
    # ------------------------------------------------------------------
    def set_budget(
        self,
        actor: Actor,
        account_id: int,
        category: TransactionCategory | str,
        limit: AmountLike,
        *,
        period: BudgetPeriod | str = BudgetPeriod.WEEKLY,
        alert_threshold_percent: Optional[int] = None,
        enforce_limit: bool = False,
    ) -> CategoryBudget:
        category = TransactionCategory(category)
        if category.is_income:
            raise ValueError("Budgets can only be set on spending categories.")
        limit_value = require_positive(to_decimal(limit))
        threshold = _validate_threshold(
            self._default_alert_percent if alert_threshold_percent is None else alert_threshold_percent
        )
        period = BudgetPeriod(period)
        now = datetime.utcnow()
        with self._store.session() as session:
            child = load_child(session, account_id)
            ensure_parent(actor, child)
            record = self._find(session, account_id, category)
            if record is None:
                record = CategoryBudgetRecord(
                    account_id=account_id,
                    category=category.value,
                    limit_cents=to_cents(limit_value),
                    period=period.value,
                    alert_threshold_percent=threshold,
                    enforce_limit=enforce_limit,
                    created_by=actor.actor_id,
                    created_at=now,
                    updated_at=now,
                )
            else:
                record.limit_cents = to_cents(limit_value)
                record.period = period.value
                record.alert_threshold_percent = threshold
                record.enforce_limit = enforce_limit
                record.updated_at = now
            session.add(record)
            commit(session)
            budget = record.to_snapshot()
        self._logger.log(
            "budget_set",
            account_id=account_id,
            category=category.value,
            limit=limit_value,
            period=period.value,
            enforce_limit=enforce_limit,
            actor=actor.actor_id,
        )
        return budget

    def get_budget(self, actor: Actor, account_id: int, category: TransactionCategory | str) -> CategoryBudget:
        category = TransactionCategory(category)
        with self._store.session() as session:
            child = load_child(session, account_id)
            ensure_member(actor, child)
            record = self._find(session, account_id, category)
            if record is None:
                raise BudgetNotFoundError(f"No {category.display_name} budget for account {account_id}.")
            return record.to_snapshot()

    def get_budgets(self, actor: Actor, account_id: int) -> Sequence[CategoryBudget]:
        with self._store.session() as session:
            child = load_child(session, account_id)
            ensure_member(actor, child)
            records = session.exec(
                select(CategoryBudgetRecord)
                .where(CategoryBudgetRecord.account_id == account_id)
                .order_by(CategoryBudgetRecord.category)
            ).all()
            return tuple(record.to_snapshot() for record in records)

    def delete_budget(self, actor: Actor, account_id: int, category: TransactionCategory | str) -> None:
        category = TransactionCategory(category)
        with self._store.session() as session:
            child = load_child(session, account_id)
            ensure_parent(actor, child)
            record = self._find(session, account_id, category)
            if record is None:
                raise BudgetNotFoundError(f"No {category.display_name} budget for account {account_id}.")
            session.delete(record)
            commit(session)
        self._logger.log("budget_deleted", account_id=account_id, category=category.value, actor=actor.actor_id)

    def get_budget_statuses(
        self, actor: Actor, account_id: int, *, at: Optional[datetime] = None
    ) -> Sequence[BudgetStatusReport]:
        moment = at or datetime.utcnow()
        reports: List[BudgetStatusReport] = []
        with self._store.session() as session:
            child = load_child(session, account_id)
            ensure_member(actor, child)
            records = session.exec(
                select(CategoryBudgetRecord)
                .where(CategoryBudgetRecord.account_id == account_id)
                .order_by(CategoryBudgetRecord.category)
            ).all()
            for record in records:
                category = TransactionCategory(record.category)
                period = BudgetPeriod(record.period)
                limit = from_cents(record.limit_cents)
                spent = self.spending(session, account_id, category, period, moment)
                reports.append(
                    BudgetStatusReport(
                        category=category,
                        period=period,
                        limit=limit,
                        current_spending=spent,
                        remaining=max(limit - spent, ZERO),
                        percent_used=_percent_used(spent, limit),
                        status=classify_status(spent, limit, record.alert_threshold_percent),
                        enforce_limit=record.enforce_limit,
                    )
                )
        return tuple(reports)

    @staticmethod
    def _find(
        session: Session, account_id: int, category: TransactionCategory
    ) -> Optional[CategoryBudgetRecord]:
        return session.exec(
            select(CategoryBudgetRecord).where(
                CategoryBudgetRecord.account_id == account_id,
                CategoryBudgetRecord.category == category.value,
            )
        ).first()


__all__ = ["BudgetGuard", "classify_status", "period_start"]

"""High level service wiring the ledger, budgets, allowances and tasks together."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Optional, Sequence

from .allowance import AllowanceScheduler
from .budgets import BudgetGuard
from .categories import suggest_category
from .config import Settings, load_settings
from .ledger import Ledger
from .models import (
    AccountSnapshot,
    Actor,
    AllowanceAdjustment,
    AllowanceBatchResult,
    AllowancePayment,
    BudgetCheckResult,
    BudgetPeriod,
    BudgetStatusReport,
    CategoryBudget,
    ChoreTask,
    CompletionStatus,
    LedgerEntry,
    SavingsTransaction,
    TaskCompletion,
    TaskStatistics,
    TaskStatus,
    TransactionCategory,
    TransactionDirection,
)
from .money import AmountLike
from .notifications import NotificationCenter, Notifier
from .ops import StructuredLogger
from .persistence import Store, create_store
from .schedule import RecurrenceRule, Weekday
from .tasks import TaskRewardWorkflow


class KidLedger:
    """Entry point exposing every ledger, budget, allowance and task operation."""

    __slots__ = ("_store", "_logger", "_notifier", "_budgets", "_ledger", "_allowances", "_tasks")

    def __init__(
        self,
        store: Store,
        *,
        logger: Optional[StructuredLogger] = None,
        notifier: Optional[Notifier] = None,
        settings: Optional[Settings] = None,
    ) -> None:
        settings = settings or Settings()
        self._store = store
        self._logger = logger or StructuredLogger(path=settings.log_path)
        self._notifier = notifier
        self._budgets = BudgetGuard(
            store, logger=self._logger, default_alert_percent=settings.budget_alert_percent
        )
        self._ledger = Ledger(
            store,
            self._budgets,
            logger=self._logger,
            notifier=notifier,
            page_size=settings.transaction_page_size,
        )
        self._allowances = AllowanceScheduler(
            store,
            self._ledger,
            logger=self._logger,
            notifier=notifier,
            savings=self._ledger,
            window=settings.allowance_window,
        )
        self._tasks = TaskRewardWorkflow(store, self._ledger, logger=self._logger, notifier=notifier)

    @classmethod
    def from_settings(
        cls, settings: Optional[Settings] = None, *, notifier: Optional[Notifier] = None
    ) -> "KidLedger":
        settings = settings or load_settings()
        store = create_store(settings.database_url, echo=settings.sql_echo)
        return cls(store, notifier=notifier or NotificationCenter(), settings=settings)

    @property
    def logger(self) -> StructuredLogger:
        return self._logger

    @property
    def notifier(self) -> Optional[Notifier]:
        return self._notifier

    @property
    def store(self) -> Store:
        return self._store

    # ------------------------------------------------------------------
    # Accounts and ledger
    # ------------------------------------------------------------------
    def open_account(
        self,
        actor: Actor,
        name: str,
        *,
        family_id: Optional[str] = None,
        weekly_allowance: AmountLike = 0,
        allowance_day: Optional[Weekday | int] = None,
        allow_debt: bool = False,
        starting_balance: AmountLike = 0,
    ) -> AccountSnapshot:
        return self._ledger.open_account(
            actor,
            name,
            family_id=family_id,
            weekly_allowance=weekly_allowance,
            allowance_day=allowance_day,
            allow_debt=allow_debt,
            starting_balance=starting_balance,
        )

    def configure_account(self, actor: Actor, account_id: int, **changes: object) -> AccountSnapshot:
        return self._ledger.configure_account(actor, account_id, **changes)  # type: ignore[arg-type]

    def get_account(self, actor: Actor, account_id: int) -> AccountSnapshot:
        return self._ledger.get_account(actor, account_id)

    def get_family_accounts(self, actor: Actor, family_id: str) -> Sequence[AccountSnapshot]:
        return self._ledger.get_family_accounts(actor, family_id)

    def get_balance(self, actor: Actor, account_id: int) -> Decimal:
        return self._ledger.get_balance(actor, account_id)

    def create_transaction(
        self,
        actor: Actor,
        account_id: int,
        amount: AmountLike,
        direction: TransactionDirection | str,
        category: TransactionCategory | str,
        description: str,
        *,
        draw_from_savings: bool = False,
        notes: Optional[str] = None,
        at: Optional[datetime] = None,
    ) -> LedgerEntry:
        return self._ledger.create_transaction(
            actor,
            account_id,
            amount,
            direction,
            category,
            description,
            draw_from_savings=draw_from_savings,
            notes=notes,
            at=at,
        )

    def get_account_transactions(
        self,
        actor: Actor,
        account_id: int,
        *,
        limit: Optional[int] = None,
        offset: int = 0,
        category: Optional[TransactionCategory | str] = None,
    ) -> Sequence[LedgerEntry]:
        return self._ledger.get_account_transactions(
            actor, account_id, limit=limit, offset=offset, category=category
        )

    def transfer_to_savings(self, actor: Actor, account_id: int, amount: AmountLike) -> LedgerEntry:
        return self._ledger.transfer_to_savings(actor, account_id, amount)

    def withdraw_from_savings(self, actor: Actor, account_id: int, amount: AmountLike) -> LedgerEntry:
        return self._ledger.withdraw_from_savings(actor, account_id, amount)

    def get_savings_transactions(self, actor: Actor, account_id: int) -> Sequence[SavingsTransaction]:
        return self._ledger.get_savings_transactions(actor, account_id)

    @staticmethod
    def suggest_category(text: str, direction: TransactionDirection | str) -> TransactionCategory:
        return suggest_category(text, TransactionDirection(direction))

    # ------------------------------------------------------------------
    # Budgets
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
        return self._budgets.set_budget(
            actor,
            account_id,
            category,
            limit,
            period=period,
            alert_threshold_percent=alert_threshold_percent,
            enforce_limit=enforce_limit,
        )

    def get_budget(self, actor: Actor, account_id: int, category: TransactionCategory | str) -> CategoryBudget:
        return self._budgets.get_budget(actor, account_id, category)

    def get_budgets(self, actor: Actor, account_id: int) -> Sequence[CategoryBudget]:
        return self._budgets.get_budgets(actor, account_id)

    def delete_budget(self, actor: Actor, account_id: int, category: TransactionCategory | str) -> None:
        self._budgets.delete_budget(actor, account_id, category)

    def check_budget(
        self, actor: Actor, account_id: int, category: TransactionCategory | str, amount: AmountLike
    ) -> BudgetCheckResult:
        return self._budgets.check_budget(actor, account_id, category, amount)

    def get_budget_statuses(self, actor: Actor, account_id: int) -> Sequence[BudgetStatusReport]:
        return self._budgets.get_budget_statuses(actor, account_id)

    # ------------------------------------------------------------------
    # Allowances
    # ------------------------------------------------------------------
    def pay_weekly_allowance(
        self, actor: Actor, account_id: int, *, at: Optional[datetime] = None
    ) -> AllowancePayment:
        return self._allowances.pay_weekly_allowance(actor, account_id, at=at)

    def process_all_pending_allowances(self, *, at: Optional[datetime] = None) -> AllowanceBatchResult:
        return self._allowances.process_all_pending_allowances(at=at)

    def pause_allowance(self, actor: Actor, account_id: int, reason: Optional[str] = None) -> AccountSnapshot:
        return self._allowances.pause_allowance(actor, account_id, reason)

    def resume_allowance(self, actor: Actor, account_id: int, reason: Optional[str] = None) -> AccountSnapshot:
        return self._allowances.resume_allowance(actor, account_id, reason)

    def adjust_allowance_amount(
        self, actor: Actor, account_id: int, new_amount: AmountLike, reason: Optional[str] = None
    ) -> AccountSnapshot:
        return self._allowances.adjust_allowance_amount(actor, account_id, new_amount, reason)

    def get_adjustment_history(self, actor: Actor, account_id: int) -> Sequence[AllowanceAdjustment]:
        return self._allowances.get_adjustment_history(actor, account_id)

    def next_allowance_due(
        self, actor: Actor, account_id: int, *, at: Optional[datetime] = None
    ) -> Optional[datetime]:
        return self._allowances.next_allowance_due(actor, account_id, at=at)

    # ------------------------------------------------------------------
    # Tasks
    # ------------------------------------------------------------------
    def create_task(
        self,
        actor: Actor,
        account_id: int,
        title: str,
        reward_amount: AmountLike,
        *,
        description: str = "",
        recurrence: Optional[RecurrenceRule] = None,
    ) -> ChoreTask:
        return self._tasks.create_task(
            actor, account_id, title, reward_amount, description=description, recurrence=recurrence
        )

    def update_task(self, actor: Actor, task_id: int, **changes: object) -> ChoreTask:
        return self._tasks.update_task(actor, task_id, **changes)  # type: ignore[arg-type]

    def archive_task(self, actor: Actor, task_id: int) -> ChoreTask:
        return self._tasks.archive_task(actor, task_id)

    def get_task(self, actor: Actor, task_id: int) -> ChoreTask:
        return self._tasks.get_task(actor, task_id)

    def get_tasks(
        self,
        actor: Actor,
        *,
        account_id: Optional[int] = None,
        status: Optional[TaskStatus | str] = None,
        recurring: Optional[bool] = None,
    ) -> Sequence[ChoreTask]:
        return self._tasks.get_tasks(actor, account_id=account_id, status=status, recurring=recurring)

    def complete_task(
        self,
        actor: Actor,
        task_id: int,
        *,
        notes: Optional[str] = None,
        photo_url: Optional[str] = None,
    ) -> TaskCompletion:
        return self._tasks.complete_task(actor, task_id, notes=notes, photo_url=photo_url)

    def review_completion(
        self, actor: Actor, completion_id: int, approve: bool, reason: Optional[str] = None
    ) -> TaskCompletion:
        return self._tasks.review_completion(actor, completion_id, approve, reason)

    def get_task_completions(
        self,
        actor: Actor,
        *,
        task_id: Optional[int] = None,
        account_id: Optional[int] = None,
        status: Optional[CompletionStatus | str] = None,
    ) -> Sequence[TaskCompletion]:
        return self._tasks.get_task_completions(actor, task_id=task_id, account_id=account_id, status=status)

    def get_pending_approvals(self, actor: Actor) -> Sequence[TaskCompletion]:
        return self._tasks.get_pending_approvals(actor)

    def get_task_statistics(self, actor: Actor, account_id: int) -> TaskStatistics:
        return self._tasks.get_task_statistics(actor, account_id)

    def generate_recurring_completions(self, *, at: Optional[datetime] = None) -> Sequence[TaskCompletion]:
        return self._tasks.generate_recurring_completions(at=at)


__all__ = ["KidLedger"]

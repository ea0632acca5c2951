"""Persistence and SQLModel definitions for kidledger."""
from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import Column, Integer, UniqueConstraint
from sqlalchemy.engine import Engine
from sqlalchemy.orm.exc import StaleDataError
from sqlalchemy.pool import StaticPool
from sqlmodel import Field, Session, SQLModel, create_engine

from .exceptions import AccountNotFoundError, ConcurrencyConflictError
from .models import (
    AccountSnapshot,
    AdjustmentType,
    AllowanceAdjustment,
    BudgetPeriod,
    CategoryBudget,
    ChoreTask,
    CompletionStatus,
    LedgerEntry,
    SavingsTransaction,
    SavingsTransactionType,
    SavingsTransferPolicy,
    TaskCompletion,
    TaskStatus,
    TransactionCategory,
    TransactionDirection,
)
from .money import from_cents
from .schedule import RecurrenceRule, RecurrenceType, Weekday

# ---------------------------------------------------------------------------
# Database models
# ---------------------------------------------------------------------------
_child_version = Column("version", Integer, nullable=False)
_completion_version = Column("version", Integer, nullable=False)


class ChildRecord(SQLModel, table=True):
    __tablename__ = "child"

    id: Optional[int] = Field(default=None, primary_key=True)
    family_id: str = Field(index=True)
    name: str
    spending_cents: int = 0
    savings_cents: int = 0
    allowance_cents: int = 0
    allowance_day: Optional[int] = None  # 0=Monday .. 6=Sunday, None=rolling window
    last_allowance_paid_at: Optional[datetime] = None
    allowance_paused: bool = False
    allowance_paused_reason: Optional[str] = None
    allow_debt: bool = False
    savings_policy: str = SavingsTransferPolicy.NONE.value
    savings_transfer_cents: int = 0
    savings_transfer_percent: int = 0
    version: int = Field(default=1, sa_column=_child_version)
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    __mapper_args__ = {"version_id_col": _child_version}

    def to_snapshot(self) -> AccountSnapshot:
        assert self.id is not None
        return AccountSnapshot(
            account_id=self.id,
            family_id=self.family_id,
            name=self.name,
            spending_balance=from_cents(self.spending_cents),
            savings_balance=from_cents(self.savings_cents),
            weekly_allowance=from_cents(self.allowance_cents),
            allowance_day=Weekday(self.allowance_day) if self.allowance_day is not None else None,
            last_allowance_paid_at=self.last_allowance_paid_at,
            allowance_paused=self.allowance_paused,
            allowance_paused_reason=self.allowance_paused_reason,
            allow_debt=self.allow_debt,
            savings_policy=SavingsTransferPolicy(self.savings_policy),
            savings_transfer_amount=from_cents(self.savings_transfer_cents),
            savings_transfer_percent=self.savings_transfer_percent,
            version=self.version,
        )


class LedgerEntryRecord(SQLModel, table=True):
    __tablename__ = "ledger_entry"

    id: Optional[int] = Field(default=None, primary_key=True)
    account_id: int = Field(foreign_key="child.id", index=True)
    amount_cents: int
    direction: str  # credit|debit
    category: str
    description: str
    notes: Optional[str] = None
    balance_after_cents: int
    actor_id: str
    created_at: datetime = Field(default_factory=datetime.utcnow, index=True)

    def to_snapshot(self) -> LedgerEntry:
        assert self.id is not None
        return LedgerEntry(
            entry_id=self.id,
            account_id=self.account_id,
            amount=from_cents(self.amount_cents),
            direction=TransactionDirection(self.direction),
            category=TransactionCategory(self.category),
            description=self.description,
            balance_after=from_cents(self.balance_after_cents),
            actor_id=self.actor_id,
            created_at=self.created_at,
            notes=self.notes,
        )


class SavingsTransactionRecord(SQLModel, table=True):
    __tablename__ = "savings_transaction"

    id: Optional[int] = Field(default=None, primary_key=True)
    account_id: int = Field(foreign_key="child.id", index=True)
    amount_cents: int
    type: str  # deposit|withdrawal|auto_transfer
    description: str
    balance_after_cents: int
    is_automatic: bool = False
    actor_id: str
    created_at: datetime = Field(default_factory=datetime.utcnow)

    def to_snapshot(self) -> SavingsTransaction:
        assert self.id is not None
        return SavingsTransaction(
            transaction_id=self.id,
            account_id=self.account_id,
            amount=from_cents(self.amount_cents),
            type=SavingsTransactionType(self.type),
            description=self.description,
            balance_after=from_cents(self.balance_after_cents),
            is_automatic=self.is_automatic,
            actor_id=self.actor_id,
            created_at=self.created_at,
        )


class CategoryBudgetRecord(SQLModel, table=True):
    __tablename__ = "category_budget"
    __table_args__ = (UniqueConstraint("account_id", "category", name="uq_budget_account_category"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    account_id: int = Field(foreign_key="child.id", index=True)
    category: str
    limit_cents: int
    period: str  # weekly|monthly
    alert_threshold_percent: int = 80
    enforce_limit: bool = False
    created_by: str
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    def to_snapshot(self) -> CategoryBudget:
        assert self.id is not None
        return CategoryBudget(
            budget_id=self.id,
            account_id=self.account_id,
            category=TransactionCategory(self.category),
            limit=from_cents(self.limit_cents),
            period=BudgetPeriod(self.period),
            alert_threshold_percent=self.alert_threshold_percent,
            enforce_limit=self.enforce_limit,
            created_by=self.created_by,
            created_at=self.created_at,
            updated_at=self.updated_at,
        )


class AllowanceAdjustmentRecord(SQLModel, table=True):
    __tablename__ = "allowance_adjustment"

    id: Optional[int] = Field(default=None, primary_key=True)
    account_id: int = Field(foreign_key="child.id", index=True)
    adjustment_type: str  # paused|resumed|amount_changed
    old_amount_cents: int
    new_amount_cents: int
    reason: Optional[str] = None
    actor_id: str
    created_at: datetime = Field(default_factory=datetime.utcnow)

    def to_snapshot(self) -> AllowanceAdjustment:
        assert self.id is not None
        return AllowanceAdjustment(
            adjustment_id=self.id,
            account_id=self.account_id,
            type=AdjustmentType(self.adjustment_type),
            old_amount=from_cents(self.old_amount_cents),
            new_amount=from_cents(self.new_amount_cents),
            reason=self.reason,
            actor_id=self.actor_id,
            created_at=self.created_at,
        )


class ChoreTaskRecord(SQLModel, table=True):
    __tablename__ = "chore_task"

    id: Optional[int] = Field(default=None, primary_key=True)
    account_id: int = Field(foreign_key="child.id", index=True)
    family_id: str = Field(index=True)
    title: str
    description: str = ""
    reward_cents: int = 0
    status: str = TaskStatus.ACTIVE.value
    recurrence_type: Optional[str] = None  # daily|weekly|monthly
    recurrence_day: Optional[int] = None
    recurrence_day_of_month: Optional[int] = None
    created_by: str
    created_at: datetime = Field(default_factory=datetime.utcnow)
    archived_at: Optional[datetime] = None

    @property
    def recurrence(self) -> Optional[RecurrenceRule]:
        if self.recurrence_type is None:
            return None
        return RecurrenceRule(
            RecurrenceType(self.recurrence_type),
            weekday=Weekday(self.recurrence_day) if self.recurrence_day is not None else None,
            day_of_month=self.recurrence_day_of_month,
        )

    def apply_recurrence(self, rule: Optional[RecurrenceRule]) -> None:
        if rule is None:
            self.recurrence_type = None
            self.recurrence_day = None
            self.recurrence_day_of_month = None
            return
        self.recurrence_type = rule.type.value
        self.recurrence_day = int(rule.weekday) if rule.weekday is not None else None
        self.recurrence_day_of_month = rule.day_of_month

    def to_snapshot(self) -> ChoreTask:
        assert self.id is not None
        return ChoreTask(
            task_id=self.id,
            account_id=self.account_id,
            family_id=self.family_id,
            title=self.title,
            description=self.description,
            reward_amount=from_cents(self.reward_cents),
            status=TaskStatus(self.status),
            recurrence=self.recurrence,
            created_by=self.created_by,
            created_at=self.created_at,
            archived_at=self.archived_at,
        )


class TaskCompletionRecord(SQLModel, table=True):
    __tablename__ = "task_completion"

    id: Optional[int] = Field(default=None, primary_key=True)
    task_id: int = Field(foreign_key="chore_task.id", index=True)
    account_id: int = Field(foreign_key="child.id", index=True)
    completed_at: datetime = Field(default_factory=datetime.utcnow)
    status: str = CompletionStatus.PENDING_APPROVAL.value
    notes: Optional[str] = None
    photo_url: Optional[str] = None
    reviewer_id: Optional[str] = None
    reviewed_at: Optional[datetime] = None
    rejection_reason: Optional[str] = None
    ledger_entry_id: Optional[int] = Field(default=None, foreign_key="ledger_entry.id")
    version: int = Field(default=1, sa_column=_completion_version)

    __mapper_args__ = {"version_id_col": _completion_version}

    def to_snapshot(self, task: ChoreTaskRecord) -> TaskCompletion:
        assert self.id is not None
        return TaskCompletion(
            completion_id=self.id,
            task_id=self.task_id,
            account_id=self.account_id,
            task_title=task.title,
            reward_amount=from_cents(task.reward_cents),
            completed_at=self.completed_at,
            status=CompletionStatus(self.status),
            notes=self.notes,
            photo_url=self.photo_url,
            reviewer_id=self.reviewer_id,
            reviewed_at=self.reviewed_at,
            rejection_reason=self.rejection_reason,
            ledger_entry_id=self.ledger_entry_id,
        )


# ---------------------------------------------------------------------------
# Engine and session handling
# ---------------------------------------------------------------------------
class Store:
    """Backing store: an engine plus helpers for request-scoped sessions."""

    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    def create_all(self) -> None:
        SQLModel.metadata.create_all(self.engine)

    def session(self) -> Session:
        return Session(self.engine, expire_on_commit=False)

    def dispose(self) -> None:
        self.engine.dispose()


def create_store(url: str, *, echo: bool = False, create: bool = True) -> Store:
    kwargs: dict = {}
    if url.startswith("sqlite"):
        kwargs["connect_args"] = {"check_same_thread": False}
        if url in {"sqlite://", "sqlite:///:memory:"}:
            kwargs["poolclass"] = StaticPool
    store = Store(create_engine(url, echo=echo, **kwargs))
    if create:
        store.create_all()
    return store


def load_child(session: Session, account_id: int, *, for_update: bool = False) -> ChildRecord:
    child = session.get(ChildRecord, account_id, with_for_update=for_update)
    if child is None:
        raise AccountNotFoundError(f"Account {account_id} does not exist.")
    return child


def commit(session: Session) -> None:
    """Commit the unit of work, translating stale row versions."""

    try:
        session.commit()
    except StaleDataError as exc:
        session.rollback()
        raise ConcurrencyConflictError(
            "The record was modified by another operation; retry the request."
        ) from exc


__all__ = [
    "AllowanceAdjustmentRecord",
    "CategoryBudgetRecord",
    "ChildRecord",
    "ChoreTaskRecord",
    "LedgerEntryRecord",
    "SavingsTransactionRecord",
    "Store",
    "TaskCompletionRecord",
    "commit",
    "create_store",
    "load_child",
]

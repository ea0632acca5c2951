"""Domain models used by the kidledger package.

Everything returned from the ledger, budget guard, allowance scheduler and task
workflow is one of the frozen snapshots below; none of them is tied to a
database session.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional, Tuple

from .money import ZERO
from .schedule import RecurrenceRule, Weekday


class ActorRole(str, Enum):
    """Role of the identity performing an operation."""

    PARENT = "parent"
    CHILD = "child"
    SYSTEM = "system"


class TransactionDirection(str, Enum):
    """Whether a ledger entry adds to or removes from the spending balance."""

    CREDIT = "credit"
    DEBIT = "debit"


class TransactionCategory(str, Enum):
    """Closed set of categories for ledger entries."""

    ALLOWANCE = "allowance"
    CHORES = "chores"
    TASK = "task"
    GIFT = "gift"
    BONUS_REWARD = "bonus_reward"
    OTHER_INCOME = "other_income"
    TOYS = "toys"
    GAMES = "games"
    BOOKS = "books"
    CLOTHES = "clothes"
    SNACKS = "snacks"
    CANDY = "candy"
    ELECTRONICS = "electronics"
    ENTERTAINMENT = "entertainment"
    SPORTS = "sports"
    CRAFTS = "crafts"
    SAVINGS = "savings"
    CHARITY = "charity"
    OTHER_SPENDING = "other_spending"

    @property
    def is_income(self) -> bool:
        return self in INCOME_CATEGORIES

    @property
    def display_name(self) -> str:
        return self.value.replace("_", " ").title()


INCOME_CATEGORIES = frozenset(
    {
        TransactionCategory.ALLOWANCE,
        TransactionCategory.CHORES,
        TransactionCategory.TASK,
        TransactionCategory.GIFT,
        TransactionCategory.BONUS_REWARD,
        TransactionCategory.OTHER_INCOME,
    }
)


class SavingsTransferPolicy(str, Enum):
    """How much of each allowance is moved into savings automatically."""

    NONE = "none"
    PERCENTAGE = "percentage"
    FIXED_AMOUNT = "fixed_amount"


class SavingsTransactionType(str, Enum):
    DEPOSIT = "deposit"
    WITHDRAWAL = "withdrawal"
    AUTO_TRANSFER = "auto_transfer"


class BudgetPeriod(str, Enum):
    WEEKLY = "weekly"
    MONTHLY = "monthly"


class BudgetStatus(str, Enum):
    """Reporting classification of spending against a budget limit."""

    SAFE = "safe"
    WARNING = "warning"
    AT_LIMIT = "at_limit"
    OVER_BUDGET = "over_budget"


class AdjustmentType(str, Enum):
    PAUSED = "paused"
    RESUMED = "resumed"
    AMOUNT_CHANGED = "amount_changed"


class TaskStatus(str, Enum):
    ACTIVE = "active"
    ARCHIVED = "archived"


class CompletionStatus(str, Enum):
    PENDING_APPROVAL = "pending_approval"
    APPROVED = "approved"
    REJECTED = "rejected"


@dataclass(frozen=True, slots=True)
class Actor:
    """Already-resolved identity threaded into every operation."""

    actor_id: str
    role: ActorRole
    family_id: Optional[str] = None
    account_id: Optional[int] = None

    @classmethod
    def system(cls) -> "Actor":
        return cls(actor_id="system", role=ActorRole.SYSTEM)

    @classmethod
    def parent(cls, actor_id: str, family_id: str) -> "Actor":
        return cls(actor_id=actor_id, role=ActorRole.PARENT, family_id=family_id)

    @classmethod
    def child(cls, actor_id: str, family_id: str, account_id: int) -> "Actor":
        return cls(actor_id=actor_id, role=ActorRole.CHILD, family_id=family_id, account_id=account_id)

    @property
    def is_system(self) -> bool:
        return self.role is ActorRole.SYSTEM

    @property
    def is_parent(self) -> bool:
        return self.role is ActorRole.PARENT

    def belongs_to(self, family_id: str) -> bool:
        """True for system actors and for members of ``family_id``."""

        return self.is_system or (self.family_id is not None and self.family_id == family_id)


@dataclass(frozen=True, slots=True)
class AccountSnapshot:
    """Point-in-time view of a child's account."""

    account_id: int
    family_id: str
    name: str
    spending_balance: Decimal
    savings_balance: Decimal
    weekly_allowance: Decimal
    allowance_day: Optional[Weekday]
    last_allowance_paid_at: Optional[datetime]
    allowance_paused: bool
    allowance_paused_reason: Optional[str]
    allow_debt: bool
    savings_policy: SavingsTransferPolicy
    savings_transfer_amount: Decimal
    savings_transfer_percent: int
    version: int

    @property
    def total_balance(self) -> Decimal:
        return self.spending_balance + self.savings_balance


@dataclass(frozen=True, slots=True)
class LedgerEntry:
    """Immutable record of a single balance change."""

    entry_id: int
    account_id: int
    amount: Decimal
    direction: TransactionDirection
    category: TransactionCategory
    description: str
    balance_after: Decimal
    actor_id: str
    created_at: datetime
    notes: Optional[str] = None

    @property
    def signed_amount(self) -> Decimal:
        return self.amount if self.direction is TransactionDirection.CREDIT else -self.amount


@dataclass(frozen=True, slots=True)
class SavingsTransaction:
    """Movement of money into or out of the savings balance."""

    transaction_id: int
    account_id: int
    amount: Decimal
    type: SavingsTransactionType
    description: str
    balance_after: Decimal
    is_automatic: bool
    actor_id: str
    created_at: datetime


@dataclass(frozen=True, slots=True)
class CategoryBudget:
    budget_id: int
    account_id: int
    category: TransactionCategory
    limit: Decimal
    period: BudgetPeriod
    alert_threshold_percent: int
    enforce_limit: bool
    created_by: str
    created_at: datetime
    updated_at: datetime


@dataclass(frozen=True, slots=True)
class BudgetCheckResult:
    """Outcome of checking a prospective debit against a category budget."""

    allowed: bool
    message: str
    category: TransactionCategory
    current_spending: Decimal = ZERO
    limit: Optional[Decimal] = None
    remaining_after: Optional[Decimal] = None
    overage: Decimal = ZERO
    status_before: Optional[BudgetStatus] = None
    status_after: Optional[BudgetStatus] = None

    @property
    def crosses_alert(self) -> bool:
        """True when the debit moves spending out of the safe band."""

        if self.status_before is None or self.status_after is None:
            return False
        return self.status_before is BudgetStatus.SAFE and self.status_after is not BudgetStatus.SAFE


@dataclass(frozen=True, slots=True)
class BudgetStatusReport:
    category: TransactionCategory
    period: BudgetPeriod
    limit: Decimal
    current_spending: Decimal
    remaining: Decimal
    percent_used: int
    status: BudgetStatus
    enforce_limit: bool


@dataclass(frozen=True, slots=True)
class AllowanceAdjustment:
    """Append-only audit record for allowance changes."""

    adjustment_id: int
    account_id: int
    type: AdjustmentType
    old_amount: Decimal
    new_amount: Decimal
    reason: Optional[str]
    actor_id: str
    created_at: datetime


@dataclass(frozen=True, slots=True)
class AllowancePayment:
    """Result of paying one weekly allowance."""

    entry: LedgerEntry
    paid_at: datetime
    savings_transfer: Optional[LedgerEntry] = None


@dataclass(frozen=True, slots=True)
class AllowanceBatchResult:
    processed: int
    skipped: int
    errored: int
    failures: Tuple[Tuple[int, str], ...] = ()

    @property
    def examined(self) -> int:
        return self.processed + self.skipped + self.errored


@dataclass(frozen=True, slots=True)
class ChoreTask:
    task_id: int
    account_id: int
    family_id: str
    title: str
    description: str
    reward_amount: Decimal
    status: TaskStatus
    recurrence: Optional[RecurrenceRule]
    created_by: str
    created_at: datetime
    archived_at: Optional[datetime] = None

    @property
    def is_recurring(self) -> bool:
        return self.recurrence is not None


@dataclass(frozen=True, slots=True)
class TaskCompletion:
    completion_id: int
    task_id: int
    account_id: int
    task_title: str
    reward_amount: Decimal
    completed_at: datetime
    status: CompletionStatus
    notes: Optional[str] = None
    photo_url: Optional[str] = None
    reviewer_id: Optional[str] = None
    reviewed_at: Optional[datetime] = None
    rejection_reason: Optional[str] = None
    ledger_entry_id: Optional[int] = None


@dataclass(frozen=True, slots=True)
class TaskStatistics:
    total_tasks: int
    active_tasks: int
    archived_tasks: int
    total_completions: int
    pending_approvals: int
    total_earned: Decimal
    pending_earnings: Decimal
    completion_rate: Decimal


__all__ = [
    "AccountSnapshot",
    "Actor",
    "ActorRole",
    "AdjustmentType",
    "AllowanceAdjustment",
    "AllowanceBatchResult",
    "AllowancePayment",
    "BudgetCheckResult",
    "BudgetPeriod",
    "BudgetStatus",
    "BudgetStatusReport",
    "CategoryBudget",
    "ChoreTask",
    "CompletionStatus",
    "INCOME_CATEGORIES",
    "LedgerEntry",
    "SavingsTransaction",
    "SavingsTransactionType",
    "SavingsTransferPolicy",
    "TaskCompletion",
    "TaskStatistics",
    "TaskStatus",
    "TransactionCategory",
    "TransactionDirection",
]

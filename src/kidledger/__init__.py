"""kidledger: allowance ledger, category budgets and chore reward payouts for families."""

from .allowance import AllowanceScheduler
from .budgets import BudgetGuard
from .categories import suggest_category
from .config import Settings, load_settings
from .exceptions import (
    AccountNotFoundError,
    BudgetExceededError,
    BudgetNotFoundError,
    CompletionNotFoundError,
    ConcurrencyConflictError,
    InsufficientFundsError,
    InvalidStateError,
    KidLedgerError,
    NotFoundError,
    TaskNotFoundError,
    UnauthorizedError,
)
from .ledger import Ledger
from .models import (
    AccountSnapshot,
    Actor,
    ActorRole,
    AllowanceAdjustment,
    AllowanceBatchResult,
    AllowancePayment,
    BudgetCheckResult,
    BudgetPeriod,
    BudgetStatus,
    BudgetStatusReport,
    CategoryBudget,
    ChoreTask,
    CompletionStatus,
    LedgerEntry,
    SavingsTransaction,
    SavingsTransactionType,
    SavingsTransferPolicy,
    TaskCompletion,
    TaskStatistics,
    TaskStatus,
    TransactionCategory,
    TransactionDirection,
)
from .notifications import Notification, NotificationCenter, NotificationType, Notifier
from .ops import StructuredLogger
from .persistence import Store, create_store
from .schedule import FixedDay, RecurrenceRule, RecurrenceType, Rolling, Weekday
from .service import KidLedger
from .tasks import TaskRewardWorkflow

__all__ = [
    "AccountNotFoundError",
    "AccountSnapshot",
    "Actor",
    "ActorRole",
    "AllowanceAdjustment",
    "AllowanceBatchResult",
    "AllowancePayment",
    "AllowanceScheduler",
    "BudgetCheckResult",
    "BudgetExceededError",
    "BudgetGuard",
    "BudgetNotFoundError",
    "BudgetPeriod",
    "BudgetStatus",
    "BudgetStatusReport",
    "CategoryBudget",
    "ChoreTask",
    "CompletionNotFoundError",
    "CompletionStatus",
    "ConcurrencyConflictError",
    "FixedDay",
    "InsufficientFundsError",
    "InvalidStateError",
    "KidLedger",
    "KidLedgerError",
    "Ledger",
    "LedgerEntry",
    "NotFoundError",
    "Notification",
    "NotificationCenter",
    "NotificationType",
    "Notifier",
    "RecurrenceRule",
    "RecurrenceType",
    "Rolling",
    "SavingsTransaction",
    "SavingsTransactionType",
    "SavingsTransferPolicy",
    "Settings",
    "Store",
    "StructuredLogger",
    "TaskCompletion",
    "TaskNotFoundError",
    "TaskRewardWorkflow",
    "TaskStatistics",
    "TaskStatus",
    "TransactionCategory",
    "TransactionDirection",
    "UnauthorizedError",
    "Weekday",
    "create_store",
    "load_settings",
    "suggest_category",
]

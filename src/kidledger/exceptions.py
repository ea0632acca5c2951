"""Custom exception hierarchy for the kidledger package."""

from __future__ import annotations

from decimal import Decimal


class KidLedgerError(Exception):
    """Base class for all kidledger specific errors."""


class NotFoundError(KidLedgerError):
    """Raised when a lookup by id fails."""


class AccountNotFoundError(NotFoundError):
    """Raised when an account lookup fails."""


class TaskNotFoundError(NotFoundError):
    """Raised when a chore task lookup fails."""


class CompletionNotFoundError(NotFoundError):
    """Raised when a task completion lookup fails."""


class BudgetNotFoundError(NotFoundError):
    """Raised when no budget exists for an account and category."""


class UnauthorizedError(KidLedgerError):
    """Raised when the actor lacks the role or family membership for the target."""


class InvalidStateError(KidLedgerError):
    """Raised when the target is not in a state that allows the operation."""


class InsufficientFundsError(KidLedgerError):
    """Raised when a debit exceeds the funds available under the account policy."""


class BudgetExceededError(KidLedgerError):
    """Raised when an enforced category budget would be crossed by a debit."""

    def __init__(
        self,
        message: str,
        *,
        category: str,
        current_spending: Decimal,
        limit: Decimal,
        overage: Decimal,
    ) -> None:
        super().__init__(message)
        self.category = category
        self.current_spending = current_spending
        self.limit = limit
        self.overage = overage


class ConcurrencyConflictError(KidLedgerError):
    """Raised when another writer changed the account since it was read."""


__all__ = [
    "AccountNotFoundError",
    "BudgetExceededError",
    "BudgetNotFoundError",
    "CompletionNotFoundError",
    "ConcurrencyConflictError",
    "InsufficientFundsError",
    "InvalidStateError",
    "KidLedgerError",
    "NotFoundError",
    "TaskNotFoundError",
    "UnauthorizedError",
]

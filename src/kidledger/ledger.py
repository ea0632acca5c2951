"""Atomic balance mutation and immutable transaction history."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import List, Optional, Protocol, Sequence

from sqlmodel import Session, select

from .access import ensure_family, ensure_member, ensure_parent
from .budgets import BudgetGuard
from .exceptions import InsufficientFundsError, UnauthorizedError
from .models import (
    AccountSnapshot,
    Actor,
    ActorRole,
    BudgetCheckResult,
    LedgerEntry,
    SavingsTransaction,
    SavingsTransactionType,
    SavingsTransferPolicy,
    TransactionCategory,
    TransactionDirection,
)
from .money import ZERO, AmountLike, format_currency, from_cents, percent_of, require_positive, to_cents, to_decimal
from .notifications import Notification, Notifier, NotificationType, deliver
from .ops import StructuredLogger
from .persistence import (
    ChildRecord,
    LedgerEntryRecord,
    SavingsTransactionRecord,
    Store,
    commit,
    load_child,
)
from .schedule import Weekday

_UNSET = object()


class SavingsTransferCapability(Protocol):
    """Moves part of a freshly paid allowance into savings."""

    def auto_transfer(
        self, account_id: int, allowance: Decimal, *, at: Optional[datetime] = None
    ) -> Optional[LedgerEntry]:
        ...


class Ledger:
    """Owns every change to a child's spending and savings balances.

    Each public mutation runs as one unit of work: the balance update, its
    :class:`LedgerEntryRecord` and any savings movement are committed together
    or not at all. The child row carries a version counter so two writers that
    read the same balance cannot both commit.
    """

    def __init__(
        self,
        store: Store,
        budgets: BudgetGuard,
        *,
        logger: Optional[StructuredLogger] = None,
        notifier: Optional[Notifier] = None,
        page_size: int = 20,
    ) -> None:
        self._store = store
        self._budgets = budgets
        self._logger = logger or StructuredLogger()
        self._notifier = notifier
        self._page_size = page_size

    # ------------------------------------------------------------------
    # Accounts
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
        family = family_id or actor.family_id
        if not family:
            raise ValueError("A family id is required to open an account.")
        if not (actor.is_parent or actor.is_system):
            raise UnauthorizedError("Only a parent can open an account.")
        ensure_family(actor, family)
        name = name.strip()
        if not name:
            raise ValueError("Account name is required.")
        allowance = require_positive(to_decimal(weekly_allowance), allow_zero=True)
        opening = require_positive(to_decimal(starting_balance), allow_zero=True)
        now = datetime.utcnow()
        with self._store.session() as session:
            child = ChildRecord(
                family_id=family,
                name=name,
                allowance_cents=to_cents(allowance),
                allowance_day=int(Weekday(allowance_day)) if allowance_day is not None else None,
                allow_debt=allow_debt,
                created_at=now,
                updated_at=now,
            )
            session.add(child)
            session.flush()
            if opening > ZERO:
                self.post(
                    session,
                    child,
                    actor,
                    opening,
                    TransactionDirection.CREDIT,
                    TransactionCategory.OTHER_INCOME,
                    "Opening balance",
                    at=now,
                )
            commit(session)
            snapshot = child.to_snapshot()
        self._logger.log(
            "account_opened",
            account_id=snapshot.account_id,
            family_id=family,
            name=name,
            balance=snapshot.spending_balance,
            actor=actor.actor_id,
        )
        return snapshot

    def configure_account(
        self,
        actor: Actor,
        account_id: int,
        *,
        allow_debt: Optional[bool] = None,
        allowance_day: object = _UNSET,
        savings_policy: Optional[SavingsTransferPolicy | str] = None,
        savings_transfer_amount: Optional[AmountLike] = None,
        savings_transfer_percent: Optional[int] = None,
    ) -> AccountSnapshot:
        """Update overdraft, schedule and savings settings; ``allowance_day=None`` means rolling."""

        with self._store.session() as session:
            child = load_child(session, account_id, for_update=True)
            ensure_parent(actor, child)
            if allow_debt is not None:
                child.allow_debt = allow_debt
            if allowance_day is not _UNSET:
                child.allowance_day = None if allowance_day is None else int(Weekday(allowance_day))  # type: ignore[arg-type]
            if savings_policy is not None:
                child.savings_policy = SavingsTransferPolicy(savings_policy).value
            if savings_transfer_amount is not None:
                amount = require_positive(to_decimal(savings_transfer_amount), allow_zero=True)
                child.savings_transfer_cents = to_cents(amount)
            if savings_transfer_percent is not None:
                if isinstance(savings_transfer_percent, bool) or not 0 <= savings_transfer_percent <= 100:
                    raise ValueError("Savings transfer percent must be between 0 and 100.")
                child.savings_transfer_percent = savings_transfer_percent
            child.updated_at = datetime.utcnow()
            session.add(child)
            commit(session)
            snapshot = child.to_snapshot()
        self._logger.log(
            "account_configured",
            account_id=account_id,
            allow_debt=snapshot.allow_debt,
            allowance_day=snapshot.allowance_day,
            savings_policy=snapshot.savings_policy,
            actor=actor.actor_id,
        )
        return snapshot

    def get_account(self, actor: Actor, account_id: int) -> AccountSnapshot:
        with self._store.session() as session:
            child = load_child(session, account_id)
            ensure_member(actor, child)
            return child.to_snapshot()

    def get_balance(self, actor: Actor, account_id: int) -> Decimal:
        return self.get_account(actor, account_id).spending_balance

    def get_family_accounts(self, actor: Actor, family_id: str) -> Sequence[AccountSnapshot]:
        ensure_family(actor, family_id)
        with self._store.session() as session:
            records = session.exec(
                select(ChildRecord).where(ChildRecord.family_id == family_id).order_by(ChildRecord.id)
            ).all()
            snapshots = tuple(record.to_snapshot() for record in records)
        if actor.role is ActorRole.CHILD:
            return tuple(item for item in snapshots if item.account_id == actor.account_id)
        return snapshots

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------
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
        value = require_positive(to_decimal(amount))
        direction = TransactionDirection(direction)
        category = TransactionCategory(category)
        moment = at or datetime.utcnow()
        check: Optional[BudgetCheckResult] = None
        with self._store.session() as session:
            child = load_child(session, account_id, for_update=True)
            ensure_member(actor, child)
            if actor.role is ActorRole.CHILD and direction is TransactionDirection.CREDIT:
                raise UnauthorizedError("Children cannot credit their own account.")
            if direction is TransactionDirection.DEBIT:
                check = self._budgets.evaluate(session, account_id, category, value, moment)
                self._budgets.raise_for(check)
            records = self.post(
                session,
                child,
                actor,
                value,
                direction,
                category,
                description,
                draw_from_savings=draw_from_savings,
                notes=notes,
                at=moment,
            )
            commit(session)
            entry = records[-1].to_snapshot()
            family_id = child.family_id
        self._logger.log(
            "transaction_created",
            account_id=account_id,
            entry_id=entry.entry_id,
            amount=entry.amount,
            direction=direction.value,
            category=category.value,
            balance_after=entry.balance_after,
            drawn_from_savings=len(records) > 1,
            actor=actor.actor_id,
        )
        self._notify(
            Notification(
                type=NotificationType.TRANSACTION_CREATED,
                title="New transaction",
                body=f"{format_currency(entry.signed_amount)} {description}",
                account_id=account_id,
                family_id=family_id,
                data={"entry_id": str(entry.entry_id), "category": category.value},
            )
        )
        if check is not None and check.crosses_alert:
            self._notify(
                Notification(
                    type=NotificationType.BUDGET_WARNING,
                    title=f"{category.display_name} budget",
                    body=check.message,
                    account_id=account_id,
                    family_id=family_id,
                    data={"category": category.value, "status": check.status_after.value},  # type: ignore[union-attr]
                )
            )
        return entry

    def post(
        self,
        session: Session,
        child: ChildRecord,
        actor: Actor,
        amount: Decimal,
        direction: TransactionDirection,
        category: TransactionCategory,
        description: str,
        *,
        draw_from_savings: bool = False,
        notes: Optional[str] = None,
        at: Optional[datetime] = None,
    ) -> List[LedgerEntryRecord]:
        """Apply one balance change inside an open unit of work without committing.

        Returns the ledger records written, the requested entry last. A
        savings drawdown adds a credit entry before it.
        """

        moment = at or datetime.utcnow()
        cents = to_cents(amount)
        written: List[LedgerEntryRecord] = []
        if direction is TransactionDirection.DEBIT:
            shortfall = cents - child.spending_cents
            if shortfall > 0:
                drawn = 0
                if draw_from_savings:
                    if child.savings_cents >= shortfall:
                        drawn = shortfall
                    elif child.allow_debt:
                        drawn = max(child.savings_cents, 0)
                if drawn < shortfall and not child.allow_debt:
                    raise InsufficientFundsError(
                        f"Insufficient funds: {format_currency(from_cents(child.spending_cents))} available, "
                        f"{format_currency(amount)} requested."
                    )
                if drawn:
                    written.append(
                        self._withdraw_savings(session, child, actor, drawn, "Drawn from savings", at=moment)
                    )
            child.spending_cents -= cents
        else:
            child.spending_cents += cents
        written.append(self._record(session, child, actor, cents, direction, category, description, notes, moment))
        return written

    def get_account_transactions(
        self,
        actor: Actor,
        account_id: int,
        *,
        limit: Optional[int] = None,
        offset: int = 0,
        category: Optional[TransactionCategory | str] = None,
    ) -> Sequence[LedgerEntry]:
        """Return entries newest first."""

        page = self._page_size if limit is None else limit
        if page <= 0:
            return tuple()
        with self._store.session() as session:
            child = load_child(session, account_id)
            ensure_member(actor, child)
            statement = select(LedgerEntryRecord).where(LedgerEntryRecord.account_id == account_id)
            if category is not None:
                statement = statement.where(LedgerEntryRecord.category == TransactionCategory(category).value)
            statement = (
                statement.order_by(LedgerEntryRecord.created_at.desc(), LedgerEntryRecord.id.desc())
                .offset(max(offset, 0))
                .limit(page)
            )
            return tuple(record.to_snapshot() for record in session.exec(statement).all())

    # ------------------------------------------------------------------
    # Savings
    # ------------------------------------------------------------------
    def transfer_to_savings(
        self,
        actor: Actor,
        account_id: int,
        amount: AmountLike,
        *,
        description: str = "Moved to savings",
        at: Optional[datetime] = None,
    ) -> LedgerEntry:
        value = require_positive(to_decimal(amount))
        with self._store.session() as session:
            child = load_child(session, account_id, for_update=True)
            ensure_member(actor, child)
            record = self._deposit_savings(
                session, child, actor, to_cents(value), description, automatic=False, at=at or datetime.utcnow()
            )
            commit(session)
            entry = record.to_snapshot()
        self._logger.log(
            "savings_deposit",
            account_id=account_id,
            amount=value,
            savings_balance=from_cents(child.savings_cents),
            actor=actor.actor_id,
        )
        return entry

    def withdraw_from_savings(
        self,
        actor: Actor,
        account_id: int,
        amount: AmountLike,
        *,
        description: str = "Withdrawn from savings",
        at: Optional[datetime] = None,
    ) -> LedgerEntry:
        value = require_positive(to_decimal(amount))
        with self._store.session() as session:
            child = load_child(session, account_id, for_update=True)
            ensure_parent(actor, child)
            cents = to_cents(value)
            if child.savings_cents < cents:
                raise InsufficientFundsError(
                    f"Savings hold {format_currency(from_cents(child.savings_cents))}, "
                    f"{format_currency(value)} requested."
                )
            record = self._withdraw_savings(session, child, actor, cents, description, at=at or datetime.utcnow())
            commit(session)
            entry = record.to_snapshot()
        self._logger.log("savings_withdrawal", account_id=account_id, amount=value, actor=actor.actor_id)
        return entry

    def auto_transfer(
        self, account_id: int, allowance: Decimal, *, at: Optional[datetime] = None
    ) -> Optional[LedgerEntry]:
        """Apply the account's savings policy to ``allowance``; ``None`` when nothing moves."""

        actor = Actor.system()
        with self._store.session() as session:
            child = load_child(session, account_id, for_update=True)
            policy = SavingsTransferPolicy(child.savings_policy)
            if policy is SavingsTransferPolicy.PERCENTAGE:
                share = percent_of(allowance, child.savings_transfer_percent)
            elif policy is SavingsTransferPolicy.FIXED_AMOUNT:
                share = from_cents(child.savings_transfer_cents)
            else:
                return None
            cents = to_cents(share)
            if cents <= 0:
                return None
            record = self._deposit_savings(
                session,
                child,
                actor,
                cents,
                "Automatic savings transfer",
                automatic=True,
                at=at or datetime.utcnow(),
            )
            commit(session)
            entry = record.to_snapshot()
        self._logger.log("savings_auto_transfer", account_id=account_id, amount=entry.amount, policy=policy.value)
        return entry

    def get_savings_transactions(self, actor: Actor, account_id: int) -> Sequence[SavingsTransaction]:
        with self._store.session() as session:
            child = load_child(session, account_id)
            ensure_member(actor, child)
            records = session.exec(
                select(SavingsTransactionRecord)
                .where(SavingsTransactionRecord.account_id == account_id)
                .order_by(SavingsTransactionRecord.created_at.desc(), SavingsTransactionRecord.id.desc())
            ).all()
            return tuple(record.to_snapshot() for record in records)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    def _deposit_savings(
        self,
        session: Session,
        child: ChildRecord,
        actor: Actor,
        cents: int,
        description: str,
        *,
        automatic: bool,
        at: datetime,
    ) -> LedgerEntryRecord:
        if child.spending_cents < cents:
            raise InsufficientFundsError(
                f"Insufficient funds to move {format_currency(from_cents(cents))} into savings."
            )
        child.spending_cents -= cents
        child.savings_cents += cents
        session.add(
            SavingsTransactionRecord(
                account_id=child.id,
                amount_cents=cents,
                type=(SavingsTransactionType.AUTO_TRANSFER if automatic else SavingsTransactionType.DEPOSIT).value,
                description=description,
                balance_after_cents=child.savings_cents,
                is_automatic=automatic,
                actor_id=actor.actor_id,
                created_at=at,
            )
        )
        return self._record(
            session,
            child,
            actor,
            cents,
            TransactionDirection.DEBIT,
            TransactionCategory.SAVINGS,
            description,
            None,
            at,
        )

    def _withdraw_savings(
        self,
        session: Session,
        child: ChildRecord,
        actor: Actor,
        cents: int,
        description: str,
        *,
        at: datetime,
    ) -> LedgerEntryRecord:
        child.savings_cents -= cents
        child.spending_cents += cents
        session.add(
            SavingsTransactionRecord(
                account_id=child.id,
                amount_cents=cents,
                type=SavingsTransactionType.WITHDRAWAL.value,
                description=description,
                balance_after_cents=child.savings_cents,
                actor_id=actor.actor_id,
                created_at=at,
            )
        )
        return self._record(
            session,
            child,
            actor,
            cents,
            TransactionDirection.CREDIT,
            TransactionCategory.SAVINGS,
            description,
            None,
            at,
        )

    @staticmethod
    def _record(
        session: Session,
        child: ChildRecord,
        actor: Actor,
        cents: int,
        direction: TransactionDirection,
        category: TransactionCategory,
        description: str,
        notes: Optional[str],
        at: datetime,
    ) -> LedgerEntryRecord:
        child.updated_at = at
        record = LedgerEntryRecord(
            account_id=child.id,
            amount_cents=cents,
            direction=direction.value,
            category=category.value,
            description=description,
            notes=notes,
            balance_after_cents=child.spending_cents,
            actor_id=actor.actor_id,
            created_at=at,
        )
        session.add(child)
        session.add(record)
        session.flush()
        return record

    def _notify(self, notification: Notification) -> None:
        deliver(self._notifier, notification, self._logger)


__all__ = ["Ledger", "SavingsTransferCapability"]

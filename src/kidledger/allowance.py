"""Weekly allowance payments, pausing and amount changes with an audit trail."""

from __future__ import annotations

from datetime import datetime, timedelta
from decimal import Decimal
from typing import List, Optional, Sequence, Tuple

from sqlmodel import select

from .access import ensure_member, ensure_parent
from .exceptions import InvalidStateError
from .ledger import Ledger, SavingsTransferCapability
from .models import (
    AccountSnapshot,
    Actor,
    AdjustmentType,
    AllowanceAdjustment,
    AllowanceBatchResult,
    AllowancePayment,
    LedgerEntry,
    TransactionCategory,
    TransactionDirection,
)
from .money import AmountLike, format_currency, from_cents, to_cents, to_decimal
from .notifications import Notification, Notifier, NotificationType, deliver
from .ops import StructuredLogger
from .persistence import AllowanceAdjustmentRecord, ChildRecord, Store, commit, load_child
from .schedule import DEFAULT_WINDOW, Eligibility, check_eligibility, make_schedule, next_payment_due


class AllowanceScheduler:
    """Pay allowances at most once per window and keep a history of changes."""

    def __init__(
        self,
        store: Store,
        ledger: Ledger,
        *,
        logger: Optional[StructuredLogger] = None,
        notifier: Optional[Notifier] = None,
        savings: Optional[SavingsTransferCapability] = None,
        window: timedelta = DEFAULT_WINDOW,
    ) -> None:
        self._store = store
        self._ledger = ledger
        self._logger = logger or StructuredLogger()
        self._notifier = notifier
        self._savings = savings
        self._window = window

    def _eligibility(self, child: ChildRecord, moment: datetime) -> Eligibility:
        if child.allowance_cents <= 0:
            return Eligibility(False, "No weekly allowance is configured for this account")
        if child.allowance_paused:
            return Eligibility(False, "Allowance is currently paused")
        schedule = make_schedule(child.last_allowance_paid_at, child.allowance_day, window=self._window)
        return check_eligibility(schedule, moment)

    # ------------------------------------------------------------------
    # Payments
    # ------------------------------------------------------------------
    def pay_weekly_allowance(
        self, actor: Actor, account_id: int, *, at: Optional[datetime] = None
    ) -> AllowancePayment:
        moment = at or datetime.utcnow()
        with self._store.session() as session:
            child = load_child(session, account_id, for_update=True)
            ensure_parent(actor, child)
            eligibility = self._eligibility(child, moment)
            if not eligibility:
                raise InvalidStateError(eligibility.reason)
            amount = from_cents(child.allowance_cents)
            records = self._ledger.post(
                session,
                child,
                actor,
                amount,
                TransactionDirection.CREDIT,
                TransactionCategory.ALLOWANCE,
                "Weekly allowance",
                at=moment,
            )
            child.last_allowance_paid_at = moment
            session.add(child)
            commit(session)
            entry = records[-1].to_snapshot()
            family_id = child.family_id
        self._logger.log(
            "allowance_paid",
            account_id=account_id,
            amount=amount,
            balance_after=entry.balance_after,
            actor=actor.actor_id,
        )
        transfer = self._transfer_to_savings(account_id, amount, moment)
        deliver(
            self._notifier,
            Notification(
                type=NotificationType.ALLOWANCE_PAID,
                title="Allowance paid",
                body=f"{format_currency(amount)} weekly allowance was added.",
                account_id=account_id,
                family_id=family_id,
                data={"entry_id": str(entry.entry_id)},
            ),
            self._logger,
        )
        return AllowancePayment(entry=entry, paid_at=moment, savings_transfer=transfer)

    def _transfer_to_savings(self, account_id: int, amount: Decimal, moment: datetime) -> Optional[LedgerEntry]:
        # The allowance credit is already committed; a failed transfer never undoes it.
        if self._savings is None:
            return None
        try:
            return self._savings.auto_transfer(account_id, amount, at=moment)
        except Exception as exc:
            self._logger.error("savings_transfer_failed", account_id=account_id, amount=amount, error=str(exc))
            return None

    def process_all_pending_allowances(self, *, at: Optional[datetime] = None) -> AllowanceBatchResult:
        """Pay every due allowance, one account at a time."""

        moment = at or datetime.utcnow()
        with self._store.session() as session:
            children = session.exec(
                select(ChildRecord)
                .where(ChildRecord.allowance_paused == False)  # noqa: E712
                .where(ChildRecord.allowance_cents > 0)
                .order_by(ChildRecord.id)
            ).all()
            due = [child.id for child in children if self._eligibility(child, moment)]
            skipped = len(children) - len(due)
        processed = 0
        failures: List[Tuple[int, str]] = []
        system = Actor.system()
        for account_id in due:
            assert account_id is not None
            try:
                self.pay_weekly_allowance(system, account_id, at=moment)
            except Exception as exc:
                failures.append((account_id, str(exc)))
                self._logger.error("allowance_failed", account_id=account_id, error=str(exc))
            else:
                processed += 1
        result = AllowanceBatchResult(
            processed=processed,
            skipped=skipped,
            errored=len(failures),
            failures=tuple(failures),
        )
        self._logger.log(
            "allowance_batch_finished",
            processed=result.processed,
            skipped=result.skipped,
            errored=result.errored,
        )
        return result

    def next_allowance_due(self, actor: Actor, account_id: int, *, at: Optional[datetime] = None) -> Optional[datetime]:
        moment = at or datetime.utcnow()
        with self._store.session() as session:
            child = load_child(session, account_id)
            ensure_member(actor, child)
            if child.allowance_cents <= 0 or child.allowance_paused:
                return None
            schedule = make_schedule(child.last_allowance_paid_at, child.allowance_day, window=self._window)
        return next_payment_due(schedule, moment)

    # ------------------------------------------------------------------
    # Adjustments
    # ------------------------------------------------------------------
    def pause_allowance(
        self, actor: Actor, account_id: int, reason: Optional[str] = None, *, at: Optional[datetime] = None
    ) -> AccountSnapshot:
        moment = at or datetime.utcnow()
        with self._store.session() as session:
            child = load_child(session, account_id, for_update=True)
            ensure_parent(actor, child)
            child.allowance_paused = True
            child.allowance_paused_reason = reason
            child.updated_at = moment
            session.add(child)
            self._append(session, child, actor, AdjustmentType.PAUSED, child.allowance_cents, reason, moment)
            commit(session)
            snapshot = child.to_snapshot()
        self._logger.log("allowance_paused", account_id=account_id, reason=reason, actor=actor.actor_id)
        return snapshot

    def resume_allowance(
        self, actor: Actor, account_id: int, reason: Optional[str] = None, *, at: Optional[datetime] = None
    ) -> AccountSnapshot:
        """Resume a paused allowance; resuming an active one changes nothing."""

        moment = at or datetime.utcnow()
        with self._store.session() as session:
            child = load_child(session, account_id, for_update=True)
            ensure_parent(actor, child)
            if not child.allowance_paused:
                return child.to_snapshot()
            child.allowance_paused = False
            child.allowance_paused_reason = None
            child.updated_at = moment
            session.add(child)
            self._append(session, child, actor, AdjustmentType.RESUMED, child.allowance_cents, reason, moment)
            commit(session)
            snapshot = child.to_snapshot()
        self._logger.log("allowance_resumed", account_id=account_id, reason=reason, actor=actor.actor_id)
        return snapshot

    def adjust_allowance_amount(
        self,
        actor: Actor,
        account_id: int,
        new_amount: AmountLike,
        reason: Optional[str] = None,
        *,
        at: Optional[datetime] = None,
    ) -> AccountSnapshot:
        value = to_decimal(new_amount)
        if value < 0:
            raise ValueError("Allowance amount cannot be negative.")
        moment = at or datetime.utcnow()
        with self._store.session() as session:
            child = load_child(session, account_id, for_update=True)
            ensure_parent(actor, child)
            old_cents = child.allowance_cents
            child.allowance_cents = to_cents(value)
            child.updated_at = moment
            session.add(child)
            self._append(
                session,
                child,
                actor,
                AdjustmentType.AMOUNT_CHANGED,
                old_cents,
                reason,
                moment,
                new_cents=child.allowance_cents,
            )
            commit(session)
            snapshot = child.to_snapshot()
        self._logger.log(
            "allowance_adjusted",
            account_id=account_id,
            old_amount=from_cents(old_cents),
            new_amount=value,
            actor=actor.actor_id,
        )
        return snapshot

    def get_adjustment_history(self, actor: Actor, account_id: int) -> Sequence[AllowanceAdjustment]:
        """Return adjustments oldest first."""

        with self._store.session() as session:
            child = load_child(session, account_id)
            ensure_member(actor, child)
            records = session.exec(
                select(AllowanceAdjustmentRecord)
                .where(AllowanceAdjustmentRecord.account_id == account_id)
                .order_by(AllowanceAdjustmentRecord.created_at, AllowanceAdjustmentRecord.id)
            ).all()
            return tuple(record.to_snapshot() for record in records)

    @staticmethod
    def _append(
        session,
        child: ChildRecord,
        actor: Actor,
        adjustment: AdjustmentType,
        old_cents: int,
        reason: Optional[str],
        moment: datetime,
        *,
        new_cents: Optional[int] = None,
    ) -> None:
        session.add(
            AllowanceAdjustmentRecord(
                account_id=child.id,
                adjustment_type=adjustment.value,
                old_amount_cents=old_cents,
                new_amount_cents=old_cents if new_cents is None else new_cents,
                reason=reason,
                actor_id=actor.actor_id,
                created_at=moment,
            )
        )


__all__ = ["AllowanceScheduler"]

"""Chore tasks and the completion approval workflow that pays rewards."""

from __future__ import annotations

from datetime import datetime, timedelta
from decimal import ROUND_HALF_UP, Decimal
from typing import List, Optional, Sequence

from sqlmodel import Session, select

from .access import ensure_family, ensure_member, ensure_parent
from .exceptions import (
    CompletionNotFoundError,
    InvalidStateError,
    TaskNotFoundError,
    UnauthorizedError,
)
from .ledger import Ledger
from .models import (
    Actor,
    ActorRole,
    ChoreTask,
    CompletionStatus,
    TaskCompletion,
    TaskStatistics,
    TaskStatus,
    TransactionCategory,
    TransactionDirection,
)
from .money import ZERO, AmountLike, format_currency, from_cents, require_positive, to_cents, to_decimal
from .notifications import Notification, Notifier, NotificationType, deliver
from .ops import StructuredLogger
from .persistence import ChoreTaskRecord, Store, TaskCompletionRecord, commit, load_child
from .schedule import RecurrenceRule

_UNSET = object()


def _ensure_family_parent(actor: Actor, family_id: str) -> None:
    if not (actor.is_parent or actor.is_system):
        raise UnauthorizedError("Only a parent can manage tasks.")
    ensure_family(actor, family_id)


class TaskRewardWorkflow:
    """Create chores, collect completions and pay approved rewards through the ledger.

    Tasks move one way from active to archived. A completion starts pending
    approval and is reviewed exactly once; approval credits the reward in the
    same commit that records the decision.
    """

    def __init__(
        self,
        store: Store,
        ledger: Ledger,
        *,
        logger: Optional[StructuredLogger] = None,
        notifier: Optional[Notifier] = None,
    ) -> None:
        self._store = store
        self._ledger = ledger
        self._logger = logger or StructuredLogger()
        self._notifier = notifier

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
        at: Optional[datetime] = None,
    ) -> ChoreTask:
        title = title.strip()
        if not title:
            raise ValueError("Task title is required.")
        reward = require_positive(to_decimal(reward_amount), allow_zero=True)
        moment = at or datetime.utcnow()
        with self._store.session() as session:
            child = load_child(session, account_id)
            ensure_parent(actor, child)
            record = ChoreTaskRecord(
                account_id=account_id,
                family_id=child.family_id,
                title=title,
                description=description,
                reward_cents=to_cents(reward),
                created_by=actor.actor_id,
                created_at=moment,
            )
            record.apply_recurrence(recurrence)
            session.add(record)
            commit(session)
            task = record.to_snapshot()
        self._logger.log(
            "task_created",
            task_id=task.task_id,
            account_id=account_id,
            reward=reward,
            recurring=task.is_recurring,
            actor=actor.actor_id,
        )
        self._notify(
            Notification(
                type=NotificationType.TASK_ASSIGNED,
                title="New task",
                body=f"{title} ({format_currency(reward)})",
                account_id=account_id,
                family_id=task.family_id,
                data={"task_id": str(task.task_id)},
            )
        )
        return task

    def update_task(
        self,
        actor: Actor,
        task_id: int,
        *,
        title: Optional[str] = None,
        description: Optional[str] = None,
        reward_amount: Optional[AmountLike] = None,
        recurrence: object = _UNSET,
    ) -> ChoreTask:
        with self._store.session() as session:
            record = self._load_task(session, task_id)
            _ensure_family_parent(actor, record.family_id)
            if record.status == TaskStatus.ARCHIVED.value:
                raise InvalidStateError("Archived tasks cannot be changed.")
            if self._pending(session, task_id):
                raise InvalidStateError("Cannot update a task with pending approvals.")
            if title is not None:
                if not title.strip():
                    raise ValueError("Task title is required.")
                record.title = title.strip()
            if description is not None:
                record.description = description
            if reward_amount is not None:
                record.reward_cents = to_cents(require_positive(to_decimal(reward_amount), allow_zero=True))
            if recurrence is not _UNSET:
                record.apply_recurrence(recurrence)  # type: ignore[arg-type]
            session.add(record)
            commit(session)
            task = record.to_snapshot()
        self._logger.log("task_updated", task_id=task_id, actor=actor.actor_id)
        return task

    def archive_task(self, actor: Actor, task_id: int, *, at: Optional[datetime] = None) -> ChoreTask:
        with self._store.session() as session:
            record = self._load_task(session, task_id)
            _ensure_family_parent(actor, record.family_id)
            if record.status == TaskStatus.ARCHIVED.value:
                raise InvalidStateError("Task is already archived.")
            record.status = TaskStatus.ARCHIVED.value
            record.archived_at = at or datetime.utcnow()
            session.add(record)
            commit(session)
            task = record.to_snapshot()
        self._logger.log("task_archived", task_id=task_id, actor=actor.actor_id)
        return task

    def get_task(self, actor: Actor, task_id: int) -> ChoreTask:
        with self._store.session() as session:
            record = self._load_task(session, task_id)
            ensure_member(actor, load_child(session, record.account_id))
            return record.to_snapshot()

    def get_tasks(
        self,
        actor: Actor,
        *,
        family_id: Optional[str] = None,
        account_id: Optional[int] = None,
        status: Optional[TaskStatus | str] = None,
        recurring: Optional[bool] = None,
    ) -> Sequence[ChoreTask]:
        family = self._family_scope(actor, family_id)
        if actor.role is ActorRole.CHILD:
            if account_id is not None and account_id != actor.account_id:
                raise UnauthorizedError("Children may only list their own tasks.")
            account_id = actor.account_id
        with self._store.session() as session:
            statement = select(ChoreTaskRecord).where(ChoreTaskRecord.family_id == family)
            if account_id is not None:
                statement = statement.where(ChoreTaskRecord.account_id == account_id)
            if status is not None:
                statement = statement.where(ChoreTaskRecord.status == TaskStatus(status).value)
            if recurring is True:
                statement = statement.where(ChoreTaskRecord.recurrence_type != None)  # noqa: E711
            elif recurring is False:
                statement = statement.where(ChoreTaskRecord.recurrence_type == None)  # noqa: E711
            statement = statement.order_by(ChoreTaskRecord.created_at, ChoreTaskRecord.id)
            return tuple(record.to_snapshot() for record in session.exec(statement).all())

    # ------------------------------------------------------------------
    # Completions
    # ------------------------------------------------------------------
    def complete_task(
        self,
        actor: Actor,
        task_id: int,
        *,
        notes: Optional[str] = None,
        photo_url: Optional[str] = None,
        at: Optional[datetime] = None,
    ) -> TaskCompletion:
        with self._store.session() as session:
            task = self._load_task(session, task_id)
            if task.status == TaskStatus.ARCHIVED.value:
                raise InvalidStateError("Cannot complete an archived task.")
            if not actor.is_system and actor.account_id != task.account_id:
                raise UnauthorizedError("This task is assigned to another account.")
            ensure_family(actor, task.family_id)
            record = TaskCompletionRecord(
                task_id=task_id,
                account_id=task.account_id,
                completed_at=at or datetime.utcnow(),
                notes=notes,
                photo_url=photo_url,
            )
            session.add(record)
            commit(session)
            completion = record.to_snapshot(task)
        self._logger.log(
            "task_completed",
            task_id=task_id,
            completion_id=completion.completion_id,
            account_id=completion.account_id,
            actor=actor.actor_id,
        )
        self._notify(
            Notification(
                type=NotificationType.TASK_PENDING_APPROVAL,
                title="Task waiting for approval",
                body=f"{completion.task_title} was marked as done.",
                account_id=completion.account_id,
                family_id=task.family_id,
                data={"completion_id": str(completion.completion_id)},
            )
        )
        return completion

    def review_completion(
        self,
        actor: Actor,
        completion_id: int,
        approve: bool,
        reason: Optional[str] = None,
        *,
        at: Optional[datetime] = None,
    ) -> TaskCompletion:
        moment = at or datetime.utcnow()
        with self._store.session() as session:
            record = session.get(TaskCompletionRecord, completion_id, with_for_update=True)
            if record is None:
                raise CompletionNotFoundError(f"Completion {completion_id} does not exist.")
            task = self._load_task(session, record.task_id)
            _ensure_family_parent(actor, task.family_id)
            if record.status != CompletionStatus.PENDING_APPROVAL.value:
                raise InvalidStateError("Completion has already been reviewed.")
            if approve:
                if task.reward_cents > 0:
                    child = load_child(session, record.account_id, for_update=True)
                    written = self._ledger.post(
                        session,
                        child,
                        actor,
                        from_cents(task.reward_cents),
                        TransactionDirection.CREDIT,
                        TransactionCategory.TASK,
                        f"Task completed: {task.title}",
                        at=moment,
                    )
                    record.ledger_entry_id = written[-1].id
                record.status = CompletionStatus.APPROVED.value
            else:
                record.status = CompletionStatus.REJECTED.value
                record.rejection_reason = reason
            record.reviewer_id = actor.actor_id
            record.reviewed_at = moment
            session.add(record)
            commit(session)
            completion = record.to_snapshot(task)
            family_id = task.family_id
        self._logger.log(
            "task_reviewed",
            completion_id=completion_id,
            approved=approve,
            reward=completion.reward_amount if approve else ZERO,
            ledger_entry_id=completion.ledger_entry_id,
            actor=actor.actor_id,
        )
        if approve:
            notification = Notification(
                type=NotificationType.TASK_APPROVED,
                title="Task approved",
                body=f"{completion.task_title} earned {format_currency(completion.reward_amount)}.",
                account_id=completion.account_id,
                family_id=family_id,
                data={"completion_id": str(completion_id)},
            )
        else:
            notification = Notification(
                type=NotificationType.TASK_REJECTED,
                title="Task not approved",
                body=reason or f"{completion.task_title} was not approved.",
                account_id=completion.account_id,
                family_id=family_id,
                data={"completion_id": str(completion_id)},
            )
        self._notify(notification)
        return completion

    def get_task_completions(
        self,
        actor: Actor,
        *,
        family_id: Optional[str] = None,
        task_id: Optional[int] = None,
        account_id: Optional[int] = None,
        status: Optional[CompletionStatus | str] = None,
        since: Optional[datetime] = None,
        until: Optional[datetime] = None,
    ) -> Sequence[TaskCompletion]:
        family = self._family_scope(actor, family_id)
        if actor.role is ActorRole.CHILD:
            if account_id is not None and account_id != actor.account_id:
                raise UnauthorizedError("Children may only list their own completions.")
            account_id = actor.account_id
        with self._store.session() as session:
            statement = (
                select(TaskCompletionRecord, ChoreTaskRecord)
                .where(TaskCompletionRecord.task_id == ChoreTaskRecord.id)
                .where(ChoreTaskRecord.family_id == family)
            )
            if task_id is not None:
                statement = statement.where(TaskCompletionRecord.task_id == task_id)
            if account_id is not None:
                statement = statement.where(TaskCompletionRecord.account_id == account_id)
            if status is not None:
                statement = statement.where(TaskCompletionRecord.status == CompletionStatus(status).value)
            if since is not None:
                statement = statement.where(TaskCompletionRecord.completed_at >= since)
            if until is not None:
                statement = statement.where(TaskCompletionRecord.completed_at <= until)
            statement = statement.order_by(TaskCompletionRecord.completed_at.desc(), TaskCompletionRecord.id.desc())
            return tuple(completion.to_snapshot(task) for completion, task in session.exec(statement).all())

    def get_pending_approvals(self, actor: Actor, *, family_id: Optional[str] = None) -> Sequence[TaskCompletion]:
        """Pending completions across the family, oldest first."""

        pending = self.get_task_completions(actor, family_id=family_id, status=CompletionStatus.PENDING_APPROVAL)
        return tuple(sorted(pending, key=lambda item: (item.completed_at, item.completion_id)))

    def get_task_statistics(self, actor: Actor, account_id: int) -> TaskStatistics:
        with self._store.session() as session:
            child = load_child(session, account_id)
            ensure_member(actor, child)
            tasks = session.exec(select(ChoreTaskRecord).where(ChoreTaskRecord.account_id == account_id)).all()
            rewards = {task.id: from_cents(task.reward_cents) for task in tasks}
            completions = session.exec(
                select(TaskCompletionRecord).where(TaskCompletionRecord.account_id == account_id)
            ).all()
        approved = [item for item in completions if item.status == CompletionStatus.APPROVED.value]
        pending = [item for item in completions if item.status == CompletionStatus.PENDING_APPROVAL.value]
        total_earned = sum((rewards.get(item.task_id, ZERO) for item in approved), ZERO)
        pending_earnings = sum((rewards.get(item.task_id, ZERO) for item in pending), ZERO)
        if completions:
            rate = (Decimal(len(approved)) * 100 / Decimal(len(completions))).quantize(
                Decimal("0.01"), rounding=ROUND_HALF_UP
            )
        else:
            rate = ZERO
        return TaskStatistics(
            total_tasks=len(tasks),
            active_tasks=sum(1 for task in tasks if task.status == TaskStatus.ACTIVE.value),
            archived_tasks=sum(1 for task in tasks if task.status == TaskStatus.ARCHIVED.value),
            total_completions=len(completions),
            pending_approvals=len(pending),
            total_earned=total_earned,
            pending_earnings=pending_earnings,
            completion_rate=rate,
        )

    def generate_recurring_completions(self, *, at: Optional[datetime] = None) -> Sequence[TaskCompletion]:
        """Create today's pending completion for every due recurring task."""

        moment = at or datetime.utcnow()
        day_start = moment.replace(hour=0, minute=0, second=0, microsecond=0)
        created: List[TaskCompletion] = []
        with self._store.session() as session:
            tasks = session.exec(
                select(ChoreTaskRecord)
                .where(ChoreTaskRecord.status == TaskStatus.ACTIVE.value)
                .where(ChoreTaskRecord.recurrence_type != None)  # noqa: E711
                .order_by(ChoreTaskRecord.id)
            ).all()
            records = []
            for task in tasks:
                rule = task.recurrence
                if rule is None or not rule.is_due(moment):
                    continue
                existing = session.exec(
                    select(TaskCompletionRecord)
                    .where(TaskCompletionRecord.task_id == task.id)
                    .where(TaskCompletionRecord.completed_at >= day_start)
                    .where(TaskCompletionRecord.completed_at < day_start + timedelta(days=1))
                ).first()
                if existing is not None:
                    continue
                record = TaskCompletionRecord(
                    task_id=task.id,
                    account_id=task.account_id,
                    completed_at=moment,
                    notes=f"Auto-generated recurring task for {moment.date().isoformat()}",
                )
                session.add(record)
                records.append((record, task))
            commit(session)
            created = [record.to_snapshot(task) for record, task in records]
        self._logger.log("recurring_tasks_generated", count=len(created), at=moment)
        return tuple(created)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    @staticmethod
    def _load_task(session: Session, task_id: int) -> ChoreTaskRecord:
        record = session.get(ChoreTaskRecord, task_id)
        if record is None:
            raise TaskNotFoundError(f"Task {task_id} does not exist.")
        return record

    @staticmethod
    def _pending(session: Session, task_id: int) -> bool:
        return (
            session.exec(
                select(TaskCompletionRecord)
                .where(TaskCompletionRecord.task_id == task_id)
                .where(TaskCompletionRecord.status == CompletionStatus.PENDING_APPROVAL.value)
            ).first()
            is not None
        )

    @staticmethod
    def _family_scope(actor: Actor, family_id: Optional[str]) -> str:
        family = family_id or actor.family_id
        if not family:
            raise ValueError("A family id is required.")
        ensure_family(actor, family)
        return family

    def _notify(self, notification: Notification) -> None:
        deliver(self._notifier, notification, self._logger)


__all__ = ["TaskRewardWorkflow"]

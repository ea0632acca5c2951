from datetime import datetime, timedelta
from decimal import Decimal

import pytest

from kidledger import (
    AccountNotFoundError,
    AccountSnapshot,
    Actor,
    CompletionNotFoundError,
    CompletionStatus,
    InvalidStateError,
    KidLedger,
    NotificationCenter,
    NotificationType,
    RecurrenceRule,
    TaskNotFoundError,
    TaskStatus,
    TransactionCategory,
    UnauthorizedError,
    Weekday,
)

FRIDAY = datetime(2024, 6, 7, 10, 0)


def test_approved_completion_pays_reward(
    bank: KidLedger, parent: Actor, kid: Actor, account: AccountSnapshot
) -> None:
    task = bank.create_task(parent, account.account_id, "Wash the car", 10, description="Inside and out")
    completion = bank.complete_task(kid, task.task_id, notes="Done!")
    assert completion.status is CompletionStatus.PENDING_APPROVAL
    assert bank.get_balance(parent, account.account_id) == Decimal("50.00")

    approved = bank.review_completion(parent, completion.completion_id, True)

    assert approved.status is CompletionStatus.APPROVED
    assert approved.reviewer_id == "mom"
    assert approved.reviewed_at is not None
    assert bank.get_balance(parent, account.account_id) == Decimal("60.00")
    newest = bank.get_account_transactions(parent, account.account_id)[0]
    assert approved.ledger_entry_id == newest.entry_id
    assert newest.category is TransactionCategory.TASK
    assert newest.description == "Task completed: Wash the car"
    assert newest.amount == Decimal("10.00")

    with pytest.raises(InvalidStateError):
        bank.review_completion(parent, completion.completion_id, True)
    with pytest.raises(InvalidStateError):
        bank.review_completion(parent, completion.completion_id, False, "Changed my mind")
    assert bank.get_balance(parent, account.account_id) == Decimal("60.00")


def test_rejected_completion_keeps_balance(
    bank: KidLedger, parent: Actor, kid: Actor, account: AccountSnapshot
) -> None:
    task = bank.create_task(parent, account.account_id, "Fold laundry", 3)
    completion = bank.complete_task(kid, task.task_id)

    rejected = bank.review_completion(parent, completion.completion_id, False, "Socks still on the floor")

    assert rejected.status is CompletionStatus.REJECTED
    assert rejected.rejection_reason == "Socks still on the floor"
    assert rejected.ledger_entry_id is None
    assert bank.get_balance(parent, account.account_id) == Decimal("50.00")

    with pytest.raises(InvalidStateError):
        bank.review_completion(parent, completion.completion_id, True)
    with pytest.raises(InvalidStateError):
        bank.review_completion(parent, completion.completion_id, False, "Still messy")
    assert bank.get_balance(parent, account.account_id) == Decimal("50.00")
    entries = bank.get_account_transactions(parent, account.account_id)
    assert all(entry.category is not TransactionCategory.TASK for entry in entries)
    assert bank.get_task_completions(parent, task_id=task.task_id)[0].rejection_reason == "Socks still on the floor"


def test_only_parents_review(bank: KidLedger, parent: Actor, kid: Actor, outsider: Actor, account: AccountSnapshot) -> None:
    task = bank.create_task(parent, account.account_id, "Walk the dog", 2)
    completion = bank.complete_task(kid, task.task_id)

    with pytest.raises(UnauthorizedError):
        bank.review_completion(kid, completion.completion_id, True)
    with pytest.raises(UnauthorizedError):
        bank.review_completion(outsider, completion.completion_id, True)
    with pytest.raises(CompletionNotFoundError):
        bank.review_completion(parent, 999, True)

    bank.review_completion(parent, completion.completion_id, False, "Muddy paws")
    with pytest.raises(UnauthorizedError):
        bank.review_completion(outsider, completion.completion_id, True)
    with pytest.raises(UnauthorizedError):
        bank.review_completion(kid, completion.completion_id, True)


def test_create_task_checks(bank: KidLedger, parent: Actor, kid: Actor, outsider: Actor, account: AccountSnapshot) -> None:
    with pytest.raises(AccountNotFoundError):
        bank.create_task(parent, 999, "Sweep", 1)
    with pytest.raises(UnauthorizedError):
        bank.create_task(kid, account.account_id, "Sweep", 1)
    with pytest.raises(UnauthorizedError):
        bank.create_task(outsider, account.account_id, "Sweep", 1)
    with pytest.raises(ValueError):
        bank.create_task(parent, account.account_id, "   ", 1)
    with pytest.raises(ValueError):
        bank.create_task(parent, account.account_id, "Sweep", -1)


def test_complete_task_checks(bank: KidLedger, parent: Actor, kid: Actor, account: AccountSnapshot) -> None:
    sibling = bank.open_account(parent, "Gus")
    sibling_kid = Actor.child("gus", "smith", sibling.account_id)
    task = bank.create_task(parent, account.account_id, "Water plants", 1)

    with pytest.raises(UnauthorizedError):
        bank.complete_task(sibling_kid, task.task_id)
    with pytest.raises(TaskNotFoundError):
        bank.complete_task(kid, 999)

    bank.archive_task(parent, task.task_id)
    with pytest.raises(InvalidStateError):
        bank.complete_task(kid, task.task_id)


def test_archive_keeps_existing_completions(
    bank: KidLedger, parent: Actor, kid: Actor, account: AccountSnapshot
) -> None:
    task = bank.create_task(parent, account.account_id, "Take out trash", 2)
    completion = bank.complete_task(kid, task.task_id)

    archived = bank.archive_task(parent, task.task_id)
    assert archived.status is TaskStatus.ARCHIVED
    assert archived.archived_at is not None
    with pytest.raises(InvalidStateError):
        bank.archive_task(parent, task.task_id)
    with pytest.raises(InvalidStateError):
        bank.update_task(parent, task.task_id, title="Recycling")

    approved = bank.review_completion(parent, completion.completion_id, True)
    assert approved.status is CompletionStatus.APPROVED
    assert bank.get_balance(parent, account.account_id) == Decimal("52.00")


def test_update_task(bank: KidLedger, parent: Actor, kid: Actor, account: AccountSnapshot) -> None:
    task = bank.create_task(parent, account.account_id, "Feed the cat", 1)

    updated = bank.update_task(
        parent, task.task_id, title="Feed the cats", reward_amount="1.50", recurrence=RecurrenceRule.daily()
    )
    assert updated.title == "Feed the cats"
    assert updated.reward_amount == Decimal("1.50")
    assert updated.is_recurring

    completion = bank.complete_task(kid, task.task_id)
    with pytest.raises(InvalidStateError, match="pending approvals"):
        bank.update_task(parent, task.task_id, reward_amount=5)

    bank.review_completion(parent, completion.completion_id, True)
    cleared = bank.update_task(parent, task.task_id, recurrence=None)
    assert not cleared.is_recurring
    assert bank.get_balance(parent, account.account_id) == Decimal("51.50")


def test_task_listing_filters(bank: KidLedger, parent: Actor, kid: Actor, account: AccountSnapshot) -> None:
    sibling = bank.open_account(parent, "Gus")
    bank.create_task(parent, account.account_id, "Dishes", 1, recurrence=RecurrenceRule.daily())
    chore = bank.create_task(parent, account.account_id, "Garage", 5)
    bank.create_task(parent, sibling.account_id, "Lawn", 4)
    bank.archive_task(parent, chore.task_id)

    assert len(bank.get_tasks(parent)) == 3
    assert [task.title for task in bank.get_tasks(kid)] == ["Dishes", "Garage"]
    assert [task.title for task in bank.get_tasks(kid, status=TaskStatus.ACTIVE)] == ["Dishes"]
    assert [task.title for task in bank.get_tasks(parent, recurring=False)] == ["Garage", "Lawn"]
    with pytest.raises(UnauthorizedError):
        bank.get_tasks(kid, account_id=sibling.account_id)
    assert bank.get_task(kid, chore.task_id).status is TaskStatus.ARCHIVED


def test_pending_approvals_are_family_wide(bank: KidLedger, parent: Actor, kid: Actor, account: AccountSnapshot) -> None:
    sibling = bank.open_account(parent, "Gus")
    sibling_kid = Actor.child("gus", "smith", sibling.account_id)
    first = bank.create_task(parent, account.account_id, "Dishes", 1)
    second = bank.create_task(parent, sibling.account_id, "Lawn", 4)

    early = bank.complete_task(kid, first.task_id)
    late = bank.complete_task(sibling_kid, second.task_id)

    pending = bank.get_pending_approvals(parent)
    assert [item.completion_id for item in pending] == [early.completion_id, late.completion_id]
    assert [item.completion_id for item in bank.get_pending_approvals(kid)] == [early.completion_id]

    bank.review_completion(parent, early.completion_id, True)
    assert [item.completion_id for item in bank.get_pending_approvals(parent)] == [late.completion_id]
    approved = bank.get_task_completions(parent, status=CompletionStatus.APPROVED)
    assert [item.task_title for item in approved] == ["Dishes"]


def test_task_statistics(bank: KidLedger, parent: Actor, kid: Actor, account: AccountSnapshot) -> None:
    task = bank.create_task(parent, account.account_id, "Vacuum", 10)
    archived = bank.create_task(parent, account.account_id, "Old chore", 1)
    bank.archive_task(parent, archived.task_id)

    first = bank.complete_task(kid, task.task_id)
    second = bank.complete_task(kid, task.task_id)
    bank.complete_task(kid, task.task_id)
    bank.review_completion(parent, first.completion_id, True)
    bank.review_completion(parent, second.completion_id, False)

    stats = bank.get_task_statistics(parent, account.account_id)
    assert stats.total_tasks == 2
    assert stats.active_tasks == 1
    assert stats.archived_tasks == 1
    assert stats.total_completions == 3
    assert stats.pending_approvals == 1
    assert stats.total_earned == Decimal("10.00")
    assert stats.pending_earnings == Decimal("10.00")
    assert stats.completion_rate == Decimal("33.33")


def test_statistics_without_completions(bank: KidLedger, parent: Actor, account: AccountSnapshot) -> None:
    stats = bank.get_task_statistics(parent, account.account_id)
    assert stats.total_completions == 0
    assert stats.completion_rate == Decimal("0.00")


def test_zero_reward_approval_writes_no_entry(
    bank: KidLedger, parent: Actor, kid: Actor, account: AccountSnapshot
) -> None:
    task = bank.create_task(parent, account.account_id, "Make the bed", 0)
    completion = bank.complete_task(kid, task.task_id)

    approved = bank.review_completion(parent, completion.completion_id, True)

    assert approved.status is CompletionStatus.APPROVED
    assert approved.ledger_entry_id is None
    assert len(bank.get_account_transactions(parent, account.account_id)) == 1


def test_generate_recurring_completions(bank: KidLedger, parent: Actor, account: AccountSnapshot) -> None:
    daily = bank.create_task(parent, account.account_id, "Brush teeth", 0, recurrence=RecurrenceRule.daily())
    friday = bank.create_task(
        parent, account.account_id, "Clean room", 2, recurrence=RecurrenceRule.weekly(Weekday.FRIDAY)
    )
    bank.create_task(parent, account.account_id, "Mow lawn", 5, recurrence=RecurrenceRule.weekly(Weekday.MONDAY))
    bank.create_task(parent, account.account_id, "Pay rent", 1, recurrence=RecurrenceRule.monthly(15))
    bank.create_task(parent, account.account_id, "One off", 1)
    retired = bank.create_task(parent, account.account_id, "Retired", 1, recurrence=RecurrenceRule.daily())
    bank.archive_task(parent, retired.task_id)

    created = bank.generate_recurring_completions(at=FRIDAY)

    assert sorted(item.task_id for item in created) == sorted([daily.task_id, friday.task_id])
    assert all(item.status is CompletionStatus.PENDING_APPROVAL for item in created)
    assert created[0].notes == "Auto-generated recurring task for 2024-06-07"
    assert bank.generate_recurring_completions(at=FRIDAY + timedelta(hours=2)) == ()
    assert len(bank.generate_recurring_completions(at=FRIDAY + timedelta(days=1))) == 1


def test_task_notifications(
    bank: KidLedger, parent: Actor, kid: Actor, account: AccountSnapshot, notifications: NotificationCenter
) -> None:
    task = bank.create_task(parent, account.account_id, "Dust shelves", 4)
    done = bank.complete_task(kid, task.task_id)
    bank.review_completion(parent, done.completion_id, True)
    again = bank.complete_task(kid, task.task_id)
    bank.review_completion(parent, again.completion_id, False, "Missed a spot")

    for kind in (
        NotificationType.TASK_ASSIGNED,
        NotificationType.TASK_PENDING_APPROVAL,
        NotificationType.TASK_APPROVED,
        NotificationType.TASK_REJECTED,
    ):
        assert notifications.pending(notification_type=kind), kind
    (rejected,) = notifications.pending(notification_type=NotificationType.TASK_REJECTED)
    assert rejected.body == "Missed a spot"

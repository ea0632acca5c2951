import pytest

from kidledger.categories import suggest_category
from kidledger.models import TransactionCategory, TransactionDirection

CREDIT = TransactionDirection.CREDIT
DEBIT = TransactionDirection.DEBIT


@pytest.mark.parametrize(
    ("text", "direction", "expected"),
    [
        ("Weekly allowance", CREDIT, TransactionCategory.ALLOWANCE),
        ("Grandma birthday money", CREDIT, TransactionCategory.GIFT),
        ("Mowed the lawn", CREDIT, TransactionCategory.CHORES),
        ("Bonus for good grades", CREDIT, TransactionCategory.BONUS_REWARD),
        ("Candy bar", DEBIT, TransactionCategory.CANDY),
        ("Ice   cream with friends", DEBIT, TransactionCategory.SNACKS),
        ("New LEGO set", DEBIT, TransactionCategory.TOYS),
        ("Movie ticket", DEBIT, TransactionCategory.ENTERTAINMENT),
        ("Donation to the food bank", DEBIT, TransactionCategory.CHARITY),
    ],
)
def test_suggest_category_first_match(text: str, direction: TransactionDirection, expected: TransactionCategory) -> None:
    assert suggest_category(text, direction) is expected


def test_keywords_only_match_at_word_start() -> None:
    assert suggest_category("that thing", DEBIT) is TransactionCategory.OTHER_SPENDING


def test_fallback_depends_on_direction() -> None:
    assert suggest_category("", CREDIT) is TransactionCategory.OTHER_INCOME
    assert suggest_category("something odd", DEBIT) is TransactionCategory.OTHER_SPENDING


def test_direction_may_be_given_as_string() -> None:
    assert suggest_category("birthday present", "credit") is TransactionCategory.GIFT  # type: ignore[arg-type]

"""Keyword based category suggestions for free-text transaction descriptions."""

from __future__ import annotations

import re
from typing import Sequence, Tuple

from .models import TransactionCategory, TransactionDirection

Rule = Tuple[Tuple[str, ...], TransactionCategory]

# Evaluated top to bottom; the first rule with a matching keyword wins.
CREDIT_RULES: Sequence[Rule] = (
    (("allowance", "weekly pay", "pocket money"), TransactionCategory.ALLOWANCE),
    (("task", "approved"), TransactionCategory.TASK),
    (("chore", "dishes", "laundry", "mow", "lawn", "clean", "vacuum", "trash"), TransactionCategory.CHORES),
    (("gift", "birthday", "christmas", "holiday", "grandma", "grandpa", "present"), TransactionCategory.GIFT),
    (("bonus", "reward", "prize", "good grades", "report card"), TransactionCategory.BONUS_REWARD),
)

DEBIT_RULES: Sequence[Rule] = (
    (("savings", "save for", "piggy bank"), TransactionCategory.SAVINGS),
    (("donat", "charity", "church", "fundraiser"), TransactionCategory.CHARITY),
    (("candy", "chocolate", "gum", "lollipop"), TransactionCategory.CANDY),
    (("snack", "chips", "ice cream", "soda", "drink", "food", "lunch", "pizza"), TransactionCategory.SNACKS),
    (("video game", "game", "xbox", "playstation", "nintendo", "roblox", "minecraft"), TransactionCategory.GAMES),
    (("toy", "lego", "doll", "action figure", "plush", "stuffed"), TransactionCategory.TOYS),
    (("book", "comic", "magazine", "novel"), TransactionCategory.BOOKS),
    (("shirt", "shoes", "clothes", "pants", "jacket", "hat", "dress", "socks"), TransactionCategory.CLOTHES),
    (("phone", "tablet", "headphones", "charger", "computer", "electronic"), TransactionCategory.ELECTRONICS),
    (("movie", "cinema", "concert", "arcade", "theme park", "ticket", "streaming"), TransactionCategory.ENTERTAINMENT),
    (("ball", "soccer", "basketball", "baseball", "bike", "skate", "swim", "sport"), TransactionCategory.SPORTS),
    (("craft", "paint", "marker", "crayon", "glue", "yarn", "sticker"), TransactionCategory.CRAFTS),
)

_WHITESPACE = re.compile(r"\s+")


def _keyword_pattern(keywords: Tuple[str, ...]) -> "re.Pattern[str]":
    # Keywords match at the start of a word so "hat" never matches "that".
    return re.compile(r"\b(?:" + "|".join(re.escape(keyword) for keyword in keywords) + ")")


_COMPILED = {
    TransactionDirection.CREDIT: tuple((_keyword_pattern(keywords), category) for keywords, category in CREDIT_RULES),
    TransactionDirection.DEBIT: tuple((_keyword_pattern(keywords), category) for keywords, category in DEBIT_RULES),
}


def _normalise(text: str) -> str:
    return _WHITESPACE.sub(" ", (text or "").lower()).strip()


def suggest_category(text: str, direction: TransactionDirection) -> TransactionCategory:
    """Return the most likely category for ``text`` given the transaction ``direction``."""

    normalised = _normalise(text)
    direction = TransactionDirection(direction)
    if direction is TransactionDirection.CREDIT:
        fallback = TransactionCategory.OTHER_INCOME
    else:
        fallback = TransactionCategory.OTHER_SPENDING
    if not normalised:
        return fallback
    for pattern, category in _COMPILED[direction]:
        if pattern.search(normalised):
            return category
    return fallback


__all__ = ["CREDIT_RULES", "DEBIT_RULES", "suggest_category"]

"""Read-time visibility rules for shared expense data.

Masking is always computed relative to the viewer; nothing per-viewer is ever
stored. Two views exist: the list view, which masks or drops other users'
restricted entries, and the aggregation view, which keeps categories intact so
totals stay correct and only drops other users' private entries.
"""

from typing import Optional, Sequence, TypeVar

from config import get_settings
from models import Visibility
from schemas import ExpenseOut


_VALID_VISIBILITY = {"", *(v.value for v in Visibility)}

T = TypeVar("T")


def effective_visibility(value: Optional[str]) -> str:
    if not value:
        return Visibility.public.value
    return value


def validate_visibility(value: Optional[str]) -> bool:
    return (value or "") in _VALID_VISIBILITY


def _mask(expense: ExpenseOut, marker: str) -> ExpenseOut:
    return expense.model_copy(update={"category": marker, "memo": "", "place": ""})


def filter_for_user(
    expenses: Sequence[ExpenseOut],
    viewer: str,
    *,
    marker: Optional[str] = None,
) -> list[ExpenseOut]:
    marker = marker or get_settings().masked_category_label
    result: list[ExpenseOut] = []
    for expense in expenses:
        if expense.created_by == viewer:
            result.append(expense)
            continue
        tier = effective_visibility(expense.visibility)
        if tier == Visibility.public.value:
            result.append(expense)
        elif tier == Visibility.summary.value:
            result.append(_mask(expense, marker))
    return result


def filter_for_summary(expenses: Sequence[T], viewer: str) -> list[T]:
    return [
        e
        for e in expenses
        if e.created_by == viewer
        or effective_visibility(e.visibility) != Visibility.private.value
    ]

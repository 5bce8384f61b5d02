"""Per-month category aggregation.

Two exclusion stages are applied in a fixed order. Categories flagged
``exclude_from_summary`` vanish from both the total and the breakdown, while
categories flagged ``exclude_from_breakdown`` still count towards the total and
are only hidden from the displayed list. Non-expense (charge/income) categories
are dropped before either stage.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, Optional, Protocol, Sequence

from models import Category
from periods import month_key
from schemas import CategorySummary, MonthData


DEFAULT_COLOR = "#AEB6BF"


class _ExpenseLike(Protocol):
    date: object
    payer: str
    category: str
    amount: int


@dataclass
class CategoryMaps:
    name: dict[str, str] = field(default_factory=dict)
    color: dict[str, str] = field(default_factory=dict)
    sort_order: dict[str, int] = field(default_factory=dict)
    is_expense: dict[str, bool] = field(default_factory=dict)
    exclude_from_breakdown: dict[str, bool] = field(default_factory=dict)
    exclude_from_summary: dict[str, bool] = field(default_factory=dict)

    @classmethod
    def from_categories(cls, categories: Iterable[Category]) -> "CategoryMaps":
        maps = cls()
        for c in categories:
            maps.name[c.id] = c.name
            maps.color[c.id] = c.color
            maps.sort_order[c.id] = c.sort_order
            maps.is_expense[c.id] = c.is_expense
            maps.exclude_from_breakdown[c.id] = c.exclude_from_breakdown
            maps.exclude_from_summary[c.id] = c.exclude_from_summary
        return maps

    def expense_category(self, category_id: str) -> bool:
        # unknown categories count as spending
        return self.is_expense.get(category_id, True)


@dataclass
class Aggregate:
    total: int
    breakdown: list[CategorySummary]
    hidden: list[CategorySummary]


def group_by_category(
    expenses: Sequence[_ExpenseLike],
    month: str,
    maps: CategoryMaps,
    payer: Optional[str] = None,
) -> list[CategorySummary]:
    totals: dict[str, int] = {}
    for e in expenses:
        if month_key(e.date) != month:
            continue
        if payer and e.payer != payer:
            continue
        totals[e.category] = totals.get(e.category, 0) + e.amount

    return [
        CategorySummary(
            category_id=category_id,
            category=maps.name.get(category_id) or category_id,
            amount=amount,
            color=maps.color.get(category_id) or DEFAULT_COLOR,
        )
        for category_id, amount in totals.items()
    ]


def aggregate(
    expenses: Sequence[_ExpenseLike],
    month: str,
    maps: CategoryMaps,
    payer: Optional[str] = None,
) -> Aggregate:
    groups = group_by_category(expenses, month, maps, payer)
    groups = [g for g in groups if maps.expense_category(g.category_id)]
    groups = [
        g for g in groups if not maps.exclude_from_summary.get(g.category_id, False)
    ]
    total = sum(g.amount for g in groups)

    breakdown: list[CategorySummary] = []
    hidden: list[CategorySummary] = []
    for g in groups:
        if maps.exclude_from_breakdown.get(g.category_id, False):
            hidden.append(g)
        else:
            breakdown.append(g)
    breakdown.sort(key=lambda g: maps.sort_order.get(g.category_id, 0))
    return Aggregate(total=total, breakdown=breakdown, hidden=hidden)


def month_data(
    expenses: Sequence[_ExpenseLike],
    month: str,
    maps: CategoryMaps,
    payer: Optional[str] = None,
) -> MonthData:
    result = aggregate(expenses, month, maps, payer)
    return MonthData(month=month, total=result.total, by_category=result.breakdown)

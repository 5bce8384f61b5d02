from datetime import date

from aggregation import DEFAULT_COLOR, CategoryMaps, aggregate, month_data
from models import Category, Expense


def _category(
    category_id: str,
    name: str,
    sort_order: int,
    *,
    is_expense: bool = True,
    exclude_from_breakdown: bool = False,
    exclude_from_summary: bool = False,
) -> Category:
    return Category(
        id=category_id,
        name=name,
        sort_order=sort_order,
        color="#112233",
        is_active=True,
        is_expense=is_expense,
        exclude_from_breakdown=exclude_from_breakdown,
        exclude_from_summary=exclude_from_summary,
        owner="",
    )


def _expense(category: str, amount: int, day: date, payer: str = "Card") -> Expense:
    return Expense(
        date=day,
        year_month=f"{day.year:04d}-{day.month:02d}",
        payer=payer,
        category=category,
        amount=amount,
        memo="",
        place="",
        visibility="",
        created_by="alice@example.com",
    )


MAPS = CategoryMaps.from_categories(
    [
        _category("food", "Food", 2),
        _category("rent", "Rent", 1),
        _category("savings", "Savings", 3, exclude_from_breakdown=True),
        _category("transfer", "Transfer", 4, exclude_from_summary=True),
        _category("topup", "Wallet top-up", 5, is_expense=False),
    ]
)


def test_two_stage_exclusion_keeps_breakdown_hidden_amounts_in_total() -> None:
    day = date(2025, 4, 10)
    expenses = [
        _expense("food", 3_000, day),
        _expense("rent", 50_000, day),
        _expense("food", 1_000, day),
        _expense("savings", 20_000, day),
        _expense("transfer", 7_000, day),
        _expense("topup", 10_000, day),
    ]

    result = aggregate(expenses, "2025-04", MAPS)

    assert result.total == 74_000
    assert [(c.category_id, c.amount) for c in result.breakdown] == [
        ("rent", 50_000),
        ("food", 4_000),
    ]
    assert [c.category_id for c in result.hidden] == ["savings"]
    assert result.total == sum(c.amount for c in result.breakdown) + sum(
        c.amount for c in result.hidden
    )


def test_unknown_category_falls_back_to_identifier_and_gray() -> None:
    day = date(2025, 4, 2)
    data = month_data([_expense("mystery", 500, day)], "2025-04", MAPS)

    assert data.total == 500
    [entry] = data.by_category
    assert entry.category == "mystery"
    assert entry.color == DEFAULT_COLOR


def test_other_months_and_other_payers_are_ignored() -> None:
    expenses = [
        _expense("food", 1_000, date(2025, 4, 30), payer="Card"),
        _expense("food", 2_000, date(2025, 4, 1), payer="Cash"),
        _expense("food", 4_000, date(2025, 5, 1), payer="Card"),
        _expense("food", 8_000, date(2024, 4, 15), payer="Card"),
    ]

    assert month_data(expenses, "2025-04", MAPS).total == 3_000
    assert month_data(expenses, "2025-04", MAPS, payer="Card").total == 1_000


def test_equal_sort_order_keeps_discovery_order() -> None:
    maps = CategoryMaps.from_categories(
        [_category("b", "B", 1), _category("a", "A", 1), _category("c", "C", 0)]
    )
    day = date(2025, 1, 5)
    expenses = [_expense("b", 1, day), _expense("a", 2, day), _expense("c", 3, day)]

    data = month_data(expenses, "2025-01", maps)

    assert [c.category_id for c in data.by_category] == ["c", "b", "a"]


def test_empty_month_has_zero_total() -> None:
    data = month_data([], "2025-02", MAPS)
    assert data.total == 0
    assert data.by_category == []

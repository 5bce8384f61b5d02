from datetime import date, datetime

import pytest

from schemas import ExpenseOut
from visibility import (
    effective_visibility,
    filter_for_summary,
    filter_for_user,
    validate_visibility,
)


ALICE = "alice@example.com"
BOB = "bob@example.com"


def _expense(expense_id: str, owner: str, visibility: str) -> ExpenseOut:
    return ExpenseOut(
        id=expense_id,
        date=date(2025, 3, 14),
        payer="Card",
        category="cat-food",
        amount=1200,
        memo="Lunch with team",
        place="Cafe",
        visibility=visibility,
        created_by=owner,
        created_at=datetime(2025, 3, 14, 12, 0),
        updated_at=datetime(2025, 3, 14, 12, 0),
    )


def test_empty_visibility_is_public() -> None:
    assert effective_visibility("") == "public"
    assert effective_visibility(None) == "public"
    assert effective_visibility("summary") == "summary"


@pytest.mark.parametrize("value", ["", "public", "summary", "private"])
def test_validate_visibility_accepts_known_tiers(value: str) -> None:
    assert validate_visibility(value)


@pytest.mark.parametrize("value", ["PUBLIC", "hidden", " ", "secret"])
def test_validate_visibility_rejects_other_values(value: str) -> None:
    assert not validate_visibility(value)


def test_foreign_summary_expense_is_masked() -> None:
    original = _expense("e1", BOB, "summary")
    [masked] = filter_for_user([original], ALICE, marker="Personal expense")

    assert masked.category == "Personal expense"
    assert masked.memo == ""
    assert masked.place == ""
    assert masked.amount == original.amount
    assert masked.payer == original.payer
    assert masked.date == original.date
    assert masked.created_at == original.created_at
    # the source object is untouched
    assert original.category == "cat-food"


def test_private_expenses_only_visible_to_owner() -> None:
    mine = _expense("mine", ALICE, "private")
    theirs = _expense("theirs", BOB, "private")

    result = filter_for_user([mine, theirs], ALICE, marker="Personal expense")

    assert [e.id for e in result] == ["mine"]
    assert result[0] == mine


def test_own_and_public_expenses_pass_unchanged() -> None:
    own_summary = _expense("a", ALICE, "summary")
    foreign_public = _expense("b", BOB, "public")
    foreign_empty = _expense("c", BOB, "")

    result = filter_for_user(
        [own_summary, foreign_public, foreign_empty], ALICE, marker="Personal expense"
    )

    assert result == [own_summary, foreign_public, foreign_empty]


def test_summary_view_keeps_categories_and_drops_foreign_private() -> None:
    expenses = [
        _expense("a", BOB, "summary"),
        _expense("b", BOB, "private"),
        _expense("c", ALICE, "private"),
        _expense("d", BOB, ""),
    ]

    result = filter_for_summary(expenses, ALICE)

    assert [e.id for e in result] == ["a", "c", "d"]
    assert all(e.category == "cat-food" for e in result)

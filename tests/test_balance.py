import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from config import get_settings
from database import Base
from errors import ValidationError
from models import Category, Payer
from schemas import ExpenseIn
from services import BalanceService, ExpenseService


ALICE = "alice@example.com"


def make_session():
    engine = create_engine(
        "sqlite+pysqlite:///:memory:", connect_args={"check_same_thread": False}
    )
    Base.metadata.create_all(engine)
    SessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
    return SessionLocal()


def _seed(session) -> None:
    session.add_all(
        [
            Category(id="food", name="Food", sort_order=0, color="#ff0000"),
            Category(
                id="topup", name="Wallet top-up", sort_order=1, is_expense=False
            ),
            Category(
                id="salary",
                name=get_settings().income_category_name,
                sort_order=2,
                is_expense=False,
            ),
            Payer(id="Wallet", name="Wallet", sort_order=0, track_balance=True),
            Payer(id="Card", name="Card", sort_order=1, track_balance=False),
        ]
    )
    session.commit()


def _add(session, day: str, payer: str, category: str, amount: int) -> None:
    ExpenseService(session, ALICE).create(
        ExpenseIn(date=day, payer=payer, category=category, amount=amount)
    )


def test_tracked_payer_balance_scenario() -> None:
    session = make_session()
    _seed(session)
    _add(session, "2025-02-25", "Wallet", "topup", 10_000)
    _add(session, "2025-03-01", "Wallet", "topup", 5_000)
    _add(session, "2025-03-12", "Wallet", "food", 3_000)

    balance = BalanceService(session).payer_balance("Wallet", "2025-03")

    assert balance.payer == "Wallet"
    assert balance.carryover == 10_000
    assert balance.month_charge == 5_000
    assert balance.month_spent == 3_000
    assert balance.balance == 12_000


def test_unrelated_expenses_are_ignored() -> None:
    session = make_session()
    _seed(session)
    _add(session, "2025-02-25", "Wallet", "topup", 10_000)
    _add(session, "2025-03-12", "Wallet", "food", 3_000)
    _add(session, "2025-03-12", "Card", "food", 700)
    _add(session, "2025-03-20", "Wallet", "salary", 250_000)
    _add(session, "2025-04-02", "Wallet", "food", 1_000)
    _add(session, "2025-04-02", "Wallet", "topup", 1_000)

    balance = BalanceService(session).payer_balance("Wallet", "2025-03")

    assert (balance.carryover, balance.month_charge, balance.month_spent) == (
        10_000,
        0,
        3_000,
    )
    assert balance.balance == 7_000


def test_earlier_spending_reduces_carryover() -> None:
    session = make_session()
    _seed(session)
    _add(session, "2024-12-01", "Wallet", "topup", 10_000)
    _add(session, "2025-01-15", "Wallet", "food", 2_500)
    _add(session, "2025-01-20", "Wallet", "unknown-category", 500)

    balance = BalanceService(session).payer_balance("Wallet", "2025-03")

    assert balance.carryover == 7_000
    assert balance.balance == 7_000


def test_untracked_payer_is_always_zero() -> None:
    session = make_session()
    _seed(session)
    _add(session, "2025-02-25", "Card", "topup", 10_000)
    _add(session, "2025-03-12", "Card", "food", 3_000)

    balance = BalanceService(session).payer_balance("Card", "2025-03")

    assert balance.model_dump() == {
        "payer": "Card",
        "carryover": 0,
        "month_charge": 0,
        "month_spent": 0,
        "balance": 0,
    }


def test_unknown_payer_is_zero() -> None:
    session = make_session()
    _seed(session)

    balance = BalanceService(session).payer_balance("Nobody", "2025-03")

    assert balance.balance == 0
    assert balance.payer == "Nobody"


@pytest.mark.parametrize(("payer", "month"), [("", "2025-03"), ("Wallet", "2025/03")])
def test_balance_requires_payer_and_month(payer: str, month: str) -> None:
    session = make_session()
    with pytest.raises(ValidationError):
        BalanceService(session).payer_balance(payer, month)

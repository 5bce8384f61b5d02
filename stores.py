"""SQLAlchemy-backed stores behind the engine's collaborator contracts.

Stores only stage changes on the session; services decide when to commit.
"""

from __future__ import annotations

import json
from datetime import datetime
from typing import Optional

from sqlalchemy import or_, select, update
from sqlalchemy.orm import Session

from models import (
    Category,
    Expense,
    MonthlySummaryCache,
    Payer,
    Place,
    RecurringExpense,
    User,
)
from schemas import CachedMonthlySummary, CategorySummary, MonthData


MASTER_KINDS: dict[str, type] = {
    "category": Category,
    "place": Place,
    "payer": Payer,
    "user": User,
    "recurring": RecurringExpense,
}

_MASTER_ORDER = {
    "category": (Category.sort_order, Category.name),
    "place": (Place.sort_order, Place.name),
    "payer": (Payer.sort_order, Payer.name),
    "user": (User.email,),
    "recurring": (RecurringExpense.created_at, RecurringExpense.id),
}


class ExpenseStore:
    def __init__(self, session: Session) -> None:
        self.session = session

    def get(self, expense_id: str) -> Optional[Expense]:
        return self.session.get(Expense, expense_id)

    def put(self, expense: Expense) -> Expense:
        self.session.add(expense)
        self.session.flush()
        return expense

    def delete(self, expense_id: str) -> None:
        expense = self.session.get(Expense, expense_id)
        if expense is not None:
            self.session.delete(expense)
            self.session.flush()

    def query_by_month(self, month: str) -> list[Expense]:
        stmt = (
            select(Expense)
            .where(Expense.year_month == month)
            .order_by(Expense.date.desc(), Expense.created_at.desc())
        )
        return list(self.session.scalars(stmt).all())

    def scan_all(self) -> list[Expense]:
        return list(self.session.scalars(select(Expense)).all())


class MasterRegistry:
    def __init__(self, session: Session) -> None:
        self.session = session

    @staticmethod
    def _model(kind: str) -> type:
        try:
            return MASTER_KINDS[kind]
        except KeyError:
            raise ValueError(f"Unknown master kind: {kind}") from None

    def query_by_type(self, kind: str) -> list:
        model = self._model(kind)
        stmt = select(model).order_by(*_MASTER_ORDER[kind])
        return list(self.session.scalars(stmt).all())

    def get(self, kind: str, record_id: str):
        return self.session.get(self._model(kind), record_id)

    def put(self, record):
        record = self.session.merge(record)
        self.session.flush()
        return record

    def delete(self, kind: str, record_id: str) -> bool:
        record = self.get(kind, record_id)
        if record is None:
            return False
        self.session.delete(record)
        self.session.flush()
        return True

    def active_categories(
        self, viewer: Optional[str] = None, *, shared_only: bool = False
    ) -> list[Category]:
        stmt = select(Category).where(Category.is_active.is_(True))
        if shared_only:
            stmt = stmt.where(Category.owner == "")
        elif viewer is not None:
            stmt = stmt.where(or_(Category.owner == "", Category.owner == viewer))
        stmt = stmt.order_by(Category.sort_order, Category.name)
        return list(self.session.scalars(stmt).all())

    def categories_for(self, viewer: str) -> list[Category]:
        stmt = (
            select(Category)
            .where(or_(Category.owner == "", Category.owner == viewer))
            .order_by(Category.sort_order, Category.name)
        )
        return list(self.session.scalars(stmt).all())

    def active_payers(self) -> list[Payer]:
        stmt = (
            select(Payer)
            .where(Payer.is_active.is_(True))
            .order_by(Payer.sort_order, Payer.name)
        )
        return list(self.session.scalars(stmt).all())

    def active_places(self) -> list[Place]:
        stmt = (
            select(Place)
            .where(Place.is_active.is_(True))
            .order_by(Place.sort_order, Place.name)
        )
        return list(self.session.scalars(stmt).all())

    def advance_last_created_month(
        self, template_id: str, expected: Optional[str], month: str
    ) -> bool:
        """Compare-and-swap ``last_created_month`` from ``expected`` to ``month``.

        Returns False when another writer moved the marker first.
        """
        if expected is None:
            guard = RecurringExpense.last_created_month.is_(None)
        else:
            guard = RecurringExpense.last_created_month == expected
        result = self.session.execute(
            update(RecurringExpense)
            .where(RecurringExpense.id == template_id, guard)
            .values(last_created_month=month)
            .execution_options(synchronize_session="fetch")
        )
        return result.rowcount == 1


class SummaryCacheStore:
    def __init__(self, session: Session) -> None:
        self.session = session

    @staticmethod
    def _to_schema(row: MonthlySummaryCache) -> CachedMonthlySummary:
        items = [CategorySummary(**item) for item in json.loads(row.by_category_json)]
        return CachedMonthlySummary(
            month=row.month,
            total=row.total,
            by_category=items,
            refreshed_at=row.refreshed_at,
        )

    def get(self, month: str) -> Optional[CachedMonthlySummary]:
        row = self.session.get(MonthlySummaryCache, month)
        return self._to_schema(row) if row else None

    def put(self, summary: MonthData) -> None:
        row = self.session.get(MonthlySummaryCache, summary.month)
        if row is None:
            row = MonthlySummaryCache(month=summary.month)
            self.session.add(row)
        row.total = summary.total
        row.by_category_json = json.dumps(
            [item.model_dump() for item in summary.by_category]
        )
        row.refreshed_at = datetime.utcnow()
        self.session.flush()

    def batch_get(self, months: list[str]) -> dict[str, CachedMonthlySummary]:
        if not months:
            return {}
        rows = self.session.scalars(
            select(MonthlySummaryCache).where(MonthlySummaryCache.month.in_(months))
        ).all()
        return {row.month: self._to_schema(row) for row in rows}

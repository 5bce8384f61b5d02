from __future__ import annotations

import logging
from datetime import date, datetime
from typing import Optional, Sequence

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from aggregation import CategoryMaps, month_data
from backup import BackupExporter, expense_to_row
from config import get_settings
from database import persistence_guard
from errors import (
    NotFoundError,
    PermissionDeniedError,
    PersistenceError,
    ValidationError,
)
from models import Category, Expense, Frequency, Payer, Place, RecurringExpense, User
from periods import (
    is_month_key,
    month_key,
    months_ending_at,
    parse_date,
    parse_month,
    previous_month,
    previous_year_month,
)
from recurrence import RecurringEngine
from schemas import (
    CachedMonthlySummary,
    CategoryIn,
    ExpenseIn,
    ExpenseOut,
    MonthComparison,
    MonthData,
    MonthlySummary,
    PayerBalance,
    PayerIn,
    PlaceIn,
    RecurringExpenseIn,
    YearlySummary,
)
from stores import ExpenseStore, MasterRegistry, SummaryCacheStore
from visibility import filter_for_summary, filter_for_user, validate_visibility


logger = logging.getLogger(__name__)


def refresh_monthly_summary_cache(session: Session, month: str) -> MonthData:
    """Recompute the canonical cached summary for ``month``.

    The cache is a single projection for every viewer, so only shared
    categories feed the classification maps and no visibility filter applies.
    """
    registry = MasterRegistry(session)
    maps = CategoryMaps.from_categories(registry.active_categories(shared_only=True))
    expenses = ExpenseStore(session).query_by_month(month)
    data = month_data(expenses, month, maps)
    SummaryCacheStore(session).put(data)
    logger.debug(f"summary_cache_refresh: month={month} total={data.total}")
    return data


def make_comparison(current: int, previous: int) -> MonthComparison:
    diff = current - previous
    diff_percent = 0.0
    if previous > 0:
        diff_percent = int(diff / previous * 100 * 100) / 100
    return MonthComparison(total=previous, diff=diff, diff_percent=diff_percent)


def _validate_expense(data: ExpenseIn, prefix: str = "") -> None:
    if not data.date or not data.category or data.amount <= 0:
        raise ValidationError(
            f"{prefix}date, category and a positive amount are required"
        )
    try:
        parse_date(data.date)
    except ValidationError as exc:
        raise ValidationError(f"{prefix}{exc.message}") from None
    if not validate_visibility(data.visibility):
        raise ValidationError(
            f"{prefix}visibility must be one of public, summary, private"
        )


class ExpenseService:
    def __init__(
        self,
        session: Session,
        user_email: str,
        backup: Optional[BackupExporter] = None,
    ) -> None:
        self.session = session
        self.user_email = user_email
        self.backup = backup
        self.expenses = ExpenseStore(session)
        self.registry = MasterRegistry(session)

    def _category_names(self) -> dict[str, str]:
        return {c.id: c.name for c in self.registry.query_by_type("category")}

    def _backup_active(self) -> bool:
        return self.backup is not None and self.backup.enabled

    def _backup_rows(
        self,
        expenses: Sequence[Expense],
        names: Optional[dict[str, str]] = None,
    ) -> list[list[str]]:
        if not self._backup_active():
            return []
        if names is None:
            names = self._category_names()
        return [expense_to_row(e, names) for e in expenses]

    def _build(self, data: ExpenseIn) -> Expense:
        expense_date = parse_date(data.date)
        return Expense(
            date=expense_date,
            year_month=month_key(expense_date),
            payer=data.payer,
            category=data.category,
            amount=data.amount,
            memo=data.memo,
            place=data.place,
            visibility=data.visibility,
            created_by=self.user_email,
        )

    def get_by_month(self, month: str) -> list[ExpenseOut]:
        parse_month(month)
        with persistence_guard(self.session, "get_expenses_by_month"):
            rows = self.expenses.query_by_month(month)
        items = [ExpenseOut.model_validate(e) for e in rows]
        return filter_for_user(items, self.user_email)

    def create(self, data: ExpenseIn) -> ExpenseOut:
        _validate_expense(data)
        expense = self._build(data)
        with persistence_guard(self.session, "create_expense"):
            self.expenses.put(expense)
            refresh_monthly_summary_cache(self.session, expense.year_month)
            rows = self._backup_rows([expense])
            self.session.commit()
        if rows:
            self.backup.append_row(rows[0])
        return ExpenseOut.model_validate(expense)

    def bulk_create(self, items: Sequence[ExpenseIn]) -> list[ExpenseOut]:
        if not items:
            raise ValidationError("no expenses to create")
        for idx, data in enumerate(items, start=1):
            _validate_expense(data, prefix=f"item {idx}: ")

        names: dict[str, str] = {}
        if self._backup_active():
            with persistence_guard(self.session, "bulk_create_category_names"):
                names = self._category_names()

        created: list[Expense] = []
        months: set[str] = set()
        try:
            for data in items:
                expense = self._build(data)
                self.expenses.put(expense)
                self.session.commit()
                created.append(expense)
                months.add(expense.year_month)
        except SQLAlchemyError as exc:
            self.session.rollback()
            logger.exception(
                f"bulk_create_failed: written={len(created)} total={len(items)}"
            )
            self._refresh_months(months)
            raise PersistenceError() from exc

        self._refresh_months(months)
        for row in self._backup_rows(created, names):
            self.backup.append_row(row)
        return [ExpenseOut.model_validate(e) for e in created]

    def _refresh_months(self, months: set[str]) -> None:
        if not months:
            return
        with persistence_guard(self.session, "refresh_summary_cache"):
            for month in sorted(months):
                refresh_monthly_summary_cache(self.session, month)
            self.session.commit()

    def update(self, expense_id: str, data: ExpenseIn) -> ExpenseOut:
        _validate_expense(data)
        with persistence_guard(self.session, "update_expense"):
            expense = self.expenses.get(expense_id)
            if expense is None:
                raise NotFoundError("Expense not found")
            old_month = expense.year_month
            new_date = parse_date(data.date)
            expense.date = new_date
            expense.year_month = month_key(new_date)
            expense.payer = data.payer
            expense.category = data.category
            expense.amount = data.amount
            expense.memo = data.memo
            expense.place = data.place
            expense.visibility = data.visibility
            expense.updated_at = datetime.utcnow()
            self.expenses.put(expense)
            refresh_monthly_summary_cache(self.session, expense.year_month)
            if old_month != expense.year_month:
                refresh_monthly_summary_cache(self.session, old_month)
            rows = self._backup_rows([expense])
            self.session.commit()
        if rows:
            self.backup.update_row_by_id(expense.id, rows[0])
        return ExpenseOut.model_validate(expense)

    def delete(self, expense_id: str) -> None:
        with persistence_guard(self.session, "delete_expense"):
            expense = self.expenses.get(expense_id)
            if expense is None:
                raise NotFoundError("Expense not found")
            month = expense.year_month
            self.expenses.delete(expense_id)
            refresh_monthly_summary_cache(self.session, month)
            self.session.commit()
        if self._backup_active():
            self.backup.delete_row_by_id(expense_id)

    def sync_backup(self) -> int:
        """Rewrite the whole backup from the store, newest dates first."""
        if not self._backup_active():
            return 0
        with persistence_guard(self.session, "sync_backup"):
            expenses = sorted(
                self.expenses.scan_all(), key=lambda e: e.date, reverse=True
            )
            rows = self._backup_rows(expenses)
        self.backup.clear_and_rewrite_all(rows)
        logger.info(f"backup_sync: rows={len(rows)}")
        return len(rows)


class SummaryService:
    def __init__(self, session: Session, user_email: str) -> None:
        self.session = session
        self.user_email = user_email
        self.expenses = ExpenseStore(session)
        self.registry = MasterRegistry(session)

    def _maps(self) -> CategoryMaps:
        return CategoryMaps.from_categories(
            self.registry.active_categories(self.user_email)
        )

    def _compute(
        self, month: str, payer: Optional[str], maps: CategoryMaps
    ) -> MonthData:
        rows = self.expenses.query_by_month(month)
        visible = filter_for_summary(rows, self.user_email)
        return month_data(visible, month, maps, payer)

    def _month_data_map(
        self, months: list[str], payer: Optional[str]
    ) -> dict[str, MonthData]:
        maps = self._maps()
        result = {m: self._compute(m, payer, maps) for m in months}
        for m in months:
            result.setdefault(m, MonthData(month=m))
        return result

    def monthly(self, month: str, payer: Optional[str] = None) -> MonthlySummary:
        parse_month(month)
        prev = previous_month(month)
        prev_year = previous_year_month(month)
        with persistence_guard(self.session, "monthly_summary"):
            data = self._month_data_map([month, prev, prev_year], payer)

        current = data[month]
        summary = MonthlySummary(
            month=month, total=current.total, by_category=current.by_category
        )
        if data[prev].total > 0 or current.total > 0:
            summary.previous_month = make_comparison(current.total, data[prev].total)
        if data[prev_year].total > 0 or current.total > 0:
            summary.previous_year_month = make_comparison(
                current.total, data[prev_year].total
            )
        return summary

    def yearly(self, month: str, payer: Optional[str] = None) -> YearlySummary:
        year, _ = parse_month(month)
        months = months_ending_at(month, 13)
        with persistence_guard(self.session, "yearly_summary"):
            data = self._month_data_map(months, payer)
        return YearlySummary(year=f"{year:04d}", months=[data[m] for m in months])

    def cached(self, month: str) -> Optional[CachedMonthlySummary]:
        parse_month(month)
        with persistence_guard(self.session, "cached_summary"):
            return SummaryCacheStore(self.session).get(month)


class BalanceService:
    def __init__(self, session: Session) -> None:
        self.session = session
        self.expenses = ExpenseStore(session)
        self.registry = MasterRegistry(session)

    def payer_balance(self, payer: str, month: str) -> PayerBalance:
        if not payer:
            raise ValidationError("payer is required")
        parse_month(month)
        with persistence_guard(self.session, "payer_balance"):
            tracked = any(
                p.track_balance and payer in (p.id, p.name)
                for p in self.registry.active_payers()
            )
            if not tracked:
                return PayerBalance(payer=payer)
            maps = CategoryMaps.from_categories(self.registry.active_categories())
            expenses = self.expenses.scan_all()

        income_name = get_settings().income_category_name
        charge_categories = {
            category_id
            for category_id, is_expense in maps.is_expense.items()
            if not is_expense and maps.name.get(category_id) != income_name
        }

        carryover = month_charge = month_spent = 0
        for e in expenses:
            ym = e.year_month
            if e.category in charge_categories:
                if ym < month:
                    carryover += e.amount
                elif ym == month:
                    month_charge += e.amount
            elif e.payer == payer and maps.expense_category(e.category):
                if ym < month:
                    carryover -= e.amount
                elif ym == month:
                    month_spent += e.amount

        return PayerBalance(
            payer=payer,
            carryover=carryover,
            month_charge=month_charge,
            month_spent=month_spent,
            balance=carryover + month_charge - month_spent,
        )


class CategoryService:
    def __init__(self, session: Session, user_email: str) -> None:
        self.session = session
        self.user_email = user_email
        self.registry = MasterRegistry(session)

    def list_active(self) -> list[Category]:
        with persistence_guard(self.session, "list_categories"):
            return self.registry.active_categories(self.user_email)

    def list_all(self) -> list[Category]:
        with persistence_guard(self.session, "list_all_categories"):
            return self.registry.categories_for(self.user_email)

    def _get_owned(self, category_id: str) -> Category:
        category = self.registry.get("category", category_id)
        if category is None:
            raise NotFoundError("Category not found")
        if category.owner and category.owner != self.user_email:
            raise PermissionDeniedError("Cannot modify another user's category")
        return category

    def create(self, data: CategoryIn) -> Category:
        if not data.name.strip():
            raise ValidationError("name is required")
        category = Category(
            name=data.name.strip(),
            sort_order=data.sort_order,
            color=data.color,
            is_active=data.is_active,
            is_expense=data.is_expense,
            exclude_from_breakdown=data.exclude_from_breakdown,
            exclude_from_summary=data.exclude_from_summary,
            owner=self.user_email if data.personal else "",
        )
        with persistence_guard(self.session, "create_category"):
            self.session.add(category)
            self.session.commit()
        return category

    def update(self, category_id: str, data: CategoryIn) -> Category:
        if not data.name.strip():
            raise ValidationError("name is required")
        with persistence_guard(self.session, "update_category"):
            category = self._get_owned(category_id)
            category.name = data.name.strip()
            category.sort_order = data.sort_order
            category.color = data.color
            category.is_active = data.is_active
            category.is_expense = data.is_expense
            category.exclude_from_breakdown = data.exclude_from_breakdown
            category.exclude_from_summary = data.exclude_from_summary
            self.session.commit()
        return category

    def delete(self, category_id: str) -> None:
        with persistence_guard(self.session, "delete_category"):
            self._get_owned(category_id)
            self.registry.delete("category", category_id)
            self.session.commit()


class PayerService:
    def __init__(self, session: Session) -> None:
        self.session = session
        self.registry = MasterRegistry(session)

    def list_active(self) -> list[Payer]:
        with persistence_guard(self.session, "list_payers"):
            return self.registry.active_payers()

    def list_all(self) -> list[Payer]:
        with persistence_guard(self.session, "list_all_payers"):
            return self.registry.query_by_type("payer")

    def create(self, data: PayerIn) -> Payer:
        name = data.name.strip()
        if not name:
            raise ValidationError("name is required")
        with persistence_guard(self.session, "create_payer"):
            if self.registry.get("payer", name) is not None:
                raise ValidationError("Payer with this name already exists")
            payer = Payer(
                id=name,
                name=name,
                sort_order=data.sort_order,
                is_active=data.is_active,
                track_balance=data.track_balance,
            )
            self.session.add(payer)
            self.session.commit()
        return payer

    def update(self, payer_id: str, data: PayerIn) -> Payer:
        if not data.name.strip():
            raise ValidationError("name is required")
        with persistence_guard(self.session, "update_payer"):
            payer = self.registry.get("payer", payer_id)
            if payer is None:
                raise NotFoundError("Payer not found")
            payer.name = data.name.strip()
            payer.sort_order = data.sort_order
            payer.is_active = data.is_active
            payer.track_balance = data.track_balance
            self.session.commit()
        return payer

    def delete(self, payer_id: str) -> None:
        with persistence_guard(self.session, "delete_payer"):
            if not self.registry.delete("payer", payer_id):
                raise NotFoundError("Payer not found")
            self.session.commit()


class PlaceService:
    def __init__(self, session: Session) -> None:
        self.session = session
        self.registry = MasterRegistry(session)

    def list_active(self) -> list[Place]:
        with persistence_guard(self.session, "list_places"):
            return self.registry.active_places()

    def list_all(self) -> list[Place]:
        with persistence_guard(self.session, "list_all_places"):
            return self.registry.query_by_type("place")

    def create(self, data: PlaceIn) -> Place:
        if not data.name.strip():
            raise ValidationError("name is required")
        place = Place(
            name=data.name.strip(), sort_order=data.sort_order, is_active=data.is_active
        )
        with persistence_guard(self.session, "create_place"):
            self.session.add(place)
            self.session.commit()
        return place

    def update(self, place_id: str, data: PlaceIn) -> Place:
        if not data.name.strip():
            raise ValidationError("name is required")
        with persistence_guard(self.session, "update_place"):
            place = self.registry.get("place", place_id)
            if place is None:
                raise NotFoundError("Place not found")
            place.name = data.name.strip()
            place.sort_order = data.sort_order
            place.is_active = data.is_active
            self.session.commit()
        return place

    def delete(self, place_id: str) -> None:
        with persistence_guard(self.session, "delete_place"):
            if not self.registry.delete("place", place_id):
                raise NotFoundError("Place not found")
            self.session.commit()


class UserService:
    def __init__(self, session: Session) -> None:
        self.session = session
        self.registry = MasterRegistry(session)

    def is_registered(self, email: str) -> bool:
        with persistence_guard(self.session, "get_user"):
            return self.registry.get("user", email) is not None

    def get_role(self, email: str) -> str:
        with persistence_guard(self.session, "get_user"):
            user = self.registry.get("user", email)
        if user is None or not user.role:
            return "user"
        return user.role

    def add(self, email: str, role: str = "user") -> User:
        if not email:
            raise ValidationError("email is required")
        with persistence_guard(self.session, "add_user"):
            user = self.registry.put(User(email=email, role=role))
            self.session.commit()
        return user


def _validate_recurring(data: RecurringExpenseIn) -> Frequency:
    if not data.category or data.amount <= 0 or not 1 <= data.day_of_month <= 31:
        raise ValidationError(
            "category, a positive amount and a day of month (1-31) are required"
        )
    try:
        frequency = Frequency(data.frequency)
    except ValueError:
        raise ValidationError(
            "frequency must be one of monthly, bimonthly, yearly"
        ) from None
    if frequency == Frequency.yearly and not 1 <= data.repeat_month <= 12:
        raise ValidationError("yearly templates need a repeat month (1-12)")
    for value in (data.start_month, data.end_month):
        if value and not is_month_key(value):
            raise ValidationError("start and end months must be in YYYY-MM format")
    if data.start_month and data.end_month and data.start_month > data.end_month:
        raise ValidationError("start month must not be after end month")
    return frequency


class RecurringExpenseService:
    def __init__(
        self,
        session: Session,
        user_email: Optional[str] = None,
        backup: Optional[BackupExporter] = None,
    ) -> None:
        self.session = session
        self.user_email = user_email or get_settings().scheduler_identity
        self.backup = backup
        self.registry = MasterRegistry(session)

    def list(self) -> list[RecurringExpense]:
        with persistence_guard(self.session, "list_recurring"):
            return self.registry.query_by_type("recurring")

    def get(self, template_id: str) -> RecurringExpense:
        with persistence_guard(self.session, "get_recurring"):
            template = self.registry.get("recurring", template_id)
        if template is None:
            raise NotFoundError("Recurring expense not found")
        return template

    def create(self, data: RecurringExpenseIn) -> RecurringExpense:
        frequency = _validate_recurring(data)
        template = RecurringExpense(
            category=data.category,
            amount=data.amount,
            payer=data.payer,
            place=data.place,
            memo=data.memo,
            frequency=frequency,
            day_of_month=data.day_of_month,
            repeat_month=data.repeat_month,
            start_month=data.start_month,
            end_month=data.end_month,
            is_active=data.is_active,
        )
        with persistence_guard(self.session, "create_recurring"):
            self.session.add(template)
            self.session.commit()
        return template

    def update(self, template_id: str, data: RecurringExpenseIn) -> RecurringExpense:
        frequency = _validate_recurring(data)
        with persistence_guard(self.session, "update_recurring"):
            template = self.registry.get("recurring", template_id)
            if template is None:
                raise NotFoundError("Recurring expense not found")
            template.category = data.category
            template.amount = data.amount
            template.payer = data.payer
            template.place = data.place
            template.memo = data.memo
            template.frequency = frequency
            template.day_of_month = data.day_of_month
            template.repeat_month = data.repeat_month
            template.start_month = data.start_month
            template.end_month = data.end_month
            template.is_active = data.is_active
            self.session.commit()
        return template

    def delete(self, template_id: str) -> None:
        with persistence_guard(self.session, "delete_recurring"):
            if not self.registry.delete("recurring", template_id):
                raise NotFoundError("Recurring expense not found")
            self.session.commit()

    def process(self, today: Optional[date] = None) -> int:
        engine = RecurringEngine(self.session, self.user_email, backup=self.backup)
        return engine.process(today)

import uuid
from datetime import date, datetime
from enum import Enum
from typing import Optional

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    Enum as SAEnum,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import Mapped, mapped_column

from database import Base


def new_id() -> str:
    return str(uuid.uuid4())


class Visibility(str, Enum):
    public = "public"
    summary = "summary"
    private = "private"


class Frequency(str, Enum):
    monthly = "monthly"
    bimonthly = "bimonthly"
    yearly = "yearly"


class TimestampMixin:
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False
    )


class Expense(Base, TimestampMixin):
    __tablename__ = "expenses"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    date: Mapped[date] = mapped_column(Date, nullable=False)
    year_month: Mapped[str] = mapped_column(String(7), nullable=False)
    payer: Mapped[str] = mapped_column(String(100), nullable=False, default="")
    category: Mapped[str] = mapped_column(String(36), nullable=False)
    amount: Mapped[int] = mapped_column(Integer, nullable=False)
    memo: Mapped[str] = mapped_column(Text, nullable=False, default="")
    place: Mapped[str] = mapped_column(String(100), nullable=False, default="")
    # "" is stored as-is and read as public
    visibility: Mapped[str] = mapped_column(String(10), nullable=False, default="")
    created_by: Mapped[str] = mapped_column(String(255), nullable=False)

    __table_args__ = (
        Index("ix_expenses_year_month_date", "year_month", "date"),
        Index("ix_expenses_payer", "payer"),
        CheckConstraint("amount > 0", name="ck_expenses_amount_positive"),
    )


class Category(Base):
    __tablename__ = "categories"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    sort_order: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    color: Mapped[str] = mapped_column(String(9), default="", nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    is_expense: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    exclude_from_breakdown: Mapped[bool] = mapped_column(
        Boolean, default=False, nullable=False
    )
    exclude_from_summary: Mapped[bool] = mapped_column(
        Boolean, default=False, nullable=False
    )
    # empty owner means shared across all users
    owner: Mapped[str] = mapped_column(String(255), default="", nullable=False)

    __table_args__ = (Index("ix_categories_owner", "owner"),)


class Payer(Base):
    __tablename__ = "payers"

    id: Mapped[str] = mapped_column(String(100), primary_key=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    sort_order: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    track_balance: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)


class Place(Base):
    __tablename__ = "places"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    sort_order: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)


class User(Base):
    __tablename__ = "users"

    email: Mapped[str] = mapped_column(String(255), primary_key=True)
    role: Mapped[str] = mapped_column(String(20), default="user", nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, nullable=False
    )


class RecurringExpense(Base, TimestampMixin):
    __tablename__ = "recurring_expenses"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    category: Mapped[str] = mapped_column(String(36), nullable=False)
    amount: Mapped[int] = mapped_column(Integer, nullable=False)
    payer: Mapped[str] = mapped_column(String(100), nullable=False, default="")
    place: Mapped[str] = mapped_column(String(100), nullable=False, default="")
    memo: Mapped[str] = mapped_column(Text, nullable=False, default="")
    frequency: Mapped[Frequency] = mapped_column(SAEnum(Frequency), nullable=False)
    day_of_month: Mapped[int] = mapped_column(Integer, nullable=False)
    repeat_month: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    start_month: Mapped[str] = mapped_column(String(7), nullable=False, default="")
    end_month: Mapped[str] = mapped_column(String(7), nullable=False, default="")
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    last_created_month: Mapped[Optional[str]] = mapped_column(String(7))

    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_recurring_amount_positive"),
        CheckConstraint(
            "day_of_month BETWEEN 1 AND 31", name="ck_recurring_day_of_month"
        ),
    )


class MonthlySummaryCache(Base):
    __tablename__ = "monthly_summary_cache"

    month: Mapped[str] = mapped_column(String(7), primary_key=True)
    total: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    by_category_json: Mapped[str] = mapped_column(Text, nullable=False, default="[]")
    refreshed_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, nullable=False
    )

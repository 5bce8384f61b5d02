import datetime as dt
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from models import Frequency


class ExpenseIn(BaseModel):
    date: str = ""
    payer: str = Field(default="", max_length=100)
    category: str = ""
    amount: int = 0
    memo: str = ""
    place: str = Field(default="", max_length=100)
    visibility: str = ""


class ExpenseOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    date: dt.date
    payer: str
    category: str
    amount: int
    memo: str
    place: str
    visibility: str
    created_by: str
    created_at: dt.datetime
    updated_at: dt.datetime


class BulkExpenseIn(BaseModel):
    expenses: list[ExpenseIn] = Field(default_factory=list)


class CategoryIn(BaseModel):
    name: str = Field(default="", max_length=100)
    sort_order: int = 0
    color: str = Field(default="", max_length=9)
    is_active: bool = True
    is_expense: bool = True
    exclude_from_breakdown: bool = False
    exclude_from_summary: bool = False
    personal: bool = False


class CategoryOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    sort_order: int
    color: str
    is_active: bool
    is_expense: bool
    exclude_from_breakdown: bool
    exclude_from_summary: bool
    owner: str


class PayerIn(BaseModel):
    name: str = Field(default="", max_length=100)
    sort_order: int = 0
    is_active: bool = True
    track_balance: bool = False


class PayerOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    sort_order: int
    is_active: bool
    track_balance: bool


class PlaceIn(BaseModel):
    name: str = Field(default="", max_length=100)
    sort_order: int = 0
    is_active: bool = True


class PlaceOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    sort_order: int
    is_active: bool


class RecurringExpenseIn(BaseModel):
    category: str = ""
    amount: int = 0
    payer: str = Field(default="", max_length=100)
    place: str = Field(default="", max_length=100)
    memo: str = ""
    frequency: str = ""
    day_of_month: int = 0
    repeat_month: int = 0
    start_month: str = ""
    end_month: str = ""
    is_active: bool = True


class RecurringExpenseOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    category: str
    amount: int
    payer: str
    place: str
    memo: str
    frequency: Frequency
    day_of_month: int
    repeat_month: int
    start_month: str
    end_month: str
    is_active: bool
    last_created_month: Optional[str] = None
    created_at: dt.datetime
    updated_at: dt.datetime


class CategorySummary(BaseModel):
    category_id: str
    category: str
    amount: int
    color: str


class MonthData(BaseModel):
    month: str
    total: int = 0
    by_category: list[CategorySummary] = Field(default_factory=list)


class MonthComparison(BaseModel):
    total: int
    diff: int
    diff_percent: float


class MonthlySummary(BaseModel):
    month: str
    total: int
    by_category: list[CategorySummary]
    previous_month: Optional[MonthComparison] = None
    previous_year_month: Optional[MonthComparison] = None


class YearlySummary(BaseModel):
    year: str
    months: list[MonthData]


class CachedMonthlySummary(MonthData):
    refreshed_at: Optional[dt.datetime] = None


class PayerBalance(BaseModel):
    payer: str
    carryover: int = 0
    month_charge: int = 0
    month_spent: int = 0
    balance: int = 0

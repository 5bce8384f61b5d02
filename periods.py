import re
from datetime import date, datetime
from typing import Optional
from zoneinfo import ZoneInfo

from config import get_settings
from errors import ValidationError


_MONTH_RE = re.compile(r"^\d{4}-(0[1-9]|1[0-2])$")
_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")


def local_today() -> date:
    settings = get_settings()
    tz = ZoneInfo(settings.timezone)
    return datetime.now(tz).date()


def month_key(d: date) -> str:
    return f"{d.year:04d}-{d.month:02d}"


def is_month_key(value: Optional[str]) -> bool:
    return bool(value) and bool(_MONTH_RE.match(value))


def parse_month(value: Optional[str]) -> tuple[int, int]:
    if not is_month_key(value):
        raise ValidationError("month must be in YYYY-MM format")
    year, month = value.split("-")
    return int(year), int(month)


def parse_date(value: Optional[str]) -> date:
    if not value:
        raise ValidationError("date is required")
    if not _DATE_RE.fullmatch(value):
        raise ValidationError("date must be in YYYY-MM-DD format")
    try:
        return date.fromisoformat(value)
    except ValueError as exc:
        raise ValidationError("date must be in YYYY-MM-DD format") from exc


def days_in_month(year: int, month: int) -> int:
    if month == 12:
        next_month = date(year + 1, 1, 1)
    else:
        next_month = date(year, month + 1, 1)
    return (next_month - date(year, month, 1)).days


def shift_month(month: str, months: int) -> str:
    year, mon = parse_month(month)
    total = year * 12 + (mon - 1) + months
    return f"{total // 12:04d}-{total % 12 + 1:02d}"


def previous_month(month: str) -> str:
    return shift_month(month, -1)


def previous_year_month(month: str) -> str:
    return shift_month(month, -12)


def months_ending_at(month: str, count: int = 13) -> list[str]:
    """Oldest first, ending with ``month`` itself."""
    return [shift_month(month, -offset) for offset in range(count - 1, -1, -1)]

"""Best-effort spreadsheet mirror of the expense table.

Every operation is handed to a background scheduler as a detached one-off job,
so the request that triggered it can finish (or fail) without cancelling the
write. Backup failures are logged and never reach the caller.
"""

from __future__ import annotations

import csv
import logging
import os
import re
import threading
from pathlib import Path
from typing import Callable, Mapping, Optional, Sequence

from apscheduler.schedulers.base import BaseScheduler

from models import Expense


logger = logging.getLogger(__name__)

HEADER = [
    "id",
    "date",
    "payer",
    "category",
    "amount",
    "memo",
    "place",
    "created_by",
    "created_at",
    "updated_at",
    "visibility",
]


def sanitize_csv_value(value: str) -> str:
    """Prefix values a spreadsheet would evaluate as formulas with a tab."""
    if not value or value.strip() == "":
        return ""

    value = value.strip()

    formula_triggers = ("=", "+", "-", "@", "\t", "\r")
    if value.startswith(formula_triggers):
        return "\t" + value

    dangerous_patterns = [
        r"^cmd\s*",
        r"^powershell\s*",
        r"^http[s]?://",
    ]
    for pattern in dangerous_patterns:
        if re.match(pattern, value, re.IGNORECASE):
            return "\t" + value

    return value


def expense_to_row(expense: Expense, category_names: Mapping[str, str]) -> list[str]:
    category_name = category_names.get(expense.category) or expense.category
    return [
        expense.id,
        expense.date.isoformat(),
        sanitize_csv_value(expense.payer),
        sanitize_csv_value(category_name),
        str(expense.amount),
        sanitize_csv_value(expense.memo),
        sanitize_csv_value(expense.place),
        expense.created_by,
        expense.created_at.isoformat() if expense.created_at else "",
        expense.updated_at.isoformat() if expense.updated_at else "",
        expense.visibility,
    ]


class BackupExporter:
    def __init__(
        self,
        enabled: bool,
        path: Path,
        scheduler: Optional[BaseScheduler] = None,
    ) -> None:
        self.enabled = enabled
        self.path = Path(path)
        self.scheduler = scheduler
        self._lock = threading.Lock()

    # public, fire-and-forget

    def append_row(self, row: Sequence[str]) -> None:
        self._submit("append_row", self._append, list(row))

    def update_row_by_id(self, expense_id: str, row: Sequence[str]) -> None:
        self._submit("update_row_by_id", self._replace, expense_id, list(row))

    def delete_row_by_id(self, expense_id: str) -> None:
        self._submit("delete_row_by_id", self._replace, expense_id, None)

    def clear_and_rewrite_all(self, rows: Sequence[Sequence[str]]) -> None:
        self._submit("clear_and_rewrite_all", self._write_all, [list(r) for r in rows])

    # internals

    def _submit(self, op: str, fn: Callable[..., None], *args) -> None:
        if not self.enabled:
            return
        if self.scheduler is None:
            self._run(op, fn, *args)
            return
        self.scheduler.add_job(
            self._run,
            args=[op, fn, *args],
            misfire_grace_time=None,
        )

    def _run(self, op: str, fn: Callable[..., None], *args) -> None:
        with self._lock:
            try:
                fn(*args)
            except (OSError, csv.Error):
                logger.exception(f"backup_failed: op={op} path={self.path}")
                return
        logger.debug(f"backup_done: op={op}")

    def _read_rows(self) -> list[list[str]]:
        if not self.path.exists():
            return []
        with self.path.open(newline="", encoding="utf-8") as f:
            rows = list(csv.reader(f))
        return rows[1:] if rows and rows[0] == HEADER else rows

    def _write_all(self, rows: list[list[str]]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        with tmp.open("w", newline="", encoding="utf-8") as f:
            writer = csv.writer(f)
            writer.writerow(HEADER)
            writer.writerows(rows)
        os.replace(tmp, self.path)

    def _append(self, row: list[str]) -> None:
        if not self.path.exists():
            self._write_all([row])
            return
        with self.path.open("a", newline="", encoding="utf-8") as f:
            csv.writer(f).writerow(row)

    def _replace(self, expense_id: str, row: Optional[list[str]]) -> None:
        rows = []
        for existing in self._read_rows():
            if existing and existing[0] == expense_id:
                if row is not None:
                    rows.append(row)
                continue
            rows.append(existing)
        self._write_all(rows)

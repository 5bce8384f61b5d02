import logging
from datetime import date
from typing import Optional

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.orm import Session

from backup import BackupExporter
from database import persistence_guard
from errors import (
    AppError,
    PersistenceError,
    RecurringProcessingError,
    ValidationError,
)
from models import Frequency, RecurringExpense
from periods import days_in_month, local_today, month_key
from schemas import ExpenseIn
from stores import MasterRegistry


logger = logging.getLogger(__name__)


def is_due(template: RecurringExpense, today: date) -> bool:
    current = month_key(today)
    if not template.is_active:
        return False
    # YYYY-MM compares correctly as plain strings
    if template.last_created_month and template.last_created_month >= current:
        return False
    if template.start_month and current < template.start_month:
        return False
    if template.end_month and current > template.end_month:
        return False
    # bimonthly fires every month, same as monthly
    if template.frequency == Frequency.yearly and today.month != template.repeat_month:
        return False
    return True


def occurrence_date(template: RecurringExpense, today: date) -> date:
    last_day = days_in_month(today.year, today.month)
    return date(today.year, today.month, min(template.day_of_month, last_day))


class RecurringEngine:
    def __init__(
        self,
        session: Session,
        acting_user: str,
        backup: Optional[BackupExporter] = None,
    ) -> None:
        self.session = session
        self.acting_user = acting_user
        self.backup = backup
        self.registry = MasterRegistry(session)

    def process(self, today: Optional[date] = None) -> int:
        """Materialize this month's expense for every due template.

        Each template commits on its own, so a failure stops the run without
        undoing templates already handled; their ``last_created_month`` keeps
        them from being processed again on retry. A template that no longer
        forms a valid expense is logged and skipped without being claimed.
        """
        today = today or local_today()
        current = month_key(today)
        with persistence_guard(self.session, "list_recurring"):
            templates = self.registry.query_by_type("recurring")

        created = 0
        for template in templates:
            if not is_due(template, today):
                continue
            try:
                if self._materialize(template, today, current):
                    created += 1
            except PersistenceError as exc:
                logger.error(
                    f"recurring_run_aborted: template={template.id} created={created}"
                )
                raise RecurringProcessingError(created, template.id) from exc

        logger.info(f"recurring_run: month={current} created={created}")
        return created

    def _materialize(self, template: RecurringExpense, today: date, current: str) -> bool:
        from services import ExpenseService

        try:
            data = ExpenseIn(
                date=occurrence_date(template, today).isoformat(),
                payer=template.payer,
                category=template.category,
                amount=template.amount,
                memo=template.memo,
                place=template.place,
            )
        except PydanticValidationError:
            logger.error(f"recurring_skip_invalid: template={template.id}")
            return False

        expected = template.last_created_month
        with persistence_guard(self.session, "claim_recurring"):
            claimed = self.registry.advance_last_created_month(
                template.id, expected, current
            )
        if not claimed:
            self.session.rollback()
            logger.info(f"recurring_skip_claimed: template={template.id}")
            return False

        # the claim is still uncommitted; creating the expense commits both
        try:
            ExpenseService(self.session, self.acting_user, backup=self.backup).create(
                data
            )
        except ValidationError as exc:
            self.session.rollback()
            logger.error(
                f"recurring_skip_invalid: template={template.id} error={exc.message}"
            )
            return False
        except AppError:
            self.session.rollback()
            raise
        return True

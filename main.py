import logging
from typing import Optional

from fastapi import Depends, FastAPI, Header, Request
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from database import get_sessionmaker
from errors import (
    AppError,
    AuthenticationError,
    PermissionDeniedError,
    RecurringProcessingError,
)
from scheduler import SchedulerManager
from schemas import (
    BulkExpenseIn,
    CategoryIn,
    CategoryOut,
    ExpenseIn,
    PayerIn,
    PayerOut,
    PlaceIn,
    PlaceOut,
    RecurringExpenseIn,
    RecurringExpenseOut,
)
from services import (
    BalanceService,
    CategoryService,
    ExpenseService,
    PayerService,
    PlaceService,
    RecurringExpenseService,
    SummaryService,
    UserService,
)


logger = logging.getLogger(__name__)

app = FastAPI(title="Household Ledger")

scheduler_manager = SchedulerManager()


@app.on_event("startup")
def startup_event():
    scheduler_manager.start()


@app.on_event("shutdown")
def shutdown_event():
    scheduler_manager.stop()


@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error(f"request_failed: path={request.url.path} error={exc.message}")
    body = {"success": False, "error": exc.message}
    if isinstance(exc, RecurringProcessingError):
        body["created"] = exc.created
    return JSONResponse(status_code=exc.status_code, content=body)


def get_db():
    db = get_sessionmaker()()
    try:
        yield db
    finally:
        db.close()


def current_user(
    x_user_email: Optional[str] = Header(default=None),
    db: Session = Depends(get_db),
) -> str:
    # the identity is verified upstream; only registration is checked here
    if not x_user_email:
        raise AuthenticationError("Authentication required")
    if not UserService(db).is_registered(x_user_email):
        raise PermissionDeniedError("This account is not allowed")
    return x_user_email


def ok(data=None) -> dict[str, object]:
    return {"success": True, "data": data}


def expense_service(db: Session, user: str) -> ExpenseService:
    return ExpenseService(db, user, backup=scheduler_manager.backup)


@app.get("/api/me/role")
def my_role(user: str = Depends(current_user), db: Session = Depends(get_db)):
    return ok({"role": UserService(db).get_role(user)})


@app.get("/api/expenses")
def list_expenses(
    month: str, user: str = Depends(current_user), db: Session = Depends(get_db)
):
    return ok(expense_service(db, user).get_by_month(month))


@app.post("/api/expenses")
def create_expense(
    data: ExpenseIn, user: str = Depends(current_user), db: Session = Depends(get_db)
):
    return ok(expense_service(db, user).create(data))


@app.post("/api/expenses/bulk")
def bulk_create_expenses(
    data: BulkExpenseIn,
    user: str = Depends(current_user),
    db: Session = Depends(get_db),
):
    return ok(expense_service(db, user).bulk_create(data.expenses))


@app.put("/api/expenses/{expense_id}")
def update_expense(
    expense_id: str,
    data: ExpenseIn,
    user: str = Depends(current_user),
    db: Session = Depends(get_db),
):
    return ok(expense_service(db, user).update(expense_id, data))


@app.delete("/api/expenses/{expense_id}")
def delete_expense(
    expense_id: str, user: str = Depends(current_user), db: Session = Depends(get_db)
):
    expense_service(db, user).delete(expense_id)
    return ok()


@app.get("/api/summary/monthly")
def monthly_summary(
    month: str,
    payer: Optional[str] = None,
    user: str = Depends(current_user),
    db: Session = Depends(get_db),
):
    return ok(SummaryService(db, user).monthly(month, payer))


@app.get("/api/summary/yearly")
def yearly_summary(
    month: str,
    payer: Optional[str] = None,
    user: str = Depends(current_user),
    db: Session = Depends(get_db),
):
    return ok(SummaryService(db, user).yearly(month, payer))


@app.get("/api/summary/cached")
def cached_summary(
    month: str, user: str = Depends(current_user), db: Session = Depends(get_db)
):
    return ok(SummaryService(db, user).cached(month))


@app.get("/api/payers/{payer}/balance")
def payer_balance(
    payer: str,
    month: str,
    user: str = Depends(current_user),
    db: Session = Depends(get_db),
):
    return ok(BalanceService(db).payer_balance(payer, month))


@app.post("/api/recurring/process")
def process_recurring(user: str = Depends(current_user), db: Session = Depends(get_db)):
    service = RecurringExpenseService(db, user, backup=scheduler_manager.backup)
    return ok({"created": service.process()})


@app.get("/api/recurring")
def list_recurring(user: str = Depends(current_user), db: Session = Depends(get_db)):
    items = RecurringExpenseService(db, user).list()
    return ok([RecurringExpenseOut.model_validate(t) for t in items])


@app.post("/api/recurring")
def create_recurring(
    data: RecurringExpenseIn,
    user: str = Depends(current_user),
    db: Session = Depends(get_db),
):
    template = RecurringExpenseService(db, user).create(data)
    return ok(RecurringExpenseOut.model_validate(template))


@app.put("/api/recurring/{template_id}")
def update_recurring(
    template_id: str,
    data: RecurringExpenseIn,
    user: str = Depends(current_user),
    db: Session = Depends(get_db),
):
    template = RecurringExpenseService(db, user).update(template_id, data)
    return ok(RecurringExpenseOut.model_validate(template))


@app.delete("/api/recurring/{template_id}")
def delete_recurring(
    template_id: str, user: str = Depends(current_user), db: Session = Depends(get_db)
):
    RecurringExpenseService(db, user).delete(template_id)
    return ok()


@app.get("/api/categories")
def list_categories(
    include_inactive: bool = False,
    user: str = Depends(current_user),
    db: Session = Depends(get_db),
):
    service = CategoryService(db, user)
    items = service.list_all() if include_inactive else service.list_active()
    return ok([CategoryOut.model_validate(c) for c in items])


@app.post("/api/categories")
def create_category(
    data: CategoryIn, user: str = Depends(current_user), db: Session = Depends(get_db)
):
    return ok(CategoryOut.model_validate(CategoryService(db, user).create(data)))


@app.put("/api/categories/{category_id}")
def update_category(
    category_id: str,
    data: CategoryIn,
    user: str = Depends(current_user),
    db: Session = Depends(get_db),
):
    category = CategoryService(db, user).update(category_id, data)
    return ok(CategoryOut.model_validate(category))


@app.delete("/api/categories/{category_id}")
def delete_category(
    category_id: str, user: str = Depends(current_user), db: Session = Depends(get_db)
):
    CategoryService(db, user).delete(category_id)
    return ok()


@app.get("/api/payers")
def list_payers(
    include_inactive: bool = False,
    user: str = Depends(current_user),
    db: Session = Depends(get_db),
):
    service = PayerService(db)
    items = service.list_all() if include_inactive else service.list_active()
    return ok([PayerOut.model_validate(p) for p in items])


@app.post("/api/payers")
def create_payer(
    data: PayerIn, user: str = Depends(current_user), db: Session = Depends(get_db)
):
    return ok(PayerOut.model_validate(PayerService(db).create(data)))


@app.put("/api/payers/{payer_id}")
def update_payer(
    payer_id: str,
    data: PayerIn,
    user: str = Depends(current_user),
    db: Session = Depends(get_db),
):
    return ok(PayerOut.model_validate(PayerService(db).update(payer_id, data)))


@app.delete("/api/payers/{payer_id}")
def delete_payer(
    payer_id: str, user: str = Depends(current_user), db: Session = Depends(get_db)
):
    PayerService(db).delete(payer_id)
    return ok()


@app.get("/api/places")
def list_places(
    include_inactive: bool = False,
    user: str = Depends(current_user),
    db: Session = Depends(get_db),
):
    service = PlaceService(db)
    items = service.list_all() if include_inactive else service.list_active()
    return ok([PlaceOut.model_validate(p) for p in items])


@app.post("/api/places")
def create_place(
    data: PlaceIn, user: str = Depends(current_user), db: Session = Depends(get_db)
):
    return ok(PlaceOut.model_validate(PlaceService(db).create(data)))


@app.put("/api/places/{place_id}")
def update_place(
    place_id: str,
    data: PlaceIn,
    user: str = Depends(current_user),
    db: Session = Depends(get_db),
):
    return ok(PlaceOut.model_validate(PlaceService(db).update(place_id, data)))


@app.delete("/api/places/{place_id}")
def delete_place(
    place_id: str, user: str = Depends(current_user), db: Session = Depends(get_db)
):
    PlaceService(db).delete(place_id)
    return ok()

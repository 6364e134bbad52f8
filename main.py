import logging
from dataclasses import asdict
from typing import Optional

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from config import get_settings
from database import SessionLocal
from errors import FinanceError, NotFoundError, StorageError
from identity import resolve_session_token
from models import SavingGoal, Transaction
from periods import Month, parse_month, resolve_month
from schemas import (
    BudgetIn,
    SavingAdjustIn,
    SavingGoalIn,
    TransactionIn,
    TransactionUpdate,
)
from services import (
    BudgetService,
    CategoryService,
    NotificationService,
    SavingGoalService,
    SummaryService,
    TransactionFilters,
    TransactionService,
    today,
)

logging.basicConfig(level=get_settings().log_level)
logger = logging.getLogger(__name__)

app = FastAPI(title="Finance Tracker")


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def current_user_id(request: Request) -> int:
    token = request.cookies.get("token")
    auth = request.headers.get("Authorization", "")
    if auth.lower().startswith("bearer "):
        token = auth[7:].strip()
    user_id = resolve_session_token(token)
    if user_id is None:
        raise HTTPException(status_code=401, detail="Unauthorized")
    return user_id


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=400, content={"detail": jsonable_encoder(exc.errors())}
    )


def http_error(exc: FinanceError) -> HTTPException:
    if isinstance(exc, NotFoundError):
        return HTTPException(status_code=404, detail=str(exc))
    if isinstance(exc, StorageError):
        return HTTPException(status_code=500, detail=str(exc))
    return HTTPException(status_code=400, detail=str(exc))


def month_param(value: Optional[str]) -> Optional[Month]:
    if not value:
        return None
    try:
        return parse_month(value)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


def transaction_payload(txn: Transaction) -> dict[str, object]:
    return {
        "id": txn.id,
        "category_id": txn.category_id,
        "category_name": txn.category.name if txn.category else None,
        "type": txn.type.value,
        "amount": txn.amount,
        "description": txn.description,
        "transaction_date": txn.transaction_date.isoformat(),
        "saving_id": txn.saving_id,
    }


def goal_payload(goal: SavingGoal) -> dict[str, object]:
    return {
        "id": goal.id,
        "goal_name": goal.goal_name,
        "target_amount": goal.target_amount,
        "saved_amount": goal.saved_amount,
    }


@app.get("/api/categories")
def api_categories(db: Session = Depends(get_db)):
    return [
        {"id": c.id, "name": c.name, "allocation_type": c.allocation_type.value}
        for c in CategoryService(db).list_all()
    ]


@app.get("/api/transactions")
def api_transactions(
    month: Optional[str] = None,
    search: Optional[str] = None,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    filters = TransactionFilters(month=month_param(month), query=search)
    items = TransactionService(db, user_id).list(filters)
    return [transaction_payload(txn) for txn in items]


@app.get("/api/transactions/balance")
def api_balance(
    db: Session = Depends(get_db), user_id: int = Depends(current_user_id)
):
    return {"total_balance": TransactionService(db, user_id).balance()}


@app.post("/api/transactions", status_code=201)
def create_transaction(
    data: TransactionIn,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    try:
        txn = TransactionService(db, user_id).create(data)
    except FinanceError as exc:
        raise http_error(exc) from exc
    return {"id": txn.id}


@app.put("/api/transactions/{transaction_id}")
def update_transaction(
    transaction_id: int,
    data: TransactionUpdate,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    try:
        TransactionService(db, user_id).update(transaction_id, data)
    except FinanceError as exc:
        raise http_error(exc) from exc
    return {"ok": True}


@app.delete("/api/transactions/{transaction_id}")
def delete_transaction(
    transaction_id: int,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    try:
        TransactionService(db, user_id).delete(transaction_id)
    except FinanceError as exc:
        raise http_error(exc) from exc
    return {"ok": True}


@app.get("/api/budgets")
def api_budgets(
    month: Optional[str] = None,
    search: Optional[str] = None,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    rows = BudgetService(db, user_id).list(month_param(month), search)
    return [asdict(row) for row in rows]


@app.post("/api/budgets", status_code=201)
def create_budget(
    data: BudgetIn,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    try:
        budget = BudgetService(db, user_id).create(data)
    except FinanceError as exc:
        raise http_error(exc) from exc
    return {"id": budget.id}


@app.put("/api/budgets/{budget_id}")
def update_budget(
    budget_id: int,
    data: BudgetIn,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    try:
        BudgetService(db, user_id).update(budget_id, data)
    except FinanceError as exc:
        raise http_error(exc) from exc
    return {"ok": True}


@app.delete("/api/budgets/{budget_id}")
def delete_budget(
    budget_id: int,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    try:
        BudgetService(db, user_id).delete(budget_id)
    except FinanceError as exc:
        raise http_error(exc) from exc
    return {"ok": True}


@app.get("/api/savings")
def api_savings(
    search: Optional[str] = None,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    return [goal_payload(g) for g in SavingGoalService(db, user_id).list(search)]


@app.post("/api/savings", status_code=201)
def create_saving_goal(
    data: SavingGoalIn,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    try:
        goal = SavingGoalService(db, user_id).create(data)
    except FinanceError as exc:
        raise http_error(exc) from exc
    return {"id": goal.id}


@app.put("/api/savings/{goal_id}")
def adjust_saving_goal(
    goal_id: int,
    data: SavingAdjustIn,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    try:
        goal = SavingGoalService(db, user_id).adjust(goal_id, data)
    except FinanceError as exc:
        raise http_error(exc) from exc
    return goal_payload(goal)


@app.delete("/api/savings/{goal_id}")
def delete_saving_goal(
    goal_id: int,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    try:
        SavingGoalService(db, user_id).delete(goal_id)
    except FinanceError as exc:
        raise http_error(exc) from exc
    return {"ok": True}


@app.get("/api/summary")
def api_summary(
    month: Optional[str] = None,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    try:
        selected = resolve_month(month, today=today())
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    data = SummaryService(db, user_id).overview(selected)
    data["savings"] = [goal_payload(g) for g in data["savings"]]
    data["transactions"] = [transaction_payload(t) for t in data["transactions"]]
    return data


@app.get("/api/notifications")
def api_notifications(
    month: Optional[str] = None,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    current = today()
    try:
        selected = resolve_month(month, today=current)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    items = NotificationService(db, user_id).for_month(selected, as_of=current)
    return {"total": len(items), "notifications": [asdict(n) for n in items]}


def main():
    import uvicorn

    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=False)


if __name__ == "__main__":
    main()

from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import Iterable, Iterator, Optional
from zoneinfo import ZoneInfo

from sqlalchemy import case, delete, func, or_, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, joinedload

from config import get_settings
from database import atomic
from errors import (
    ConflictError,
    InsufficientFundsError,
    NotFoundError,
    StorageError,
    ValidationError,
)
from models import (
    AllocationType,
    Budget,
    Category,
    SavingGoal,
    Transaction,
    TransactionType,
)
from periods import Month, month_of, parse_month
from schemas import (
    BudgetIn,
    SavingAdjustIn,
    SavingGoalIn,
    TransactionIn,
    TransactionUpdate,
)

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")
ZERO = Decimal("0.00")
HUNDRED = Decimal("100")
BUDGET_WARNING_PERCENT = Decimal("80")

DEPOSIT_PREFIX = "Deposit: "
WITHDRAW_PREFIX = "Withdraw: "
LIKE_ESCAPE = "\\"
DUPLICATE_BUDGET = "A budget for this category already exists that month"

LOW_BALANCE_RATIO = Decimal("0.10")
INACTIVITY_DAYS = 3

BudgetBucket = tuple[Optional[int], Month]


def to_money(value: object) -> Decimal:
    if value is None:
        return ZERO
    return Decimal(str(value)).quantize(CENT)


def today() -> date:
    return datetime.now(ZoneInfo(get_settings().timezone)).date()


def mirror_description(goal_name: str, txn_type: TransactionType) -> str:
    prefix = DEPOSIT_PREFIX if txn_type == TransactionType.expense else WITHDRAW_PREFIX
    return f"{prefix}{goal_name}"


def is_mirror_description(description: Optional[str]) -> bool:
    text = description or ""
    return text.startswith(DEPOSIT_PREFIX) or text.startswith(WITHDRAW_PREFIX)


def budget_actual_from_ledger(amounts: Iterable[object]) -> Decimal:
    return sum((to_money(amount) for amount in amounts), ZERO)


def raw_saved_amount_from_ledger(
    entries: Iterable[tuple[TransactionType, object]],
) -> Decimal:
    """Deposits (expense) minus withdrawals (income), without the floor at zero."""
    total = ZERO
    for txn_type, amount in entries:
        if txn_type == TransactionType.expense:
            total += to_money(amount)
        elif txn_type == TransactionType.income:
            total -= to_money(amount)
    return total


def saved_amount_from_ledger(
    entries: Iterable[tuple[TransactionType, object]],
) -> Decimal:
    return max(ZERO, raw_saved_amount_from_ledger(entries))


def recompute_budget_actual(
    session: Session, user_id: int, category_id: Optional[int], month: Month
) -> None:
    if category_id is None:
        return
    session.flush()
    budget = session.scalar(
        select(Budget).where(
            Budget.user_id == user_id,
            Budget.category_id == category_id,
            Budget.month == month.key,
        )
    )
    if not budget:
        return

    amounts = session.scalars(
        select(Transaction.amount).where(
            Transaction.user_id == user_id,
            Transaction.category_id == category_id,
            Transaction.type == TransactionType.expense,
            Transaction.transaction_date.between(month.start, month.end),
        )
    ).all()
    budget.actual_amount = budget_actual_from_ledger(amounts)


def recompute_saved_amount(session: Session, user_id: int, saving_goal_id: int) -> None:
    session.flush()
    goal = session.scalar(
        select(SavingGoal)
        .where(SavingGoal.id == saving_goal_id, SavingGoal.user_id == user_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    if not goal:
        return

    entries = session.execute(
        select(Transaction.type, Transaction.amount).where(
            Transaction.user_id == user_id,
            Transaction.saving_id == saving_goal_id,
        )
    ).all()
    goal.saved_amount = saved_amount_from_ledger(
        (row.type, row.amount) for row in entries
    )


def ledger_balance(session: Session, user_id: int) -> Decimal:
    stmt = select(
        func.coalesce(
            func.sum(
                case(
                    (Transaction.type == TransactionType.income, Transaction.amount),
                    else_=0,
                )
            ),
            0,
        ).label("income"),
        func.coalesce(
            func.sum(
                case(
                    (Transaction.type == TransactionType.expense, Transaction.amount),
                    else_=0,
                )
            ),
            0,
        ).label("expenses"),
    ).where(Transaction.user_id == user_id)
    row = session.execute(stmt).one()
    return to_money(row.income) - to_money(row.expenses)


def _lock_goal(session: Session, user_id: int, goal_id: int) -> SavingGoal:
    goal = session.scalar(
        select(SavingGoal)
        .where(SavingGoal.id == goal_id, SavingGoal.user_id == user_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    if not goal:
        raise NotFoundError("Saving goal not found")
    return goal


def contains_pattern(query: str) -> str:
    """Case-folded LIKE pattern matching ``query`` as a literal substring."""
    term = query.strip().lower()
    for char in (LIKE_ESCAPE, "%", "_"):
        term = term.replace(char, LIKE_ESCAPE + char)
    return f"%{term}%"


def _month_or_error(value: str) -> Month:
    try:
        return parse_month(value)
    except ValueError as exc:
        raise ValidationError(str(exc)) from exc


@dataclass
class TransactionFilters:
    month: Optional[Month] = None
    query: Optional[str] = None


class CategoryService:
    def __init__(self, session: Session) -> None:
        self.session = session

    def list_all(self) -> list[Category]:
        stmt = select(Category).order_by(Category.name)
        return list(self.session.scalars(stmt).all())

    def get(self, category_id: int) -> Category:
        category = self.session.get(Category, category_id)
        if not category:
            raise NotFoundError("Category not found")
        return category

    def savings_category(self) -> Optional[Category]:
        return self.session.scalar(
            select(Category)
            .where(Category.allocation_type == AllocationType.savings)
            .order_by(Category.id)
            .limit(1)
        )


class TransactionService:
    def __init__(self, session: Session, user_id: int) -> None:
        self.session = session
        self.user_id = user_id

    def get(self, transaction_id: int) -> Transaction:
        stmt = (
            select(Transaction)
            .options(joinedload(Transaction.category))
            .where(
                Transaction.user_id == self.user_id, Transaction.id == transaction_id
            )
        )
        txn = self.session.scalar(stmt)
        if not txn:
            raise NotFoundError("Transaction not found")
        return txn

    def _get_for_update(self, transaction_id: int) -> Transaction:
        txn = self.session.scalar(
            select(Transaction)
            .where(
                Transaction.user_id == self.user_id, Transaction.id == transaction_id
            )
            .with_for_update()
        )
        if not txn:
            raise NotFoundError("Transaction not found")
        return txn

    def create(self, data: TransactionIn) -> Transaction:
        CategoryService(self.session).get(data.category_id)

        with atomic(self.session):
            if data.saving_id is not None:
                _lock_goal(self.session, self.user_id, data.saving_id)
            txn = Transaction(
                user_id=self.user_id,
                category_id=data.category_id,
                type=data.type,
                amount=data.amount,
                description=data.description,
                transaction_date=data.transaction_date,
                saving_id=data.saving_id,
            )
            self.session.add(txn)
            self.session.flush()
            if txn.saving_id is not None:
                recompute_saved_amount(self.session, self.user_id, txn.saving_id)

        logger.info(
            f"transaction_created: user={self.user_id} id={txn.id} type={txn.type.value}"
        )
        if txn.type == TransactionType.expense:
            self._sync_budgets({(txn.category_id, month_of(txn.transaction_date))})
        return txn

    def update(self, transaction_id: int, data: TransactionUpdate) -> Transaction:
        with atomic(self.session):
            txn = self._get_for_update(transaction_id)
            CategoryService(self.session).get(data.category_id)

            old_type = txn.type
            old_bucket: BudgetBucket = (txn.category_id, month_of(txn.transaction_date))
            old_saving_id = txn.saving_id
            new_saving_id = data.saving_id if data.saving_id_given else old_saving_id
            if new_saving_id is not None and new_saving_id != old_saving_id:
                _lock_goal(self.session, self.user_id, new_saving_id)

            txn.type = data.type
            txn.amount = data.amount
            txn.category_id = data.category_id
            txn.description = data.description
            txn.transaction_date = data.transaction_date
            txn.saving_id = new_saving_id
            self.session.flush()

            if old_saving_id is not None:
                recompute_saved_amount(self.session, self.user_id, old_saving_id)
            if new_saving_id is not None and new_saving_id != old_saving_id:
                recompute_saved_amount(self.session, self.user_id, new_saving_id)

        buckets: set[BudgetBucket] = set()
        if old_type == TransactionType.expense:
            buckets.add(old_bucket)
        if txn.type == TransactionType.expense:
            buckets.add((txn.category_id, month_of(txn.transaction_date)))
        self._sync_budgets(buckets)
        return txn

    def delete(self, transaction_id: int) -> None:
        with atomic(self.session):
            txn = self._get_for_update(transaction_id)
            txn_type = txn.type
            bucket: BudgetBucket = (txn.category_id, month_of(txn.transaction_date))
            saving_id = txn.saving_id
            self.session.delete(txn)
            self.session.flush()
            if saving_id is not None:
                recompute_saved_amount(self.session, self.user_id, saving_id)

        logger.info(f"transaction_deleted: user={self.user_id} id={transaction_id}")
        if txn_type == TransactionType.expense:
            self._sync_budgets({bucket})

    def _sync_budgets(self, buckets: set[BudgetBucket]) -> None:
        # Runs after the ledger write has committed; a stale budget is
        # corrected by the next write touching the same bucket.
        for category_id, month in buckets:
            try:
                recompute_budget_actual(self.session, self.user_id, category_id, month)
                self.session.commit()
            except SQLAlchemyError:
                self.session.rollback()
                logger.warning(
                    f"budget_sync_failed: user={self.user_id} "
                    f"category={category_id} month={month.key}",
                    exc_info=True,
                )

    def list(self, filters: Optional[TransactionFilters] = None) -> list[Transaction]:
        filters = filters or TransactionFilters()
        stmt = (
            select(Transaction)
            .outerjoin(Category, Transaction.category_id == Category.id)
            .options(joinedload(Transaction.category))
            .where(Transaction.user_id == self.user_id)
            .order_by(Transaction.transaction_date.desc(), Transaction.id.desc())
        )
        if filters.month:
            stmt = stmt.where(
                Transaction.transaction_date.between(
                    filters.month.start, filters.month.end
                )
            )
        if filters.query:
            like = contains_pattern(filters.query)
            stmt = stmt.where(
                or_(
                    func.lower(func.coalesce(Transaction.description, "")).like(
                        like, escape=LIKE_ESCAPE
                    ),
                    func.lower(func.coalesce(Category.name, "")).like(
                        like, escape=LIKE_ESCAPE
                    ),
                )
            )
        return list(self.session.scalars(stmt).unique().all())

    def balance(self) -> Decimal:
        return ledger_balance(self.session, self.user_id)


class SavingGoalService:
    def __init__(self, session: Session, user_id: int) -> None:
        self.session = session
        self.user_id = user_id

    def list(self, query: Optional[str] = None) -> list[SavingGoal]:
        stmt = (
            select(SavingGoal)
            .where(SavingGoal.user_id == self.user_id)
            .order_by(SavingGoal.id.desc())
        )
        if query:
            stmt = stmt.where(
                func.lower(SavingGoal.goal_name).like(
                    contains_pattern(query), escape=LIKE_ESCAPE
                )
            )
        return list(self.session.scalars(stmt).all())

    def get(self, goal_id: int) -> SavingGoal:
        goal = self.session.get(SavingGoal, goal_id)
        if not goal or goal.user_id != self.user_id:
            raise NotFoundError("Saving goal not found")
        return goal

    def create(self, data: SavingGoalIn) -> SavingGoal:
        name = data.goal_name.strip()
        if not name:
            raise ValidationError("Goal name cannot be empty")
        goal = SavingGoal(
            user_id=self.user_id,
            goal_name=name,
            target_amount=data.target_amount,
            saved_amount=ZERO,
        )
        with atomic(self.session):
            self.session.add(goal)
        return goal

    def adjust(self, goal_id: int, data: SavingAdjustIn) -> SavingGoal:
        """Move money between the main balance and a goal, and/or edit the goal.

        A positive ``add_amount`` is a deposit recorded as an expense against
        the main balance; a negative one withdraws back as income. Every
        transfer appends a mirror transaction linked to the goal in the same
        unit of work as the goal update.
        """
        delta = to_money(data.add_amount)
        new_name = data.goal_name.strip() if data.goal_name is not None else None
        if new_name == "":
            raise ValidationError("Goal name cannot be empty")

        with atomic(self.session):
            goal = _lock_goal(self.session, self.user_id, goal_id)
            if delta != ZERO:
                self._apply_transfer(goal, delta)
            if data.target_amount is not None:
                goal.target_amount = data.target_amount
            if new_name is not None and new_name != goal.goal_name:
                goal.goal_name = new_name
                self._rename_mirrors(goal)

        if delta != ZERO:
            logger.info(
                f"transfer_applied: user={self.user_id} goal={goal_id} delta={delta}"
            )
        return goal

    def _apply_transfer(self, goal: SavingGoal, delta: Decimal) -> None:
        saved = to_money(goal.saved_amount)
        if saved + delta < ZERO:
            raise InsufficientFundsError(
                f"Cannot withdraw more than saved. Available {saved:,.2f}",
                available=saved,
            )
        if delta > ZERO:
            balance = ledger_balance(self.session, self.user_id)
            if delta > balance:
                raise InsufficientFundsError(
                    f"Insufficient balance. Available {balance:,.2f}",
                    available=balance,
                )

        goal.saved_amount = max(ZERO, saved + delta)
        self._insert_mirror(goal, delta)

    def _insert_mirror(self, goal: SavingGoal, delta: Decimal) -> Transaction:
        category = CategoryService(self.session).savings_category()
        txn_type = TransactionType.expense if delta > ZERO else TransactionType.income
        mirror = Transaction(
            user_id=self.user_id,
            category_id=category.id if category else None,
            type=txn_type,
            amount=abs(delta),
            description=mirror_description(goal.goal_name, txn_type),
            transaction_date=today(),
            saving_id=goal.id,
        )
        self.session.add(mirror)
        self.session.flush()
        return mirror

    def _rename_mirrors(self, goal: SavingGoal) -> None:
        linked = self.session.scalars(
            select(Transaction).where(
                Transaction.user_id == self.user_id,
                Transaction.saving_id == goal.id,
            )
        ).all()
        for txn in linked:
            if is_mirror_description(txn.description):
                txn.description = mirror_description(goal.goal_name, txn.type)

    def delete(self, goal_id: int) -> None:
        with atomic(self.session):
            goal = _lock_goal(self.session, self.user_id, goal_id)
            result = self.session.execute(
                delete(Transaction).where(
                    Transaction.user_id == self.user_id,
                    Transaction.saving_id == goal.id,
                )
            )
            self.session.delete(goal)
        logger.info(
            f"goal_deleted: user={self.user_id} goal={goal_id} "
            f"linked_transactions={result.rowcount}"
        )


@dataclass(frozen=True)
class BudgetProgress:
    id: int
    category_id: int
    category_name: str
    month: str
    limit_amount: Decimal
    actual_amount: Decimal
    remaining_amount: Decimal
    percent_used: Decimal
    is_warning: bool
    is_over: bool


def budget_progress(budget: Budget) -> BudgetProgress:
    limit = to_money(budget.limit_amount)
    used = to_money(budget.actual_amount)
    percent = min(used / limit * HUNDRED, HUNDRED) if limit > ZERO else ZERO
    percent = percent.quantize(CENT)
    return BudgetProgress(
        id=budget.id,
        category_id=budget.category_id,
        category_name=budget.category.name if budget.category else "",
        month=budget.month,
        limit_amount=limit,
        actual_amount=used,
        remaining_amount=max(limit - used, ZERO),
        percent_used=percent,
        is_warning=BUDGET_WARNING_PERCENT <= percent < HUNDRED,
        is_over=percent >= HUNDRED,
    )


class BudgetService:
    def __init__(self, session: Session, user_id: int) -> None:
        self.session = session
        self.user_id = user_id

    def _budget_category(self, category_id: int) -> Category:
        category = CategoryService(self.session).get(category_id)
        if category.allocation_type != AllocationType.expense:
            raise ValidationError("Budgets can only be set for expense categories")
        return category

    def _find(self, category_id: int, month: Month) -> Optional[Budget]:
        return self.session.scalar(
            select(Budget).where(
                Budget.user_id == self.user_id,
                Budget.category_id == category_id,
                Budget.month == month.key,
            )
        )

    def get(self, budget_id: int) -> Budget:
        budget = self.session.get(Budget, budget_id)
        if not budget or budget.user_id != self.user_id:
            raise NotFoundError("Budget not found")
        return budget

    def create(self, data: BudgetIn) -> Budget:
        month = _month_or_error(data.month)
        self._budget_category(data.category_id)
        if self._find(data.category_id, month):
            raise ConflictError(DUPLICATE_BUDGET)

        budget = Budget(
            user_id=self.user_id,
            category_id=data.category_id,
            month=month.key,
            limit_amount=data.limit_amount,
            actual_amount=ZERO,
        )
        with self._unique_bucket():
            with atomic(self.session):
                self.session.add(budget)
                recompute_budget_actual(
                    self.session, self.user_id, data.category_id, month
                )
        return budget

    def update(self, budget_id: int, data: BudgetIn) -> Budget:
        month = _month_or_error(data.month)
        budget = self.get(budget_id)
        self._budget_category(data.category_id)
        existing = self._find(data.category_id, month)
        if existing and existing.id != budget.id:
            raise ConflictError(DUPLICATE_BUDGET)

        with self._unique_bucket():
            with atomic(self.session):
                budget.category_id = data.category_id
                budget.month = month.key
                budget.limit_amount = data.limit_amount
                recompute_budget_actual(
                    self.session, self.user_id, data.category_id, month
                )
        return budget

    @contextmanager
    def _unique_bucket(self) -> Iterator[None]:
        # a concurrent writer can still win the unique constraint after _find
        try:
            yield
        except StorageError as exc:
            if isinstance(exc.__cause__, IntegrityError):
                raise ConflictError(DUPLICATE_BUDGET) from exc
            raise

    def delete(self, budget_id: int) -> None:
        budget = self.get(budget_id)
        with atomic(self.session):
            self.session.delete(budget)

    def list(
        self, month: Optional[Month] = None, query: Optional[str] = None
    ) -> list[BudgetProgress]:
        stmt = (
            select(Budget)
            .join(Category, Budget.category_id == Category.id)
            .options(joinedload(Budget.category))
            .where(Budget.user_id == self.user_id)
            .order_by(Budget.month.desc(), Category.name.asc())
        )
        if month:
            stmt = stmt.where(Budget.month == month.key)
        if query:
            stmt = stmt.where(
                func.lower(Category.name).like(
                    contains_pattern(query), escape=LIKE_ESCAPE
                )
            )
        return [budget_progress(b) for b in self.session.scalars(stmt).all()]


class SummaryService:
    def __init__(self, session: Session, user_id: int) -> None:
        self.session = session
        self.user_id = user_id

    def monthly_totals(self, month: Month) -> dict[str, Decimal]:
        stmt = select(
            func.coalesce(
                func.sum(
                    case(
                        (Transaction.type == TransactionType.income, Transaction.amount),
                        else_=0,
                    )
                ),
                0,
            ).label("income"),
            func.coalesce(
                func.sum(
                    case(
                        (Transaction.type == TransactionType.expense, Transaction.amount),
                        else_=0,
                    )
                ),
                0,
            ).label("expenses"),
        ).where(
            Transaction.user_id == self.user_id,
            Transaction.transaction_date.between(month.start, month.end),
        )
        row = self.session.execute(stmt).one()
        return {"income": to_money(row.income), "expense": to_money(row.expenses)}

    def category_breakdown(self, month: Month) -> list[dict[str, object]]:
        totals_stmt = (
            select(
                Transaction.category_id,
                Transaction.type,
                func.coalesce(func.sum(Transaction.amount), 0).label("total"),
            )
            .where(
                Transaction.user_id == self.user_id,
                Transaction.category_id.isnot(None),
                Transaction.transaction_date.between(month.start, month.end),
            )
            .group_by(Transaction.category_id, Transaction.type)
        )
        totals = self.session.execute(totals_stmt).all()
        budgets = {
            b.category_id: to_money(b.limit_amount)
            for b in self.session.scalars(
                select(Budget).where(
                    Budget.user_id == self.user_id, Budget.month == month.key
                )
            )
        }
        names = {c.id: c.name for c in CategoryService(self.session).list_all()}

        rows: list[dict[str, object]] = []
        seen_expense: set[int] = set()
        for row in totals:
            total = to_money(row.total)
            if total <= ZERO:
                continue
            if row.type == TransactionType.expense:
                seen_expense.add(row.category_id)
            rows.append(
                {
                    "category_id": row.category_id,
                    "category": names.get(row.category_id, ""),
                    "type": row.type.value,
                    "total": total,
                    "budget": budgets.get(row.category_id, ZERO),
                }
            )
        for category_id, limit in budgets.items():
            if category_id in seen_expense:
                continue
            rows.append(
                {
                    "category_id": category_id,
                    "category": names.get(category_id, ""),
                    "type": TransactionType.expense.value,
                    "total": ZERO,
                    "budget": limit,
                }
            )
        rows.sort(key=lambda r: (-r["total"], r["category"]))
        return rows

    def overview(self, month: Month) -> dict[str, object]:
        totals = self.monthly_totals(month)
        return {
            "month": month.key,
            "total_balance": ledger_balance(self.session, self.user_id),
            "total_income": totals["income"],
            "total_expense": totals["expense"],
            "categories": self.category_breakdown(month),
            "savings": SavingGoalService(self.session, self.user_id).list(),
            "transactions": TransactionService(self.session, self.user_id).list(
                TransactionFilters(month=month)
            ),
        }


@dataclass(frozen=True)
class Notification:
    kind: str  # alert, reminder or achievement
    code: str
    data: dict[str, object]


class NotificationService:
    """Derives the user's alerts from ledger, budget and goal state.

    Nothing is stored: each call re-reads the month's totals, the budget
    caches and the goals. Items carry a code and the figures that triggered
    them; wording is left to the client.
    """

    def __init__(self, session: Session, user_id: int) -> None:
        self.session = session
        self.user_id = user_id

    def for_month(
        self, month: Month, as_of: Optional[date] = None
    ) -> list[Notification]:
        as_of = as_of or today()
        totals = SummaryService(self.session, self.user_id).monthly_totals(month)
        income, expense = totals["income"], totals["expense"]
        net = income - expense

        items: list[Notification] = []
        if income > ZERO and expense > income:
            items.append(
                Notification(
                    "alert", "cashflow_deficit", {"income": income, "expense": expense}
                )
            )
        if income > ZERO and ZERO < net < income * LOW_BALANCE_RATIO:
            items.append(
                Notification("alert", "low_balance", {"balance": net, "income": income})
            )
        items.extend(self._budget_alerts(month))

        idle = self._idle_days(as_of)
        if idle is not None and idle >= INACTIVITY_DAYS:
            items.append(Notification("reminder", "inactive", {"days": idle}))

        top = self._top_expense_category(month)
        if top is not None:
            items.append(Notification("achievement", "top_expense_category", top))
        for goal in SavingGoalService(self.session, self.user_id).list():
            if to_money(goal.saved_amount) >= to_money(goal.target_amount):
                items.append(
                    Notification(
                        "achievement",
                        "goal_reached",
                        {
                            "goal_id": goal.id,
                            "goal_name": goal.goal_name,
                            "saved_amount": to_money(goal.saved_amount),
                            "target_amount": to_money(goal.target_amount),
                        },
                    )
                )

        if not items and income == ZERO and expense == ZERO:
            items.append(Notification("reminder", "no_activity", {"month": month.key}))
        return items

    def _budget_alerts(self, month: Month) -> list[Notification]:
        alerts: list[Notification] = []
        for row in BudgetService(self.session, self.user_id).list(month):
            if not (row.is_over or row.is_warning):
                continue
            alerts.append(
                Notification(
                    "alert",
                    "budget_over" if row.is_over else "budget_warning",
                    {
                        "budget_id": row.id,
                        "category": row.category_name,
                        "percent_used": row.percent_used,
                        "actual_amount": row.actual_amount,
                        "limit_amount": row.limit_amount,
                    },
                )
            )
        return alerts

    def _idle_days(self, as_of: date) -> Optional[int]:
        last = self.session.scalar(
            select(func.max(Transaction.transaction_date)).where(
                Transaction.user_id == self.user_id
            )
        )
        if last is None:
            return None
        return (as_of - last).days

    def _top_expense_category(self, month: Month) -> Optional[dict[str, object]]:
        total = func.sum(Transaction.amount).label("total")
        row = self.session.execute(
            select(Category.id, Category.name, total)
            .join(Transaction, Transaction.category_id == Category.id)
            .where(
                Transaction.user_id == self.user_id,
                Transaction.type == TransactionType.expense,
                Transaction.transaction_date.between(month.start, month.end),
            )
            .group_by(Category.id, Category.name)
            .order_by(total.desc(), Category.name)
            .limit(1)
        ).first()
        if row is None:
            return None
        return {"category_id": row.id, "category": row.name, "total": to_money(row.total)}

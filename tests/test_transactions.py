from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from database import Base
from errors import NotFoundError
from models import AllocationType, Category, TransactionType
from periods import parse_month
from schemas import BudgetIn, SavingGoalIn, TransactionIn, TransactionUpdate
from services import (
    BudgetService,
    SavingGoalService,
    SummaryService,
    TransactionFilters,
    TransactionService,
)


def make_session():
    engine = create_engine(
        "sqlite+pysqlite:///:memory:", connect_args={"check_same_thread": False}
    )
    Base.metadata.create_all(engine)
    SessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
    return SessionLocal()


def seed(session):
    food = Category(name="Food & Drinks", allocation_type=AllocationType.expense)
    salary = Category(name="Salary", allocation_type=AllocationType.income)
    session.add_all([food, salary])
    session.commit()
    return food, salary


def test_list_orders_newest_first_and_filters_by_month() -> None:
    session = make_session()
    food, salary = seed(session)
    txns = TransactionService(session, 1)

    lunch = txns.create(
        TransactionIn(
            type=TransactionType.expense,
            amount=45_000,
            category_id=food.id,
            transaction_date=date(2024, 5, 12),
            description="Lunch",
        )
    )
    pay = txns.create(
        TransactionIn(
            type=TransactionType.income,
            amount=9_000_000,
            category_id=salary.id,
            transaction_date=date(2024, 5, 25),
        )
    )
    coffee = txns.create(
        TransactionIn(
            type=TransactionType.expense,
            amount=20_000,
            category_id=food.id,
            transaction_date=date(2024, 5, 12),
            description="Coffee",
        )
    )
    april = txns.create(
        TransactionIn(
            type=TransactionType.expense,
            amount=10_000,
            category_id=food.id,
            transaction_date=date(2024, 4, 30),
        )
    )

    assert [t.id for t in txns.list()] == [pay.id, coffee.id, lunch.id, april.id]
    may = txns.list(TransactionFilters(month=parse_month("2024-05")))
    assert [t.id for t in may] == [pay.id, coffee.id, lunch.id]
    assert may[0].category.name == "Salary"


def test_search_matches_description_or_category_name() -> None:
    session = make_session()
    food, salary = seed(session)
    txns = TransactionService(session, 1)
    snack = txns.create(
        TransactionIn(
            type=TransactionType.expense,
            amount=5_000,
            category_id=food.id,
            transaction_date=date(2024, 5, 2),
            description="Evening snack",
        )
    )
    bonus = txns.create(
        TransactionIn(
            type=TransactionType.income,
            amount=100_000,
            category_id=salary.id,
            transaction_date=date(2024, 5, 3),
            description="Quarterly bonus",
        )
    )

    assert [t.id for t in txns.list(TransactionFilters(query="SNACK"))] == [snack.id]
    assert [t.id for t in txns.list(TransactionFilters(query="drinks"))] == [snack.id]
    assert [t.id for t in txns.list(TransactionFilters(query="salary"))] == [bonus.id]
    assert txns.list(TransactionFilters(query="rent")) == []


def test_balance_is_lifetime_income_minus_expense_per_user() -> None:
    session = make_session()
    food, salary = seed(session)
    mine = TransactionService(session, 1)
    theirs = TransactionService(session, 2)

    mine.create(
        TransactionIn(
            type=TransactionType.income,
            amount=Decimal("1000.50"),
            category_id=salary.id,
            transaction_date=date(2023, 12, 31),
        )
    )
    mine.create(
        TransactionIn(
            type=TransactionType.expense,
            amount=Decimal("250.25"),
            category_id=food.id,
            transaction_date=date(2024, 5, 1),
        )
    )
    theirs.create(
        TransactionIn(
            type=TransactionType.expense,
            amount=999,
            category_id=food.id,
            transaction_date=date(2024, 5, 1),
        )
    )

    assert mine.balance() == Decimal("750.25")
    assert theirs.balance() == Decimal("-999")
    assert len(mine.list()) == 2


def test_unknown_category_and_foreign_transactions_are_not_found() -> None:
    session = make_session()
    food, _ = seed(session)
    mine = TransactionService(session, 1)

    with pytest.raises(NotFoundError):
        mine.create(
            TransactionIn(
                type=TransactionType.expense,
                amount=1,
                category_id=999,
                transaction_date=date(2024, 5, 1),
            )
        )

    txn = mine.create(
        TransactionIn(
            type=TransactionType.expense,
            amount=1,
            category_id=food.id,
            transaction_date=date(2024, 5, 1),
        )
    )
    theirs = TransactionService(session, 2)
    with pytest.raises(NotFoundError):
        theirs.get(txn.id)
    with pytest.raises(NotFoundError):
        theirs.delete(txn.id)
    with pytest.raises(NotFoundError):
        theirs.update(
            txn.id,
            TransactionUpdate(
                type=TransactionType.expense,
                amount=2,
                category_id=food.id,
                transaction_date=date(2024, 5, 1),
            ),
        )
    assert mine.get(txn.id).amount == Decimal("1")


def test_summary_overview_for_month() -> None:
    session = make_session()
    food, salary = seed(session)
    txns = TransactionService(session, 1)
    txns.create(
        TransactionIn(
            type=TransactionType.income,
            amount=500_000,
            category_id=salary.id,
            transaction_date=date(2024, 4, 28),
        )
    )
    txns.create(
        TransactionIn(
            type=TransactionType.expense,
            amount=80_000,
            category_id=food.id,
            transaction_date=date(2024, 5, 6),
        )
    )

    overview = SummaryService(session, 1).overview(parse_month("2024-05"))

    assert overview["month"] == "2024-05"
    assert overview["total_balance"] == Decimal("420000")
    assert overview["total_income"] == Decimal("0")
    assert overview["total_expense"] == Decimal("80000")
    assert overview["categories"] == [
        {
            "category_id": food.id,
            "category": "Food & Drinks",
            "type": "expense",
            "total": Decimal("80000"),
            "budget": Decimal("0"),
        }
    ]
    assert len(overview["transactions"]) == 1
    assert overview["savings"] == []


def test_search_treats_like_wildcards_literally() -> None:
    session = make_session()
    food, _ = seed(session)
    fees = Category(name="Fees 10%", allocation_type=AllocationType.expense)
    session.add(fees)
    session.commit()
    txns = TransactionService(session, 1)

    def spend(category: Category, description: str):
        return txns.create(
            TransactionIn(
                type=TransactionType.expense,
                amount=1_000,
                category_id=category.id,
                transaction_date=date(2024, 5, 1),
                description=description,
            )
        )

    lunch = spend(food, "Lunch")
    refund = spend(food, "100% refund")
    snake = spend(food, "snake_case notes")
    path = spend(food, "C:\\temp")
    transfer = spend(fees, "Transfer")

    def found(query: str) -> list[int]:
        return [t.id for t in txns.list(TransactionFilters(query=query))]

    assert found("%") == [transfer.id, refund.id]
    assert found("L_nch") == []
    assert found("_") == [snake.id]
    assert found("\\") == [path.id]
    assert found("lunch") == [lunch.id]

    goals = SavingGoalService(session, 1)
    goals.create(SavingGoalIn(goal_name="Car", target_amount=10))
    goals.create(SavingGoalIn(goal_name="50% down payment", target_amount=10))
    assert [g.goal_name for g in goals.list("%")] == ["50% down payment"]
    assert [g.goal_name for g in goals.list("C_r")] == []

    budgets = BudgetService(session, 1)
    budgets.create(BudgetIn(category_id=food.id, month="2024-05", limit_amount=10))
    budgets.create(BudgetIn(category_id=fees.id, month="2024-05", limit_amount=10))
    assert [b.category_name for b in budgets.list(query="%")] == ["Fees 10%"]

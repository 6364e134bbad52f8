from datetime import date
from decimal import Decimal

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from database import Base
from models import AllocationType, Category, TransactionType
from periods import parse_month
from schemas import BudgetIn, SavingGoalIn, TransactionIn
from services import (
    BudgetService,
    NotificationService,
    SavingGoalService,
    TransactionService,
)

USER = 1
MAY = parse_month("2024-05")
AS_OF = date(2024, 5, 20)


def make_session():
    engine = create_engine(
        "sqlite+pysqlite:///:memory:", connect_args={"check_same_thread": False}
    )
    Base.metadata.create_all(engine)
    SessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
    return SessionLocal()


def seed(session) -> dict[str, Category]:
    cats = {
        "food": Category(name="Food", allocation_type=AllocationType.expense),
        "transport": Category(name="Transport", allocation_type=AllocationType.expense),
        "salary": Category(name="Salary", allocation_type=AllocationType.income),
        "savings": Category(name="Savings", allocation_type=AllocationType.savings),
    }
    session.add_all(cats.values())
    session.commit()
    return cats


def record(
    session,
    category: Category,
    txn_type: TransactionType,
    amount,
    day: date = date(2024, 5, 19),
    saving_id=None,
):
    return TransactionService(session, USER).create(
        TransactionIn(
            type=txn_type,
            amount=amount,
            category_id=category.id,
            transaction_date=day,
            saving_id=saving_id,
        )
    )


def codes(session, as_of: date = AS_OF) -> list[str]:
    return [n.code for n in NotificationService(session, USER).for_month(MAY, as_of)]


def test_no_activity_when_month_is_empty() -> None:
    session = make_session()
    seed(session)

    [item] = NotificationService(session, USER).for_month(MAY, AS_OF)

    assert (item.kind, item.code, item.data) == ("reminder", "no_activity", {"month": "2024-05"})


def test_spending_over_income_is_a_deficit_alert() -> None:
    session = make_session()
    cats = seed(session)
    record(session, cats["salary"], TransactionType.income, 1_000)
    record(session, cats["food"], TransactionType.expense, 600)
    record(session, cats["transport"], TransactionType.expense, 900)

    items = NotificationService(session, USER).for_month(MAY, AS_OF)

    assert [n.code for n in items] == ["cashflow_deficit", "top_expense_category"]
    deficit, top = items
    assert deficit.kind == "alert"
    assert deficit.data == {"income": Decimal("1000"), "expense": Decimal("1500")}
    assert top.kind == "achievement"
    assert top.data["category"] == "Transport"
    assert top.data["total"] == Decimal("900")


def test_low_balance_below_tenth_of_income() -> None:
    session = make_session()
    cats = seed(session)
    record(session, cats["salary"], TransactionType.income, 1_000)
    record(session, cats["food"], TransactionType.expense, 950)

    items = NotificationService(session, USER).for_month(MAY, AS_OF)

    low = [n for n in items if n.code == "low_balance"]
    assert [n.data for n in low] == [{"balance": Decimal("50"), "income": Decimal("1000")}]
    assert "cashflow_deficit" not in [n.code for n in items]

    record(session, cats["salary"], TransactionType.income, 100)
    assert "low_balance" not in codes(session)


def test_budget_warning_and_over_alerts() -> None:
    session = make_session()
    cats = seed(session)
    budgets = BudgetService(session, USER)
    budgets.create(BudgetIn(category_id=cats["food"].id, month="2024-05", limit_amount=100))
    budgets.create(
        BudgetIn(category_id=cats["transport"].id, month="2024-05", limit_amount=100)
    )
    record(session, cats["salary"], TransactionType.income, 10_000)
    record(session, cats["food"], TransactionType.expense, 85)
    record(session, cats["transport"], TransactionType.expense, 120)

    alerts = [
        n
        for n in NotificationService(session, USER).for_month(MAY, AS_OF)
        if n.code.startswith("budget_")
    ]

    assert [(n.code, n.data["category"]) for n in alerts] == [
        ("budget_warning", "Food"),
        ("budget_over", "Transport"),
    ]
    assert alerts[0].data["percent_used"] == Decimal("85")
    assert alerts[1].data["actual_amount"] == Decimal("120")


def test_inactivity_reminder_after_three_idle_days() -> None:
    session = make_session()
    cats = seed(session)
    record(session, cats["salary"], TransactionType.income, 500, day=date(2024, 5, 10))

    assert "inactive" not in codes(session, as_of=date(2024, 5, 12))

    items = NotificationService(session, USER).for_month(MAY, date(2024, 5, 13))
    [idle] = [n for n in items if n.code == "inactive"]
    assert idle.kind == "reminder"
    assert idle.data == {"days": 3}


def test_reached_goals_are_announced() -> None:
    session = make_session()
    cats = seed(session)
    goals = SavingGoalService(session, USER)
    laptop = goals.create(SavingGoalIn(goal_name="Laptop", target_amount=100))
    goals.create(SavingGoalIn(goal_name="Holiday", target_amount=5_000))
    record(session, cats["savings"], TransactionType.expense, 100, saving_id=laptop.id)

    reached = [
        n
        for n in NotificationService(session, USER).for_month(MAY, AS_OF)
        if n.code == "goal_reached"
    ]

    assert [n.data["goal_name"] for n in reached] == ["Laptop"]
    assert reached[0].data["saved_amount"] == Decimal("100")

from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest
from pydantic import ValidationError
from sqlalchemy import create_engine, func, select
from sqlalchemy.orm import Session

from database import Base
from models import Account, Category, Transaction, TransactionType
from schemas import TransactionIn
from services import TransactionFilters, TransactionService


def make_session() -> Session:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)
    return Session(engine)


def seed(session: Session) -> None:
    service = TransactionService(session, 1)
    for txn_type, amount, when, category, note in [
        (TransactionType.expense, "12.40", datetime(2024, 3, 1, 9), "Food", "Bakery"),
        (TransactionType.income, "2000", datetime(2024, 3, 2), "Salary", "March pay"),
        (TransactionType.expense, "80", datetime(2024, 3, 3), "Transport", "Train pass"),
        (TransactionType.expense, "5", datetime(2024, 3, 4), "Food", None),
    ]:
        service.create(
            TransactionIn(
                type=txn_type,
                amount=Decimal(amount),
                category=category,
                description=note,
                date=when,
            )
        )
    TransactionService(session, 2).create(
        TransactionIn(
            type=TransactionType.expense,
            amount=Decimal("1"),
            category="Food",
            date=datetime(2024, 3, 5),
        )
    )


def test_create_returns_created_record() -> None:
    with make_session() as session:
        created = TransactionService(session, 1).create(
            TransactionIn(
                type=TransactionType.expense,
                amount=Decimal("19.99"),
                category="Books",
                description="Paperback",
                date=datetime(2024, 3, 5, 14, 30, 15, 999),
            )
        )

        assert created == {
            "id": created["id"],
            "amount": 19.99,
            "type": "expense",
            "date": "2024-03-05T14:30:15",
            "description": "Paperback",
        }
        txn = session.get(Transaction, created["id"])
        assert txn.amount_cents == 1_999


def test_create_keeps_wall_clock_of_aware_dates() -> None:
    with make_session() as session:
        plus_two = timezone(timedelta(hours=2))
        created = TransactionService(session, 1).create(
            TransactionIn(
                type=TransactionType.expense,
                amount=Decimal("1"),
                date=datetime(2024, 3, 5, 23, 30, tzinfo=plus_two),
            )
        )
        assert created["date"] == "2024-03-05T23:30:00"


def test_create_uses_one_default_account_and_typed_categories() -> None:
    with make_session() as session:
        seed(session)

        accounts = session.scalars(select(Account).where(Account.user_id == 1)).all()
        assert [a.name for a in accounts] == ["Default Account"]
        salary = session.scalar(
            select(Category).where(Category.user_id == 1, Category.name == "Salary")
        )
        assert salary.type == TransactionType.income
        food_count = session.scalar(
            select(func.count()).select_from(Category).where(Category.name == "Food")
        )
        assert food_count == 2


def test_create_without_category_is_uncategorized() -> None:
    with make_session() as session:
        service = TransactionService(session, 1)
        service.create(
            TransactionIn(
                type=TransactionType.expense,
                amount=Decimal("3"),
                category="  ",
                date=datetime(2024, 3, 5),
            )
        )
        [row] = service.list()
        assert row["category"] == "Uncategorized"
        assert row["description"] is None


def test_negative_amount_is_rejected() -> None:
    with pytest.raises(ValidationError):
        TransactionIn(
            type=TransactionType.expense,
            amount=Decimal("-1"),
            date=datetime(2024, 3, 5),
        )


def test_unknown_type_is_rejected() -> None:
    with pytest.raises(ValidationError):
        TransactionIn(type="transfer", amount=Decimal("1"), date=datetime(2024, 3, 5))


def test_list_defaults_to_date_descending() -> None:
    with make_session() as session:
        seed(session)
        rows = TransactionService(session, 1).list()

        assert [row["date"][:10] for row in rows] == [
            "2024-03-04",
            "2024-03-03",
            "2024-03-02",
            "2024-03-01",
        ]
        assert rows[-1] == {
            "id": rows[-1]["id"],
            "amount": 12.4,
            "type": "expense",
            "date": "2024-03-01T09:00:00",
            "description": "Bakery",
            "category": "Food",
        }


def test_list_filters_by_type() -> None:
    with make_session() as session:
        seed(session)
        service = TransactionService(session, 1)

        income = service.list(TransactionFilters(type="income"))
        assert [row["category"] for row in income] == ["Salary"]
        assert len(service.list(TransactionFilters(type="all"))) == 4
        assert service.list(TransactionFilters(type="transfer")) == []


def test_list_filters_by_category() -> None:
    with make_session() as session:
        seed(session)
        service = TransactionService(session, 1)

        food = service.list(TransactionFilters(category="Food"))
        assert [row["amount"] for row in food] == [5.0, 12.4]
        assert len(service.list(TransactionFilters(category="all"))) == 4
        assert service.list(TransactionFilters(category="food")) == []


def test_list_search_matches_note_or_category() -> None:
    with make_session() as session:
        seed(session)
        service = TransactionService(session, 1)

        by_note = service.list(TransactionFilters(search="train"))
        assert [row["description"] for row in by_note] == ["Train pass"]
        by_category = service.list(TransactionFilters(search="FOO"))
        assert len(by_category) == 2


def test_list_sorts_by_amount() -> None:
    with make_session() as session:
        seed(session)
        rows = TransactionService(session, 1).list(TransactionFilters(sort_by="amount"))
        assert [row["amount"] for row in rows] == [2000.0, 80.0, 12.4, 5.0]

from datetime import datetime
from decimal import Decimal

from sqlalchemy import create_engine
from sqlalchemy.orm import Session

from database import Base
from models import Transaction, TransactionType
from periods import month_window, year_window
from schemas import TransactionIn
from services import AccountService, ReportService, TransactionService


def make_session() -> Session:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)
    return Session(engine)


def add_txn(session, txn_type, amount, when, category="", user_id=1) -> None:
    TransactionService(session, user_id).create(
        TransactionIn(type=txn_type, amount=Decimal(amount), category=category, date=when)
    )


def test_monthly_report_for_march() -> None:
    with make_session() as session:
        add_txn(session, TransactionType.expense, "50", datetime(2024, 3, 5), "Food")
        add_txn(session, TransactionType.income, "200", datetime(2024, 3, 10), "Salary")
        add_txn(session, TransactionType.expense, "30", datetime(2024, 4, 1), "Food")

        report = ReportService(session, 1).monthly(month_window(3, 2024)).to_dict()

        assert report["income"] == 200.0
        assert report["expenses"] == 50.0
        assert report["netBalance"] == 150.0
        assert report["transactions"] == 2
        assert report["categories"] == [{"name": "Food", "total": 50.0}]
        assert report["dailyTrend"] == [{"day": 5, "amount": 50.0}]


def test_monthly_report_groups_by_category_and_day() -> None:
    with make_session() as session:
        add_txn(session, TransactionType.expense, "12.50", datetime(2024, 3, 2, 8), "Food")
        add_txn(session, TransactionType.expense, "7.25", datetime(2024, 3, 2, 19), "Transport")
        add_txn(session, TransactionType.expense, "20", datetime(2024, 3, 14), "Food")
        add_txn(session, TransactionType.expense, "99", datetime(2024, 3, 14), "Food", user_id=2)

        account_id = AccountService(session, 1).resolve_default()
        session.add(
            Transaction(
                account_id=account_id,
                category_id=None,
                amount_cents=300,
                type=TransactionType.expense,
                transaction_date=datetime(2024, 3, 30, 12),
                note="cash",
            )
        )
        session.commit()

        report = ReportService(session, 1).monthly(month_window(3, 2024))

        assert report.expenses_cents == 4_275
        assert report.transaction_count == 4
        assert [(c.name, c.total_cents) for c in report.categories] == [
            ("Food", 3_250),
            ("Transport", 725),
            ("Uncategorized", 300),
        ]
        assert [(d.day, d.amount_cents) for d in report.daily_trend] == [
            (2, 1_975),
            (14, 2_000),
            (30, 300),
        ]


def test_monthly_report_empty_month() -> None:
    with make_session() as session:
        report = ReportService(session, 1).monthly(month_window(1, 2020)).to_dict()
        assert report == {
            "income": 0.0,
            "expenses": 0.0,
            "netBalance": 0.0,
            "transactions": 0,
            "categories": [],
            "dailyTrend": [],
        }


def test_yearly_report_buckets_by_month() -> None:
    with make_session() as session:
        add_txn(session, TransactionType.income, "1000", datetime(2024, 1, 31, 23, 59, 59))
        add_txn(session, TransactionType.expense, "40", datetime(2024, 2, 1))
        add_txn(session, TransactionType.expense, "60", datetime(2024, 2, 28))
        add_txn(session, TransactionType.expense, "5", datetime(2024, 12, 31, 22))
        add_txn(session, TransactionType.income, "1", datetime(2025, 1, 1))
        add_txn(session, TransactionType.income, "7", datetime(2024, 6, 1), user_id=2)

        report = ReportService(session, 1).yearly(year_window(2024)).to_dict()

        assert len(report["income"]) == 12
        assert len(report["expenses"]) == 12
        assert report["income"] == [1000.0] + [0.0] * 11
        assert report["expenses"] == [0.0, 100.0] + [0.0] * 9 + [5.0]

import csv
from datetime import datetime
from decimal import Decimal
from io import StringIO

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session

from csv_utils import EXPORT_COLUMNS, ExportRow, export_transactions, format_amount, to_cents
from database import Base
from models import TransactionType
from schemas import TransactionIn
from services import TransactionService

HEADER = "transaction_id,transaction_date,transaction_type,amount,note,category,account"


def test_empty_export_is_header_only() -> None:
    assert export_transactions([]) == HEADER


def test_rows_are_fully_quoted() -> None:
    rows = [
        ExportRow(7, datetime(2024, 3, 5, 18, 30), "expense", 5_000, 'He said "hi"', "Food", "Wallet"),
        ExportRow(6, datetime(2024, 3, 1), "income", 12, None, None, None),
    ]

    lines = export_transactions(rows).split("\n")

    assert lines == [
        HEADER,
        '"7","2024-03-05","expense","50.00","He said ""hi""","Food","Wallet"',
        '"6","2024-03-01","income","0.12","","",""',
    ]


def test_export_parses_back_with_csv_reader() -> None:
    rows = [
        ExportRow(1, datetime(2024, 1, 2), "expense", 1_234, "comma, newline\nand quote \"", "A", "B"),
    ]

    parsed = list(csv.DictReader(StringIO(export_transactions(rows))))

    assert list(parsed[0].keys()) == list(EXPORT_COLUMNS)
    assert parsed[0]["note"] == "comma, newline\nand quote \""
    assert parsed[0]["amount"] == "12.34"


def test_format_amount_has_two_decimals() -> None:
    assert format_amount(0) == "0.00"
    assert format_amount(5) == "0.05"
    assert format_amount(123_456) == "1234.56"


def test_to_cents_rounds_half_up() -> None:
    assert to_cents("19.99") == 1_999
    assert to_cents(Decimal("0.005")) == 1
    assert to_cents(" 7 ") == 700
    with pytest.raises(ValueError):
        to_cents("abc")
    with pytest.raises(ValueError):
        to_cents("-3")
    with pytest.raises(ValueError):
        to_cents("NaN")


def test_to_cents_rejects_amounts_past_64_bits() -> None:
    assert to_cents("92233720368547758.07") == 2**63 - 1
    with pytest.raises(ValueError, match="too large"):
        to_cents("92233720368547758.08")
    with pytest.raises(ValueError, match="Invalid amount"):
        to_cents(Decimal("1e30"))


def test_export_rows_are_newest_first() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        service = TransactionService(session, 1)
        for amount, when, category in [
            ("10", datetime(2024, 3, 1), "Food"),
            ("20", datetime(2024, 3, 9), "Rent"),
            ("30", datetime(2024, 3, 9), ""),
        ]:
            service.create(
                TransactionIn(
                    type=TransactionType.expense,
                    amount=Decimal(amount),
                    category=category,
                    date=when,
                )
            )
        TransactionService(session, 2).create(
            TransactionIn(type=TransactionType.income, amount=Decimal("1"), date=datetime(2024, 3, 2))
        )

        rows = service.export_rows()

        assert [(r.amount_cents, r.category_name) for r in rows] == [
            (3_000, "Uncategorized"),
            (2_000, "Rent"),
            (1_000, "Food"),
        ]
        assert {r.account_name for r in rows} == {"Default Account"}
        assert export_transactions(rows).split("\n")[1] == (
            f'"{rows[0].transaction_id}","2024-03-09","expense","30.00","","Uncategorized","Default Account"'
        )

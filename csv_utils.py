import csv
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from io import StringIO
from typing import NamedTuple, Optional, Sequence, Union

EXPORT_COLUMNS = (
    "transaction_id",
    "transaction_date",
    "transaction_type",
    "amount",
    "note",
    "category",
    "account",
)

# Largest amount that fits a signed 64-bit integer column.
MAX_CENTS = 2**63 - 1


class ExportRow(NamedTuple):
    transaction_id: int
    transaction_date: datetime
    transaction_type: str
    amount_cents: int
    note: Optional[str]
    category_name: Optional[str]
    account_name: Optional[str]


def to_cents(value: Union[Decimal, int, str]) -> int:
    try:
        amount = Decimal(str(value).strip())
        if not amount.is_finite():
            raise ValueError("Invalid amount")
        cents = int((amount * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))
    except InvalidOperation as exc:
        raise ValueError("Invalid amount") from exc
    if cents < 0:
        raise ValueError("Amount must be positive")
    if cents > MAX_CENTS:
        raise ValueError("Amount is too large")
    return cents


def format_amount(cents: int) -> str:
    return f"{Decimal(cents) / 100:.2f}"


def export_transactions(rows: Sequence[ExportRow]) -> str:
    """
    Render rows as CSV: a bare header line, then fully quoted data rows, joined by
    ``\\n`` with no trailing newline. Missing text fields become empty strings.
    """
    output = StringIO()
    output.write(",".join(EXPORT_COLUMNS) + "\n")
    writer = csv.writer(output, quoting=csv.QUOTE_ALL, lineterminator="\n")
    for row in rows:
        txn_type = getattr(row.transaction_type, "value", row.transaction_type)
        writer.writerow(
            [
                row.transaction_id,
                row.transaction_date.strftime("%Y-%m-%d"),
                txn_type,
                format_amount(row.amount_cents or 0),
                row.note or "",
                row.category_name or "",
                row.account_name or "",
            ]
        )
    text = output.getvalue()
    return text[:-1] if text.endswith("\n") else text

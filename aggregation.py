"""
Group-by and sum folds behind the dashboard and report endpoints.

The folds work on plain row tuples read by ``services`` and keep money in
integer cents. Floats only appear in ``to_dict`` output.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterable, Optional

from models import DEFAULT_CATEGORY_NAME, TransactionType

MONTHS_PER_YEAR = 12


def cents_to_units(cents: int) -> float:
    return cents / 100


def utilization(spent_cents: int, budget_cents: int) -> float:
    if budget_cents <= 0:
        return 0.0
    percentage = spent_cents * 100 / budget_cents
    return max(0.0, min(percentage, 100.0))


@dataclass(frozen=True)
class DashboardMetrics:
    total_income_cents: int
    total_expenses_cents: int
    transaction_count: int

    @property
    def balance_cents(self) -> int:
        return self.total_income_cents - self.total_expenses_cents

    def to_dict(self) -> dict[str, object]:
        return {
            "totalIncome": cents_to_units(self.total_income_cents),
            "totalExpenses": cents_to_units(self.total_expenses_cents),
            "balance": cents_to_units(self.balance_cents),
            "transactions": self.transaction_count,
        }


@dataclass(frozen=True)
class BudgetSummary:
    budget_cents: int
    spent_cents: int

    @property
    def remaining_cents(self) -> int:
        return self.budget_cents - self.spent_cents

    @property
    def percentage(self) -> float:
        return utilization(self.spent_cents, self.budget_cents)

    def to_dict(self) -> dict[str, object]:
        return {
            "budget": cents_to_units(self.budget_cents),
            "spent": cents_to_units(self.spent_cents),
            "remaining": cents_to_units(self.remaining_cents),
            "percentage": self.percentage,
        }


@dataclass(frozen=True)
class CategoryTotal:
    name: str
    total_cents: int

    def to_dict(self) -> dict[str, object]:
        return {"name": self.name, "total": cents_to_units(self.total_cents)}


@dataclass(frozen=True)
class DailyTotal:
    day: int
    amount_cents: int

    def to_dict(self) -> dict[str, object]:
        return {"day": self.day, "amount": cents_to_units(self.amount_cents)}


@dataclass(frozen=True)
class MonthlyReport:
    income_cents: int
    expenses_cents: int
    transaction_count: int
    categories: list[CategoryTotal] = field(default_factory=list)
    daily_trend: list[DailyTotal] = field(default_factory=list)

    @property
    def net_balance_cents(self) -> int:
        return self.income_cents - self.expenses_cents

    def to_dict(self) -> dict[str, object]:
        return {
            "income": cents_to_units(self.income_cents),
            "expenses": cents_to_units(self.expenses_cents),
            "netBalance": cents_to_units(self.net_balance_cents),
            "transactions": self.transaction_count,
            "categories": [c.to_dict() for c in self.categories],
            "dailyTrend": [d.to_dict() for d in self.daily_trend],
        }


@dataclass(frozen=True)
class YearlyReport:
    income_cents: list[int]
    expenses_cents: list[int]

    def to_dict(self) -> dict[str, object]:
        return {
            "income": [cents_to_units(c) for c in self.income_cents],
            "expenses": [cents_to_units(c) for c in self.expenses_cents],
        }


def fold_monthly(
    rows: Iterable[tuple[object, int, datetime, Optional[str]]],
) -> MonthlyReport:
    """Fold ``(type, amount_cents, transaction_date, category_name)`` rows.

    Category and day groups keep the order in which they are first seen.
    """
    income = 0
    expenses = 0
    count = 0
    by_category: dict[str, int] = {}
    by_day: dict[int, int] = {}
    for txn_type, amount_cents, txn_date, category_name in rows:
        count += 1
        amount = int(amount_cents or 0)
        if txn_type == TransactionType.income:
            income += amount
        elif txn_type == TransactionType.expense:
            expenses += amount
            name = category_name or DEFAULT_CATEGORY_NAME
            by_category[name] = by_category.get(name, 0) + amount
            by_day[txn_date.day] = by_day.get(txn_date.day, 0) + amount
    return MonthlyReport(
        income_cents=income,
        expenses_cents=expenses,
        transaction_count=count,
        categories=[CategoryTotal(name, total) for name, total in by_category.items()],
        daily_trend=[DailyTotal(day, total) for day, total in by_day.items()],
    )


def fold_yearly(rows: Iterable[tuple[object, int, datetime]]) -> YearlyReport:
    income = [0] * MONTHS_PER_YEAR
    expenses = [0] * MONTHS_PER_YEAR
    for txn_type, amount_cents, txn_date in rows:
        index = txn_date.month - 1
        amount = int(amount_cents or 0)
        if txn_type == TransactionType.income:
            income[index] += amount
        elif txn_type == TransactionType.expense:
            expenses[index] += amount
    return YearlyReport(income_cents=income, expenses_cents=expenses)

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from sqlalchemy import and_, case, func, insert, or_, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from aggregation import (
    BudgetSummary,
    CategoryTotal,
    DashboardMetrics,
    MonthlyReport,
    YearlyReport,
    cents_to_units,
    fold_monthly,
    fold_yearly,
)
from csv_utils import ExportRow, to_cents
from models import (
    DEFAULT_ACCOUNT_NAME,
    DEFAULT_ACCOUNT_TYPE,
    DEFAULT_CATEGORY_NAME,
    Account,
    Budget,
    Category,
    Transaction,
    TransactionType,
)
from periods import Window
from schemas import BudgetIn, TransactionIn

logger = logging.getLogger(__name__)

TOP_CATEGORIES_LIMIT = 5


def insert_ignoring_conflict(
    session: Session, model: type, values: dict[str, object], conflict_on: list[str]
) -> None:
    """
    Insert a row unless one with the same ``conflict_on`` key already exists.

    Concurrent callers may all reach this point; the unique constraint decides
    which insert lands and the others become no-ops.
    """
    dialect = session.get_bind().dialect.name
    if dialect == "postgresql":
        stmt = pg_insert(model).values(**values)
        session.execute(stmt.on_conflict_do_nothing(index_elements=conflict_on))
        return
    if dialect == "sqlite":
        stmt = sqlite_insert(model).values(**values)
        session.execute(stmt.on_conflict_do_nothing(index_elements=conflict_on))
        return

    try:
        with session.begin_nested():
            session.execute(insert(model).values(**values))
    except IntegrityError:
        logger.info(f"insert_conflict: table={model.__tablename__} key={conflict_on}")


class CategoryService:
    def __init__(self, session: Session, user_id: int) -> None:
        self.session = session
        self.user_id = user_id

    def get_id(self, name: str) -> Optional[int]:
        return self.session.scalar(
            select(Category.id).where(
                Category.user_id == self.user_id, Category.name == name
            )
        )

    def resolve(
        self, name: Optional[str], fallback_type: Optional[TransactionType] = None
    ) -> int:
        """Return the id of the user's category called ``name``, creating it if needed.

        Blank names map to the default category. A new category is an income
        category only when ``fallback_type`` says so; an existing category keeps
        its type.
        """
        clean_name = (name or "").strip() or DEFAULT_CATEGORY_NAME
        category_type = (
            TransactionType.income
            if fallback_type == TransactionType.income
            else TransactionType.expense
        )
        insert_ignoring_conflict(
            self.session,
            Category,
            {"user_id": self.user_id, "name": clean_name, "type": category_type},
            ["user_id", "name"],
        )
        category_id = self.get_id(clean_name)
        if category_id is None:
            raise RuntimeError(f"Category '{clean_name}' could not be resolved")
        return category_id


class AccountService:
    def __init__(self, session: Session, user_id: int) -> None:
        self.session = session
        self.user_id = user_id

    def earliest_id(self) -> Optional[int]:
        return self.session.scalar(
            select(Account.id)
            .where(Account.user_id == self.user_id)
            .order_by(Account.id.asc())
            .limit(1)
        )

    def resolve_default(self) -> int:
        account_id = self.earliest_id()
        if account_id is not None:
            return account_id

        insert_ignoring_conflict(
            self.session,
            Account,
            {
                "user_id": self.user_id,
                "name": DEFAULT_ACCOUNT_NAME,
                "type": DEFAULT_ACCOUNT_TYPE,
                "balance_cents": 0,
            },
            ["user_id", "name"],
        )
        account_id = self.earliest_id()
        if account_id is None:
            raise RuntimeError("Default account could not be resolved")
        logger.info(f"default_account: user_id={self.user_id} account_id={account_id}")
        return account_id


@dataclass
class TransactionFilters:
    type: Optional[str] = None
    category: Optional[str] = None
    search: Optional[str] = None
    sort_by: Optional[str] = None


class TransactionService:
    def __init__(self, session: Session, user_id: int) -> None:
        self.session = session
        self.user_id = user_id

    def list(self, filters: Optional[TransactionFilters] = None) -> list[dict[str, object]]:
        filters = filters or TransactionFilters()
        stmt = (
            select(
                Transaction.id,
                Transaction.amount_cents,
                Transaction.type,
                Transaction.transaction_date,
                Transaction.note,
                Category.name.label("category"),
            )
            .select_from(Transaction)
            .join(Account, Transaction.account_id == Account.id)
            .outerjoin(Category, Transaction.category_id == Category.id)
            .where(Account.user_id == self.user_id)
        )
        if filters.type and filters.type != "all":
            try:
                txn_type = TransactionType(filters.type)
            except ValueError:
                return []
            stmt = stmt.where(Transaction.type == txn_type)
        if filters.category and filters.category != "all":
            stmt = stmt.where(Category.name == filters.category)
        if filters.search:
            like = f"%{filters.search}%"
            stmt = stmt.where(or_(Category.name.ilike(like), Transaction.note.ilike(like)))
        if filters.sort_by == "amount":
            stmt = stmt.order_by(Transaction.amount_cents.desc(), Transaction.id.desc())
        else:
            stmt = stmt.order_by(
                Transaction.transaction_date.desc(), Transaction.id.desc()
            )

        return [
            {
                "id": row.id,
                "amount": cents_to_units(row.amount_cents),
                "type": row.type.value,
                "date": row.transaction_date.isoformat(),
                "description": row.note,
                "category": row.category,
            }
            for row in self.session.execute(stmt)
        ]

    def create(self, data: TransactionIn) -> dict[str, object]:
        amount_cents = to_cents(data.amount)
        account_id = AccountService(self.session, self.user_id).resolve_default()
        category_id = CategoryService(self.session, self.user_id).resolve(
            data.category, data.type
        )
        txn_date = data.date
        if txn_date.tzinfo is not None:
            txn_date = txn_date.replace(tzinfo=None)
        txn = Transaction(
            account_id=account_id,
            category_id=category_id,
            amount_cents=amount_cents,
            type=data.type,
            transaction_date=txn_date.replace(microsecond=0),
            note=data.description or None,
        )
        self.session.add(txn)
        self.session.commit()
        self.session.refresh(txn)
        logger.info(
            f"transaction_created: user_id={self.user_id} id={txn.id} "
            f"type={txn.type.value} amount_cents={txn.amount_cents}"
        )
        return {
            "id": txn.id,
            "amount": cents_to_units(txn.amount_cents),
            "type": txn.type.value,
            "date": txn.transaction_date.isoformat(),
            "description": txn.note,
        }

    def export_rows(self) -> list[ExportRow]:
        stmt = (
            select(
                Transaction.id,
                Transaction.transaction_date,
                Transaction.type,
                Transaction.amount_cents,
                Transaction.note,
                Category.name.label("category_name"),
                Account.name.label("account_name"),
            )
            .select_from(Transaction)
            .join(Account, Transaction.account_id == Account.id)
            .outerjoin(Category, Transaction.category_id == Category.id)
            .where(Account.user_id == self.user_id)
            .order_by(Transaction.transaction_date.desc(), Transaction.id.desc())
        )
        return [
            ExportRow(
                transaction_id=row.id,
                transaction_date=row.transaction_date,
                transaction_type=row.type.value,
                amount_cents=row.amount_cents,
                note=row.note,
                category_name=row.category_name,
                account_name=row.account_name,
            )
            for row in self.session.execute(stmt)
        ]


class BudgetService:
    def __init__(self, session: Session, user_id: int) -> None:
        self.session = session
        self.user_id = user_id

    def create(self, data: BudgetIn) -> dict[str, object]:
        if data.end_date < data.start_date:
            raise ValueError("Start date must be before end date")
        limit_cents = to_cents(data.amount_limit)
        category_id = CategoryService(self.session, self.user_id).resolve(
            data.category_name, data.category_type
        )
        budget = Budget(
            user_id=self.user_id,
            category_id=category_id,
            amount_limit_cents=limit_cents,
            start_date=data.start_date,
            end_date=data.end_date,
        )
        self.session.add(budget)
        self.session.commit()
        self.session.refresh(budget)
        logger.info(
            f"budget_created: user_id={self.user_id} id={budget.id} "
            f"category_id={category_id} start={budget.start_date} end={budget.end_date}"
        )
        return {"budget_id": budget.id}

    def list_with_spent(self) -> list[dict[str, object]]:
        """Budgets with the expense total of their category over each budget's days."""
        spent = func.coalesce(
            func.sum(
                case(
                    (
                        Transaction.type == TransactionType.expense,
                        Transaction.amount_cents,
                    ),
                    else_=0,
                )
            ),
            0,
        ).label("spent")
        stmt = (
            select(
                Budget.id,
                Budget.amount_limit_cents,
                Budget.start_date,
                Budget.end_date,
                Category.name.label("category_name"),
                Category.type.label("category_type"),
                spent,
            )
            .join(Category, Budget.category_id == Category.id)
            .outerjoin(
                Transaction,
                and_(
                    Transaction.category_id == Category.id,
                    func.date(Transaction.transaction_date).between(
                        Budget.start_date, Budget.end_date
                    ),
                ),
            )
            .where(Budget.user_id == self.user_id)
            .group_by(
                Budget.id,
                Budget.amount_limit_cents,
                Budget.start_date,
                Budget.end_date,
                Category.name,
                Category.type,
            )
            .order_by(Budget.start_date.desc(), Budget.id.desc())
        )
        return [
            {
                "budget_id": row.id,
                "amount_limit": cents_to_units(row.amount_limit_cents),
                "start_date": row.start_date.isoformat(),
                "end_date": row.end_date.isoformat(),
                "category_name": row.category_name,
                "category_type": row.category_type.value,
                "spent": cents_to_units(int(row.spent or 0)),
            }
            for row in self.session.execute(stmt)
        ]


class MetricsService:
    def __init__(self, session: Session, user_id: int) -> None:
        self.session = session
        self.user_id = user_id

    def _in_window(self, window: Window):
        return and_(
            Transaction.transaction_date >= window.start,
            Transaction.transaction_date < window.end,
        )

    def dashboard(self, window: Window) -> DashboardMetrics:
        stmt = (
            select(
                func.coalesce(
                    func.sum(
                        case(
                            (
                                Transaction.type == TransactionType.income,
                                Transaction.amount_cents,
                            ),
                            else_=0,
                        )
                    ),
                    0,
                ).label("income"),
                func.coalesce(
                    func.sum(
                        case(
                            (
                                Transaction.type == TransactionType.expense,
                                Transaction.amount_cents,
                            ),
                            else_=0,
                        )
                    ),
                    0,
                ).label("expenses"),
                func.count(Transaction.id).label("count"),
            )
            .select_from(Transaction)
            .join(Account, Transaction.account_id == Account.id)
            .where(Account.user_id == self.user_id, self._in_window(window))
        )
        row = self.session.execute(stmt).one()
        return DashboardMetrics(
            total_income_cents=int(row.income or 0),
            total_expenses_cents=int(row.expenses or 0),
            transaction_count=int(row.count or 0),
        )

    def budget_summary(self, window: Window) -> BudgetSummary:
        budget_stmt = select(
            func.coalesce(func.sum(Budget.amount_limit_cents), 0)
        ).where(
            Budget.user_id == self.user_id,
            Budget.start_date <= window.start_day,
            Budget.end_date >= window.start_day,
        )
        spent_stmt = (
            select(func.coalesce(func.sum(Transaction.amount_cents), 0))
            .select_from(Transaction)
            .join(Category, Transaction.category_id == Category.id)
            .where(
                Category.user_id == self.user_id,
                Transaction.type == TransactionType.expense,
                self._in_window(window),
            )
        )
        budget = int(self.session.execute(budget_stmt).scalar_one() or 0)
        spent = int(self.session.execute(spent_stmt).scalar_one() or 0)
        return BudgetSummary(budget_cents=budget, spent_cents=spent)

    def top_categories(
        self, window: Window, limit: int = TOP_CATEGORIES_LIMIT
    ) -> list[CategoryTotal]:
        total = func.coalesce(func.sum(Transaction.amount_cents), 0).label("total")
        stmt = (
            select(Category.name, total)
            .select_from(Transaction)
            .join(Category, Transaction.category_id == Category.id)
            .join(Account, Transaction.account_id == Account.id)
            .where(
                Account.user_id == self.user_id,
                Transaction.type == TransactionType.expense,
                self._in_window(window),
            )
            .group_by(Category.name)
            .order_by(total.desc())
            .limit(limit)
        )
        return [
            CategoryTotal(name=row.name, total_cents=int(row.total or 0))
            for row in self.session.execute(stmt)
        ]


class ReportService:
    def __init__(self, session: Session, user_id: int) -> None:
        self.session = session
        self.user_id = user_id

    def monthly(self, window: Window) -> MonthlyReport:
        stmt = (
            select(
                Transaction.type,
                Transaction.amount_cents,
                Transaction.transaction_date,
                Category.name,
            )
            .select_from(Transaction)
            .join(Account, Transaction.account_id == Account.id)
            .outerjoin(Category, Transaction.category_id == Category.id)
            .where(
                Account.user_id == self.user_id,
                Transaction.transaction_date >= window.start,
                Transaction.transaction_date < window.end,
            )
            .order_by(Transaction.transaction_date.asc(), Transaction.id.asc())
        )
        return fold_monthly(self.session.execute(stmt).all())

    def yearly(self, window: Window) -> YearlyReport:
        stmt = (
            select(
                Transaction.type,
                Transaction.amount_cents,
                Transaction.transaction_date,
            )
            .select_from(Transaction)
            .join(Account, Transaction.account_id == Account.id)
            .where(
                Account.user_id == self.user_id,
                Transaction.transaction_date >= window.start,
                Transaction.transaction_date < window.end,
            )
        )
        return fold_yearly(self.session.execute(stmt).all())

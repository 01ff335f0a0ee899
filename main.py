import logging
from contextlib import contextmanager
from datetime import date, datetime, timezone
from typing import Iterator, Optional
from zoneinfo import ZoneInfo

from fastapi import APIRouter, Depends, FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import StreamingResponse
from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from auth import InvalidToken, bearer_token, verify_token
from config import Settings, get_settings
from csv_utils import export_transactions
from database import Base, create_db_engine, make_session_factory, session_scope
from periods import Window, current_month, month_window, year_window
from schemas import BudgetIn, TransactionIn
from services import (
    BudgetService,
    MetricsService,
    ReportService,
    TransactionFilters,
    TransactionService,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api")


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_db(request: Request) -> Iterator[Session]:
    with session_scope(request.app.state.session_factory) as db:
        yield db


def current_user_id(
    request: Request, settings: Settings = Depends(get_app_settings)
) -> int:
    token = bearer_token(request.headers.get("Authorization"))
    if not token:
        raise HTTPException(status_code=401, detail="Authorization header missing")
    try:
        return verify_token(token, settings)
    except InvalidToken as exc:
        raise HTTPException(status_code=401, detail=str(exc)) from exc


def local_today(settings: Settings) -> date:
    return datetime.now(ZoneInfo(settings.timezone)).date()


def this_month(settings: Settings = Depends(get_app_settings)) -> Window:
    return current_month(local_today(settings))


def filters_from_request(request: Request) -> TransactionFilters:
    params = request.query_params
    return TransactionFilters(
        type=params.get("type") or None,
        category=params.get("category") or None,
        search=params.get("search") or None,
        sort_by=params.get("sortBy") or None,
    )


@contextmanager
def store_errors(db: Session, message: str) -> Iterator[None]:
    try:
        yield
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception(f"store_failure: {message}")
        raise HTTPException(status_code=500, detail=message) from exc


@router.get("")
def api_root():
    return {"status": "ok", "message": "API is running"}


@router.get("/health")
def api_health():
    return {"status": "ok", "time": datetime.now(timezone.utc).isoformat()}


@router.get("/dashboard/metrics")
def dashboard_metrics(
    window: Window = Depends(this_month),
    user_id: int = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    with store_errors(db, "Failed to fetch dashboard metrics"):
        return MetricsService(db, user_id).dashboard(window).to_dict()


@router.get("/dashboard/budget")
def dashboard_budget(
    window: Window = Depends(this_month),
    user_id: int = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    with store_errors(db, "Failed to fetch budget summary"):
        return MetricsService(db, user_id).budget_summary(window).to_dict()


@router.get("/dashboard/categories")
def dashboard_categories(
    window: Window = Depends(this_month),
    user_id: int = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    with store_errors(db, "Failed to fetch categories"):
        rows = MetricsService(db, user_id).top_categories(window)
    return [row.to_dict() for row in rows]


@router.get("/transactions")
def list_transactions(
    request: Request,
    user_id: int = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    filters = filters_from_request(request)
    with store_errors(db, "Failed to fetch transactions"):
        return TransactionService(db, user_id).list(filters)


@router.get("/transactions/export")
def export_transactions_endpoint(
    user_id: int = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    with store_errors(db, "Failed to export transactions"):
        rows = TransactionService(db, user_id).export_rows()
    csv_text = export_transactions(rows)
    return StreamingResponse(
        iter([csv_text]),
        media_type="text/csv",
        headers={"Content-Disposition": 'attachment; filename="transactions.csv"'},
    )


@router.post("/transactions", status_code=201)
async def create_transaction(
    request: Request,
    user_id: int = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    try:
        data = TransactionIn.model_validate(await request.json())
    except (ValidationError, ValueError) as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    logger.info(
        f"create_transaction: user_id={user_id} type={data.type.value} "
        f"category={data.category!r} date={data.date.isoformat()}"
    )
    with store_errors(db, "Failed to create transaction"):
        try:
            return TransactionService(db, user_id).create(data)
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc


@router.get("/budgets")
def list_budgets(
    user_id: int = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    with store_errors(db, "Failed to fetch budgets"):
        return BudgetService(db, user_id).list_with_spent()


@router.post("/budgets", status_code=201)
async def create_budget(
    request: Request,
    user_id: int = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    try:
        data = BudgetIn.model_validate(await request.json())
    except (ValidationError, ValueError) as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    with store_errors(db, "Failed to create budget"):
        try:
            return BudgetService(db, user_id).create(data)
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc


@router.get("/reports/monthly")
def monthly_report(
    request: Request,
    settings: Settings = Depends(get_app_settings),
    user_id: int = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    window = month_window(
        request.query_params.get("month"),
        request.query_params.get("year"),
        today=local_today(settings),
    )
    with store_errors(db, "Failed to fetch monthly reports"):
        return ReportService(db, user_id).monthly(window).to_dict()


@router.get("/reports/yearly")
def yearly_report(
    request: Request,
    settings: Settings = Depends(get_app_settings),
    user_id: int = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    window = year_window(
        request.query_params.get("year"), today=local_today(settings)
    )
    with store_errors(db, "Failed to fetch yearly reports"):
        return ReportService(db, user_id).yearly(window).to_dict()


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or get_settings()
    logging.basicConfig(level=settings.log_level)

    engine = create_db_engine(settings)
    if settings.create_schema:
        Base.metadata.create_all(engine)

    app = FastAPI(title="Finance Tracker")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.state.settings = settings
    app.state.session_factory = make_session_factory(engine)
    app.include_router(router)
    logger.info(f"app_created: database={engine.url.render_as_string(hide_password=True)}")
    return app


def main():
    import uvicorn

    uvicorn.run("main:create_app", factory=True, host="0.0.0.0", port=8000, reload=False)


if __name__ == "__main__":
    main()

import datetime as dt
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from models import TransactionType


class TransactionIn(BaseModel):
    model_config = ConfigDict(extra="ignore")

    type: TransactionType
    amount: Decimal = Field(..., ge=0)
    category: Optional[str] = Field(default=None, max_length=100)
    description: Optional[str] = None
    date: dt.datetime


class BudgetIn(BaseModel):
    model_config = ConfigDict(extra="ignore")

    category_name: str = Field(..., min_length=1, max_length=100)
    amount_limit: Decimal = Field(..., ge=0)
    category_type: Optional[TransactionType] = None
    start_date: dt.date
    end_date: dt.date

    @model_validator(mode="after")
    def _check_range(self) -> "BudgetIn":
        if self.end_date < self.start_date:
            raise ValueError("Start date must be before end date")
        return self

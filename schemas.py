from datetime import date
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field

from models import TransactionType

MONTH_PATTERN = r"^\d{4}-(0[1-9]|1[0-2])$"


class TransactionIn(BaseModel):
    type: TransactionType
    amount: Decimal = Field(..., ge=0, max_digits=15, decimal_places=2)
    category_id: int
    transaction_date: date
    description: Optional[str] = Field(default=None, max_length=255)
    saving_id: Optional[int] = None


class TransactionUpdate(TransactionIn):
    """Full replacement of a transaction's editable fields.

    ``saving_id`` is tri-state: leaving it out of the payload keeps the current
    link, an explicit ``null`` clears it and an id moves it to that goal.
    """

    @property
    def saving_id_given(self) -> bool:
        return "saving_id" in self.model_fields_set


class BudgetIn(BaseModel):
    category_id: int
    month: str = Field(..., pattern=MONTH_PATTERN)
    limit_amount: Decimal = Field(..., gt=0, max_digits=15, decimal_places=2)


class SavingGoalIn(BaseModel):
    goal_name: str = Field(..., min_length=1, max_length=120)
    target_amount: Decimal = Field(..., gt=0, max_digits=15, decimal_places=2)


class SavingAdjustIn(BaseModel):
    add_amount: Optional[Decimal] = Field(
        default=None, max_digits=15, decimal_places=2
    )
    goal_name: Optional[str] = Field(default=None, min_length=1, max_length=120)
    target_amount: Optional[Decimal] = Field(
        default=None, gt=0, max_digits=15, decimal_places=2
    )

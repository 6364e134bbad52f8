from decimal import Decimal
from typing import Optional


class FinanceError(ValueError):
    """Base class for errors raised by the service layer."""


class ValidationError(FinanceError):
    pass


class NotFoundError(FinanceError):
    pass


class ConflictError(FinanceError):
    pass


class InsufficientFundsError(FinanceError):
    def __init__(self, message: str, available: Optional[Decimal] = None) -> None:
        super().__init__(message)
        self.available = available


class StorageError(FinanceError):
    """The database rejected or failed a write; the unit was rolled back."""

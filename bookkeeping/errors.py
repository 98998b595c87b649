"""
Error Taxonomy Module

Domain errors raised by the bookkeeping core. All of them derive from
ValueError so callers that only know about ValueError still catch them.
Every error is raised before any write reaches the journal.
"""

from decimal import Decimal
from typing import Optional


class BookkeepingError(ValueError):
    """Base class for all bookkeeping errors"""
    code = "BOOKKEEPING_ERROR"


class ValidationError(BookkeepingError):
    """Malformed input: too few entries, bad amounts, missing fields, cycles"""
    code = "VALIDATION_ERROR"


class NotFoundError(BookkeepingError):
    """Referenced account or transaction does not exist"""
    code = "NOT_FOUND"

    def __init__(self, message: str, entity_type: Optional[str] = None,
                 key: Optional[str] = None):
        super().__init__(message)
        self.entity_type = entity_type
        self.key = key


class ConflictError(BookkeepingError):
    """Duplicate account number, delete of an account with entries, etc."""
    code = "CONFLICT"


class ImbalanceError(BookkeepingError):
    """
    Total debits differ from total credits beyond the tolerance.
    Carries both totals so the caller can see the discrepancy.
    """
    code = "IMBALANCE"

    def __init__(self, total_debits: Decimal, total_credits: Decimal):
        self.total_debits = total_debits
        self.total_credits = total_credits
        self.difference = total_debits - total_credits
        super().__init__(
            f"Transaction not balanced: debits={total_debits}, "
            f"credits={total_credits}, difference={self.difference}"
        )

"""
Bookkeeping Core

Double-entry bookkeeping engine: a chart of accounts, a journal of
balanced transactions, balances derived from the journal, and trial
balance, income statement and balance sheet reports.
"""

__version__ = "1.0.0"

from .accounts import Account, AccountRegistry, AccountType
from .book import Book
from .errors import (
    BookkeepingError, ConflictError, ImbalanceError, NotFoundError, ValidationError
)
from .journal import (
    Entry, JournalFilter, Transaction, TransactionStatus, TransactionType
)
from .posting import EntryInput
from .reporting import AccountFilter, ReportFormat

__all__ = [
    "Account",
    "AccountFilter",
    "AccountRegistry",
    "AccountType",
    "Book",
    "BookkeepingError",
    "ConflictError",
    "Entry",
    "EntryInput",
    "ImbalanceError",
    "JournalFilter",
    "NotFoundError",
    "ReportFormat",
    "Transaction",
    "TransactionStatus",
    "TransactionType",
    "ValidationError",
]

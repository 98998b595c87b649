"""
Book Module

The bookkeeping core as one object: storage, audit trail, chart of
accounts, journal, posting engine, balances and reports wired together.
Collaborators (HTTP layer, batch jobs) talk to a Book and pass the caller
identity explicitly on every mutating call.
"""

from decimal import Decimal
from datetime import date, datetime
from typing import Any, Dict, List, Optional, Sequence, Union

from .accounts import Account, AccountKey, AccountRegistry, AccountType
from .amounts import Currency, to_amount
from .audit import AuditTrail
from .balances import AccountLedger, BalanceCalculator
from .config import BookkeepingConfig, get_config
from .journal import (
    JournalFilter, Transaction, TransactionJournal, TransactionType
)
from .logging_config import setup_logging
from .posting import EntryInput, EntryLike, PostingEngine
from .reporting import (
    AccountFilter, BalanceSheet, ExpenseReport, IncomeStatement,
    Report, ReportFormat, ReportGenerator, TrialBalance
)
from .storage import StorageInterface, InMemoryStorage, create_storage


DateLike = Union[date, datetime, str, None]


class Book:
    """Double-entry book of accounts"""

    def __init__(
        self,
        storage: Optional[StorageInterface] = None,
        currency: Union[Currency, str] = Currency.USD,
        tolerance: Union[Decimal, str] = Decimal('0.01'),
        enable_audit: bool = True
    ):
        if isinstance(currency, str):
            currency = Currency.from_code(currency)
        tolerance = to_amount(tolerance)

        self.storage = storage or InMemoryStorage()
        self.currency = currency
        self.tolerance = tolerance
        self.audit_trail = AuditTrail(self.storage) if enable_audit else None

        self.journal = TransactionJournal(self.storage)
        self.accounts = AccountRegistry(
            self.storage, self.journal, self.audit_trail, currency=currency.code
        )
        self.posting = PostingEngine(
            self.storage, self.accounts, self.journal, self.audit_trail,
            currency=currency, tolerance=tolerance
        )
        self.balances = BalanceCalculator(self.storage, self.accounts, self.journal)
        self.reports = ReportGenerator(
            self.storage, self.accounts, self.journal, tolerance=tolerance
        )

    @classmethod
    def from_config(cls, config: Optional[BookkeepingConfig] = None) -> 'Book':
        """Build a book from environment configuration"""
        config = config or get_config()
        setup_logging(
            level=config.log_level,
            log_format=config.log_format,
            log_file=config.log_file
        )
        book = cls(
            storage=create_storage(config.database_url),
            currency=config.posting_currency,
            tolerance=config.balance_tolerance,
            enable_audit=config.enable_audit_logging
        )
        if config.seed_default_chart:
            book.accounts.seed_default_chart(actor="system")
        return book

    def close(self) -> None:
        self.storage.close()

    # Account registry

    def create_account(
        self,
        account_number: str,
        name: str,
        account_type: Union[AccountType, str],
        parent: Optional[AccountKey] = None,
        actor: Optional[str] = None
    ) -> Account:
        return self.accounts.create_account(
            account_number, name, account_type, parent=parent, actor=actor
        )

    def get_account(self, key: AccountKey) -> Account:
        return self.accounts.get_account(key)

    def list_accounts(
        self,
        account_type: Optional[Union[AccountType, str]] = None,
        active_only: bool = False
    ) -> List[Account]:
        return self.accounts.list_accounts(account_type=account_type, active_only=active_only)

    def update_account(self, key: AccountKey, actor: Optional[str] = None,
                       **changes: Any) -> Account:
        return self.accounts.update_account(key, actor=actor, **changes)

    def deactivate_account(self, key: AccountKey, actor: Optional[str] = None) -> Account:
        return self.accounts.deactivate_account(key, actor=actor)

    def delete_account(self, key: AccountKey, actor: Optional[str] = None) -> Account:
        return self.accounts.delete_account(key, actor=actor)

    # Posting

    def post_transaction(
        self,
        transaction_type: Union[TransactionType, str],
        description: str,
        txn_date: DateLike,
        entries: Sequence[EntryLike],
        reference: Optional[str] = None,
        actor: Optional[str] = None
    ) -> Transaction:
        return self.posting.post_transaction(
            transaction_type, description, txn_date, entries,
            reference=reference, actor=actor
        )

    def reverse_transaction(
        self,
        transaction_number: str,
        reason: str,
        txn_date: DateLike = None,
        actor: Optional[str] = None
    ) -> Transaction:
        return self.posting.reverse_transaction(
            transaction_number, reason, txn_date=txn_date, actor=actor
        )

    def build_reversal(self, transaction_number: str) -> List[EntryInput]:
        return self.posting.build_reversal(transaction_number)

    def get_transaction(self, transaction_number: str) -> Transaction:
        return self.journal.get(transaction_number)

    def list_transactions(self, journal_filter: Optional[JournalFilter] = None) -> List[Transaction]:
        return self.journal.find(journal_filter)

    # Balances

    def compute_balance(self, key: AccountKey, as_of: Optional[date] = None) -> Decimal:
        return self.balances.compute_balance(key, as_of=as_of)

    def get_account_ledger(
        self,
        key: AccountKey,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None
    ) -> AccountLedger:
        return self.balances.get_account_ledger(key, date_from=date_from, date_to=date_to)

    # Reports

    def trial_balance(
        self,
        account_filter: Optional[AccountFilter] = None,
        as_of: Optional[date] = None
    ) -> TrialBalance:
        return self.reports.trial_balance(account_filter, as_of=as_of)

    def income_statement(
        self,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None
    ) -> IncomeStatement:
        return self.reports.income_statement(date_from, date_to)

    def balance_sheet(self, as_of: Optional[date] = None) -> BalanceSheet:
        return self.reports.balance_sheet(as_of)

    def daily_expenses(
        self,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None
    ) -> ExpenseReport:
        return self.reports.daily_expenses(date_from, date_to)

    def export_report(self, report: Report,
                      format: ReportFormat = ReportFormat.DICT) -> Union[Dict, str]:
        return self.reports.export_report(report, format)

    # Audit

    def verify_audit_trail(self) -> Dict[str, Any]:
        if not self.audit_trail:
            return {'valid': True, 'total_events': 0, 'hash_errors': [], 'chain_breaks': []}
        return self.audit_trail.verify_integrity()

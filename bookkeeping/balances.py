"""
Balance Calculator Module

Derives account balances and running ledgers from the journal. Nothing
here is stored: every figure is recomputed from posted entries, so a
balance can never drift away from the journal that justifies it.
"""

from decimal import Decimal
from datetime import date, timedelta
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional

from .accounts import Account, AccountKey, AccountRegistry, AccountType
from .amounts import ZERO
from .journal import Entry, JournalFilter, Transaction, TransactionJournal
from .storage import StorageInterface


def signed_amount(account_type: AccountType, debit: Decimal, credit: Decimal) -> Decimal:
    """
    Movement expressed in the account type's normal balance

    Assets and expenses grow with debits; liabilities, equity and revenue
    grow with credits.
    """
    if account_type.is_debit_normal:
        return debit - credit
    return credit - debit


@dataclass(frozen=True)
class LedgerRow:
    """One line of an account ledger with the balance after it"""
    transaction: Transaction
    entry: Entry
    running_balance: Decimal

    @property
    def date(self) -> date:
        return self.transaction.date

    @property
    def transaction_number(self) -> str:
        return self.transaction.transaction_number

    @property
    def debit_amount(self) -> Decimal:
        return self.entry.debit_amount

    @property
    def credit_amount(self) -> Decimal:
        return self.entry.credit_amount

    def to_dict(self) -> Dict:
        return {
            'transaction_number': self.transaction.transaction_number,
            'transaction_type': self.transaction.transaction_type.value,
            'transaction_description': self.transaction.description,
            'date': self.transaction.date.isoformat(),
            'line_number': self.entry.line_number,
            'debit_amount': str(self.entry.debit_amount),
            'credit_amount': str(self.entry.credit_amount),
            'entry_description': self.entry.description,
            'running_balance': str(self.running_balance),
        }


@dataclass(frozen=True)
class AccountLedger:
    """Rows of one account's ledger plus the opening and closing balance"""
    account: Account
    opening_balance: Decimal
    rows: List[LedgerRow]

    @property
    def closing_balance(self) -> Decimal:
        return self.rows[-1].running_balance if self.rows else self.opening_balance

    def __iter__(self):
        return iter(self.rows)

    def __len__(self) -> int:
        return len(self.rows)

    def __getitem__(self, index):
        return self.rows[index]


class BalanceCalculator:
    """
    Computes balances from posted entries only
    """

    def __init__(
        self,
        storage: StorageInterface,
        registry: AccountRegistry,
        journal: TransactionJournal
    ):
        self.storage = storage
        self.registry = registry
        self.journal = journal

    def compute_balance(self, key: AccountKey, as_of: Optional[date] = None) -> Decimal:
        """
        Balance of one account in its normal-balance sign

        Args:
            key: Account id or account number
            as_of: Include only transactions dated on or before this day
        """
        with self.storage.snapshot():
            account = self.registry.get_account(key)
            return self._balance(account, JournalFilter(date_to=as_of))

    def compute_balances(
        self,
        keys: Iterable[AccountKey],
        as_of: Optional[date] = None
    ) -> Dict[str, Decimal]:
        """Balances for several accounts read from one snapshot"""
        with self.storage.snapshot():
            accounts = [self.registry.get_account(k) for k in keys]
            return {
                a.account_number: self._balance(a, JournalFilter(date_to=as_of))
                for a in accounts
            }

    def get_account_ledger(
        self,
        key: AccountKey,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None
    ) -> AccountLedger:
        """
        Entries of one account ordered by transaction date, then commit
        order, then line number, each with the running balance after it.

        When ``date_from`` is given the running balance starts from the
        balance of everything dated before it, so the last row always
        equals ``compute_balance(key, as_of=date_to)``.
        """
        with self.storage.snapshot():
            account = self.registry.get_account(key)

            opening = ZERO
            if date_from is not None:
                opening = self._balance(
                    account, JournalFilter(date_to=date_from - timedelta(days=1))
                )

            rows = []
            running = opening
            pairs = self.journal.iter_entries(
                account.account_number,
                JournalFilter(date_from=date_from, date_to=date_to)
            )
            for transaction, entry in pairs:
                running += signed_amount(
                    account.account_type, entry.debit_amount, entry.credit_amount
                )
                rows.append(LedgerRow(transaction, entry, running))

        return AccountLedger(account=account, opening_balance=opening, rows=rows)

    def _balance(self, account: Account, journal_filter: JournalFilter) -> Decimal:
        balance = ZERO
        for _, entry in self.journal.iter_entries(account.account_number, journal_filter):
            balance += signed_amount(account.account_type, entry.debit_amount, entry.credit_amount)
        return balance

"""
Transaction Journal Module

Append-mostly store of transactions and their entries. A transaction owns
its entries and is written together with them in a single record, so the
storage layer's atomic commit covers the whole unit. Posted transactions
are never updated or deleted; corrections are new transactions.
"""

from decimal import Decimal
from datetime import datetime, date, timezone
from dataclasses import dataclass
from typing import Dict, Iterator, List, Optional, Set, Tuple, Union
from enum import Enum
import random
import threading
import time

from .amounts import ZERO, total
from .errors import ConflictError, NotFoundError, ValidationError
from .storage import StorageInterface, StorageRecord


class TransactionType(Enum):
    """Voucher types"""
    CRV = "CRV"  # Cash receipt voucher
    CPV = "CPV"  # Cash payment voucher
    BPV = "BPV"  # Bank payment voucher
    BRV = "BRV"  # Bank receipt voucher
    JV = "JV"    # Journal voucher

    @property
    def label(self) -> str:
        return _TYPE_LABELS[self]

    @classmethod
    def parse(cls, value: Union['TransactionType', str]) -> 'TransactionType':
        """Accept the enum or its code in any case ('crv', 'CRV')"""
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            try:
                return cls(value.strip().upper())
            except ValueError:
                pass
        valid = ", ".join(t.value for t in cls)
        raise ValidationError(f"Unknown transaction type {value!r}; expected one of {valid}")


_TYPE_LABELS = {
    TransactionType.CRV: "Cash Receipt",
    TransactionType.CPV: "Cash Payment",
    TransactionType.BPV: "Bank Payment",
    TransactionType.BRV: "Bank Receipt",
    TransactionType.JV: "Journal Voucher",
}


class TransactionStatus(Enum):
    """Lifecycle states of a transaction"""
    DRAFT = "draft"
    POSTED = "posted"        # Immutable, counts toward balances
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class Entry:
    """
    One line of a transaction
    Affects exactly one account with either a debit or a credit
    """
    line_number: int
    account_number: str
    debit_amount: Decimal
    credit_amount: Decimal
    description: str = ""

    @property
    def is_debit(self) -> bool:
        return self.debit_amount != ZERO

    @property
    def is_credit(self) -> bool:
        return self.credit_amount != ZERO

    @property
    def amount(self) -> Decimal:
        """The non-zero side of the entry"""
        return self.debit_amount if self.is_debit else self.credit_amount

    def to_dict(self) -> Dict:
        return {
            'line_number': self.line_number,
            'account_number': self.account_number,
            'debit_amount': str(self.debit_amount),
            'credit_amount': str(self.credit_amount),
            'description': self.description,
        }

    @classmethod
    def from_dict(cls, data: Dict) -> 'Entry':
        return cls(
            line_number=data['line_number'],
            account_number=data['account_number'],
            debit_amount=Decimal(data['debit_amount']),
            credit_amount=Decimal(data['credit_amount']),
            description=data.get('description') or "",
        )


@dataclass
class Transaction(StorageRecord):
    """
    A balanced set of entries committed as one unit
    Identified by its transaction number; ``id`` mirrors it.
    """
    transaction_number: str
    transaction_type: TransactionType
    description: str
    date: date
    entries: List[Entry]
    status: TransactionStatus = TransactionStatus.POSTED
    sequence: int = 0
    created_by: Optional[str] = None
    reference: Optional[str] = None
    reverses: Optional[str] = None
    posted_at: Optional[datetime] = None

    @property
    def total_debits(self) -> Decimal:
        return total(e.debit_amount for e in self.entries)

    @property
    def total_credits(self) -> Decimal:
        return total(e.credit_amount for e in self.entries)

    @property
    def is_posted(self) -> bool:
        return self.status == TransactionStatus.POSTED

    def get_affected_accounts(self) -> Set[str]:
        return {e.account_number for e in self.entries}

    def entries_for(self, account_number: str) -> List[Entry]:
        return [e for e in self.entries if e.account_number == account_number]

    def to_dict(self) -> Dict:
        return {
            'id': self.id,
            'created_at': self.created_at.isoformat(),
            'updated_at': self.updated_at.isoformat(),
            'transaction_number': self.transaction_number,
            'transaction_type': self.transaction_type.value,
            'description': self.description,
            'date': self.date.isoformat(),
            'entries': [e.to_dict() for e in self.entries],
            'status': self.status.value,
            'sequence': self.sequence,
            'created_by': self.created_by,
            'reference': self.reference,
            'reverses': self.reverses,
            'posted_at': self.posted_at.isoformat() if self.posted_at else None,
        }

    @classmethod
    def from_dict(cls, data: Dict) -> 'Transaction':
        posted_at = data.get('posted_at')
        return cls(
            id=data['id'],
            created_at=datetime.fromisoformat(data['created_at']),
            updated_at=datetime.fromisoformat(data['updated_at']),
            transaction_number=data['transaction_number'],
            transaction_type=TransactionType(data['transaction_type']),
            description=data['description'],
            date=date.fromisoformat(data['date']),
            entries=[Entry.from_dict(e) for e in data['entries']],
            status=TransactionStatus(data['status']),
            sequence=data.get('sequence', 0),
            created_by=data.get('created_by'),
            reference=data.get('reference'),
            reverses=data.get('reverses'),
            posted_at=datetime.fromisoformat(posted_at) if posted_at else None,
        )


@dataclass
class JournalFilter:
    """
    Explicit query over the journal

    Every field is optional; unset fields do not restrict. Dates are
    inclusive. ``status`` defaults to POSTED since only posted
    transactions count toward balances and reports.
    """
    date_from: Optional[date] = None
    date_to: Optional[date] = None
    account_number: Optional[str] = None
    status: Optional[TransactionStatus] = TransactionStatus.POSTED
    transaction_type: Optional[TransactionType] = None

    def matches(self, transaction: Transaction) -> bool:
        if self.status is not None and transaction.status != self.status:
            return False
        if self.date_from is not None and transaction.date < self.date_from:
            return False
        if self.date_to is not None and transaction.date > self.date_to:
            return False
        if self.transaction_type is not None and transaction.transaction_type != self.transaction_type:
            return False
        if (self.account_number is not None
                and self.account_number not in transaction.get_affected_accounts()):
            return False
        return True


class TransactionNumberGenerator:
    """
    Builds ``<TYPE><epoch-millis><4-digit random>`` numbers

    The millisecond part never goes backwards or repeats within a process,
    and the random suffix separates processes sharing a clock tick.
    """

    def __init__(self, clock=None, rng: Optional[random.Random] = None):
        self._clock = clock or (lambda: int(time.time() * 1000))
        self._rng = rng or random.SystemRandom()
        self._last_millis = 0
        self._lock = threading.Lock()

    def generate(self, transaction_type: TransactionType) -> str:
        with self._lock:
            millis = max(self._clock(), self._last_millis + 1)
            self._last_millis = millis
        suffix = self._rng.randint(1000, 9999)
        return f"{transaction_type.value}{millis}{suffix}"


def journal_order(transaction: Transaction) -> Tuple[date, int]:
    """Sort key: transaction date, then commit order"""
    return (transaction.date, transaction.sequence)


class TransactionJournal:
    """
    Storage-backed journal of transactions

    The journal only appends. Callers doing several reads that must agree
    with each other wrap them in ``storage.snapshot()``.
    """

    SEQUENCE_NAME = "journal"

    def __init__(self, storage: StorageInterface,
                 number_generator: Optional[TransactionNumberGenerator] = None):
        self.storage = storage
        self.table_name = "transactions"
        self.number_generator = number_generator or TransactionNumberGenerator()

    def new_transaction_number(self, transaction_type: TransactionType) -> str:
        """Generate a number not yet present in the journal"""
        while True:
            number = self.number_generator.generate(transaction_type)
            if not self.storage.exists(self.table_name, number):
                return number

    def append(
        self,
        transaction_type: TransactionType,
        description: str,
        txn_date: date,
        entries: List[Entry],
        created_by: Optional[str] = None,
        reference: Optional[str] = None,
        reverses: Optional[str] = None
    ) -> Transaction:
        """
        Write a transaction and all its entries as one atomic unit

        Balance and account checks belong to the posting engine; the
        journal only guards the structural minimum.
        """
        if len(entries) < 2:
            raise ValidationError("Transaction must have at least two entries")

        with self.storage.atomic():
            now = datetime.now(timezone.utc)
            number = self.new_transaction_number(transaction_type)
            transaction = Transaction(
                id=number,
                created_at=now,
                updated_at=now,
                transaction_number=number,
                transaction_type=transaction_type,
                description=description,
                date=txn_date,
                entries=list(entries),
                status=TransactionStatus.POSTED,
                sequence=self.storage.next_sequence(self.SEQUENCE_NAME),
                created_by=created_by,
                reference=reference,
                reverses=reverses,
                posted_at=now,
            )
            if self.storage.exists(self.table_name, number):
                raise ConflictError(f"Transaction {number} already exists")
            self.storage.save(self.table_name, number, transaction.to_dict())
        return transaction

    def get(self, transaction_number: str) -> Transaction:
        data = self.storage.load(self.table_name, transaction_number)
        if not data:
            raise NotFoundError(
                f"Transaction {transaction_number} not found",
                entity_type="transaction", key=transaction_number
            )
        return Transaction.from_dict(data)

    def all(self) -> List[Transaction]:
        return [Transaction.from_dict(d) for d in self.storage.load_all(self.table_name)]

    def find(self, journal_filter: Optional[JournalFilter] = None) -> List[Transaction]:
        """Transactions matching the filter in journal order"""
        journal_filter = journal_filter or JournalFilter()
        with self.storage.snapshot():
            transactions = [t for t in self.all() if journal_filter.matches(t)]
        transactions.sort(key=journal_order)
        return transactions

    def iter_entries(
        self,
        account_number: str,
        journal_filter: Optional[JournalFilter] = None
    ) -> Iterator[Tuple[Transaction, Entry]]:
        """(transaction, entry) pairs for one account in journal order"""
        base = journal_filter or JournalFilter()
        scoped = JournalFilter(
            date_from=base.date_from,
            date_to=base.date_to,
            account_number=account_number,
            status=base.status,
            transaction_type=base.transaction_type,
        )
        for transaction in self.find(scoped):
            for entry in transaction.entries_for(account_number):
                yield transaction, entry

    def has_entries_for_account(self, account_number: str) -> bool:
        """True if any transaction, in any status, references the account"""
        return any(
            account_number in t.get_affected_accounts() for t in self.all()
        )

    def find_reversal_of(self, transaction_number: str) -> Optional[Transaction]:
        for transaction in self.all():
            if transaction.reverses == transaction_number and transaction.is_posted:
                return transaction
        return None

    def count(self) -> int:
        return self.storage.count(self.table_name)

"""
Test suite for the transaction journal and its query filter
"""

import pytest
from decimal import Decimal
from datetime import date

from bookkeeping.errors import NotFoundError, ValidationError
from bookkeeping.journal import (
    Entry, JournalFilter, TransactionStatus, TransactionType
)
from bookkeeping.posting import EntryInput


def move(book, transaction_type, debit_account, credit_account, amount, on):
    return book.post_transaction(
        transaction_type, "Movement", on,
        [EntryInput(account_id=debit_account, debit_amount=Decimal(amount)),
         EntryInput(account_id=credit_account, credit_amount=Decimal(amount))]
    )


@pytest.fixture
def journal_book(book):
    move(book, "CRV", "1000", "4000", "100", date(2024, 1, 10))
    move(book, "BPV", "5100", "1100", "40", date(2024, 1, 5))
    move(book, "JV", "1200", "4000", "60", date(2024, 2, 1))
    return book


class TestTransactionType:

    def test_parse(self):
        assert TransactionType.parse("brv") == TransactionType.BRV
        assert TransactionType.parse(" JV ") == TransactionType.JV

    def test_labels(self):
        assert TransactionType.CRV.label == "Cash Receipt"
        assert TransactionType.JV.label == "Journal Voucher"

    def test_unknown(self):
        with pytest.raises(ValidationError):
            TransactionType.parse("ABC")


class TestEntry:

    def test_sides(self):
        entry = Entry(1, "1000", Decimal('25.00'), Decimal('0'))

        assert entry.is_debit
        assert not entry.is_credit
        assert entry.amount == Decimal('25.00')


class TestJournalQueries:

    def test_find_orders_by_date_then_sequence(self, journal_book):
        transactions = journal_book.list_transactions()
        assert [t.date for t in transactions] == [
            date(2024, 1, 5), date(2024, 1, 10), date(2024, 2, 1)
        ]

    def test_filter_by_date_range(self, journal_book):
        transactions = journal_book.list_transactions(
            JournalFilter(date_from=date(2024, 1, 6), date_to=date(2024, 1, 31))
        )
        assert [t.transaction_type for t in transactions] == [TransactionType.CRV]

    def test_filter_by_account(self, journal_book):
        transactions = journal_book.list_transactions(JournalFilter(account_number="4000"))
        assert [t.transaction_type for t in transactions] == [
            TransactionType.CRV, TransactionType.JV
        ]

    def test_filter_by_type(self, journal_book):
        transactions = journal_book.list_transactions(
            JournalFilter(transaction_type=TransactionType.BPV)
        )
        assert len(transactions) == 1
        assert transactions[0].get_affected_accounts() == {"5100", "1100"}

    def test_filter_by_status(self, journal_book):
        assert journal_book.list_transactions(
            JournalFilter(status=TransactionStatus.CANCELLED)
        ) == []
        assert len(journal_book.list_transactions(JournalFilter(status=None))) == 3

    def test_iter_entries(self, journal_book):
        pairs = list(journal_book.journal.iter_entries("4000"))

        assert [entry.credit_amount for _, entry in pairs] == [
            Decimal('100.00'), Decimal('60.00')
        ]

    def test_has_entries_for_account(self, journal_book):
        assert journal_book.journal.has_entries_for_account("1100")
        assert not journal_book.journal.has_entries_for_account("5200")

    def test_get_missing_transaction(self, journal_book):
        with pytest.raises(NotFoundError) as exc_info:
            journal_book.get_transaction("JV12345")
        assert exc_info.value.entity_type == "transaction"


class TestAppend:

    def test_append_requires_two_entries(self, book):
        with pytest.raises(ValidationError):
            book.journal.append(
                TransactionType.JV, "One line", date(2024, 1, 1),
                [Entry(1, "1000", Decimal('1.00'), Decimal('0'))]
            )

    def test_stored_transaction_reloads_unchanged(self, book):
        txn = move(book, "CPV", "5200", "1000", "12.34", date(2024, 3, 3))
        reloaded = book.get_transaction(txn.transaction_number)

        assert reloaded.to_dict() == txn.to_dict()

"""
Test suite for trial balance, income statement, balance sheet and the
daily expense report
"""

import csv
import io
import json
import pytest
from decimal import Decimal
from datetime import date

from bookkeeping.accounts import AccountType
from bookkeeping.amounts import ZERO
from bookkeeping.errors import ValidationError
from bookkeeping.journal import Entry, TransactionType
from bookkeeping.posting import EntryInput
from bookkeeping.reporting import AccountFilter, CURRENT_EARNINGS_LABEL, ReportFormat


def move(book, debit_account, credit_account, amount, on, description="Movement"):
    return book.post_transaction(
        "JV", description, on,
        [EntryInput(account_id=debit_account, debit_amount=Decimal(amount)),
         EntryInput(account_id=credit_account, credit_amount=Decimal(amount))]
    )


@pytest.fixture
def trading_book(book):
    """Cash sale of 500 and a 300 shipping bill paid from the bank"""
    move(book, "1000", "4000", "500", date(2024, 1, 15), "Cash sale")
    move(book, "5100", "1100", "300", date(2024, 1, 20), "Courier invoice")
    return book


def inject_unbalanced(book):
    """Write a lopsided transaction straight into the journal"""
    return book.journal.append(
        transaction_type=TransactionType.JV,
        description="Corrupt import",
        txn_date=date(2024, 1, 31),
        entries=[
            Entry(1, "1000", Decimal('100.00'), ZERO),
            Entry(2, "4000", ZERO, Decimal('60.00')),
        ]
    )


class TestTrialBalance:

    def test_balanced_books(self, trading_book):
        """Scenario D: two balanced postings"""
        report = trading_book.trial_balance()

        assert report.total_debits == Decimal('800.00')
        assert report.total_credits == Decimal('800.00')
        assert report.balanced
        assert report.difference == Decimal('0')

    def test_rows_cover_every_account(self, trading_book):
        report = trading_book.trial_balance()
        rows = {row.account.account_number: row for row in report.rows}

        assert len(rows) == 9
        assert rows["1000"].total_debits == Decimal('500.00')
        assert rows["1100"].total_credits == Decimal('300.00')
        assert rows["1100"].balance == Decimal('-300.00')
        assert rows["4000"].balance == Decimal('500.00')
        assert rows["2000"].total_debits == Decimal('0')

    def test_empty_books_balance(self, book):
        report = book.trial_balance()
        assert report.total_debits == Decimal('0')
        assert report.balanced

    def test_unbalanced_data_is_flagged_not_raised(self, trading_book):
        inject_unbalanced(trading_book)

        report = trading_book.trial_balance()

        assert not report.balanced
        assert report.total_debits == Decimal('900.00')
        assert report.total_credits == Decimal('860.00')
        assert report.difference == Decimal('40.00')

    def test_as_of_date(self, trading_book):
        report = trading_book.trial_balance(as_of=date(2024, 1, 16))
        assert report.total_debits == Decimal('500.00')
        assert report.balanced

    def test_filter_by_type(self, trading_book):
        report = trading_book.trial_balance(AccountFilter(account_types=[AccountType.EXPENSE]))
        assert [row.account.account_number for row in report.rows] == ["5000", "5100", "5200"]

    def test_filter_skips_zero_rows(self, trading_book):
        report = trading_book.trial_balance(AccountFilter(include_zero=False))
        numbers = [row.account.account_number for row in report.rows]
        assert numbers == ["1000", "1100", "4000", "5100"]
        assert report.balanced

    def test_filter_by_subtree(self, trading_book):
        trading_book.create_account("1010", "Petty Cash", AccountType.ASSET, parent="1000")
        trading_book.create_account("1011", "Till", AccountType.ASSET, parent="1010")

        report = trading_book.trial_balance(AccountFilter(under="1000"))

        assert [row.account.account_number for row in report.rows] == ["1000", "1010", "1011"]

    def test_filter_by_numbers(self, trading_book):
        report = trading_book.trial_balance(AccountFilter(account_numbers=["1000", "4000"]))
        assert report.total_debits == Decimal('500.00')
        assert report.total_credits == Decimal('500.00')


class TestRoundingResidual:
    """Postings accepted within tolerance keep the books balanced"""

    @pytest.fixture
    def rounded_book(self, book):
        for day in (10, 11, 12):
            book.post_transaction(
                "CRV", "Rounded sale", date(2024, 1, day),
                [EntryInput(account_id="1000", debit_amount=Decimal('100.00')),
                 EntryInput(account_id="4000", credit_amount=Decimal('99.99'))]
            )
        return book

    def test_trial_balance_stays_balanced(self, rounded_book):
        report = rounded_book.trial_balance()

        assert report.difference == Decimal('0.03')
        assert report.rounding_residual == Decimal('0.03')
        assert report.balanced

    def test_balance_sheet_stays_balanced(self, rounded_book):
        sheet = rounded_book.balance_sheet()

        assert sheet.difference == Decimal('0.03')
        assert sheet.balanced

    def test_corrupt_data_still_flagged(self, rounded_book):
        inject_unbalanced(rounded_book)

        assert not rounded_book.trial_balance().balanced
        assert not rounded_book.balance_sheet().balanced


class TestIncomeStatement:

    def test_net_income(self, trading_book):
        statement = trading_book.income_statement()

        assert statement.total_revenue == Decimal('500.00')
        assert statement.total_expenses == Decimal('300.00')
        assert statement.net_income == Decimal('200.00')
        assert [line.account_number for line in statement.revenue] == ["4000"]
        assert [line.account_number for line in statement.expenses] == ["5000", "5100", "5200"]

    def test_date_range_is_inclusive(self, trading_book):
        move(trading_book, "1000", "4000", "80", date(2024, 2, 1), "February sale")

        january = trading_book.income_statement(date(2024, 1, 1), date(2024, 1, 31))
        february = trading_book.income_statement(date(2024, 2, 1), date(2024, 2, 1))

        assert january.total_revenue == Decimal('500.00')
        assert february.total_revenue == Decimal('80.00')
        assert february.total_expenses == Decimal('0')

    def test_revenue_debit_reduces_revenue(self, trading_book):
        move(trading_book, "4000", "1000", "50", date(2024, 1, 25), "Refund")
        assert trading_book.income_statement().total_revenue == Decimal('450.00')

    def test_reversed_range_rejected(self, trading_book):
        with pytest.raises(ValidationError):
            trading_book.income_statement(date(2024, 2, 1), date(2024, 1, 1))


class TestBalanceSheet:

    def test_balances_with_current_earnings(self, trading_book):
        sheet = trading_book.balance_sheet()

        assert sheet.total_assets == Decimal('200.00')
        assert sheet.total_liabilities == Decimal('0')
        assert sheet.equity[-1].name == CURRENT_EARNINGS_LABEL
        assert sheet.equity[-1].amount == Decimal('200.00')
        assert sheet.equity[-1].account is None
        assert sheet.total_equity == Decimal('200.00')
        assert sheet.balanced

    def test_owner_investment_and_liabilities(self, trading_book):
        move(trading_book, "1100", "3000", "1000", date(2024, 1, 2), "Owner investment")
        move(trading_book, "5000", "2000", "120", date(2024, 1, 3), "Goods on credit")

        sheet = trading_book.balance_sheet()

        assert sheet.total_assets == Decimal('1200.00')
        assert sheet.total_liabilities == Decimal('120.00')
        assert sheet.total_equity == Decimal('1080.00')
        assert sheet.balanced

    def test_as_of_date(self, trading_book):
        sheet = trading_book.balance_sheet(as_of=date(2024, 1, 15))
        assert sheet.total_assets == Decimal('500.00')
        assert sheet.balanced

    def test_unbalanced_data_is_flagged(self, trading_book):
        inject_unbalanced(trading_book)

        sheet = trading_book.balance_sheet()

        assert not sheet.balanced
        assert sheet.difference == Decimal('40.00')


class TestDailyExpenses:

    def test_newest_day_first_then_account_name(self, book):
        move(book, "5200", "1000", "20", date(2024, 1, 5), "Paper")
        move(book, "5000", "1000", "40", date(2024, 1, 5), "Stock")
        move(book, "5100", "1100", "10", date(2024, 1, 6), "Courier")
        move(book, "1000", "4000", "99", date(2024, 1, 6), "Sale")

        report = book.daily_expenses()

        assert [(line.date, line.account_name) for line in report.lines] == [
            (date(2024, 1, 6), "Shipping Expenses"),
            (date(2024, 1, 5), "Cost of Goods Sold"),
            (date(2024, 1, 5), "Office Supplies"),
        ]
        assert report.total == Decimal('70.00')
        assert report.by_day() == {
            date(2024, 1, 6): Decimal('10.00'),
            date(2024, 1, 5): Decimal('60.00'),
        }

    def test_description_falls_back_to_transaction(self, book):
        move(book, "5200", "1000", "20", date(2024, 1, 5), "Paper")
        assert book.daily_expenses().lines[0].description == "Paper"

    def test_date_range(self, book):
        move(book, "5200", "1000", "20", date(2024, 1, 5))
        move(book, "5200", "1000", "30", date(2024, 2, 5))

        report = book.daily_expenses(date(2024, 2, 1), date(2024, 2, 28))

        assert report.total == Decimal('30.00')


class TestExport:

    def test_dict(self, trading_book):
        data = trading_book.export_report(trading_book.trial_balance(), ReportFormat.DICT)

        assert data['report_id'] == "trial_balance"
        assert data['balanced'] is True
        assert data['totals']['total_debits'] == Decimal('800.00')

    def test_json(self, trading_book):
        data = json.loads(
            trading_book.export_report(trading_book.balance_sheet(), ReportFormat.JSON)
        )

        assert data['report_id'] == "balance_sheet"
        assert data['totals']['total_assets'] == "200.00"
        assert data['equity'][-1]['account_name'] == CURRENT_EARNINGS_LABEL

    def test_csv(self, trading_book):
        content = trading_book.export_report(trading_book.income_statement(), ReportFormat.CSV)
        rows = list(csv.DictReader(io.StringIO(content)))

        assert rows[0]['section'] == "revenue"
        assert rows[0]['account_number'] == "4000"
        assert rows[0]['amount'] == "500.00"
        assert {row['section'] for row in rows} == {"revenue", "expense"}

    def test_csv_of_empty_report(self, book):
        assert book.export_report(book.daily_expenses(), ReportFormat.CSV) == ""

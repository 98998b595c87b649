"""
Reporting Engine Module

Aggregates the journal and account-type metadata into trial balance,
income statement and balance sheet. Reports are pure reads over one
storage snapshot. Books that do not balance are reported through flags on
the result, never raised: the report's job is to expose the state of the
data, and remediation is the caller's decision.
"""

from decimal import Decimal
from datetime import date, datetime, timezone
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Set, Tuple, Union
from enum import Enum
import csv
import io
import json
import logging

from .accounts import Account, AccountRegistry, AccountType
from .amounts import DEFAULT_TOLERANCE, ZERO, total, within_tolerance
from .balances import signed_amount
from .errors import ValidationError
from .journal import JournalFilter, TransactionJournal
from .storage import StorageInterface


logger = logging.getLogger("bookkeeping.reporting")

CURRENT_EARNINGS_LABEL = "Current earnings"


class ReportFormat(Enum):
    """Output formats for reports"""
    DICT = "dict"
    CSV = "csv"
    JSON = "json"


@dataclass
class AccountFilter:
    """
    Restricts which accounts a trial balance shows

    ``under`` keeps an account and all its descendants in the chart.
    """
    account_types: Optional[Sequence[AccountType]] = None
    account_numbers: Optional[Sequence[str]] = None
    under: Optional[str] = None
    active_only: bool = False
    include_zero: bool = True

    def select(self, accounts: List[Account]) -> List[Account]:
        selected = accounts
        if self.account_types:
            types = {AccountType.parse(t) for t in self.account_types}
            selected = [a for a in selected if a.account_type in types]
        if self.account_numbers:
            numbers = set(self.account_numbers)
            selected = [a for a in selected if a.account_number in numbers]
        if self.under:
            subtree = _subtree(accounts, self.under)
            selected = [a for a in selected if a.account_number in subtree]
        if self.active_only:
            selected = [a for a in selected if a.is_active]
        return selected


def _subtree(accounts: List[Account], root: str) -> Set[str]:
    children: Dict[str, List[str]] = {}
    for account in accounts:
        if account.parent_number:
            children.setdefault(account.parent_number, []).append(account.account_number)
    found = set()
    pending = [root]
    while pending:
        number = pending.pop()
        if number in found:
            continue
        found.add(number)
        pending.extend(children.get(number, []))
    return found


@dataclass(frozen=True)
class TrialBalanceRow:
    account: Account
    total_debits: Decimal
    total_credits: Decimal

    @property
    def balance(self) -> Decimal:
        """Net movement in the account's normal-balance sign"""
        return signed_amount(self.account.account_type, self.total_debits, self.total_credits)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'account_number': self.account.account_number,
            'account_name': self.account.name,
            'account_type': self.account.account_type.value,
            'total_debits': self.total_debits,
            'total_credits': self.total_credits,
            'balance': self.balance,
        }


@dataclass
class TrialBalance:
    rows: List[TrialBalanceRow]
    total_debits: Decimal
    total_credits: Decimal
    balanced: bool
    rounding_residual: Decimal = ZERO
    as_of: Optional[date] = None
    generated_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    report_id = "trial_balance"

    @property
    def difference(self) -> Decimal:
        return self.total_debits - self.total_credits

    def data_rows(self) -> List[Dict[str, Any]]:
        return [row.to_dict() for row in self.rows]

    def to_dict(self) -> Dict[str, Any]:
        return {
            'report_id': self.report_id,
            'generated_at': self.generated_at,
            'as_of': self.as_of,
            'rows': self.data_rows(),
            'totals': {
                'total_debits': self.total_debits,
                'total_credits': self.total_credits,
                'difference': self.difference,
                'rounding_residual': self.rounding_residual,
            },
            'balanced': self.balanced,
        }


@dataclass(frozen=True)
class StatementLine:
    """
    One line of a financial statement

    ``account`` is None for computed lines such as current earnings.
    """
    name: str
    amount: Decimal
    account: Optional[Account] = None

    @property
    def account_number(self) -> Optional[str]:
        return self.account.account_number if self.account else None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'account_number': self.account_number,
            'account_name': self.name,
            'amount': self.amount,
        }


@dataclass
class IncomeStatement:
    revenue: List[StatementLine]
    expenses: List[StatementLine]
    date_from: Optional[date] = None
    date_to: Optional[date] = None
    generated_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    report_id = "income_statement"

    @property
    def total_revenue(self) -> Decimal:
        return total(line.amount for line in self.revenue)

    @property
    def total_expenses(self) -> Decimal:
        return total(line.amount for line in self.expenses)

    @property
    def net_income(self) -> Decimal:
        return self.total_revenue - self.total_expenses

    def data_rows(self) -> List[Dict[str, Any]]:
        rows = [dict(line.to_dict(), section='revenue') for line in self.revenue]
        rows.extend(dict(line.to_dict(), section='expense') for line in self.expenses)
        return rows

    def to_dict(self) -> Dict[str, Any]:
        return {
            'report_id': self.report_id,
            'generated_at': self.generated_at,
            'date_from': self.date_from,
            'date_to': self.date_to,
            'revenue': [line.to_dict() for line in self.revenue],
            'expenses': [line.to_dict() for line in self.expenses],
            'totals': {
                'total_revenue': self.total_revenue,
                'total_expenses': self.total_expenses,
                'net_income': self.net_income,
            },
        }


@dataclass
class BalanceSheet:
    assets: List[StatementLine]
    liabilities: List[StatementLine]
    equity: List[StatementLine]
    tolerance: Decimal = DEFAULT_TOLERANCE
    rounding_residual: Decimal = ZERO
    as_of: Optional[date] = None
    generated_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    report_id = "balance_sheet"

    @property
    def total_assets(self) -> Decimal:
        return total(line.amount for line in self.assets)

    @property
    def total_liabilities(self) -> Decimal:
        return total(line.amount for line in self.liabilities)

    @property
    def total_equity(self) -> Decimal:
        return total(line.amount for line in self.equity)

    @property
    def total_liabilities_and_equity(self) -> Decimal:
        return self.total_liabilities + self.total_equity

    @property
    def difference(self) -> Decimal:
        return self.total_assets - self.total_liabilities_and_equity

    @property
    def balanced(self) -> bool:
        """
        Integrity flag: assets == liabilities + equity within tolerance,
        after allowing for the rounding residual of accepted postings
        """
        return within_tolerance(self.difference, self.rounding_residual, self.tolerance)

    @property
    def totals(self) -> Dict[str, Decimal]:
        return {
            'total_assets': self.total_assets,
            'total_liabilities': self.total_liabilities,
            'total_equity': self.total_equity,
            'total_liabilities_and_equity': self.total_liabilities_and_equity,
            'difference': self.difference,
            'rounding_residual': self.rounding_residual,
        }

    def data_rows(self) -> List[Dict[str, Any]]:
        rows = [dict(line.to_dict(), section='asset') for line in self.assets]
        rows.extend(dict(line.to_dict(), section='liability') for line in self.liabilities)
        rows.extend(dict(line.to_dict(), section='equity') for line in self.equity)
        return rows

    def to_dict(self) -> Dict[str, Any]:
        return {
            'report_id': self.report_id,
            'generated_at': self.generated_at,
            'as_of': self.as_of,
            'assets': [line.to_dict() for line in self.assets],
            'liabilities': [line.to_dict() for line in self.liabilities],
            'equity': [line.to_dict() for line in self.equity],
            'totals': self.totals,
            'balanced': self.balanced,
        }


@dataclass(frozen=True)
class ExpenseLine:
    date: date
    transaction_number: str
    account_number: str
    account_name: str
    description: str
    amount: Decimal

    def to_dict(self) -> Dict[str, Any]:
        return {
            'date': self.date,
            'transaction_number': self.transaction_number,
            'account_number': self.account_number,
            'account_name': self.account_name,
            'description': self.description,
            'amount': self.amount,
        }


@dataclass
class ExpenseReport:
    lines: List[ExpenseLine]
    date_from: Optional[date] = None
    date_to: Optional[date] = None
    generated_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    report_id = "daily_expenses"

    @property
    def total(self) -> Decimal:
        return total(line.amount for line in self.lines)

    def by_day(self) -> Dict[date, Decimal]:
        days: Dict[date, Decimal] = {}
        for line in self.lines:
            days[line.date] = days.get(line.date, ZERO) + line.amount
        return days

    def data_rows(self) -> List[Dict[str, Any]]:
        return [line.to_dict() for line in self.lines]

    def to_dict(self) -> Dict[str, Any]:
        return {
            'report_id': self.report_id,
            'generated_at': self.generated_at,
            'date_from': self.date_from,
            'date_to': self.date_to,
            'rows': self.data_rows(),
            'totals': {'total_expenses': self.total},
        }


Report = Union[TrialBalance, IncomeStatement, BalanceSheet, ExpenseReport]


class ReportGenerator:
    """
    Financial statements derived from posted entries
    """

    def __init__(
        self,
        storage: StorageInterface,
        registry: AccountRegistry,
        journal: TransactionJournal,
        tolerance: Decimal = DEFAULT_TOLERANCE
    ):
        self.storage = storage
        self.registry = registry
        self.journal = journal
        self.tolerance = tolerance

    def _account_totals(self, journal_filter: JournalFilter) -> Dict[str, Tuple[Decimal, Decimal]]:
        """Per-account (debits, credits) over matching transactions"""
        totals: Dict[str, Tuple[Decimal, Decimal]] = {}
        for transaction in self.journal.find(journal_filter):
            for entry in transaction.entries:
                debits, credits = totals.get(entry.account_number, (ZERO, ZERO))
                totals[entry.account_number] = (
                    debits + entry.debit_amount,
                    credits + entry.credit_amount
                )
        return totals

    def _rounding_residual(self, journal_filter: JournalFilter) -> Decimal:
        """
        Net debits minus credits of transactions that were accepted while
        off by no more than the tolerance. Each of them is allowed to be,
        so the books may carry their sum without being out of balance.
        """
        return total(
            t.total_debits - t.total_credits
            for t in self.journal.find(journal_filter)
            if within_tolerance(t.total_debits, t.total_credits, self.tolerance)
        )

    def _statement_lines(
        self,
        accounts: List[Account],
        account_type: AccountType,
        totals: Dict[str, Tuple[Decimal, Decimal]]
    ) -> List[StatementLine]:
        lines = []
        for account in accounts:
            if account.account_type != account_type:
                continue
            debits, credits = totals.get(account.account_number, (ZERO, ZERO))
            lines.append(StatementLine(
                name=account.name,
                amount=signed_amount(account_type, debits, credits),
                account=account
            ))
        return lines

    def trial_balance(
        self,
        account_filter: Optional[AccountFilter] = None,
        as_of: Optional[date] = None
    ) -> TrialBalance:
        """
        Total debits and credits per account

        ``balanced`` is False when the totals differ by more than the
        rounding residual of accepted postings plus the tolerance; the
        report is still returned.
        """
        account_filter = account_filter or AccountFilter()
        with self.storage.snapshot():
            accounts = account_filter.select(self.registry.list_accounts())
            totals = self._account_totals(JournalFilter(date_to=as_of))
            residual = self._rounding_residual(JournalFilter(date_to=as_of))

        rows = []
        for account in accounts:
            debits, credits = totals.get(account.account_number, (ZERO, ZERO))
            if not account_filter.include_zero and debits == ZERO and credits == ZERO:
                continue
            rows.append(TrialBalanceRow(account, debits, credits))

        total_debits = total(row.total_debits for row in rows)
        total_credits = total(row.total_credits for row in rows)
        balanced = within_tolerance(total_debits - total_credits, residual, self.tolerance)
        if not balanced:
            logger.warning(
                "Trial balance does not balance: debits=%s credits=%s",
                total_debits, total_credits
            )

        return TrialBalance(
            rows=rows,
            total_debits=total_debits,
            total_credits=total_credits,
            balanced=balanced,
            rounding_residual=residual,
            as_of=as_of
        )

    def income_statement(
        self,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None
    ) -> IncomeStatement:
        """
        Revenue (credit - debit) and expenses (debit - credit) for
        transactions dated within [date_from, date_to]
        """
        if date_from and date_to and date_from > date_to:
            raise ValidationError(f"date_from {date_from} is after date_to {date_to}")

        with self.storage.snapshot():
            accounts = self.registry.list_accounts()
            totals = self._account_totals(JournalFilter(date_from=date_from, date_to=date_to))

        return IncomeStatement(
            revenue=self._statement_lines(accounts, AccountType.REVENUE, totals),
            expenses=self._statement_lines(accounts, AccountType.EXPENSE, totals),
            date_from=date_from,
            date_to=date_to
        )

    def balance_sheet(self, as_of: Optional[date] = None) -> BalanceSheet:
        """
        Assets, liabilities and equity as of a date

        Revenue and expense accounts are not closed into equity by any
        posting, so their net is shown as a computed current earnings line
        under equity. A remaining mismatch means bad data and is reported
        through ``balanced``/``difference``.
        """
        with self.storage.snapshot():
            accounts = self.registry.list_accounts()
            totals = self._account_totals(JournalFilter(date_to=as_of))
            residual = self._rounding_residual(JournalFilter(date_to=as_of))

        revenue = self._statement_lines(accounts, AccountType.REVENUE, totals)
        expenses = self._statement_lines(accounts, AccountType.EXPENSE, totals)
        earnings = total(line.amount for line in revenue) - total(line.amount for line in expenses)

        equity = self._statement_lines(accounts, AccountType.EQUITY, totals)
        equity.append(StatementLine(name=CURRENT_EARNINGS_LABEL, amount=earnings))

        sheet = BalanceSheet(
            assets=self._statement_lines(accounts, AccountType.ASSET, totals),
            liabilities=self._statement_lines(accounts, AccountType.LIABILITY, totals),
            equity=equity,
            tolerance=self.tolerance,
            rounding_residual=residual,
            as_of=as_of
        )
        if not sheet.balanced:
            logger.warning(
                "Balance sheet does not balance: assets=%s liabilities+equity=%s",
                sheet.total_assets, sheet.total_liabilities_and_equity
            )
        return sheet

    def daily_expenses(
        self,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None
    ) -> ExpenseReport:
        """Debits to expense accounts, newest day first"""
        with self.storage.snapshot():
            expense_accounts = {
                a.account_number: a
                for a in self.registry.list_accounts(account_type=AccountType.EXPENSE)
            }
            transactions = self.journal.find(JournalFilter(date_from=date_from, date_to=date_to))

        lines = []
        for transaction in transactions:
            for entry in transaction.entries:
                account = expense_accounts.get(entry.account_number)
                if account is None or not entry.is_debit:
                    continue
                lines.append(ExpenseLine(
                    date=transaction.date,
                    transaction_number=transaction.transaction_number,
                    account_number=account.account_number,
                    account_name=account.name,
                    description=entry.description or transaction.description,
                    amount=entry.debit_amount
                ))
        # Stable sorts: name ascending within each day, days descending
        lines.sort(key=lambda line: line.account_name)
        lines.sort(key=lambda line: line.date, reverse=True)

        return ExpenseReport(lines=lines, date_from=date_from, date_to=date_to)

    def export_report(self, report: Report, format: ReportFormat) -> Union[Dict, str]:
        """
        Export report result in specified format
        """
        if format == ReportFormat.DICT:
            return report.to_dict()

        elif format == ReportFormat.JSON:
            return json.dumps(report.to_dict(), indent=2, default=str)

        elif format == ReportFormat.CSV:
            output = io.StringIO()
            rows = report.data_rows()
            if rows:
                writer = csv.DictWriter(output, fieldnames=list(rows[0].keys()))
                writer.writeheader()
                for row in rows:
                    writer.writerow(row)
            csv_content = output.getvalue()
            output.close()
            return csv_content

        else:
            raise ValueError(f"Unsupported export format: {format}")

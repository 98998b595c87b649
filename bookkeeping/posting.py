"""
Posting Engine Module

Validates a transaction against the chart of accounts and commits it to
the journal with all its entries as one atomic unit. Balances are never
touched here; they are derived from the journal on read.
"""

from decimal import Decimal, InvalidOperation
from datetime import date, datetime
from typing import Any, Dict, List, Optional, Sequence, Union
import logging

from pydantic import BaseModel, Field, ValidationError as PydanticValidationError, field_validator

from .accounts import AccountRegistry
from .amounts import (
    Currency, DEFAULT_TOLERANCE, ZERO, quantize, to_amount, total, within_tolerance
)
from .audit import AuditTrail, AuditEventType
from .errors import (
    BookkeepingError, ConflictError, ImbalanceError, ValidationError
)
from .journal import Entry, Transaction, TransactionJournal, TransactionType
from .logging_config import log_action
from .storage import StorageInterface


logger = logging.getLogger("bookkeeping.posting")


class EntryInput(BaseModel):
    """
    Entry as submitted by collaborators

    ``account_id`` is either the account's generated integer id or its
    account number. The unused side may be omitted, zero or null.
    """
    account_id: Union[int, str]
    debit_amount: Decimal = Field(default=ZERO, ge=0)
    credit_amount: Decimal = Field(default=ZERO, ge=0)
    description: str = ""

    @field_validator('debit_amount', 'credit_amount', mode='before')
    @classmethod
    def _parse_amount(cls, value: Any) -> Decimal:
        return to_amount(value)

    @field_validator('description', mode='before')
    @classmethod
    def _none_to_blank(cls, value: Any) -> str:
        return "" if value is None else value


EntryLike = Union[EntryInput, Dict[str, Any]]


def _coerce_date(value: Union[date, datetime, str, None]) -> date:
    if value is None:
        return date.today()
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        try:
            return date.fromisoformat(value.strip()[:10])
        except ValueError:
            pass
    raise ValidationError(f"Invalid transaction date {value!r}; expected YYYY-MM-DD")


def _describe_pydantic_error(position: int, exc: PydanticValidationError) -> str:
    details = "; ".join(
        f"{'.'.join(str(p) for p in err['loc']) or 'entry'}: {err['msg']}"
        for err in exc.errors()
    )
    return f"Entry {position} is malformed: {details}"


class PostingEngine:
    """
    Validates and atomically commits transactions

    Nothing is ever updated or deleted once posted. A correction is a new
    transaction; ``build_reversal`` prepares its entries.
    """

    def __init__(
        self,
        storage: StorageInterface,
        registry: AccountRegistry,
        journal: TransactionJournal,
        audit_trail: Optional[AuditTrail] = None,
        currency: Currency = Currency.USD,
        tolerance: Decimal = DEFAULT_TOLERANCE
    ):
        self.storage = storage
        self.registry = registry
        self.journal = journal
        self.audit_trail = audit_trail
        self.currency = currency
        self.tolerance = tolerance

    def _log_rejection(self, exc: BookkeepingError, actor: Optional[str]) -> None:
        log_action(
            logger, "warning", f"Posting rejected: {exc}",
            user_id=actor, action="post_transaction", resource="transaction",
            extra={"error": exc.code}
        )

    def parse_entries(self, entries: Sequence[EntryLike]) -> List[EntryInput]:
        """Coerce collaborator input into EntryInput objects"""
        parsed = []
        for position, raw in enumerate(entries, start=1):
            if isinstance(raw, EntryInput):
                parsed.append(raw)
                continue
            if not isinstance(raw, dict):
                raise ValidationError(f"Entry {position} must be a mapping, got {type(raw).__name__}")
            try:
                parsed.append(EntryInput.model_validate(raw))
            except PydanticValidationError as e:
                raise ValidationError(_describe_pydantic_error(position, e)) from e
        return parsed

    def post_transaction(
        self,
        transaction_type: Union[TransactionType, str],
        description: str,
        txn_date: Union[date, datetime, str, None],
        entries: Sequence[EntryLike],
        reference: Optional[str] = None,
        actor: Optional[str] = None,
        reverses: Optional[str] = None
    ) -> Transaction:
        """
        Validate and post a transaction

        Args:
            transaction_type: CRV, CPV, BPV, BRV or JV
            description: Human-readable description
            txn_date: Accounting date of the transaction
            entries: Ordered EntryInput objects or dicts with account_id,
                debit_amount, credit_amount, description
            reference: Optional external reference number
            actor: Identity of the caller, recorded as the creator
            reverses: Number of the transaction this one reverses

        Returns:
            The posted Transaction with its generated number

        Raises:
            ValidationError: Too few entries, malformed or one-sided-rule
                violations, inactive account, bad type/date/description
            NotFoundError: An entry's account (or the reversed
                transaction) does not exist
            ConflictError: The reversed transaction was already reversed
            ImbalanceError: Debits and credits differ beyond the tolerance
        """
        try:
            if entries is None or len(entries) < 2:
                raise ValidationError(
                    "Transaction must have at least two entries (too few entries)"
                )
            txn_type = TransactionType.parse(transaction_type)
            if not description or not str(description).strip():
                raise ValidationError("Transaction description is required")
            posting_date = _coerce_date(txn_date)
            inputs = self.parse_entries(entries)

            with self.storage.atomic():
                lines = self._build_lines(inputs)

                total_debits = total(line.debit_amount for line in lines)
                total_credits = total(line.credit_amount for line in lines)
                if not within_tolerance(total_debits, total_credits, self.tolerance):
                    raise ImbalanceError(total_debits, total_credits)

                if reverses is not None:
                    self._check_reversible(reverses)

                transaction = self.journal.append(
                    transaction_type=txn_type,
                    description=str(description).strip(),
                    txn_date=posting_date,
                    entries=lines,
                    created_by=actor,
                    reference=reference,
                    reverses=reverses
                )

                if self.audit_trail:
                    self.audit_trail.log_event(
                        event_type=AuditEventType.TRANSACTION_POSTED,
                        entity_type="transaction",
                        entity_id=transaction.transaction_number,
                        metadata={
                            "transaction_type": txn_type,
                            "date": posting_date,
                            "total_debits": total_debits,
                            "total_credits": total_credits,
                            "accounts": sorted(transaction.get_affected_accounts()),
                            "reference": reference,
                            "reverses": reverses
                        },
                        user_id=actor
                    )
        except BookkeepingError as e:
            self._log_rejection(e, actor)
            raise

        log_action(
            logger, "info", f"Posted {transaction.transaction_number}",
            user_id=actor, action="post_transaction",
            resource=transaction.transaction_number,
            extra={"total": str(total_debits), "entries": len(lines)}
        )
        return transaction

    def _build_lines(self, inputs: List[EntryInput]) -> List[Entry]:
        """Resolve accounts and enforce the one-sided rule, in entry order"""
        lines = []
        for position, item in enumerate(inputs, start=1):
            account = self.registry.get_account(item.account_id)
            if not account.is_active:
                raise ValidationError(
                    f"Entry {position}: account {account.account_number} is inactive"
                )

            try:
                debit = quantize(item.debit_amount, self.currency)
                credit = quantize(item.credit_amount, self.currency)
            except InvalidOperation:
                raise ValidationError(f"Entry {position}: amount out of range")

            if debit == ZERO and credit == ZERO:
                raise ValidationError(
                    f"Entry {position}: must have either a debit or a credit amount"
                )
            if debit != ZERO and credit != ZERO:
                raise ValidationError(
                    f"Entry {position}: cannot have both debit and credit amounts"
                )

            lines.append(Entry(
                line_number=position,
                account_number=account.account_number,
                debit_amount=debit,
                credit_amount=credit,
                description=item.description,
            ))
        return lines

    def _check_reversible(self, transaction_number: str) -> None:
        original = self.journal.get(transaction_number)
        if not original.is_posted:
            raise ValidationError(
                f"Only posted transactions can be reversed; "
                f"{transaction_number} is {original.status.value}"
            )
        existing = self.journal.find_reversal_of(transaction_number)
        if existing:
            raise ConflictError(
                f"Transaction {transaction_number} was already reversed "
                f"by {existing.transaction_number}"
            )

    def build_reversal(self, transaction_number: str) -> List[EntryInput]:
        """
        Entries that undo a posted transaction: same accounts, debits and
        credits swapped. Nothing is written.
        """
        original = self.journal.get(transaction_number)
        return [
            EntryInput(
                account_id=entry.account_number,
                debit_amount=entry.credit_amount,
                credit_amount=entry.debit_amount,
                description=(f"REVERSAL: {entry.description}"
                             if entry.description else "REVERSAL"),
            )
            for entry in original.entries
        ]

    def reverse_transaction(
        self,
        transaction_number: str,
        reason: str,
        txn_date: Union[date, datetime, str, None] = None,
        actor: Optional[str] = None
    ) -> Transaction:
        """Post the reversal of a transaction as a new journal voucher"""
        original = self.journal.get(transaction_number)
        return self.post_transaction(
            transaction_type=TransactionType.JV,
            description=f"REVERSAL of {transaction_number}: {reason}",
            txn_date=txn_date or original.date,
            entries=self.build_reversal(transaction_number),
            reference=original.reference,
            actor=actor,
            reverses=transaction_number
        )

"""
Account Registry Module

Manages the chart of accounts: a tree of typed accounts keyed by a stable,
human-assigned account number. Parent links are stored as account numbers
and validated by walking the ancestor chain, so the tree can never hold a
cycle. Accounts referenced by any entry are never physically deleted.
"""

from datetime import datetime, timezone
from dataclasses import dataclass
from typing import Dict, List, Optional, Union
from enum import Enum
import logging
import threading

from .audit import AuditTrail, AuditEventType
from .errors import ConflictError, NotFoundError, ValidationError
from .journal import TransactionJournal
from .storage import StorageInterface, StorageRecord


logger = logging.getLogger("bookkeeping.accounts")

AccountKey = Union[int, str]


class AccountType(Enum):
    """Standard accounting account types"""
    ASSET = "asset"           # Debit normal balance
    LIABILITY = "liability"   # Credit normal balance
    EQUITY = "equity"         # Credit normal balance
    REVENUE = "revenue"       # Credit normal balance
    EXPENSE = "expense"       # Debit normal balance

    @property
    def is_debit_normal(self) -> bool:
        return self in (AccountType.ASSET, AccountType.EXPENSE)

    @classmethod
    def parse(cls, value: Union['AccountType', str]) -> 'AccountType':
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            try:
                return cls(value.strip().lower())
            except ValueError:
                pass
        valid = ", ".join(t.value for t in cls)
        raise ValidationError(f"Unknown account type {value!r}; expected one of {valid}")


# Chart shipped with the logistics back office
DEFAULT_CHART = [
    ("1000", "Cash", AccountType.ASSET),
    ("1100", "Bank", AccountType.ASSET),
    ("1200", "Accounts Receivable", AccountType.ASSET),
    ("2000", "Accounts Payable", AccountType.LIABILITY),
    ("3000", "Owner's Equity", AccountType.EQUITY),
    ("4000", "Sales Revenue", AccountType.REVENUE),
    ("5000", "Cost of Goods Sold", AccountType.EXPENSE),
    ("5100", "Shipping Expenses", AccountType.EXPENSE),
    ("5200", "Office Supplies", AccountType.EXPENSE),
]


@dataclass
class Account(StorageRecord):
    """
    Chart of accounts node

    ``id`` is a generated sequential integer (kept as a string like every
    other record id); ``account_number`` is the stable business key.
    """
    account_number: str
    name: str
    account_type: AccountType
    parent_number: Optional[str] = None
    is_active: bool = True
    currency: str = "USD"

    @property
    def numeric_id(self) -> int:
        return int(self.id)

    @property
    def is_root(self) -> bool:
        return self.parent_number is None

    def to_dict(self) -> Dict:
        result = super().to_dict()
        result['account_type'] = self.account_type.value
        return result

    @classmethod
    def from_dict(cls, data: Dict) -> 'Account':
        return cls(
            id=data['id'],
            created_at=datetime.fromisoformat(data['created_at']),
            updated_at=datetime.fromisoformat(data['updated_at']),
            account_number=data['account_number'],
            name=data['name'],
            account_type=AccountType(data['account_type']),
            parent_number=data.get('parent_number'),
            is_active=data.get('is_active', True),
            currency=data.get('currency', "USD"),
        )


class AccountRegistry:
    """
    Owns the chart of accounts

    Mutations take the registry lock and run inside one storage atomic
    block, so the check-then-write on the tree cannot interleave with
    another mutation.
    """

    SEQUENCE_NAME = "accounts"

    def __init__(
        self,
        storage: StorageInterface,
        journal: TransactionJournal,
        audit_trail: Optional[AuditTrail] = None,
        currency: str = "USD"
    ):
        self.storage = storage
        self.journal = journal
        self.audit_trail = audit_trail
        self.currency = currency
        self.table_name = "accounts"
        self._lock = threading.RLock()

    def _audit(self, event_type: AuditEventType, account: Account,
               actor: Optional[str], **metadata) -> None:
        if self.audit_trail:
            self.audit_trail.log_event(
                event_type=event_type,
                entity_type="account",
                entity_id=account.account_number,
                metadata=metadata,
                user_id=actor
            )

    def create_account(
        self,
        account_number: str,
        name: str,
        account_type: Union[AccountType, str],
        parent: Optional[AccountKey] = None,
        actor: Optional[str] = None,
        is_active: bool = True
    ) -> Account:
        """
        Add an account to the chart

        Raises:
            ValidationError: Blank number/name, unknown type, or a parent
                link that would form a cycle
            ConflictError: Account number already exists
            NotFoundError: Parent given but missing
        """
        account_number = (account_number or "").strip()
        name = (name or "").strip()
        if not account_number:
            raise ValidationError("Account number is required")
        if not name:
            raise ValidationError("Account name is required")
        account_type = AccountType.parse(account_type)

        with self._lock, self.storage.atomic():
            if self.storage.exists(self.table_name, account_number):
                raise ConflictError(f"Account number {account_number} already exists")

            parent_number = None
            if parent is not None:
                parent_number = self.get_account(parent).account_number
                self._check_no_cycle(account_number, parent_number)

            now = datetime.now(timezone.utc)
            account = Account(
                id=str(self.storage.next_sequence(self.SEQUENCE_NAME)),
                created_at=now,
                updated_at=now,
                account_number=account_number,
                name=name,
                account_type=account_type,
                parent_number=parent_number,
                is_active=is_active,
                currency=self.currency,
            )
            self._save(account)
            self._audit(
                AuditEventType.ACCOUNT_CREATED, account, actor,
                name=name, account_type=account_type,
                parent_number=parent_number
            )

        logger.info("Created account %s (%s)", account_number, account_type.value)
        return account

    def get_account(self, key: AccountKey) -> Account:
        """
        Look up an account by generated id (int) or account number (str)

        A string that is not a known account number is tried as an id,
        so "7" finds the account whose id is 7 when no account is
        numbered "7".
        """
        if isinstance(key, Account):
            key = key.account_number

        if isinstance(key, str):
            data = self.storage.load(self.table_name, key.strip())
            if data:
                return Account.from_dict(data)
            if key.strip().isdigit():
                return self._get_by_id(int(key))
        elif isinstance(key, int) and not isinstance(key, bool):
            return self._get_by_id(key)

        raise NotFoundError(f"Account {key!r} not found", entity_type="account", key=str(key))

    def _get_by_id(self, account_id: int) -> Account:
        matches = self.storage.find(self.table_name, {'id': str(account_id)})
        if not matches:
            raise NotFoundError(
                f"Account {account_id!r} not found",
                entity_type="account", key=str(account_id)
            )
        return Account.from_dict(matches[0])

    def exists(self, key: AccountKey) -> bool:
        try:
            self.get_account(key)
        except NotFoundError:
            return False
        return True

    def list_accounts(
        self,
        account_type: Optional[Union[AccountType, str]] = None,
        active_only: bool = False
    ) -> List[Account]:
        """All accounts ordered by account number ascending"""
        wanted = AccountType.parse(account_type) if account_type else None
        accounts = [Account.from_dict(d) for d in self.storage.load_all(self.table_name)]
        if wanted:
            accounts = [a for a in accounts if a.account_type == wanted]
        if active_only:
            accounts = [a for a in accounts if a.is_active]
        accounts.sort(key=lambda a: a.account_number)
        return accounts

    def get_children(self, key: AccountKey) -> List[Account]:
        number = self.get_account(key).account_number
        return [a for a in self.list_accounts() if a.parent_number == number]

    def get_ancestors(self, key: AccountKey) -> List[Account]:
        """Parent first, root last"""
        account = self.get_account(key)
        ancestors = []
        seen = {account.account_number}
        while account.parent_number and account.parent_number not in seen:
            account = self.get_account(account.parent_number)
            seen.add(account.account_number)
            ancestors.append(account)
        return ancestors

    def update_account(
        self,
        key: AccountKey,
        name: Optional[str] = None,
        parent: Optional[AccountKey] = None,
        account_type: Optional[Union[AccountType, str]] = None,
        clear_parent: bool = False,
        actor: Optional[str] = None
    ) -> Account:
        """
        Rename, reparent or retype an account

        Reparenting re-runs the cycle check. Changing the type of an
        account that already has entries is refused because it would flip
        the sign of its historical balance.
        """
        with self._lock, self.storage.atomic():
            account = self.get_account(key)
            changes = {}

            if name is not None:
                name = name.strip()
                if not name:
                    raise ValidationError("Account name is required")
                changes['name'] = name
                account.name = name

            if clear_parent:
                changes['parent_number'] = None
                account.parent_number = None
            elif parent is not None:
                parent_number = self.get_account(parent).account_number
                self._check_no_cycle(account.account_number, parent_number)
                changes['parent_number'] = parent_number
                account.parent_number = parent_number

            if account_type is not None:
                new_type = AccountType.parse(account_type)
                if new_type != account.account_type:
                    if self.journal.has_entries_for_account(account.account_number):
                        raise ConflictError(
                            f"Account {account.account_number} has existing entries; "
                            f"its type cannot change"
                        )
                    changes['account_type'] = new_type
                    account.account_type = new_type

            if changes:
                account.updated_at = datetime.now(timezone.utc)
                self._save(account)
                self._audit(AuditEventType.ACCOUNT_UPDATED, account, actor, **changes)

        return account

    def deactivate_account(self, key: AccountKey, actor: Optional[str] = None) -> Account:
        """Keep history but refuse new postings to the account"""
        return self._set_active(key, False, actor)

    def activate_account(self, key: AccountKey, actor: Optional[str] = None) -> Account:
        return self._set_active(key, True, actor)

    def _set_active(self, key: AccountKey, active: bool, actor: Optional[str]) -> Account:
        with self._lock, self.storage.atomic():
            account = self.get_account(key)
            if account.is_active != active:
                account.is_active = active
                account.updated_at = datetime.now(timezone.utc)
                self._save(account)
                event_type = (AuditEventType.ACCOUNT_ACTIVATED if active
                              else AuditEventType.ACCOUNT_DEACTIVATED)
                self._audit(event_type, account, actor)
        return account

    def delete_account(self, key: AccountKey, actor: Optional[str] = None) -> Account:
        """
        Remove an account that no entry references

        Raises:
            NotFoundError: Account does not exist
            ConflictError: Account has existing entries or child accounts
        """
        with self._lock, self.storage.atomic():
            account = self.get_account(key)
            number = account.account_number

            if self.journal.has_entries_for_account(number):
                raise ConflictError(f"Cannot delete account {number}: has existing entries")
            if any(a.parent_number == number for a in self.list_accounts()):
                raise ConflictError(f"Cannot delete account {number}: has child accounts")

            self.storage.delete(self.table_name, number)
            self._audit(AuditEventType.ACCOUNT_DELETED, account, actor, name=account.name)

        logger.info("Deleted account %s", number)
        return account

    def seed_default_chart(self, actor: Optional[str] = None) -> List[Account]:
        """Create the default chart, skipping numbers that already exist"""
        created = []
        with self._lock:
            for number, name, account_type in DEFAULT_CHART:
                if self.storage.exists(self.table_name, number):
                    continue
                created.append(self.create_account(number, name, account_type, actor=actor))
        return created

    def _check_no_cycle(self, account_number: str, parent_number: str) -> None:
        """Walk up from the proposed parent; meeting the account is a cycle"""
        if parent_number == account_number:
            raise ValidationError(f"Account {account_number} cannot be its own parent")

        seen = set()
        current = parent_number
        while current is not None:
            if current == account_number:
                raise ValidationError(
                    f"Setting parent {parent_number} on account {account_number} "
                    f"would create a cycle"
                )
            if current in seen:
                raise ValidationError(f"Account tree already contains a cycle at {current}")
            seen.add(current)
            data = self.storage.load(self.table_name, current)
            current = data.get('parent_number') if data else None

    def _save(self, account: Account) -> None:
        self.storage.save(self.table_name, account.account_number, account.to_dict())

"""
Ledger Store Module

The account ledger: one row per account, owning the canonical balance and
overdraft counter. Rows are looked up by linear scan and updated by
rewriting the whole table with only the matching row replaced.

Row layout: ``accountId;customerId;accountType;cardId;cardType;balance;overdraftCount``
"""

from dataclasses import dataclass, replace
from decimal import Decimal
from enum import Enum
from typing import Dict, Iterator, List, Optional, Union
import threading

from .cards import CardTier
from .currency import to_amount
from .errors import InvalidArgumentError, NotFoundError
from .storage import DELIMITER, StorageInterface, join_row, split_row


class AccountType(Enum):
    """Bank account kinds; a customer holds at most one of each"""
    CHECKING = "checking"
    SAVINGS = "savings"

    @classmethod
    def parse(cls, value: Union["AccountType", str]) -> "AccountType":
        """Parse an account type from its value or menu letter (C/S)"""
        if isinstance(value, cls):
            return value
        text = str(value).strip().lower()
        for account_type in cls:
            if text in (account_type.value, account_type.value[0]):
                return account_type
        raise InvalidArgumentError("Account type must be either checking or savings")


ACCOUNT_ROW_FIELDS = 7


@dataclass(frozen=True)
class Account:
    """
    Immutable account record. Balance changes produce a new record via
    ``with_balance``; nothing mutates an Account in place.
    """
    account_id: int
    customer_id: str
    account_type: AccountType
    card_id: int
    card_tier: CardTier
    balance: Decimal
    overdraft_count: int = 0

    def __post_init__(self):
        object.__setattr__(self, 'balance', to_amount(self.balance))
        if self.overdraft_count < 0:
            raise ValueError("Overdraft count cannot be negative")

    def with_balance(self, balance: Decimal, overdraft_count: int) -> "Account":
        return replace(self, balance=balance, overdraft_count=overdraft_count)

    def to_row(self) -> str:
        return join_row([
            self.account_id,
            self.customer_id,
            self.account_type.value,
            self.card_id,
            self.card_tier.value,
            self.balance,
            self.overdraft_count,
        ])

    @classmethod
    def from_row(cls, line: str) -> "Account":
        fields = split_row(line, ACCOUNT_ROW_FIELDS)
        return cls(
            account_id=int(fields[0]),
            customer_id=fields[1],
            account_type=AccountType(fields[2]),
            card_id=int(fields[3]),
            card_tier=CardTier(fields[4]),
            balance=Decimal(fields[5]),
            overdraft_count=int(fields[6]),
        )


def _row_account_id(line: str) -> int:
    """Account ID of a ledger row without decoding the rest of it"""
    return int(line.split(DELIMITER, 1)[0])


class LedgerStore:
    """
    Key-indexed view over the account ledger table.
    
    Every call re-reads storage; no balances are cached between calls.
    """
    
    def __init__(self, storage: StorageInterface, table: str = "accounts"):
        self.storage = storage
        self.table = table
        self._lock = threading.RLock()
    
    def find_account(self, account_id: int) -> Account:
        """
        Find an account by ID
        
        Raises:
            NotFoundError: If no row matches
        """
        for line in self.storage.iter_lines(self.table):
            if _row_account_id(line) == account_id:
                return Account.from_row(line)
        raise NotFoundError(f"No bank account with account ID {account_id} was found")
    
    def exists(self, account_id: int) -> bool:
        try:
            self.find_account(account_id)
        except NotFoundError:
            return False
        return True
    
    def update_balance(self, account_id: int, new_balance: Decimal, new_overdraft_count: int) -> Account:
        """
        Rewrite the balance and overdraft counter of one account.
        
        All other fields and all other rows are preserved verbatim. This is a
        single-account write; callers touching two accounts issue two calls.
        
        Returns:
            The updated Account
            
        Raises:
            NotFoundError: If no row matches
        """
        with self._lock:
            lines = self.storage.read_lines(self.table)
            for index, line in enumerate(lines):
                if _row_account_id(line) != account_id:
                    continue
                updated = Account.from_row(line).with_balance(new_balance, new_overdraft_count)
                lines[index] = updated.to_row()
                self.storage.write_lines(self.table, lines)
                return updated
        raise NotFoundError(f"No bank account with account ID {account_id} was found")
    
    def list_accounts_for_customer(self, customer_id: str) -> List[Account]:
        """At most one account per type for a customer, in ledger order"""
        found: Dict[AccountType, Account] = {}
        for line in self.storage.iter_lines(self.table):
            account = Account.from_row(line)
            if account.customer_id != customer_id or account.account_type in found:
                continue
            found[account.account_type] = account
            if len(found) == len(AccountType):
                break
        return list(found.values())
    
    def add_account(self, account: Account) -> Account:
        """Append a new account row"""
        with self._lock:
            if self.exists(account.account_id):
                raise InvalidArgumentError(f"Account ID {account.account_id} is already in use")
            self.storage.append_line(self.table, account.to_row())
        return account
    
    def all_accounts(self) -> Iterator[Account]:
        for line in self.storage.iter_lines(self.table):
            yield Account.from_row(line)
    
    def last_account_id(self) -> Optional[int]:
        """Highest account ID in the ledger, or None when empty"""
        ids = [_row_account_id(line) for line in self.storage.iter_lines(self.table)]
        return max(ids) if ids else None

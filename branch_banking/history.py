"""
Transaction History Module

Append-only log of money movements. Daily limits are enforced by replaying
this log, never by a stored running counter.

Row layout:
``customerId;accountId;timestamp;kind;amount;counterpartyAccountId;isOwnAccountTransfer``

Non-transfer rows carry ``0;false`` in the two transfer-only fields.
"""

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Callable, Iterator, Optional, Union

from .currency import ZERO, to_amount
from .errors import InvalidArgumentError
from .storage import StorageInterface, join_row, split_row


class TransactionKind(Enum):
    """Kinds of money movement"""
    DEPOSIT = "deposit"
    WITHDRAW = "withdraw"
    TRANSFER = "transfer"


ALL_KINDS = "all"
HISTORY_ROW_FIELDS = 7

KindFilter = Union[TransactionKind, str]


def parse_kind_filter(kind: KindFilter) -> Optional[TransactionKind]:
    """Resolve a kind filter; ``"all"`` resolves to None (no filtering)"""
    if isinstance(kind, TransactionKind):
        return kind
    text = str(kind).strip().lower()
    if text == ALL_KINDS:
        return None
    try:
        return TransactionKind(text)
    except ValueError:
        raise InvalidArgumentError(
            "Please choose transaction type of deposit, withdraw, transfer, or all only"
        )


@dataclass(frozen=True)
class TransactionRecord:
    """
    One completed money movement against one account.
    
    ``amount`` is signed from the account's point of view: deposits and
    incoming transfer legs are positive, withdrawals and outgoing legs are
    negative.
    """
    customer_id: str
    account_id: int
    timestamp: datetime
    kind: TransactionKind
    amount: Decimal
    counterparty_account_id: Optional[int] = None
    is_own_account_transfer: bool = False

    def __post_init__(self):
        object.__setattr__(self, 'amount', to_amount(self.amount))
        if self.kind != TransactionKind.TRANSFER and self.counterparty_account_id is not None:
            raise ValueError("Only transfers carry a counterparty account")

    @property
    def is_debit(self) -> bool:
        return self.amount < ZERO

    def to_row(self) -> str:
        return join_row([
            self.customer_id,
            self.account_id,
            self.timestamp.isoformat(),
            self.kind.value,
            self.amount,
            self.counterparty_account_id or 0,
            "true" if self.is_own_account_transfer else "false",
        ])

    @classmethod
    def from_row(cls, line: str) -> "TransactionRecord":
        fields = split_row(line, HISTORY_ROW_FIELDS)
        counterparty = int(fields[5])
        return cls(
            customer_id=fields[0],
            account_id=int(fields[1]),
            timestamp=datetime.fromisoformat(fields[2]),
            kind=TransactionKind(fields[3]),
            amount=Decimal(fields[4]),
            counterparty_account_id=counterparty or None,
            is_own_account_transfer=fields[6].strip().lower() == "true",
        )


class HistoryQuery:
    """
    Lazy, restartable view over the history log.
    
    Each iteration re-scans storage from the start, so iterating twice with
    no intervening append yields the same records.
    """

    def __init__(self, storage: StorageInterface, table: str,
                 predicate: Callable[[TransactionRecord], bool]):
        self._storage = storage
        self._table = table
        self._predicate = predicate

    def __iter__(self) -> Iterator[TransactionRecord]:
        for line in self._storage.iter_lines(self._table):
            record = TransactionRecord.from_row(line)
            if self._predicate(record):
                yield record

    def filter(self, predicate: Callable[[TransactionRecord], bool]) -> "HistoryQuery":
        """Narrow this query with another predicate"""
        outer = self._predicate
        return HistoryQuery(self._storage, self._table, lambda r: outer(r) and predicate(r))


class TransactionHistoryStore:
    """Append-only transaction history with filtered replay"""
    
    def __init__(self, storage: StorageInterface, table: str = "transaction_history"):
        self.storage = storage
        self.table = table
    
    def append(self, record: TransactionRecord) -> None:
        """Append one record; the only mutation this store supports"""
        self.append_row(record.to_row())
    
    def append_row(self, row: str) -> None:
        """Append a row already serialized by ``TransactionRecord.to_row``"""
        self.storage.append_line(self.table, row)
    
    def all_records(self) -> HistoryQuery:
        return HistoryQuery(self.storage, self.table, lambda record: True)
    
    def query_by_account_and_type(self, account_id: int, kind: KindFilter = ALL_KINDS) -> HistoryQuery:
        """Records of one account, optionally of one kind, in log order"""
        wanted = parse_kind_filter(kind)
        return self.all_records().filter(
            lambda record: record.account_id == account_id
            and (wanted is None or record.kind == wanted)
        )
    
    def query_by_account_type_and_date(self, account_id: int, kind: KindFilter,
                                       on_date: date) -> HistoryQuery:
        """Records of one account and kind on a calendar date (time of day ignored)"""
        return self.query_by_account_and_type(account_id, kind).filter(
            lambda record: record.timestamp.date() == on_date
        )
    
    def sum_amount_for_date(self, account_id: int, kind: KindFilter, on_date: date,
                            is_own_account_transfer: Optional[bool] = None) -> Decimal:
        """
        Sum of absolute amounts moved on a date.
        
        For transfers only outgoing legs are counted, optionally narrowed to
        own-account or other-account transfers.
        """
        query = self.query_by_account_type_and_date(account_id, kind, on_date)
        if parse_kind_filter(kind) == TransactionKind.TRANSFER:
            query = query.filter(lambda record: record.is_debit)
        if is_own_account_transfer is not None:
            query = query.filter(
                lambda record: record.kind == TransactionKind.TRANSFER
                and record.is_own_account_transfer == is_own_account_transfer
            )
        
        total = ZERO
        for record in query:
            total += abs(record.amount)
        return total

"""
Transfer Intent Journal

Write-ahead record for two-leg transfers. A ``begin`` row is appended before
the first ledger write and a ``commit`` row after both legs and both history
records are written, so a crash between the legs leaves a detectable open
intent. Nothing is rolled back or replayed automatically.

Row layout: ``intentId;state;fromAccountId;toAccountId;amount;timestamp``
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Dict, List
import uuid

from .storage import StorageInterface, join_row, split_row


class IntentState(Enum):
    BEGIN = "begin"
    COMMIT = "commit"


INTENT_ROW_FIELDS = 6


@dataclass(frozen=True)
class TransferIntent:
    intent_id: str
    from_account_id: int
    to_account_id: int
    amount: Decimal
    timestamp: datetime

    def to_row(self, state: IntentState) -> str:
        return join_row([
            self.intent_id,
            state.value,
            self.from_account_id,
            self.to_account_id,
            self.amount,
            self.timestamp.isoformat(),
        ])


class TransferJournal:
    """Append-only journal of transfer intents"""

    def __init__(self, storage: StorageInterface, table: str = "transfer_intents"):
        self.storage = storage
        self.table = table

    def begin(self, from_account_id: int, to_account_id: int, amount: Decimal,
              timestamp: datetime) -> TransferIntent:
        intent = TransferIntent(
            intent_id=uuid.uuid4().hex,
            from_account_id=from_account_id,
            to_account_id=to_account_id,
            amount=amount,
            timestamp=timestamp,
        )
        self.storage.append_line(self.table, intent.to_row(IntentState.BEGIN))
        return intent

    def commit(self, intent: TransferIntent) -> None:
        self.storage.append_line(self.table, intent.to_row(IntentState.COMMIT))

    def pending(self) -> List[TransferIntent]:
        """Intents that began but never committed, in journal order"""
        open_intents: Dict[str, TransferIntent] = {}
        for line in self.storage.iter_lines(self.table):
            fields = split_row(line, INTENT_ROW_FIELDS)
            state = IntentState(fields[1])
            if state == IntentState.COMMIT:
                open_intents.pop(fields[0], None)
                continue
            open_intents[fields[0]] = TransferIntent(
                intent_id=fields[0],
                from_account_id=int(fields[2]),
                to_account_id=int(fields[3]),
                amount=Decimal(fields[4]),
                timestamp=datetime.fromisoformat(fields[5]),
            )
        return list(open_intents.values())

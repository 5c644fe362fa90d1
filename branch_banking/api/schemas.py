"""
Pydantic schemas for API requests and responses
"""

from typing import List, Optional
from pydantic import BaseModel, Field

from ..history import TransactionRecord
from ..ledger import Account
from ..transactions import ReconciliationResult, TransactionResult


class CreateAccountRequest(BaseModel):
    customer_id: str = Field(..., description="Owner CPR number")
    account_type: str = Field(..., description="Account type (checking, savings)")
    card_tier: str = Field(..., description="Debit card tier (standard, titanium, platinum)")


class DepositRequest(BaseModel):
    account_id: int
    amount: str = Field(..., description="Decimal amount as string")


class WithdrawRequest(BaseModel):
    account_id: int
    amount: str = Field(..., description="Decimal amount as string")


class TransferRequest(BaseModel):
    from_account_id: int
    to_account_id: int
    amount: str = Field(..., description="Decimal amount as string")


class AccountModel(BaseModel):
    account_id: int
    customer_id: str
    account_type: str
    card_id: int
    card_tier: str
    balance: str
    overdraft_count: int
    overdraft_state: Optional[str] = None

    @classmethod
    def from_account(cls, account: Account, overdraft_state: Optional[str] = None) -> 'AccountModel':
        return cls(
            account_id=account.account_id,
            customer_id=account.customer_id,
            account_type=account.account_type.value,
            card_id=account.card_id,
            card_tier=account.card_tier.value,
            balance=str(account.balance),
            overdraft_count=account.overdraft_count,
            overdraft_state=overdraft_state,
        )


class TransactionRecordModel(BaseModel):
    customer_id: str
    account_id: int
    timestamp: str
    kind: str
    amount: str
    counterparty_account_id: Optional[int] = None
    is_own_account_transfer: bool = False

    @classmethod
    def from_record(cls, record: TransactionRecord) -> 'TransactionRecordModel':
        return cls(
            customer_id=record.customer_id,
            account_id=record.account_id,
            timestamp=record.timestamp.isoformat(),
            kind=record.kind.value,
            amount=str(record.amount),
            counterparty_account_id=record.counterparty_account_id,
            is_own_account_transfer=record.is_own_account_transfer,
        )


class TransactionResponse(BaseModel):
    kind: str
    account_id: int
    amount: str
    balance: str
    overdraft_count: int
    fee: Optional[str] = None
    counterparty_account_id: Optional[int] = None
    records: List[TransactionRecordModel]
    message: str

    @classmethod
    def from_result(cls, result: TransactionResult, message: str) -> 'TransactionResponse':
        fee = None
        if result.withdrawal is not None and result.withdrawal.overdrawn:
            fee = str(result.withdrawal.fee)
        return cls(
            kind=result.kind.value,
            account_id=result.account.account_id,
            amount=str(result.amount),
            balance=str(result.balance),
            overdraft_count=result.account.overdraft_count,
            fee=fee,
            counterparty_account_id=(
                result.counterparty.account_id if result.counterparty else None
            ),
            records=[TransactionRecordModel.from_record(r) for r in result.records],
            message=message,
        )


class ReconciliationModel(BaseModel):
    account_id: int
    ledger_balance: str
    replayed_balance: str
    ledger_overdraft_count: int
    replayed_overdraft_count: int
    record_count: int
    consistent: bool

    @classmethod
    def from_result(cls, result: ReconciliationResult) -> 'ReconciliationModel':
        return cls(
            account_id=result.account_id,
            ledger_balance=str(result.ledger_balance),
            replayed_balance=str(result.replayed_balance),
            ledger_overdraft_count=result.ledger_overdraft_count,
            replayed_overdraft_count=result.replayed_overdraft_count,
            record_count=result.record_count,
            consistent=result.consistent,
        )

"""
Overdraft Policy Module

Per-account overdraft state machine, evaluated on withdrawals:

    NORMAL      counter == 0
    OVERDRAWN   0 < counter < cap
    LOCKED      counter >= cap

The first overdraft from NORMAL debits the full requested amount plus the
fee. Further overdrafts debit at most the withdrawal ceiling plus the fee.
Only a deposit that brings the balance back to zero or above clears the
counter once an account is LOCKED.
"""

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Tuple

from .currency import ZERO, to_amount
from .errors import OverdraftLockError


class OverdraftState(Enum):
    """Overdraft states of an account"""
    NORMAL = "normal"
    OVERDRAWN = "overdrawn"
    LOCKED = "locked"


@dataclass(frozen=True)
class WithdrawalOutcome:
    """Effect of one withdrawal on an account"""
    requested: Decimal
    debited: Decimal
    fee: Decimal
    new_balance: Decimal
    new_overdraft_count: int

    @property
    def overdrawn(self) -> bool:
        return self.fee > ZERO

    @property
    def capped(self) -> bool:
        return self.debited < self.requested


class OverdraftPolicy:
    """Overdraft fee, counter cap and withdrawal ceiling"""

    def __init__(self, fee: Decimal = Decimal("35.00"), count_cap: int = 3,
                 withdrawal_ceiling: Decimal = Decimal("500.00")):
        if count_cap < 1:
            raise ValueError("Overdraft count cap must be at least 1")
        self.fee = to_amount(fee)
        self.count_cap = count_cap
        self.withdrawal_ceiling = to_amount(withdrawal_ceiling)
        if self.fee < ZERO:
            raise ValueError("Overdraft fee cannot be negative")
        if self.withdrawal_ceiling <= ZERO:
            raise ValueError("Overdraft withdrawal ceiling must be positive")

    @classmethod
    def from_config(cls, config) -> "OverdraftPolicy":
        return cls(
            fee=config.overdraft_fee_amount,
            count_cap=config.overdraft_count_cap,
            withdrawal_ceiling=config.overdraft_ceiling_amount,
        )

    def state_of(self, overdraft_count: int) -> OverdraftState:
        if overdraft_count >= self.count_cap:
            return OverdraftState.LOCKED
        if overdraft_count > 0:
            return OverdraftState.OVERDRAWN
        return OverdraftState.NORMAL

    def ensure_unlocked(self, overdraft_count: int) -> None:
        """Raise OverdraftLockError if the counter has reached the cap"""
        if self.state_of(overdraft_count) == OverdraftState.LOCKED:
            raise OverdraftLockError(
                f"Account is locked after {overdraft_count} overdrafts; "
                f"deposit to bring the balance to zero or above"
            )

    def apply_withdrawal(self, balance: Decimal, overdraft_count: int,
                         amount: Decimal) -> WithdrawalOutcome:
        """
        Compute the new balance and counter for a withdrawal.
        
        Raises:
            OverdraftLockError: If the account is already LOCKED
        """
        self.ensure_unlocked(overdraft_count)
        state = self.state_of(overdraft_count)

        if balance >= amount:
            new_balance = balance - amount
            new_count = 0 if new_balance >= ZERO else overdraft_count
            return WithdrawalOutcome(amount, amount, ZERO, new_balance, new_count)

        if state == OverdraftState.NORMAL:
            debited = amount
        else:
            debited = min(amount, self.withdrawal_ceiling)

        return WithdrawalOutcome(
            requested=amount,
            debited=debited,
            fee=self.fee,
            new_balance=balance - debited - self.fee,
            new_overdraft_count=overdraft_count + 1,
        )

    def apply_deposit(self, balance: Decimal, overdraft_count: int,
                      amount: Decimal) -> Tuple[Decimal, int]:
        """New balance and counter after a deposit"""
        new_balance = balance + amount
        if new_balance >= ZERO:
            return new_balance, 0
        return new_balance, overdraft_count

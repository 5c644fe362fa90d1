"""
Transaction Processing Module

Deposits, withdrawals and transfers. Every operation follows the same
shape: authorize, check the card's daily limit against replayed history,
serialize the history record, mutate the ledger, then append the record.

The ledger and the history are two separate record files with no shared
commit. Operations run inside one process-wide critical section, and
transfers are bracketed by a write-ahead intent so that a half-applied
transfer is detectable.
"""

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import Callable, List, Optional, Tuple, Union
import threading

from .cards import CardPolicy, resolve_card_limits
from .currency import ZERO, format_amount, require_positive
from .errors import (
    AuthorizationError, BankingError, InsufficientFundsError,
    InvalidArgumentError, LimitExceededError
)
from .history import (
    ALL_KINDS, KindFilter, TransactionHistoryStore, TransactionKind, TransactionRecord
)
from .identity import Actor, IdentityProvider
from .intents import TransferIntent, TransferJournal
from .ledger import Account, LedgerStore
from .logging_config import get_logger, log_action
from .overdraft import OverdraftPolicy, OverdraftState, WithdrawalOutcome


AmountLike = Union[Decimal, int, str]


@dataclass(frozen=True)
class TransactionResult:
    """Outcome of a completed money movement"""
    kind: TransactionKind
    account: Account
    amount: Decimal
    records: Tuple[TransactionRecord, ...]
    counterparty: Optional[Account] = None
    withdrawal: Optional[WithdrawalOutcome] = None

    @property
    def balance(self) -> Decimal:
        """Balance of the acted-on account (the source, for transfers)"""
        return self.account.balance


@dataclass(frozen=True)
class AccountSummary:
    account: Account
    overdraft_state: OverdraftState


@dataclass(frozen=True)
class ReconciliationResult:
    """Ledger row compared with the balance replayed from history"""
    account_id: int
    ledger_balance: Decimal
    replayed_balance: Decimal
    ledger_overdraft_count: int
    replayed_overdraft_count: int
    record_count: int

    @property
    def consistent(self) -> bool:
        return (self.ledger_balance == self.replayed_balance and
                self.ledger_overdraft_count == self.replayed_overdraft_count)


class TransactionEngine:
    """
    Orchestrates money movements over the ledger and history stores
    """

    def __init__(
        self,
        ledger: LedgerStore,
        history: TransactionHistoryStore,
        identity: IdentityProvider,
        overdraft_policy: Optional[OverdraftPolicy] = None,
        journal: Optional[TransferJournal] = None,
        clock: Optional[Callable[[], datetime]] = None,
        lock: Optional[threading.RLock] = None
    ):
        self.ledger = ledger
        self.history = history
        self.identity = identity
        self.overdraft_policy = overdraft_policy or OverdraftPolicy()
        self.journal = journal
        self.clock = clock or datetime.now
        self.logger = get_logger("branch_banking.transactions")
        # Shared by every engine built over the same stores
        self._lock = lock or threading.RLock()

    # ------------------------------------------------------------------
    # Money movements
    # ------------------------------------------------------------------

    def deposit(self, account_id: int, amount: AmountLike) -> TransactionResult:
        """
        Deposit into an account

        Raises:
            InvalidArgumentError: If amount is not positive
            NotFoundError: If the account does not exist
            AuthorizationError: If a customer deposits into another person's account
            LimitExceededError: If today's deposits would exceed the card's cap
        """
        actor = self.identity.current_actor()
        try:
            amount = require_positive(amount)
            with self._lock:
                account = self.ledger.find_account(account_id)
                self._authorize(actor, account, "deposit into")

                now = self.clock()
                limits = resolve_card_limits(account.card_tier)
                self._check_daily_limit(
                    account, TransactionKind.DEPOSIT, amount,
                    limits.deposit_limit_daily, now.date()
                )

                record = TransactionRecord(
                    customer_id=actor.id,
                    account_id=account_id,
                    timestamp=now,
                    kind=TransactionKind.DEPOSIT,
                    amount=amount,
                )
                row = record.to_row()

                new_balance, new_count = self.overdraft_policy.apply_deposit(
                    account.balance, account.overdraft_count, amount
                )
                updated = self.ledger.update_balance(account_id, new_balance, new_count)
                self._append_history(actor, record, row)
        except BankingError as e:
            self._log_rejected(actor, "deposit", account_id, amount, e)
            raise

        log_action(
            self.logger, "info", "Deposit completed",
            user_id=actor.id, action="deposit", resource=f"account:{account_id}",
            extra={
                "amount": str(amount),
                "balance": str(updated.balance),
                "overdraft_count": updated.overdraft_count,
            }
        )
        return TransactionResult(TransactionKind.DEPOSIT, updated, amount, (record,))

    def withdraw(self, account_id: int, amount: AmountLike) -> TransactionResult:
        """
        Withdraw from an account, applying the overdraft policy

        The history record carries the requested amount even when the
        overdraft ceiling debits less, so daily limits count requests.

        Raises:
            InvalidArgumentError: If amount is not positive
            NotFoundError: If the account does not exist
            AuthorizationError: If a customer withdraws from another person's account
            OverdraftLockError: If the account is locked, checked before the daily cap
            LimitExceededError: If today's withdrawals would exceed the card's cap
        """
        actor = self.identity.current_actor()
        try:
            amount = require_positive(amount)
            with self._lock:
                account = self.ledger.find_account(account_id)
                self._authorize(actor, account, "withdraw from")

                self.overdraft_policy.ensure_unlocked(account.overdraft_count)

                now = self.clock()
                limits = resolve_card_limits(account.card_tier)
                self._check_daily_limit(
                    account, TransactionKind.WITHDRAW, amount,
                    limits.withdraw_limit_daily, now.date()
                )

                record = TransactionRecord(
                    customer_id=actor.id,
                    account_id=account_id,
                    timestamp=now,
                    kind=TransactionKind.WITHDRAW,
                    amount=-amount,
                )
                row = record.to_row()

                outcome = self.overdraft_policy.apply_withdrawal(
                    account.balance, account.overdraft_count, amount
                )
                updated = self.ledger.update_balance(
                    account_id, outcome.new_balance, outcome.new_overdraft_count
                )
                self._append_history(actor, record, row)
        except BankingError as e:
            self._log_rejected(actor, "withdraw", account_id, amount, e)
            raise

        if outcome.overdrawn:
            log_action(
                self.logger, "warning", "Withdrawal overdrew account",
                user_id=actor.id, action="overdraft", resource=f"account:{account_id}",
                extra={
                    "requested": str(outcome.requested),
                    "debited": str(outcome.debited),
                    "fee": str(outcome.fee),
                    "balance": str(outcome.new_balance),
                    "overdraft_count": outcome.new_overdraft_count,
                    "state": self.overdraft_policy.state_of(outcome.new_overdraft_count).value,
                }
            )
        log_action(
            self.logger, "info", "Withdrawal completed",
            user_id=actor.id, action="withdraw", resource=f"account:{account_id}",
            extra={"amount": str(amount), "balance": str(updated.balance)}
        )
        return TransactionResult(
            TransactionKind.WITHDRAW, updated, amount, (record,), withdrawal=outcome
        )

    def transfer(self, from_account_id: int, to_account_id: int,
                 amount: AmountLike) -> TransactionResult:
        """
        Transfer between two accounts. Transfers never overdraw.

        The source is debited and the destination credited by two separate
        ledger writes; one history record is appended per leg.

        Raises:
            InvalidArgumentError: If the accounts are identical or amount is not positive
            NotFoundError: If either account does not exist
            AuthorizationError: If a customer transfers from another person's account
            InsufficientFundsError: If the source balance is below amount
            LimitExceededError: If today's transfers of the same
                own/other-account class would exceed the card's cap
        """
        actor = self.identity.current_actor()
        try:
            if from_account_id == to_account_id:
                raise InvalidArgumentError(
                    "The account to transfer from must be different than the account to transfer to"
                )
            amount = require_positive(amount)
            with self._lock:
                source = self.ledger.find_account(from_account_id)
                self._authorize(actor, source, "transfer from")
                destination = self.ledger.find_account(to_account_id)

                if source.balance < amount:
                    raise InsufficientFundsError(
                        f"Your account balance is not enough to transfer {format_amount(amount)}"
                    )

                is_own_account = source.customer_id == destination.customer_id
                now = self.clock()
                limits = resolve_card_limits(source.card_tier)
                self._check_daily_limit(
                    source, TransactionKind.TRANSFER, amount,
                    limits.transfer_limit(is_own_account), now.date(),
                    is_own_account_transfer=is_own_account
                )

                records = (
                    TransactionRecord(
                        customer_id=actor.id,
                        account_id=from_account_id,
                        timestamp=now,
                        kind=TransactionKind.TRANSFER,
                        amount=-amount,
                        counterparty_account_id=to_account_id,
                        is_own_account_transfer=is_own_account,
                    ),
                    TransactionRecord(
                        customer_id=actor.id,
                        account_id=to_account_id,
                        timestamp=now,
                        kind=TransactionKind.TRANSFER,
                        amount=amount,
                        counterparty_account_id=from_account_id,
                        is_own_account_transfer=is_own_account,
                    ),
                )
                rows = [record.to_row() for record in records]

                intent = self._begin_intent(source, destination, amount, now)
                debited = self.ledger.update_balance(
                    from_account_id, source.balance - amount, source.overdraft_count
                )
                try:
                    credited = self.ledger.update_balance(
                        to_account_id, destination.balance + amount, destination.overdraft_count
                    )
                except BankingError:
                    self._log_inconsistency(actor, intent, from_account_id, to_account_id, amount)
                    raise

                for record, row in zip(records, rows):
                    self._append_history(actor, record, row)
                if intent is not None:
                    self.journal.commit(intent)
        except BankingError as e:
            self._log_rejected(actor, "transfer", from_account_id, amount, e)
            raise

        log_action(
            self.logger, "info", "Transfer completed",
            user_id=actor.id, action="transfer", resource=f"account:{from_account_id}",
            extra={
                "amount": str(amount),
                "to_account": to_account_id,
                "own_account": is_own_account,
                "balance": str(debited.balance),
            }
        )
        return TransactionResult(
            TransactionKind.TRANSFER, debited, amount, records, counterparty=credited
        )

    # ------------------------------------------------------------------
    # Read side
    # ------------------------------------------------------------------

    def get_account(self, account_id: int) -> Account:
        """Read an account the acting user may see"""
        actor = self.identity.current_actor()
        account = self.ledger.find_account(account_id)
        self._authorize(actor, account, "view")
        return account

    def view_accounts(self, customer_id: str) -> List[AccountSummary]:
        """Accounts of a customer with their overdraft state"""
        actor = self.identity.current_actor()
        if not actor.can_operate(customer_id):
            raise AuthorizationError("You are not authorized to view another person's accounts")
        return [
            AccountSummary(account, self.overdraft_policy.state_of(account.overdraft_count))
            for account in self.ledger.list_accounts_for_customer(customer_id)
        ]

    def account_history(self, account_id: int, kind: KindFilter = ALL_KINDS) -> List[TransactionRecord]:
        """Transaction history of one account, oldest first"""
        self.get_account(account_id)
        return list(self.history.query_by_account_and_type(account_id, kind))

    def daily_usage(self, account_id: int, on_date: Optional[date] = None) -> dict:
        """Amounts already moved today per limit, next to the card's caps"""
        account = self.get_account(account_id)
        on_date = on_date or self.clock().date()
        limits: CardPolicy = resolve_card_limits(account.card_tier)
        sum_for = self.history.sum_amount_for_date
        return {
            "deposit": (sum_for(account_id, TransactionKind.DEPOSIT, on_date),
                        limits.deposit_limit_daily),
            "withdraw": (sum_for(account_id, TransactionKind.WITHDRAW, on_date),
                         limits.withdraw_limit_daily),
            "transfer_own": (sum_for(account_id, TransactionKind.TRANSFER, on_date, True),
                             limits.transfer_limit_own_account_daily),
            "transfer_other": (sum_for(account_id, TransactionKind.TRANSFER, on_date, False),
                               limits.transfer_limit_other_account_daily),
        }

    # ------------------------------------------------------------------
    # Consistency
    # ------------------------------------------------------------------

    def replay_balance(self, account_id: int) -> Tuple[Decimal, int]:
        """
        Rebuild balance and overdraft counter from history alone.

        Deposits and transfer legs add their signed amount; withdrawals are
        re-run through the overdraft policy, which reproduces fees and the
        ceiling from the recorded requested amount.
        """
        balance, count = ZERO, 0
        for record in self.history.query_by_account_and_type(account_id, ALL_KINDS):
            if record.kind == TransactionKind.DEPOSIT:
                balance, count = self.overdraft_policy.apply_deposit(balance, count, record.amount)
            elif record.kind == TransactionKind.WITHDRAW:
                outcome = self.overdraft_policy.apply_withdrawal(balance, count, -record.amount)
                balance, count = outcome.new_balance, outcome.new_overdraft_count
            else:
                balance += record.amount
        return balance, count

    def reconcile(self, account_id: int) -> ReconciliationResult:
        """Compare the ledger row with the replayed history"""
        with self._lock:
            account = self.ledger.find_account(account_id)
            balance, count = self.replay_balance(account_id)
            record_count = sum(1 for _ in self.history.query_by_account_and_type(account_id))

        result = ReconciliationResult(
            account_id=account_id,
            ledger_balance=account.balance,
            replayed_balance=balance,
            ledger_overdraft_count=account.overdraft_count,
            replayed_overdraft_count=count,
            record_count=record_count,
        )
        if not result.consistent:
            log_action(
                self.logger, "warning", "Ledger diverges from transaction history",
                action="reconcile", resource=f"account:{account_id}",
                extra={
                    "ledger_balance": str(result.ledger_balance),
                    "replayed_balance": str(result.replayed_balance),
                    "ledger_overdraft_count": result.ledger_overdraft_count,
                    "replayed_overdraft_count": result.replayed_overdraft_count,
                }
            )
        return result

    def pending_transfers(self) -> List[TransferIntent]:
        """Transfers that began but never committed; each one is logged"""
        if self.journal is None:
            return []
        pending = self.journal.pending()
        for intent in pending:
            log_action(
                self.logger, "warning", "Transfer intent was never committed",
                action="transfer_recovery", resource=f"intent:{intent.intent_id}",
                extra={
                    "from_account": intent.from_account_id,
                    "to_account": intent.to_account_id,
                    "amount": str(intent.amount),
                    "started_at": intent.timestamp.isoformat(),
                }
            )
        return pending

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _authorize(self, actor: Actor, account: Account, verb: str) -> None:
        if not actor.can_operate(account.customer_id):
            raise AuthorizationError(f"You are not authorized to {verb} another person's account")

    def _check_daily_limit(
        self,
        account: Account,
        kind: TransactionKind,
        amount: Decimal,
        cap: Decimal,
        on_date: date,
        is_own_account_transfer: Optional[bool] = None
    ) -> None:
        used = self.history.sum_amount_for_date(
            account.account_id, kind, on_date, is_own_account_transfer
        )
        if used + amount > cap:
            raise LimitExceededError(
                f"You cannot {kind.value} more than your card's daily limit of "
                f"{format_amount(cap)}. Current total for today is {format_amount(used)}"
            )

    def _append_history(self, actor: Actor, record: TransactionRecord, row: str) -> None:
        try:
            self.history.append_row(row)
        except BankingError:
            log_action(
                self.logger, "error", "Ledger updated but history record was not written",
                user_id=actor.id, action="inconsistency",
                resource=f"account:{record.account_id}",
                extra={"kind": record.kind.value, "amount": str(record.amount)}
            )
            raise

    def _begin_intent(self, source: Account, destination: Account, amount: Decimal,
                      now: datetime) -> Optional[TransferIntent]:
        if self.journal is None:
            return None
        return self.journal.begin(source.account_id, destination.account_id, amount, now)

    def _log_inconsistency(self, actor: Actor, intent: Optional[TransferIntent],
                           from_account_id: int, to_account_id: int, amount: Decimal) -> None:
        log_action(
            self.logger, "error", "Transfer half-applied: source debited, destination not credited",
            user_id=actor.id, action="inconsistency", resource=f"account:{from_account_id}",
            extra={
                "from_account": from_account_id,
                "to_account": to_account_id,
                "amount": str(amount),
                "intent_id": intent.intent_id if intent else None,
            }
        )

    def _log_rejected(self, actor: Actor, action: str, account_id: int,
                      amount: object, error: BankingError) -> None:
        log_action(
            self.logger, "warning", f"{action.capitalize()} rejected: {error}",
            user_id=actor.id, action=action, resource=f"account:{account_id}",
            extra={"amount": str(amount), "error": type(error).__name__}
        )

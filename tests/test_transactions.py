"""
Test suite for the transaction engine

Tests deposits, withdrawals and transfers together with the properties the
engine must hold: ledger/history agreement, conservation of money across
transfers, overdraft locking, daily card limits and authorization.
"""

import logging
import pytest
from datetime import datetime, timedelta
from decimal import Decimal

from branch_banking.cards import CardTier
from branch_banking.errors import (
    AuthorizationError, InsufficientFundsError, InvalidArgumentError,
    LimitExceededError, NotFoundError, OverdraftLockError, StorageError
)
from branch_banking.history import TransactionHistoryStore, TransactionKind
from branch_banking.identity import Actor, Role, StaticIdentityProvider
from branch_banking.intents import TransferJournal
from branch_banking.ledger import Account, AccountType, LedgerStore
from branch_banking.overdraft import OverdraftState
from branch_banking.storage import InMemoryStorage
from branch_banking.transactions import TransactionEngine


ALICE = Actor("alice", Role.CUSTOMER)
BOB = Actor("bob", Role.CUSTOMER)
TELLER = Actor("teller", Role.BANKER)


class FakeClock:
    def __init__(self, now):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


class RecordingHandler(logging.Handler):
    def __init__(self):
        super().__init__(logging.DEBUG)
        self.records = []

    def emit(self, record):
        self.records.append(record)


class FailingLedger(LedgerStore):
    """Ledger whose writes to one account fail"""

    def __init__(self, storage, fail_for):
        super().__init__(storage)
        self.fail_for = fail_for

    def update_balance(self, account_id, new_balance, new_overdraft_count):
        if account_id == self.fail_for:
            raise StorageError("disk full")
        return super().update_balance(account_id, new_balance, new_overdraft_count)


def make_account(account_id, customer_id, account_type=AccountType.CHECKING,
                 card_tier=CardTier.STANDARD):
    return Account(
        account_id=account_id,
        customer_id=customer_id,
        account_type=account_type,
        card_id=510000000 + account_id - 100000,
        card_tier=card_tier,
        balance=Decimal("0.00"),
    )


class EngineTestCase:
    """Shared fixtures: alice holds checking 100001 and savings 100002, bob holds 100003"""

    def setup_method(self):
        self.storage = InMemoryStorage()
        self.ledger = self.make_ledger(self.storage)
        self.history = TransactionHistoryStore(self.storage)
        self.journal = TransferJournal(self.storage)
        self.identity = StaticIdentityProvider(customers=["alice", "bob"], actor=ALICE)
        self.clock = FakeClock(datetime(2024, 3, 1, 10, 0, 0))
        self.engine = TransactionEngine(
            self.ledger, self.history, self.identity,
            journal=self.journal, clock=self.clock
        )

        self.ledger.add_account(make_account(100001, "alice"))
        self.ledger.add_account(make_account(100002, "alice", AccountType.SAVINGS))
        self.ledger.add_account(make_account(100003, "bob"))

    def make_ledger(self, storage):
        return LedgerStore(storage)

    def act_as(self, actor):
        self.identity.set_actor(actor)

    def balance(self, account_id):
        return self.ledger.find_account(account_id).balance

    def history_rows(self):
        return self.storage.read_lines("transaction_history")


class TestDeposit(EngineTestCase):
    """Test deposits"""

    def test_deposit(self):
        """Test a deposit raises the balance and appends one record"""
        result = self.engine.deposit(100001, "100")

        assert result.balance == Decimal("100.00")
        assert self.balance(100001) == Decimal("100.00")
        records = list(self.history.query_by_account_and_type(100001))
        assert len(records) == 1
        assert records[0].kind == TransactionKind.DEPOSIT
        assert records[0].amount == Decimal("100.00")
        assert records[0].customer_id == "alice"
        assert records[0].timestamp == self.clock.now

    @pytest.mark.parametrize("amount", ["0", "-5", "abc"])
    def test_invalid_amount_changes_nothing(self, amount):
        """Test invalid amounts are rejected before any write"""
        with pytest.raises(InvalidArgumentError):
            self.engine.deposit(100001, amount)
        assert self.balance(100001) == Decimal("0.00")
        assert self.history_rows() == []

    def test_unknown_account(self):
        """Test depositing into a missing account"""
        with pytest.raises(NotFoundError):
            self.engine.deposit(999999, "10")

    def test_customer_cannot_deposit_into_other_account(self):
        """Test authorization blocks customers on foreign accounts"""
        with pytest.raises(AuthorizationError):
            self.engine.deposit(100003, "10")
        assert self.balance(100003) == Decimal("0.00")
        assert self.history_rows() == []

    def test_banker_exempt(self):
        """Test bankers may deposit into any account"""
        self.act_as(TELLER)
        self.engine.deposit(100003, "10")
        assert self.balance(100003) == Decimal("10.00")
        record = next(iter(self.history.query_by_account_and_type(100003)))
        assert record.customer_id == "teller"

    def test_unserializable_actor_changes_nothing(self):
        """Test a record that cannot be written is refused before the ledger moves"""
        self.act_as(Actor("evil;x", Role.BANKER))
        with pytest.raises(InvalidArgumentError):
            self.engine.deposit(100001, "100")
        with pytest.raises(InvalidArgumentError):
            self.engine.withdraw(100001, "10")
        assert self.balance(100001) == Decimal("0.00")
        assert self.ledger.find_account(100001).overdraft_count == 0
        assert self.history_rows() == []
        assert self.engine.reconcile(100001).consistent

    def test_not_logged_in(self):
        """Test operations need an acting user"""
        self.act_as(None)
        with pytest.raises(AuthorizationError):
            self.engine.deposit(100001, "10")


class TestDailyLimits(EngineTestCase):
    """Test daily card caps computed from history"""

    def test_second_large_deposit_same_day_fails(self):
        """Test 150,000 + 150,000 on one day exceeds the 200,000 cap"""
        self.engine.deposit(100001, "150000")
        with pytest.raises(LimitExceededError) as exc_info:
            self.engine.deposit(100001, "150000")

        assert "daily limit" in str(exc_info.value)
        assert self.balance(100001) == Decimal("150000.00")
        assert len(self.history_rows()) == 1

    def test_large_deposits_on_different_days(self):
        """Test the cap resets on the next calendar day"""
        self.engine.deposit(100001, "150000")
        self.clock.advance(days=1)
        self.engine.deposit(100001, "150000")
        assert self.balance(100001) == Decimal("300000.00")

    def test_cap_is_inclusive(self):
        """Test reaching the cap exactly is allowed"""
        self.engine.deposit(100001, "200000")
        with pytest.raises(LimitExceededError):
            self.engine.deposit(100001, "0.01")

    def test_withdraw_cap_counts_requested_amounts(self):
        """Test withdrawals are summed per day against the card cap"""
        self.engine.deposit(100001, "10000")
        self.engine.withdraw(100001, "3000")
        with pytest.raises(LimitExceededError):
            self.engine.withdraw(100001, "2500")
        self.engine.withdraw(100001, "2000")
        assert self.balance(100001) == Decimal("5000.00")

    def test_higher_tier_has_higher_cap(self):
        """Test a platinum card allows larger withdrawals"""
        self.ledger.add_account(make_account(100004, "alice", card_tier=CardTier.PLATINUM))
        self.engine.deposit(100004, "30000")
        self.engine.withdraw(100004, "20000")
        with pytest.raises(LimitExceededError):
            self.engine.withdraw(100004, "1")

    def test_transfer_caps_split_by_ownership(self):
        """Test own and other account transfers have separate caps"""
        self.engine.deposit(100001, "30000")
        self.engine.transfer(100001, 100003, "6000")
        with pytest.raises(LimitExceededError):
            self.engine.transfer(100001, 100003, "5000")
        self.engine.transfer(100001, 100002, "5000")

        assert self.balance(100001) == Decimal("19000.00")
        assert self.balance(100003) == Decimal("6000.00")

    def test_received_transfers_do_not_use_receiver_cap(self):
        """Test only outgoing legs count towards the transfer cap"""
        self.engine.deposit(100001, "10000")
        self.engine.transfer(100001, 100003, "9000")

        self.act_as(BOB)
        self.engine.deposit(100003, "5000")
        self.engine.transfer(100003, 100001, "9500")
        assert self.balance(100003) == Decimal("4500.00")

    def test_daily_usage(self):
        """Test the usage report next to the card caps"""
        self.engine.deposit(100001, "1000")
        self.engine.withdraw(100001, "100")
        self.engine.transfer(100001, 100002, "200")
        self.engine.transfer(100001, 100003, "50")

        usage = self.engine.daily_usage(100001)
        assert usage["deposit"] == (Decimal("1000.00"), Decimal("200000.00"))
        assert usage["withdraw"][0] == Decimal("100.00")
        assert usage["transfer_own"] == (Decimal("200.00"), Decimal("20000.00"))
        assert usage["transfer_other"] == (Decimal("50.00"), Decimal("10000.00"))


class TestWithdrawAndOverdraft(EngineTestCase):
    """Test withdrawals and the overdraft state machine"""

    def test_covered_withdrawal(self):
        """Test a covered withdrawal records a negative amount"""
        self.engine.deposit(100001, "500")
        result = self.engine.withdraw(100001, "200")

        assert result.balance == Decimal("300.00")
        assert not result.withdrawal.overdrawn
        assert result.records[0].amount == Decimal("-200.00")

    def test_overdraft_scenario(self):
        """Test 100 - 150 - 35 = -85, then a 100 deposit brings it to 15 and clears the counter"""
        self.engine.deposit(100001, "100")
        result = self.engine.withdraw(100001, "150")

        account = self.ledger.find_account(100001)
        assert account.balance == Decimal("-85.00")
        assert account.overdraft_count == 1
        assert result.withdrawal.fee == Decimal("35.00")
        assert self.engine.overdraft_policy.state_of(account.overdraft_count) == OverdraftState.OVERDRAWN

        self.engine.deposit(100001, "100")
        account = self.ledger.find_account(100001)
        assert account.balance == Decimal("15.00")
        assert account.overdraft_count == 0

    def test_overdraft_lock(self):
        """Test the third overdraft locks the account until repaid"""
        self.engine.deposit(100001, "100")
        self.engine.withdraw(100001, "150")
        self.engine.withdraw(100001, "100")
        self.engine.withdraw(100001, "100")

        account = self.ledger.find_account(100001)
        assert account.balance == Decimal("-355.00")
        assert account.overdraft_count == 3

        rows_before = self.history_rows()
        with pytest.raises(OverdraftLockError):
            self.engine.withdraw(100001, "10")
        assert self.ledger.find_account(100001) == account
        assert self.history_rows() == rows_before

        self.engine.deposit(100001, "400")
        account = self.ledger.find_account(100001)
        assert account.balance == Decimal("45.00")
        assert account.overdraft_count == 0
        self.engine.withdraw(100001, "10")

    def test_locked_account_over_daily_cap_reports_lock(self):
        """Test a locked account fails with the lock even past its withdraw cap"""
        self.engine.withdraw(100001, "4000")
        self.engine.withdraw(100001, "500")
        self.engine.withdraw(100001, "400")
        assert self.engine.daily_usage(100001)["withdraw"][0] == Decimal("4900.00")

        with pytest.raises(OverdraftLockError):
            self.engine.withdraw(100001, "200")

    def test_repeat_overdraft_capped_but_records_requested(self):
        """Test the ceiling limits the debit while history keeps the request"""
        self.engine.deposit(100001, "100")
        self.engine.withdraw(100001, "150")
        result = self.engine.withdraw(100001, "800")

        assert result.withdrawal.capped
        assert result.balance == Decimal("-620.00")
        assert result.records[0].amount == Decimal("-800.00")

    def test_overdraft_is_logged(self):
        """Test overdrafts log a warning with the fee"""
        handler = RecordingHandler()
        logger = logging.getLogger("branch_banking.transactions")
        logger.addHandler(handler)
        try:
            self.engine.withdraw(100001, "50")
        finally:
            logger.removeHandler(handler)

        actions = [getattr(r, "action", None) for r in handler.records]
        assert "overdraft" in actions
        overdraft = handler.records[actions.index("overdraft")]
        assert overdraft.levelno == logging.WARNING
        assert overdraft.extra["fee"] == "35.00"

    def test_customer_cannot_withdraw_from_other_account(self):
        """Test authorization on withdrawals"""
        with pytest.raises(AuthorizationError):
            self.engine.withdraw(100003, "1")
        assert self.history_rows() == []


class TestTransfer(EngineTestCase):
    """Test transfers between accounts"""

    def test_own_account_transfer(self):
        """Test both legs are written and marked own-account"""
        self.engine.deposit(100001, "1000")
        result = self.engine.transfer(100001, 100002, "400")

        assert result.balance == Decimal("600.00")
        assert result.counterparty.balance == Decimal("400.00")
        debit, credit = result.records
        assert (debit.account_id, debit.amount, debit.counterparty_account_id) == (
            100001, Decimal("-400.00"), 100002
        )
        assert (credit.account_id, credit.amount, credit.counterparty_account_id) == (
            100002, Decimal("400.00"), 100001
        )
        assert debit.is_own_account_transfer and credit.is_own_account_transfer

    def test_other_account_transfer(self):
        """Test customers may send money to someone else's account"""
        self.engine.deposit(100001, "100")
        result = self.engine.transfer(100001, 100003, "40")
        assert not result.records[0].is_own_account_transfer
        assert self.balance(100003) == Decimal("40.00")

    def test_transfer_conserves_money(self):
        """Test the sum of both balances is unchanged by a transfer"""
        self.act_as(TELLER)
        self.engine.deposit(100001, "700")
        self.engine.deposit(100003, "300")
        before = self.balance(100001) + self.balance(100003)

        self.engine.transfer(100001, 100003, "250.55")
        self.engine.transfer(100003, 100001, "100")

        assert self.balance(100001) + self.balance(100003) == before

    def test_insufficient_funds(self):
        """Test transfers never overdraw"""
        self.engine.deposit(100001, "100")
        with pytest.raises(InsufficientFundsError):
            self.engine.transfer(100001, 100002, "100.01")
        assert self.balance(100001) == Decimal("100.00")
        assert self.balance(100002) == Decimal("0.00")
        assert self.storage.read_lines("transfer_intents") == []

    def test_same_account(self):
        """Test transferring to the same account is refused"""
        self.engine.deposit(100001, "100")
        with pytest.raises(InvalidArgumentError):
            self.engine.transfer(100001, 100001, "10")

    def test_unknown_destination(self):
        """Test a missing destination is reported before any write"""
        self.engine.deposit(100001, "100")
        with pytest.raises(NotFoundError):
            self.engine.transfer(100001, 999999, "10")
        assert self.balance(100001) == Decimal("100.00")

    def test_customer_cannot_transfer_from_other_account(self):
        """Test the source must belong to the acting customer"""
        self.act_as(TELLER)
        self.engine.deposit(100003, "100")
        self.act_as(ALICE)
        with pytest.raises(AuthorizationError):
            self.engine.transfer(100003, 100001, "10")
        assert self.balance(100003) == Decimal("100.00")

    def test_unserializable_actor_moves_no_money(self):
        """Test a transfer whose records cannot be written leaves both accounts alone"""
        self.engine.deposit(100001, "100")
        self.act_as(Actor("evil\nx", Role.BANKER))
        with pytest.raises(InvalidArgumentError):
            self.engine.transfer(100001, 100002, "40")
        assert self.balance(100001) == Decimal("100.00")
        assert self.balance(100002) == Decimal("0.00")
        assert self.engine.pending_transfers() == []

    def test_transfer_commits_intent(self):
        """Test a completed transfer leaves no open intent"""
        self.engine.deposit(100001, "100")
        self.engine.transfer(100001, 100002, "10")
        assert len(self.storage.read_lines("transfer_intents")) == 2
        assert self.engine.pending_transfers() == []

    def test_transfer_credit_keeps_overdraft_counter(self):
        """Test incoming transfers change the balance only"""
        self.engine.deposit(100002, "1000")
        self.engine.withdraw(100001, "50")
        self.engine.transfer(100002, 100001, "500")

        account = self.ledger.find_account(100001)
        assert account.balance == Decimal("415.00")
        assert account.overdraft_count == 1


class TestHalfAppliedTransfer(EngineTestCase):
    """Test a failure between the two ledger writes of a transfer"""

    def make_ledger(self, storage):
        return FailingLedger(storage, fail_for=100002)

    def test_second_leg_failure_leaves_open_intent(self):
        """Test the error propagates, is logged, and the intent stays open"""
        self.engine.deposit(100001, "100")
        handler = RecordingHandler()
        logger = logging.getLogger("branch_banking.transactions")
        logger.addHandler(handler)
        try:
            with pytest.raises(StorageError):
                self.engine.transfer(100001, 100002, "40")
        finally:
            logger.removeHandler(handler)

        assert self.balance(100001) == Decimal("60.00")
        assert self.balance(100002) == Decimal("0.00")
        assert len(list(self.history.query_by_account_and_type(100001, "transfer"))) == 0

        pending = self.engine.pending_transfers()
        assert len(pending) == 1
        assert (pending[0].from_account_id, pending[0].to_account_id) == (100001, 100002)

        errors = [r for r in handler.records if getattr(r, "action", None) == "inconsistency"]
        assert len(errors) == 1
        assert errors[0].levelno == logging.ERROR
        assert errors[0].extra["intent_id"] == pending[0].intent_id


class TestConsistency(EngineTestCase):
    """Test ledger and history agree after any sequence of valid operations"""

    def run_mixed_operations(self):
        self.act_as(TELLER)
        self.engine.deposit(100001, "100")
        self.engine.withdraw(100001, "150")
        self.engine.withdraw(100001, "800")
        self.engine.deposit(100003, "2000")
        self.engine.transfer(100003, 100001, "1200")
        self.engine.withdraw(100001, "10")
        self.engine.deposit(100002, "55.55")
        self.engine.transfer(100002, 100003, "20")
        self.clock.advance(days=1)
        self.engine.withdraw(100003, "1000")
        self.engine.withdraw(100003, "40")
        self.engine.deposit(100003, "1")

    def test_replay_matches_ledger(self):
        """Test replaying history reproduces every ledger balance and counter"""
        self.run_mixed_operations()
        for account in self.ledger.all_accounts():
            balance, count = self.engine.replay_balance(account.account_id)
            assert balance == account.balance
            assert count == account.overdraft_count
            assert self.engine.reconcile(account.account_id).consistent

    def test_replay_without_overdraft_is_signed_sum(self):
        """Test an account that never overdraws replays to the plain sum"""
        self.run_mixed_operations()
        total = sum(r.amount for r in self.history.query_by_account_and_type(100002))
        assert total == self.balance(100002)

    def test_reconcile_detects_divergence(self):
        """Test an out-of-band ledger edit is reported"""
        self.engine.deposit(100001, "100")
        self.ledger.update_balance(100001, Decimal("90.00"), 0)

        result = self.engine.reconcile(100001)
        assert not result.consistent
        assert result.ledger_balance == Decimal("90.00")
        assert result.replayed_balance == Decimal("100.00")
        assert result.record_count == 1


class TestReadSide(EngineTestCase):
    """Test account and history reads"""

    def test_reads_are_idempotent(self):
        """Test repeated reads with no writes return the same data"""
        self.engine.deposit(100001, "100")
        self.engine.withdraw(100001, "20")
        assert self.engine.get_account(100001) == self.engine.get_account(100001)
        assert self.engine.account_history(100001) == self.engine.account_history(100001)

    def test_account_history_by_kind(self):
        """Test filtering history by kind"""
        self.engine.deposit(100001, "100")
        self.engine.withdraw(100001, "20")
        assert [r.kind for r in self.engine.account_history(100001, "withdraw")] == [
            TransactionKind.WITHDRAW
        ]
        assert len(self.engine.account_history(100001, "all")) == 2
        with pytest.raises(InvalidArgumentError):
            self.engine.account_history(100001, "refund")

    def test_history_of_other_account_is_private(self):
        """Test customers cannot read foreign history"""
        with pytest.raises(AuthorizationError):
            self.engine.account_history(100003)

    def test_view_accounts(self):
        """Test the account summary with overdraft states"""
        self.engine.withdraw(100001, "10")
        summaries = self.engine.view_accounts("alice")
        assert [s.account.account_id for s in summaries] == [100001, 100002]
        assert summaries[0].overdraft_state == OverdraftState.OVERDRAWN
        assert summaries[1].overdraft_state == OverdraftState.NORMAL

    def test_view_accounts_authorization(self):
        """Test customers see only their own accounts; bankers see anyone's"""
        with pytest.raises(AuthorizationError):
            self.engine.view_accounts("bob")
        self.act_as(TELLER)
        assert len(self.engine.view_accounts("bob")) == 1

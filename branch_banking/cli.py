"""Branch banking CLI.

Commands:
  branch-banking menu --user <cpr>      Interactive teller menu for a user
  branch-banking serve                  Run the HTTP API
  branch-banking reconcile [--account]  Compare ledger with history
  branch-banking intents                List transfers that never committed
"""

import argparse
import sys
from decimal import Decimal
from typing import Callable, List, Optional, Tuple

from . import __version__
from .config import get_config
from .currency import format_amount, to_amount
from .errors import BankingError, InvalidArgumentError, StorageError
from .identity import FileIdentityProvider
from .logging_config import setup_logging
from .system import BankingSystem


class CancelInput(Exception):
    """User left a prompt empty to go back to the menu"""


class TellerMenu:
    """
    Line-based menu over the transaction engine.

    A failed command re-prompts in a loop until it succeeds or the user
    enters an empty line. Storage failures are not retried.
    """

    def __init__(self, system: BankingSystem,
                 read: Callable[[str], str] = input,
                 write: Callable[[str], None] = print):
        self.system = system
        self.engine = system.engine
        self.read = read
        self.write = write

    def commands(self) -> List[Tuple[str, str, Callable[[], None]]]:
        commands = [
            ("1", "Deposit", self.deposit),
            ("2", "Withdraw", self.withdraw),
            ("3", "Transfer", self.transfer),
            ("4", "View accounts", self.view_accounts),
            ("5", "Transaction history", self.history),
        ]
        if self.system.identity.current_actor().is_banker:
            commands += [
                ("6", "Open bank account", self.open_account),
                ("7", "Reconcile account", self.reconcile),
            ]
        return commands

    def run(self) -> None:
        actor = self.system.identity.current_actor()
        self.write(f"Logged in as {actor.id} ({actor.role.value})")
        while True:
            commands = self.commands()
            self.write("")
            for key, label, _ in commands:
                self.write(f"[{key}] {label}")
            self.write("[0] Log out")
            try:
                choice = self.read("Choice: ").strip()
            except EOFError:
                return
            if choice == "0":
                self.write("Goodbye.")
                return
            for key, _, handler in commands:
                if key == choice:
                    self._retry(handler)
                    break
            else:
                self.write("Please choose one of the listed options.")

    def _retry(self, handler: Callable[[], None]) -> None:
        while True:
            try:
                handler()
                return
            except (CancelInput, EOFError):
                self.write("Cancelled.")
                return
            except StorageError:
                raise
            except BankingError as e:
                self.write(f"Error: {e}")

    def _ask(self, prompt: str) -> str:
        value = self.read(prompt).strip()
        if not value:
            raise CancelInput()
        return value

    def _ask_account_id(self, prompt: str = "Account ID: ") -> int:
        value = self._ask(prompt)
        try:
            return int(value)
        except ValueError:
            raise InvalidArgumentError(f"Account ID must be a number, got {value!r}")

    def _ask_amount(self, prompt: str) -> Decimal:
        return to_amount(self._ask(prompt))

    def deposit(self) -> None:
        self.write("DEPOSIT INTO ACCOUNT:")
        account = self.engine.get_account(self._ask_account_id())
        self.write(f"Current Balance: {format_amount(account.balance)}")
        amount = self._ask_amount("Deposit Amount (USD): ")
        result = self.engine.deposit(account.account_id, amount)
        self.write(f"Amount of {format_amount(amount)} successfully deposited.")
        self.write(f"New Account Balance: {format_amount(result.balance)}")

    def withdraw(self) -> None:
        self.write("WITHDRAW FROM ACCOUNT:")
        account = self.engine.get_account(self._ask_account_id())
        self.write(f"Current Balance: {format_amount(account.balance)}")
        amount = self._ask_amount("Withdraw Amount (USD): ")
        result = self.engine.withdraw(account.account_id, amount)
        outcome = result.withdrawal
        if outcome is not None and outcome.overdrawn:
            self.write(
                f"Overdraft: {format_amount(outcome.debited)} withdrawn with a "
                f"{format_amount(outcome.fee)} fee."
            )
        else:
            self.write(f"Amount of {format_amount(amount)} successfully withdrawn.")
        self.write(f"New Account Balance: {format_amount(result.balance)}")

    def transfer(self) -> None:
        self.write("TRANSFER FROM ACCOUNT:")
        account = self.engine.get_account(self._ask_account_id())
        self.write(f"Current Balance: {format_amount(account.balance)}")
        amount = self._ask_amount("Transfer Amount (USD): ")
        to_account_id = self._ask_account_id("Transfer to Account ID: ")
        result = self.engine.transfer(account.account_id, to_account_id, amount)
        self.write(f"Amount of {format_amount(amount)} successfully transferred.")
        self.write(f"New Account Balance: {format_amount(result.balance)}")

    def view_accounts(self) -> None:
        actor = self.system.identity.current_actor()
        customer_id = actor.id
        if actor.is_banker:
            customer_id = self._ask("Customer CPR Number: ")
        summaries = self.engine.view_accounts(customer_id)
        if not summaries:
            self.write(f"No bank accounts found for {customer_id}.")
        for summary in summaries:
            account = summary.account
            self.write(
                f"{account.account_id}  {account.account_type.value:<8}  "
                f"{account.card_tier.value:<8}  {format_amount(account.balance):>14}  "
                f"{summary.overdraft_state.value}"
            )

    def history(self) -> None:
        account_id = self._ask_account_id()
        kind = self.read("Type (deposit/withdraw/transfer/all) [all]: ").strip() or "all"
        records = self.engine.account_history(account_id, kind)
        if not records:
            self.write("No transactions found.")
        for record in records:
            line = (f"{record.timestamp:%Y-%m-%d %H:%M:%S}  {record.kind.value:<8}  "
                    f"{format_amount(record.amount):>14}")
            if record.counterparty_account_id:
                line += f"  counterparty {record.counterparty_account_id}"
            self.write(line)

    def open_account(self) -> None:
        self.write("CREATE NEW BANK ACCOUNT")
        customer_id = self._ask("Customer CPR Number: ")
        account_type = self._ask("Account Type ([C] Checking Account / [S] Savings Account): ")
        card_tier = self._ask(
            "Card Type ([M] Debit Mastercard [T] Debit Mastercard Titanium "
            "[P] Debit Mastercard Platinum): "
        )
        account = self.system.account_service.open_account(customer_id, account_type, card_tier)
        self.write(
            f"New bank account {account.account_id} successfully created "
            f"with card {account.card_id}."
        )

    def reconcile(self) -> None:
        result = self.engine.reconcile(self._ask_account_id())
        status = "consistent" if result.consistent else "DIVERGES"
        self.write(
            f"Ledger {format_amount(result.ledger_balance)} / "
            f"history {format_amount(result.replayed_balance)} "
            f"over {result.record_count} records: {status}"
        )


def cmd_menu(args: argparse.Namespace, system: BankingSystem) -> int:
    if not isinstance(system.identity, FileIdentityProvider):
        print("Interactive menu requires the users file identity provider", file=sys.stderr)
        return 1
    try:
        system.identity.set_actor(args.user.strip())
    except BankingError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    for intent in system.engine.pending_transfers():
        print(f"Warning: transfer {intent.intent_id} from {intent.from_account_id} "
              f"to {intent.to_account_id} never completed", file=sys.stderr)
    TellerMenu(system).run()
    return 0


def cmd_serve(args: argparse.Namespace, system: BankingSystem) -> int:
    from .api import run_server

    run_server(host=args.host, port=args.port, debug=args.debug)
    return 0


def cmd_reconcile(args: argparse.Namespace, system: BankingSystem) -> int:
    if args.account is not None:
        account_ids = [args.account]
    else:
        account_ids = [account.account_id for account in system.ledger.all_accounts()]

    diverging = 0
    for account_id in account_ids:
        result = system.engine.reconcile(account_id)
        status = "ok" if result.consistent else "DIVERGES"
        if not result.consistent:
            diverging += 1
        print(f"{account_id}  ledger {result.ledger_balance}  "
              f"history {result.replayed_balance}  {status}")
    return 1 if diverging else 0


def cmd_intents(args: argparse.Namespace, system: BankingSystem) -> int:
    pending = system.engine.pending_transfers()
    for intent in pending:
        print(f"{intent.intent_id}  {intent.from_account_id} -> {intent.to_account_id}  "
              f"{intent.amount}  {intent.timestamp.isoformat()}")
    if not pending:
        print("No open transfer intents.")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="branch-banking",
        description="Branch banking back office",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--data-dir", help="Directory holding the record files")
    sub = parser.add_subparsers(dest="command", required=True)

    menu = sub.add_parser("menu", help="Interactive teller menu")
    menu.add_argument("--user", required=True, help="CPR number of the acting user")
    menu.set_defaults(func=cmd_menu)

    serve = sub.add_parser("serve", help="Run the HTTP API")
    serve.add_argument("--host", default=None)
    serve.add_argument("--port", type=int, default=None)
    serve.add_argument("--debug", action="store_true")
    serve.set_defaults(func=cmd_serve)

    reconcile = sub.add_parser("reconcile", help="Compare ledger balances with history")
    reconcile.add_argument("--account", type=int, default=None)
    reconcile.set_defaults(func=cmd_reconcile)

    intents = sub.add_parser("intents", help="List transfers that never committed")
    intents.set_defaults(func=cmd_intents)
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    config = get_config()
    if args.data_dir:
        config = config.model_copy(update={"data_dir": args.data_dir})
    if getattr(args, "host", None) is None and args.command == "serve":
        args.host = config.api_host
    if getattr(args, "port", None) is None and args.command == "serve":
        args.port = config.api_port

    setup_logging(config.log_level, log_format=config.log_format, log_file=config.log_file)
    try:
        system = BankingSystem(config)
        return args.func(args, system)
    except StorageError as e:
        print(f"Storage failure, operation aborted: {e}", file=sys.stderr)
        return 2


if __name__ == "__main__":
    sys.exit(main())

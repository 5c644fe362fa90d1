"""
Account Management Module

Opens bank accounts: validates the owner, account type and card tier,
issues card and account numbers, and appends the new ledger row.
"""

from typing import Dict, Optional, Union

from .cards import CARD_ID_PREFIXES, CardTier
from .currency import ZERO
from .errors import AuthorizationError, DuplicateAccountError, NotFoundError
from .identity import IdentityProvider
from .ledger import Account, AccountType, LedgerStore
from .logging_config import get_logger, log_action


DEFAULT_ACCOUNT_ID_BASE = 100000


class SequentialAccountIdGenerator:
    """Monotonic account IDs, seeded from the highest ID in the ledger"""
    
    def __init__(self, ledger: LedgerStore, base: int = DEFAULT_ACCOUNT_ID_BASE):
        self.ledger = ledger
        self.base = base
        self._last_issued = base
    
    def next_account_id(self) -> int:
        last_in_ledger = self.ledger.last_account_id() or self.base
        self._last_issued = max(self._last_issued, last_in_ledger) + 1
        return self._last_issued


class SequentialCardIssuer:
    """Per-tier sequential card numbers, seeded from cards already in the ledger"""
    
    def __init__(self, ledger: LedgerStore):
        self.ledger = ledger
        self._last_issued: Dict[CardTier, int] = {}
    
    def issue_card_id(self, card_tier: CardTier) -> int:
        last = self._last_issued.get(card_tier, CARD_ID_PREFIXES[card_tier])
        for account in self.ledger.all_accounts():
            if account.card_tier == card_tier:
                last = max(last, account.card_id)
        self._last_issued[card_tier] = last + 1
        return last + 1


class AccountService:
    """
    Account opening
    """
    
    def __init__(
        self,
        ledger: LedgerStore,
        identity: IdentityProvider,
        id_generator: Optional[SequentialAccountIdGenerator] = None,
        card_issuer: Optional[SequentialCardIssuer] = None
    ):
        self.ledger = ledger
        self.identity = identity
        self.id_generator = id_generator or SequentialAccountIdGenerator(ledger)
        self.card_issuer = card_issuer or SequentialCardIssuer(ledger)
        self.logger = get_logger("branch_banking.accounts")
    
    def open_account(
        self,
        customer_id: str,
        account_type: Union[AccountType, str],
        card_tier: Union[CardTier, str]
    ) -> Account:
        """
        Open a new account with a new debit card for an existing customer
        
        Args:
            customer_id: Owner CPR number
            account_type: checking or savings
            card_tier: standard, titanium or platinum
            
        Returns:
            The new Account
            
        Raises:
            AuthorizationError: If the acting user is not a banker
            NotFoundError: If the customer does not exist
            InvalidArgumentError: On an unknown account type or card tier
            DuplicateAccountError: If the customer already has this account type
        """
        actor = self.identity.current_actor()
        if not actor.is_banker:
            raise AuthorizationError("Only bankers can open bank accounts")
        
        customer_id = customer_id.strip()
        if not self.identity.owner_exists(customer_id):
            raise NotFoundError(f"User with CPR {customer_id} does not exist")
        
        account_type = AccountType.parse(account_type)
        card_tier = CardTier.parse(card_tier)
        
        for existing in self.ledger.list_accounts_for_customer(customer_id):
            if existing.account_type == account_type:
                raise DuplicateAccountError(
                    f"Customer {customer_id} already has a {account_type.value} account "
                    f"({existing.account_id})"
                )
        
        account = Account(
            account_id=self.id_generator.next_account_id(),
            customer_id=customer_id,
            account_type=account_type,
            card_id=self.card_issuer.issue_card_id(card_tier),
            card_tier=card_tier,
            balance=ZERO,
            overdraft_count=0,
        )
        self.ledger.add_account(account)
        
        log_action(
            self.logger, "info", f"Account opened: {account_type.value}",
            user_id=actor.id, action="open_account",
            resource=f"account:{account.account_id}",
            extra={
                "customer_id": customer_id,
                "account_type": account_type.value,
                "card_tier": card_tier.value,
                "card_id": account.card_id,
            }
        )
        return account

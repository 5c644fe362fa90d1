"""
Banking system wiring: storage backend, stores, policies and services.
"""

from datetime import datetime
from typing import Callable, Optional
import threading

from .accounts import AccountService, SequentialAccountIdGenerator, SequentialCardIssuer
from .config import BranchConfig, get_config
from .history import TransactionHistoryStore
from .identity import Actor, FileIdentityProvider, IdentityProvider, ScopedIdentityProvider
from .intents import TransferJournal
from .ledger import LedgerStore
from .overdraft import OverdraftPolicy
from .storage import FileStorage, InMemoryStorage, StorageInterface
from .transactions import TransactionEngine


ACCOUNTS_TABLE = "accounts"
HISTORY_TABLE = "transaction_history"
INTENTS_TABLE = "transfer_intents"
USERS_TABLE = "users"


def create_storage(config: BranchConfig) -> StorageInterface:
    """Storage backend selected by configuration"""
    if config.storage_backend == "memory":
        return InMemoryStorage()
    if config.storage_backend != "file":
        raise ValueError(f"Unknown storage backend: {config.storage_backend}")
    return FileStorage(config.data_path, filenames={
        ACCOUNTS_TABLE: config.accounts_file,
        HISTORY_TABLE: config.history_file,
        INTENTS_TABLE: config.intents_file,
        USERS_TABLE: config.users_file,
    })


class BankingSystem:
    """Banking system with all components initialized"""
    
    def __init__(
        self,
        config: Optional[BranchConfig] = None,
        storage: Optional[StorageInterface] = None,
        identity: Optional[IdentityProvider] = None,
        clock: Optional[Callable[[], datetime]] = None
    ):
        self.config = config or get_config()
        self.storage = storage or create_storage(self.config)
        self.identity = identity or FileIdentityProvider(self.storage, USERS_TABLE)
        
        self.ledger = LedgerStore(self.storage, ACCOUNTS_TABLE)
        self.history = TransactionHistoryStore(self.storage, HISTORY_TABLE)
        self.journal = TransferJournal(self.storage, INTENTS_TABLE)
        self.overdraft_policy = OverdraftPolicy.from_config(self.config)
        self.clock = clock
        self._lock = threading.RLock()
        
        self.account_service = AccountService(
            self.ledger, self.identity,
            id_generator=SequentialAccountIdGenerator(self.ledger, self.config.account_id_base),
            card_issuer=SequentialCardIssuer(self.ledger),
        )
        self.engine = TransactionEngine(
            self.ledger, self.history, self.identity,
            overdraft_policy=self.overdraft_policy,
            journal=self.journal,
            clock=clock,
            lock=self._lock,
        )
    
    def engine_for(self, actor: Actor) -> TransactionEngine:
        """Engine acting as a fixed user, sharing stores and the critical section"""
        return TransactionEngine(
            self.ledger, self.history, ScopedIdentityProvider(self.identity, actor),
            overdraft_policy=self.overdraft_policy,
            journal=self.journal,
            clock=self.clock,
            lock=self._lock,
        )
    
    def account_service_for(self, actor: Actor) -> AccountService:
        """Account service acting as a fixed user"""
        return AccountService(
            self.ledger, ScopedIdentityProvider(self.identity, actor),
            id_generator=self.account_service.id_generator,
            card_issuer=self.account_service.card_issuer,
        )
    
    def close(self) -> None:
        self.storage.close()

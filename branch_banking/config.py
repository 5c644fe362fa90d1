"""
Configuration Management Module

Provides centralized configuration using pydantic-settings for environment-based configuration.
"""

from decimal import Decimal
from pathlib import Path
from typing import Optional

from pydantic_settings import BaseSettings


class BranchConfig(BaseSettings):
    """Branch banking back office configuration"""
    
    # Storage configuration
    data_dir: str = "data"
    accounts_file: str = "accounts.txt"
    history_file: str = "transaction_history.txt"
    intents_file: str = "transfer_intents.txt"
    users_file: str = "users.txt"
    storage_backend: str = "file"  # file or memory
    
    # Account numbering
    account_id_base: int = 100000
    
    # Overdraft policy (amounts as Decimal strings)
    overdraft_fee: str = "35.00"
    overdraft_count_cap: int = 3
    overdraft_withdrawal_ceiling: str = "500.00"
    
    # Logging configuration
    log_level: str = "INFO"
    log_format: str = "json"  # json or text
    log_file: Optional[str] = None  # stderr when unset
    
    # API configuration
    api_host: str = "0.0.0.0"
    api_port: int = 8090
    
    class Config:
        env_prefix = "BRANCH_"
        env_file = ".env"
        case_sensitive = False
    
    @property
    def data_path(self) -> Path:
        return Path(self.data_dir)
    
    @property
    def overdraft_fee_amount(self) -> Decimal:
        return Decimal(self.overdraft_fee)
    
    @property
    def overdraft_ceiling_amount(self) -> Decimal:
        return Decimal(self.overdraft_withdrawal_ceiling)


# Global configuration instance
config = BranchConfig()


def get_config() -> BranchConfig:
    """Get global configuration instance"""
    return config


def reload_config() -> BranchConfig:
    """Reload configuration from environment"""
    global config
    config = BranchConfig()
    return config

"""
Error Taxonomy Module

Business errors raised by the stores and the transaction engine. Every
subclass of BankingError is recoverable at the interaction boundary;
StorageError is the only one that should abort to the operator.
"""


class BankingError(Exception):
    """Base exception for all banking errors"""


class NotFoundError(BankingError):
    """Account or user does not exist"""


class AuthorizationError(BankingError):
    """Acting user lacks rights over the target account"""


class LimitExceededError(BankingError):
    """A card's daily cap would be breached"""


class InsufficientFundsError(BankingError):
    """Transfer requested beyond the source balance"""


class OverdraftLockError(BankingError):
    """Account is locked after reaching the overdraft cap"""


class InvalidArgumentError(BankingError, ValueError):
    """Non-positive amount, identical accounts, unknown account or card type"""


class DuplicateAccountError(InvalidArgumentError):
    """Customer already holds an account of the requested type"""


class StorageError(BankingError):
    """Record file could not be read or written"""

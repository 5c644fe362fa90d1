"""
Request dependencies: the shared banking system and the acting user
"""

from typing import Optional

from fastapi import Depends, Header, HTTPException, status

from ..errors import (
    AuthorizationError, BankingError, DuplicateAccountError, InsufficientFundsError,
    InvalidArgumentError, LimitExceededError, NotFoundError, OverdraftLockError, StorageError
)
from ..identity import Actor, Role
from ..storage import DELIMITER
from ..system import BankingSystem


_banking_system: Optional[BankingSystem] = None


def get_banking_system() -> BankingSystem:
    """Global banking system instance, created on first use"""
    global _banking_system
    if _banking_system is None:
        _banking_system = BankingSystem()
    return _banking_system


def get_actor(
    x_actor_id: str = Header(..., description="CPR number of the acting user"),
    x_actor_role: Optional[str] = Header(None, description="customer or banker; must match the directory"),
    system: BankingSystem = Depends(get_banking_system)
) -> Actor:
    """
    Resolve the acting user against the identity directory

    The role always comes from the directory; a claimed role that differs is
    refused.
    """
    actor_id = x_actor_id.strip()
    if DELIMITER in actor_id or "\n" in actor_id or "\r" in actor_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Actor ID contains a reserved character"
        )
    try:
        claimed = Role.parse(x_actor_role) if x_actor_role is not None else None
    except InvalidArgumentError as e:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=str(e))

    try:
        role = system.identity.role_of(actor_id)
    except StorageError as e:
        raise to_http_error(e)
    if role is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unknown user")
    if claimed is not None and claimed != role:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=f"User {actor_id} does not hold the {claimed.value} role"
        )
    return Actor(actor_id, role)


ERROR_STATUS = {
    NotFoundError: status.HTTP_404_NOT_FOUND,
    AuthorizationError: status.HTTP_403_FORBIDDEN,
    InsufficientFundsError: status.HTTP_409_CONFLICT,
    LimitExceededError: status.HTTP_422_UNPROCESSABLE_ENTITY,
    OverdraftLockError: status.HTTP_423_LOCKED,
    DuplicateAccountError: status.HTTP_409_CONFLICT,
    InvalidArgumentError: status.HTTP_400_BAD_REQUEST,
    StorageError: status.HTTP_503_SERVICE_UNAVAILABLE,
}


def to_http_error(error: BankingError) -> HTTPException:
    """Map a banking error onto an HTTP error response"""
    for error_type, status_code in ERROR_STATUS.items():
        if isinstance(error, error_type):
            return HTTPException(status_code=status_code, detail=str(error))
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(error))

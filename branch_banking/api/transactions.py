"""
Transaction endpoints
"""

from fastapi import APIRouter, Depends

from .deps import get_actor, get_banking_system, to_http_error
from .schemas import DepositRequest, TransactionResponse, TransferRequest, WithdrawRequest
from ..errors import BankingError
from ..identity import Actor
from ..system import BankingSystem


router = APIRouter()


@router.post("/deposit", response_model=TransactionResponse)
async def deposit(
    request: DepositRequest,
    actor: Actor = Depends(get_actor),
    system: BankingSystem = Depends(get_banking_system)
):
    """Make a deposit"""
    try:
        result = system.engine_for(actor).deposit(request.account_id, request.amount)
    except BankingError as e:
        raise to_http_error(e)
    
    return TransactionResponse.from_result(result, "Deposit processed successfully")


@router.post("/withdraw", response_model=TransactionResponse)
async def withdraw(
    request: WithdrawRequest,
    actor: Actor = Depends(get_actor),
    system: BankingSystem = Depends(get_banking_system)
):
    """Make a withdrawal"""
    try:
        result = system.engine_for(actor).withdraw(request.account_id, request.amount)
    except BankingError as e:
        raise to_http_error(e)
    
    return TransactionResponse.from_result(result, "Withdrawal processed successfully")


@router.post("/transfer", response_model=TransactionResponse)
async def transfer(
    request: TransferRequest,
    actor: Actor = Depends(get_actor),
    system: BankingSystem = Depends(get_banking_system)
):
    """Make a transfer between accounts"""
    try:
        result = system.engine_for(actor).transfer(
            request.from_account_id, request.to_account_id, request.amount
        )
    except BankingError as e:
        raise to_http_error(e)
    
    return TransactionResponse.from_result(result, "Transfer processed successfully")

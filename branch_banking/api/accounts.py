"""
Account endpoints
"""

from typing import List

from fastapi import APIRouter, Depends, HTTPException, status

from .deps import get_actor, get_banking_system, to_http_error
from .schemas import (
    AccountModel, CreateAccountRequest, ReconciliationModel, TransactionRecordModel
)
from ..errors import BankingError
from ..identity import Actor
from ..system import BankingSystem


router = APIRouter()


@router.post("/accounts", status_code=status.HTTP_201_CREATED)
async def create_account(
    request: CreateAccountRequest,
    actor: Actor = Depends(get_actor),
    system: BankingSystem = Depends(get_banking_system)
):
    """Open a new account (bankers only)"""
    try:
        account = system.account_service_for(actor).open_account(
            customer_id=request.customer_id,
            account_type=request.account_type,
            card_tier=request.card_tier,
        )
    except BankingError as e:
        raise to_http_error(e)
    
    return {
        "account": AccountModel.from_account(account),
        "message": "New bank account successfully created"
    }


@router.get("/accounts/{account_id}", response_model=AccountModel)
async def get_account(
    account_id: int,
    actor: Actor = Depends(get_actor),
    system: BankingSystem = Depends(get_banking_system)
):
    """Get account details"""
    engine = system.engine_for(actor)
    try:
        account = engine.get_account(account_id)
    except BankingError as e:
        raise to_http_error(e)
    
    state = engine.overdraft_policy.state_of(account.overdraft_count)
    return AccountModel.from_account(account, state.value)


@router.get("/customers/{customer_id}/accounts", response_model=List[AccountModel])
async def list_customer_accounts(
    customer_id: str,
    actor: Actor = Depends(get_actor),
    system: BankingSystem = Depends(get_banking_system)
):
    """Checking and savings accounts of a customer"""
    try:
        summaries = system.engine_for(actor).view_accounts(customer_id)
    except BankingError as e:
        raise to_http_error(e)
    
    return [
        AccountModel.from_account(s.account, s.overdraft_state.value) for s in summaries
    ]


@router.get("/accounts/{account_id}/transactions", response_model=List[TransactionRecordModel])
async def get_account_transactions(
    account_id: int,
    kind: str = "all",
    actor: Actor = Depends(get_actor),
    system: BankingSystem = Depends(get_banking_system)
):
    """Transaction history of an account, oldest first"""
    try:
        records = system.engine_for(actor).account_history(account_id, kind)
    except BankingError as e:
        raise to_http_error(e)
    
    return [TransactionRecordModel.from_record(r) for r in records]


@router.get("/accounts/{account_id}/reconciliation", response_model=ReconciliationModel)
async def reconcile_account(
    account_id: int,
    actor: Actor = Depends(get_actor),
    system: BankingSystem = Depends(get_banking_system)
):
    """Compare the ledger balance with the balance replayed from history (bankers only)"""
    if not actor.is_banker:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN,
                            detail="Only bankers can reconcile accounts")
    try:
        result = system.engine_for(actor).reconcile(account_id)
    except BankingError as e:
        raise to_http_error(e)
    
    return ReconciliationModel.from_result(result)

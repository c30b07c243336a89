"""
Account management endpoints
"""

from fastapi import APIRouter, Depends, status

from .dependencies import BankingSystem, get_banking_system, require_user
from .schemas import CreateAccountRequest, FundAccountRequest
from ..users import User


router = APIRouter()


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_account(
    request: CreateAccountRequest,
    user: User = Depends(require_user),
    system: BankingSystem = Depends(get_banking_system)
):
    """Open a checking or savings account"""
    account = system.account_manager.create_account(user, request.account_type)
    return account.to_dict()


@router.get("")
async def get_accounts(
    user: User = Depends(require_user),
    system: BankingSystem = Depends(get_banking_system)
):
    """List the caller's accounts"""
    return [account.to_dict() for account in system.account_manager.get_accounts(user)]


@router.post("/{account_id}/fund")
async def fund_account(
    account_id: int,
    request: FundAccountRequest,
    user: User = Depends(require_user),
    system: BankingSystem = Depends(get_banking_system)
):
    """Deposit money from a card or bank account"""
    result = system.account_manager.fund_account(
        user,
        account_id,
        request.amount,
        request.funding_source.to_funding_source()
    )
    return {
        "transaction": result.transaction.to_dict(),
        "new_balance": str(result.new_balance),
    }


@router.get("/{account_id}/transactions")
async def get_account_transactions(
    account_id: int,
    user: User = Depends(require_user),
    system: BankingSystem = Depends(get_banking_system)
):
    """Transaction history for an account, newest first"""
    return {"transactions": system.transaction_query.get_transactions(user, account_id)}

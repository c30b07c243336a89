"""
Authentication endpoints
"""

from fastapi import APIRouter, Depends, status

from .dependencies import BankingSystem, get_banking_system, get_request_context
from .schemas import LoginRequest, SignupRequest
from ..sessions import RequestContext


router = APIRouter()


@router.post("/signup", status_code=status.HTTP_201_CREATED)
async def signup(
    request: SignupRequest,
    ctx: RequestContext = Depends(get_request_context),
    system: BankingSystem = Depends(get_banking_system)
):
    """Register a new user and start a session"""
    return system.auth_service.signup(request, ctx)


@router.post("/login")
async def login(
    request: LoginRequest,
    ctx: RequestContext = Depends(get_request_context),
    system: BankingSystem = Depends(get_banking_system)
):
    """Authenticate and replace any existing session"""
    return system.auth_service.login(request.email, request.password, ctx)


@router.post("/logout")
async def logout(
    ctx: RequestContext = Depends(get_request_context),
    system: BankingSystem = Depends(get_banking_system)
):
    """End the current session"""
    return system.auth_service.logout(ctx)

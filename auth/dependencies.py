"""
Authentication and credit dependencies for Nuvix
"""
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
import logging
from supabase import Client

from .middleware import get_auth_middleware
from config.settings import MIN_CREDITS_TO_GENERATE
from services.credit_service import CreditService

logger = logging.getLogger(__name__)

security = HTTPBearer()

def get_supabase_client() -> Client:
    return get_auth_middleware().supabase

async def get_current_user(credentials: HTTPAuthorizationCredentials = Depends(security)) -> dict:
    """
    Get current authenticated user
    """
    auth_middleware = get_auth_middleware()
    return await auth_middleware.verify_token(credentials)

def get_credit_service(supabase: Client = Depends(get_supabase_client)) -> CreditService:
    return CreditService(supabase)

async def require_generation_credits(
    current_user: dict = Depends(get_current_user),
    credit_service: CreditService = Depends(get_credit_service),
) -> dict:
    """
    Rejects a generation before any upstream call when the balance is below the
    minimum. The balance is re-read rather than taken from the token profile.
    """
    balance = await credit_service.get_balance(current_user["id"])
    if balance is None or balance < MIN_CREDITS_TO_GENERATE:
        logger.info(f"Generation refused for user {current_user['id']}: balance {balance}")
        raise HTTPException(
            status_code=status.HTTP_402_PAYMENT_REQUIRED,
            detail="Insufficient credits"
        )
    current_user["credits"] = balance
    return current_user

"""
User routes for Nuvix
"""
from fastapi import APIRouter, HTTPException, status, Depends
import logging
from supabase import Client

from auth.dependencies import get_current_user, get_supabase_client
from config.settings import MIN_CREDITS_TO_GENERATE
from models.user import UserProfile, CreditBalanceResponse
from services.credit_service import CreditService
from services.user_service import UserService

router = APIRouter(prefix="/users", tags=["Users"])
logger = logging.getLogger(__name__)

@router.get("/me", response_model=UserProfile)
async def get_current_user_profile(current_user: dict = Depends(get_current_user), supabase: Client = Depends(get_supabase_client)):
    """
    Get current user profile
    """
    user_profile = await UserService(supabase).get_user_profile(current_user["id"])
    if not user_profile:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="User profile not found"
        )
    return UserProfile(**user_profile)

@router.get("/credits", response_model=CreditBalanceResponse)
async def get_credit_balance(current_user: dict = Depends(get_current_user), supabase: Client = Depends(get_supabase_client)):
    """
    Authoritative balance, re-fetched by the client to reconcile its cached value
    """
    balance = await CreditService(supabase).get_balance(current_user["id"])
    if balance is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="User profile not found"
        )
    return CreditBalanceResponse(
        credits=balance,
        min_credits_to_generate=MIN_CREDITS_TO_GENERATE,
        can_generate=balance >= MIN_CREDITS_TO_GENERATE
    )

@router.delete("/me")
async def delete_account(current_user: dict = Depends(get_current_user), supabase: Client = Depends(get_supabase_client)):
    """
    Delete the account and all of its projects
    """
    logger.info(f"Deleting account for user: {current_user['id']}")
    if not await UserService(supabase).delete_account(current_user["id"]):
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to delete account"
        )
    return {"success": True, "message": "Account deleted successfully"}

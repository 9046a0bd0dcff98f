"""
Billing routes for Dodo Payments subscriptions.
"""
import logging
from datetime import datetime
from typing import Optional
from fastapi import APIRouter, Depends, HTTPException, Request, status
from pydantic import BaseModel
from supabase import Client

from auth.dependencies import get_current_user, get_supabase_client
from services.billing_service import BillingService

router = APIRouter(prefix="/billing", tags=["Billing"])
logger = logging.getLogger(__name__)

class CheckoutRequest(BaseModel):
    product_id: str

class CheckoutResponse(BaseModel):
    checkout_url: str

class PortalResponse(BaseModel):
    portal_url: str

def get_billing_service(supabase: Client = Depends(get_supabase_client)) -> BillingService:
    return BillingService(supabase)

@router.post("/checkout", response_model=CheckoutResponse)
async def create_checkout(
    request: CheckoutRequest,
    current_user: dict = Depends(get_current_user),
    billing_service: BillingService = Depends(get_billing_service)
):
    """
    Creates a checkout session for one of the plan products.
    """
    try:
        checkout_url = await billing_service.create_checkout_session(
            user_id=current_user["id"],
            user_email=current_user.get("email", ""),
            product_id=request.product_id,
            dodo_customer_id=current_user.get("dodo_customer_id")
        )
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except Exception as e:
        logger.error(f"Checkout creation error for user {current_user['id']}: {e}", exc_info=True)
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to create checkout session")

    logger.info(f"Created checkout session for user {current_user['id']}")
    return CheckoutResponse(checkout_url=checkout_url)

@router.post("/portal", response_model=PortalResponse)
async def create_portal(
    current_user: dict = Depends(get_current_user),
    billing_service: BillingService = Depends(get_billing_service)
):
    """
    Creates a customer portal session for the current user.
    """
    dodo_customer_id: Optional[str] = current_user.get("dodo_customer_id")
    if not dodo_customer_id:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="No subscription found for this user.")
    try:
        portal_url = await billing_service.create_portal_session(dodo_customer_id)
    except Exception as e:
        logger.error(f"Portal creation error for user {current_user['id']}: {e}", exc_info=True)
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to create customer portal session")
    return PortalResponse(portal_url=portal_url)

@router.post("/cancel")
async def cancel_subscription(
    current_user: dict = Depends(get_current_user),
    billing_service: BillingService = Depends(get_billing_service)
):
    """
    Cancels the current subscription. Tier and remaining credits are kept.
    """
    try:
        await billing_service.cancel_subscription(current_user)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except Exception as e:
        logger.error(f"Error canceling subscription for user {current_user['id']}: {e}", exc_info=True)
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to cancel subscription with payment provider")
    return {"success": True, "message": "Subscription canceled successfully"}

@router.get("/webhook")
async def webhook_status():
    """Reachability check for the webhook endpoint."""
    return {"status": "Webhook endpoint is live", "timestamp": datetime.now().isoformat()}

@router.post("/webhook")
async def billing_webhook(request: Request, billing_service: BillingService = Depends(get_billing_service)):
    """
    Handles incoming webhook events from Dodo Payments.
    """
    payload = await request.body()
    headers = dict(request.headers)

    try:
        return await billing_service.process_webhook(payload, headers)
    except ValueError as e:
        logger.warning(f"Billing webhook rejected: {e}")
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except Exception as e:
        logger.error(f"Unexpected error processing billing webhook: {e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Webhook processing failed due to an internal error."
        )

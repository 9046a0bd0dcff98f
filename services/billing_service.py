"""
Dodo Payments service for Nuvix subscriptions and credit top-ups.
"""
import logging
from typing import Dict, Any, Optional

from dodopayments import AsyncDodoPayments
from standardwebhooks import Webhook
from supabase import Client

from config.settings import DODO_API_KEY, DODO_WEBHOOK_SECRET, DODO_ENVIRONMENT, FRONTEND_URL
from config.plan_config import get_plan_for_product
from services.credit_service import CreditService
from services.user_service import UserService

logger = logging.getLogger(__name__)

UNIQUE_VIOLATION = "23505"

class BillingService:
    def __init__(self, supabase_client: Client, async_client: Optional[AsyncDodoPayments] = None, webhook_secret: Optional[str] = DODO_WEBHOOK_SECRET):
        """Initializes the billing service and the Dodo Payments SDK client."""
        self.supabase = supabase_client
        self.webhook_secret = webhook_secret
        self.credit_service = CreditService(supabase_client)
        self.user_service = UserService(supabase_client)

        if async_client is None:
            if not DODO_API_KEY:
                logger.error("Dodo Payments environment variables are not fully configured.")
                raise ValueError("DODO_API_KEY must be set.")
            async_client = AsyncDodoPayments(bearer_token=DODO_API_KEY, environment=DODO_ENVIRONMENT)
        self.async_client = async_client

    async def create_checkout_session(self, user_id: str, user_email: str, product_id: str, dodo_customer_id: Optional[str] = None) -> str:
        """
        Creates a Dodo Payments checkout session for one of the plan products.
        """
        if not get_plan_for_product(product_id):
            raise ValueError(f"Unknown product: {product_id}")

        try:
            logger.info(f"Creating Dodo checkout session for user_id: {user_id}, product: {product_id}")
            customer_payload = {"customer_id": dodo_customer_id} if dodo_customer_id else {"email": user_email, "name": user_email}
            checkout_session = await self.async_client.checkout_sessions.create(
                customer=customer_payload,
                product_cart=[{"product_id": product_id, "quantity": 1}],
                return_url=f"{FRONTEND_URL}/success",
                metadata={"user_id": user_id},
            )
            return checkout_session.checkout_url
        except Exception as e:
            logger.error(f"Failed to create Dodo checkout session for user {user_id}: {e}", exc_info=True)
            raise Exception("Could not create payment session.")

    async def create_portal_session(self, dodo_customer_id: str) -> str:
        """
        Creates a Dodo Payments customer portal session.
        """
        if not dodo_customer_id:
            raise ValueError("Customer does not have a payment history.")
        try:
            portal_session = await self.async_client.customers.customer_portal.create(customer_id=dodo_customer_id)
            return portal_session.link
        except Exception as e:
            logger.error(f"Failed to create Dodo portal session for {dodo_customer_id}: {e}", exc_info=True)
            raise Exception("Could not create customer portal session.")

    async def cancel_subscription(self, user: Dict[str, Any]) -> None:
        """
        Cancels the user's subscription with Dodo. The tier and remaining
        credits are kept; only the subscription reference is cleared.
        """
        subscription_id = user.get("dodo_subscription_id")
        if not subscription_id or user.get("tier", "free") == "free":
            raise ValueError("No active subscription found")

        await self.async_client.subscriptions.update(subscription_id, status="cancelled")
        logger.info(f"Dodo subscription {subscription_id} cancelled for user {user['id']}")

        updated = await self.user_service.update_user_profile(user["id"], {"dodo_subscription_id": None})
        if not updated:
            logger.error(f"Subscription {subscription_id} cancelled but profile of user {user['id']} was not updated")

    async def process_webhook(self, payload: bytes, headers: Dict[str, Any]) -> Dict[str, Any]:
        """
        Verifies and processes an incoming webhook from Dodo Payments.

        The event id is claimed in `billing_webhook_events` before any handler
        runs, so a redelivered or concurrent copy is reported as a duplicate.
        If a handler fails the claim is released and the error propagates,
        letting Dodo redeliver the event.
        """
        if not self.webhook_secret:
            raise RuntimeError("DODO_WEBHOOK_SECRET is not set")
        try:
            event = Webhook(self.webhook_secret).verify(payload, headers)
        except Exception as e:
            logger.error(f"Webhook signature verification failed: {e}")
            raise ValueError("Invalid webhook signature.")

        event_id = headers.get("webhook-id")
        event_type = event.get("type")
        logger.info(f"Billing webhook received: {event_type} ({event_id})")

        if not self._claim_event(event_id, event):
            logger.info(f"Ignoring duplicate webhook event {event_id}")
            return {"status": "duplicate", "event_type": event_type}

        event_handlers = {
            "subscription.active": self._handle_subscription_started,
            "subscription.renewed": self._handle_subscription_started,
            "subscription.cancelled": self._handle_subscription_canceled,
            "subscription.expired": self._handle_subscription_expired,
        }

        result = {"status": "success", "event_type": event_type}
        handler = event_handlers.get(event_type)
        try:
            if handler:
                warning = await handler(event.get("data", {}))
                if warning:
                    result["warning"] = warning
            else:
                logger.info(f"Ignoring unhandled webhook event type: {event_type}")
        except Exception:
            self._release_event(event_id)
            raise

        self._mark_event_processed(event_id)
        return result

    async def _resolve_user_id(self, data: Dict[str, Any]) -> Optional[str]:
        user_id = (data.get("metadata") or {}).get("user_id")
        if user_id:
            return user_id
        email = (data.get("customer") or {}).get("email")
        if not email:
            logger.error("Webhook error: no user_id in metadata and no customer email in payload.")
            return None
        logger.warning(f"No user_id in metadata, looking up user by email: {email}")
        return await self.user_service.find_user_id_by_email(email)

    async def _handle_subscription_started(self, data: Dict[str, Any]) -> Optional[str]:
        """
        Handles 'subscription.active' and 'subscription.renewed': grants the
        plan's credits and sets the tier.
        """
        user_id = await self._resolve_user_id(data)
        if not user_id:
            raise ValueError("User identification failed")

        product_id = data.get("product_id")
        plan = get_plan_for_product(product_id)
        if not plan:
            # Acknowledged so the provider does not retry
            logger.error(f"Unknown product id in subscription event: {product_id}")
            return "Unknown product"

        await self.credit_service.grant_subscription(
            user_id,
            credits=plan["credits"],
            tier=plan["tier"],
            subscription_id=data.get("subscription_id"),
            customer_id=(data.get("customer") or {}).get("customer_id"),
        )
        logger.info(f"User {user_id} moved to tier {plan['tier']} with +{plan['credits']} credits")
        return None

    async def _handle_subscription_canceled(self, data: Dict[str, Any]) -> Optional[str]:
        """
        Handles 'subscription.cancelled'. The user keeps the tier and credits.
        """
        dodo_sub_id = data.get("subscription_id")
        if not dodo_sub_id:
            logger.error("Webhook error: Missing subscription_id in canceled event.")
            return "Missing subscription id"

        (self.supabase.table("profiles")
            .update({"dodo_subscription_id": None})
            .eq("dodo_subscription_id", dodo_sub_id)
            .execute())
        logger.info(f"Subscription {dodo_sub_id} was cancelled.")
        return None

    async def _handle_subscription_expired(self, data: Dict[str, Any]) -> Optional[str]:
        """
        Handles 'subscription.expired'. This is the definitive end of the subscription.
        """
        user_id = await self._resolve_user_id(data)
        if not user_id:
            logger.error("Webhook error: Missing user in expired subscription data.")
            return "User identification failed"

        (self.supabase.table("profiles")
            .update({"tier": "free", "dodo_subscription_id": None})
            .eq("id", user_id)
            .execute())
        logger.info(f"Subscription for user {user_id} has expired.")
        return None

    def _claim_event(self, event_id: Optional[str], event: Dict[str, Any]) -> bool:
        """
        Insert the event row; False when the id is already recorded.
        """
        try:
            (self.supabase.table("billing_webhook_events")
                .insert({"event_id": event_id, "event_type": event.get("type"), "payload": event, "status": "processing"})
                .execute())
            return True
        except Exception as e:
            if getattr(e, "code", None) == UNIQUE_VIOLATION or "duplicate key" in str(e):
                return False
            logger.error(f"Failed to claim webhook event {event_id}: {e}")
            raise

    def _release_event(self, event_id: Optional[str]) -> None:
        try:
            self.supabase.table("billing_webhook_events").delete().eq("event_id", event_id).execute()
        except Exception as e:
            logger.error(f"Failed to release webhook event {event_id}: {e}")

    def _mark_event_processed(self, event_id: Optional[str]) -> None:
        try:
            (self.supabase.table("billing_webhook_events")
                .update({"status": "processed"})
                .eq("event_id", event_id)
                .execute())
        except Exception as e:
            logger.error(f"Failed to mark webhook event {event_id} as processed: {e}")

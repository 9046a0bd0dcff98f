"""
Credit ledger for Nuvix: turns upstream token usage into a credit cost and
applies it to the user's balance in the profiles table.
"""
import math
import logging
from typing import Optional

from httpx import TransportError
from supabase import Client

from config.settings import (
    CREDIT_RATE_INPUT,
    CREDIT_RATE_OUTPUT,
    MIN_CREDITS_TO_GENERATE,
    ALLOW_NON_ATOMIC_CREDIT_FALLBACK,
)
from config.decorators import retry_on_ssl_error
from services.frame_splitter import CREDITS_DEDUCTED_OPENER, STREAM_ERROR_OPENER, MARKER_CLOSER

logger = logging.getLogger(__name__)


def calculate_credit_cost(input_tokens: Optional[int], output_tokens: Optional[int]) -> int:
    """
    Credits charged for one generation. Every successful generation costs at
    least one credit, even when the upstream reported no usage.
    """
    input_cost = (input_tokens or 0) / 1000 * CREDIT_RATE_INPUT
    output_cost = (output_tokens or 0) / 1000 * CREDIT_RATE_OUTPUT
    return math.ceil(max(1, input_cost + output_cost))


def apply_deduction(balance: int, cost: int) -> int:
    return max(0, balance - cost)


def format_credits_marker(amount: int) -> str:
    return f"{CREDITS_DEDUCTED_OPENER}{int(amount)}{MARKER_CLOSER}"


def format_error_marker(message: str) -> str:
    # The marker must stay on one line and must not close early
    safe = " ".join(str(message).split()).replace("-->", "->")
    return f"{STREAM_ERROR_OPENER}{safe}{MARKER_CLOSER}"


class CreditService:
    def __init__(self, supabase_client: Client, allow_fallback: bool = ALLOW_NON_ATOMIC_CREDIT_FALLBACK):
        self.supabase = supabase_client
        self.allow_fallback = allow_fallback

    async def get_balance(self, user_id: str) -> Optional[int]:
        """
        Current credit balance, or None if the profile could not be read
        """
        try:
            response = self.supabase.table("profiles").select("credits").eq("id", user_id).single().execute()
            if not response.data:
                return None
            return response.data.get("credits") or 0
        except Exception as e:
            logger.error(f"Error reading credit balance for user {user_id}: {str(e)}")
            return None

    async def has_minimum_balance(self, user_id: str, minimum: int = MIN_CREDITS_TO_GENERATE) -> bool:
        balance = await self.get_balance(user_id)
        return balance is not None and balance >= minimum

    async def deduct_credits(self, user_id: str, amount: int) -> Optional[int]:
        """
        Deduct `amount` credits, clamped at zero.

        The `deduct_credits` SQL function is the atomic path and is called
        exactly once. When it fails and the non-atomic fallback is enabled, the
        balance is read, reduced and written back; concurrent generations for
        the same user can race there. A transport error leaves the outcome of
        the atomic call unknown, so the fallback is skipped for it.
        Returns the deducted amount, or None when no path succeeded. Failures
        are logged, never raised: the user already has their content.
        """
        try:
            self._deduct_atomic(user_id, amount)
            logger.info(f"Deducted {amount} credits from user {user_id}")
            return amount
        except TransportError as e:
            logger.error(f"Credit deduction for user {user_id} has an unknown outcome: {str(e)}")
            return None
        except Exception as e:
            logger.error(f"Atomic credit deduction failed for user {user_id}: {str(e)}")
            if not self.allow_fallback:
                return None

        try:
            balance = await self.get_balance(user_id)
            if balance is None:
                logger.error(f"Credit fallback skipped, no profile for user {user_id}")
                return None
            new_balance = apply_deduction(balance, amount)
            self._write_balance(user_id, new_balance)
            logger.warning(f"Deducted {amount} credits from user {user_id} with non-atomic fallback ({balance} -> {new_balance})")
            return amount
        except Exception as e:
            logger.error(f"Credit fallback failed for user {user_id}: {str(e)}", exc_info=True)
            return None

    async def grant_subscription(self, user_id: str, credits: int, tier: str, subscription_id: Optional[str], customer_id: Optional[str]) -> None:
        """
        Add a plan's credits and record the tier and Dodo ids in one
        transaction. Errors propagate so the webhook can be redelivered.
        """
        self.supabase.rpc("grant_subscription", {
            "user_id_arg": user_id,
            "amount": credits,
            "tier_arg": tier,
            "subscription_id_arg": subscription_id,
            "customer_id_arg": customer_id,
        }).execute()
        logger.info(f"Granted {credits} credits and tier {tier} to user {user_id}")

    def _deduct_atomic(self, user_id: str, amount: int):
        return self.supabase.rpc("deduct_credits", {"user_id_arg": user_id, "amount": amount}).execute()

    @retry_on_ssl_error
    def _write_balance(self, user_id: str, balance: int):
        return self.supabase.table("profiles").update({"credits": balance}).eq("id", user_id).execute()

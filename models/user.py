"""
User profile models for Nuvix
"""
from pydantic import BaseModel, EmailStr, Field
from typing import Optional
from datetime import datetime
from enum import Enum

class SubscriptionTier(str, Enum):
    FREE = "free"
    STARTER = "starter"
    PRO = "pro"
    ULTIMATE = "ultimate"


class UserProfile(BaseModel):
    id: str
    email: Optional[EmailStr] = None
    full_name: Optional[str] = None
    tier: SubscriptionTier = SubscriptionTier.FREE
    credits: int = Field(default=0, ge=0)
    dodo_customer_id: Optional[str] = None
    dodo_subscription_id: Optional[str] = None
    created_at: Optional[datetime] = None

class CreditBalanceResponse(BaseModel):
    credits: int
    min_credits_to_generate: int
    can_generate: bool

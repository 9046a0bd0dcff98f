# config/plan_config.py

import os
from typing import Dict, Any, Optional

TIER_CONFIG: Dict[str, Dict[str, Any]] = {
    "free": {
        "name": "Free",
        "screens_per_flow": 3,
    },
    "starter": {
        "name": "Starter",
        "screens_per_flow": 6,
    },
    "pro": {
        "name": "Pro",
        "screens_per_flow": 6,
    },
    "ultimate": {
        "name": "Ultimate",
        "screens_per_flow": 6,
    },
}

# Dodo product id -> plan granted by a subscription to it
PLAN_PRODUCTS: Dict[str, Dict[str, Any]] = {
    key: value
    for key, value in {
        os.getenv("DODO_PRODUCT_STARTER_MONTHLY"): {"tier": "starter", "credits": 300},
        os.getenv("DODO_PRODUCT_STARTER_ANNUAL"): {"tier": "starter", "credits": 3600},
        os.getenv("DODO_PRODUCT_PRO_MONTHLY"): {"tier": "pro", "credits": 1000},
        os.getenv("DODO_PRODUCT_PRO_ANNUAL"): {"tier": "pro", "credits": 12000},
        os.getenv("DODO_PRODUCT_ULTIMATE_MONTHLY"): {"tier": "ultimate", "credits": 2500},
        os.getenv("DODO_PRODUCT_ULTIMATE_ANNUAL"): {"tier": "ultimate", "credits": 30000},
    }.items()
    if key
}


def get_tier_features(tier: str) -> Dict[str, Any]:
    """Safely get the feature configuration for a given tier."""
    return TIER_CONFIG.get(tier, TIER_CONFIG["free"])


def get_plan_for_product(product_id: Optional[str]) -> Optional[Dict[str, Any]]:
    if not product_id:
        return None
    return PLAN_PRODUCTS.get(product_id)

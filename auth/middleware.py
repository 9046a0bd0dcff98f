"""
Authentication middleware for Nuvix with local JWT validation
"""
import jwt
from fastapi import HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials
from typing import Optional
import logging
from supabase import create_client, Client

from config.settings import SUPABASE_URL, SUPABASE_SERVICE_KEY, SUPABASE_JWT_SECRET

logger = logging.getLogger(__name__)

# JWT settings
JWT_ALGORITHM = "HS256"
JWT_AUDIENCE = "authenticated"

class AuthMiddleware:
    def __init__(self, supabase_client: Optional[Client] = None, jwt_secret: Optional[str] = SUPABASE_JWT_SECRET):
        if not jwt_secret:
            raise ValueError("SUPABASE_JWT_SECRET environment variable is required")
        self.jwt_secret = jwt_secret

        if supabase_client is None:
            if not SUPABASE_URL:
                raise ValueError("SUPABASE_URL environment variable is required")
            if not SUPABASE_SERVICE_KEY:
                raise ValueError("SUPABASE_SERVICE_KEY environment variable is required")
            supabase_client = create_client(SUPABASE_URL, SUPABASE_SERVICE_KEY)
            logger.info("✅ Supabase client initialized with local JWT validation")

        self.supabase: Client = supabase_client

    async def verify_token(self, credentials: HTTPAuthorizationCredentials) -> dict:
        """
        Verify JWT token locally without round-trip to Supabase, then attach the profile
        """
        try:
            payload = jwt.decode(
                credentials.credentials,
                self.jwt_secret,
                algorithms=[JWT_ALGORITHM],
                audience=JWT_AUDIENCE
            )
        except jwt.ExpiredSignatureError:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Token has expired"
            )
        except jwt.InvalidAudienceError:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Invalid token audience"
            )
        except jwt.InvalidTokenError as e:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail=f"Invalid token: {str(e)}"
            )

        user_id = payload.get("sub")
        if not user_id:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Invalid token: missing user information"
            )

        profile = await self.get_user_profile(user_id)
        if not profile:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="User profile not found"
            )

        return {
            "id": profile["id"],
            "email": profile.get("email") or payload.get("email"),
            "tier": profile.get("tier") or "free",
            "credits": profile.get("credits") or 0,
            "dodo_customer_id": profile.get("dodo_customer_id"),
            "dodo_subscription_id": profile.get("dodo_subscription_id"),
        }

    async def get_user_profile(self, user_id: str) -> Optional[dict]:
        """
        Get user profile from database
        """
        try:
            response = self.supabase.table("profiles").select("*").eq("id", user_id).single().execute()
            return response.data
        except Exception as e:
            logger.error(f"Error getting user profile: {e}")
            return None

# Global auth middleware instance - will be initialized on first use
auth_middleware = None

def get_auth_middleware():
    """Get or create auth middleware instance"""
    global auth_middleware
    if auth_middleware is None:
        auth_middleware = AuthMiddleware()
    return auth_middleware

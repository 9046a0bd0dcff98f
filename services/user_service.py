"""
User service for Nuvix database operations
"""
from typing import Optional, Dict, Any
import logging
from supabase import Client

logger = logging.getLogger(__name__)

class UserService:
    def __init__(self, supabase_client: Client):
        self.supabase = supabase_client

    async def get_user_profile(self, user_id: str) -> Optional[Dict[str, Any]]:
        """
        Get user profile by ID
        """
        try:
            response = self.supabase.table("profiles").select("*").eq("id", user_id).single().execute()
            return response.data
        except Exception as e:
            logger.error(f"Error getting user profile {user_id}: {str(e)}")
            return None

    async def find_user_id_by_email(self, email: str) -> Optional[str]:
        try:
            response = self.supabase.table("profiles").select("id").eq("email", email).single().execute()
            return response.data["id"] if response.data else None
        except Exception as e:
            logger.error(f"Error looking up user by email {email}: {str(e)}")
            return None

    async def update_user_profile(self, user_id: str, update_data: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """
        Update user profile
        """
        try:
            response = self.supabase.table("profiles").update(update_data).eq("id", user_id).execute()

            if response.data:
                logger.info(f"Updated user profile: {user_id}")
                return response.data[0]
            return None

        except Exception as e:
            logger.error(f"Error updating user profile {user_id}: {str(e)}")
            return None

    async def delete_account(self, user_id: str) -> bool:
        """
        Delete the user's frames, messages, projects and profile, then the auth user.
        Steps run in foreign-key order; a failed step is logged and the rest continue.
        """
        try:
            projects = self.supabase.table("projects").select("id").eq("user_id", user_id).execute()
            project_ids = [p["id"] for p in (projects.data or [])]
        except Exception as e:
            logger.error(f"Error listing projects for account deletion {user_id}: {str(e)}")
            return False

        if project_ids:
            for table in ("frames", "messages"):
                try:
                    self.supabase.table(table).delete().in_("project_id", project_ids).execute()
                except Exception as e:
                    logger.error(f"Error deleting {table} for user {user_id}: {str(e)}")

        for table, column in (("projects", "user_id"), ("profiles", "id")):
            try:
                self.supabase.table(table).delete().eq(column, user_id).execute()
            except Exception as e:
                logger.error(f"Error deleting {table} for user {user_id}: {str(e)}")

        try:
            self.supabase.auth.admin.delete_user(user_id)
        except Exception as e:
            logger.error(f"Error deleting auth user {user_id}: {str(e)}", exc_info=True)
            return False

        logger.info(f"Deleted account for user {user_id}")
        return True
